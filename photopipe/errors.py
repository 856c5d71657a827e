"""
Errors - Failure taxonomy for the ingestion and optimization pipeline.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure raised by the pipeline."""


class SourceNotFound(PipelineError):
    """Raised when the raw upload is missing from the object store."""

    def __init__(self, key: str):
        super().__init__(f"Source object not found: {key}")
        self.key = key


class DecodeOrEncodeFailure(PipelineError):
    """Raised when an image cannot be decoded or a rendition cannot be encoded."""


class MetadataParseFailure(PipelineError):
    """
    Raised inside the metadata extractor when an EXIF block cannot be read.

    Never escapes the extractor; it is downgraded to "no metadata".
    """


class StoreWriteFailure(PipelineError):
    """Raised when an object-store write fails after retries are exhausted."""

    def __init__(self, key: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to write {key}: {cause}")
        self.key = key
        self.cause = cause


class RecordUpdateFailure(PipelineError):
    """Raised when the photo record cannot be updated after renditions are written."""

    def __init__(self, full_key: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to update record for {full_key}: {cause}")
        self.full_key = full_key
        self.cause = cause


class UploadTransferFailure(PipelineError):
    """Raised when a raw byte transfer to a presigned URL is rejected."""

    def __init__(self, status: int, url: str):
        super().__init__(f"Upload failed with status {status}")
        self.status = status
        self.url = url
