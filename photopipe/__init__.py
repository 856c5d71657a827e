"""
Photo ingestion and optimization pipeline.

A raw upload is fetched from the object store, its capture metadata is
extracted, thumbnail and gallery WebP renditions are generated and stored,
and the photo record is moved to READY (or ERROR). A batch uploader drives
many uploads with a fixed concurrency ceiling.
"""

__version__ = "1.0.0"

from .errors import (
    PipelineError,
    SourceNotFound,
    DecodeOrEncodeFailure,
    MetadataParseFailure,
    StoreWriteFailure,
    RecordUpdateFailure,
    UploadTransferFailure,
)
from .s3_config import S3Config
from .s3_client import S3Client
from .db_config import DbConfig
from .capture_metadata import CaptureMetadata, MetadataExtractor
from .rendition_generator import Rendition, RenditionGenerator, RenditionProfile, PROFILES
from .photo_record import PhotoRecord, PhotoStatus, Tag
from .photo_db import PhotoDb
from .key_lock import KeyedLock
from .optimizer import Optimizer, OptimizeResult
from .photo_service import PhotoService, build_service
from .batch_stats import BatchStats
from .batch_progress import BatchProgress
from .http_transport import HttpTransport
from .batch_uploader import BatchUploader, ItemStatus, UploadItem

__all__ = [
    "PipelineError",
    "SourceNotFound",
    "DecodeOrEncodeFailure",
    "MetadataParseFailure",
    "StoreWriteFailure",
    "RecordUpdateFailure",
    "UploadTransferFailure",
    "S3Config",
    "S3Client",
    "DbConfig",
    "CaptureMetadata",
    "MetadataExtractor",
    "Rendition",
    "RenditionGenerator",
    "RenditionProfile",
    "PROFILES",
    "PhotoRecord",
    "PhotoStatus",
    "Tag",
    "PhotoDb",
    "KeyedLock",
    "Optimizer",
    "OptimizeResult",
    "PhotoService",
    "build_service",
    "BatchStats",
    "BatchProgress",
    "HttpTransport",
    "BatchUploader",
    "ItemStatus",
    "UploadItem",
]
