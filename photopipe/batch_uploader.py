"""
BatchUploader - Concurrency-bounded upload and optimization of many files.
"""

import asyncio
import logging
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .batch_progress import BatchProgress
from .batch_stats import BatchStats
from .http_transport import HttpTransport
from .optimizer import OptimizeResult
from .photo_record import FULL_PREFIX

DEFAULT_CONCURRENCY = 5
DEFAULT_PRESIGN_BATCH_SIZE = 10


class ItemStatus(str, Enum):
    PENDING = 'pending'
    UPLOADING = 'uploading'
    OPTIMIZING = 'optimizing'
    COMPLETED = 'completed'
    ERROR = 'error'


@dataclass
class UploadItem:
    """
    One file in a batch and its progress.

    Attributes:
        filename: File name used for the raw key and the record name
        data: Raw file bytes
        content_type: MIME type sent with the upload
        status: Current step
        error: Failure message when status is ERROR
        full_key: Store key of the raw upload, once assigned
        upload_url: Presigned PUT URL, once assigned
        pk: Record pk, once created
        result: Optimization outcome, once completed
    """
    filename: str
    data: bytes = field(repr=False)
    content_type: str = 'application/octet-stream'
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None
    full_key: Optional[str] = None
    upload_url: Optional[str] = field(default=None, repr=False)
    pk: Optional[str] = None
    result: Optional[OptimizeResult] = None

    @property
    def size(self) -> int:
        return len(self.data)


def files_to_items(paths: Iterable[str]) -> List[UploadItem]:
    """Read local files into upload items."""
    items = []
    for path in paths:
        with open(path, 'rb') as f:
            data = f.read()
        content_type, _ = mimetypes.guess_type(path)
        items.append(UploadItem(
            filename=os.path.basename(path),
            data=data,
            content_type=content_type or 'application/octet-stream',
        ))
    return items


class BatchUploader:
    """
    Drives upload -> record -> optimize for many files.

    At most ``concurrency`` items are in flight at once. A failing item is
    marked ERROR and never aborts its siblings; there is no rollback.
    Re-running the same items retries only those not yet completed.
    """

    def __init__(
        self,
        service,
        transport: Optional[HttpTransport] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        presign_batch_size: int = DEFAULT_PRESIGN_BATCH_SIZE,
        prefix: str = FULL_PREFIX,
        progress: Optional[BatchProgress] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize uploader.

        Args:
            service: PhotoService (or anything with the same coroutines)
            transport: Raw byte transport for presigned URLs
            concurrency: Maximum items in flight
            presign_batch_size: Upload targets requested per call
            prefix: Key prefix for raw uploads
            progress: Optional progress tracker
            logger: Optional logger instance
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.service = service
        self.transport = transport or HttpTransport()
        self.concurrency = concurrency
        self.presign_batch_size = max(1, presign_batch_size)
        self.prefix = prefix
        self.progress = progress
        self.logger = logger or logging.getLogger(__name__)
        self.stats = BatchStats()
        self._stop_requested = False

    def stop(self) -> None:
        """Request the uploader to stop starting new items."""
        self._stop_requested = True

    async def run(self, items: Sequence[UploadItem]) -> BatchStats:
        """
        Upload and optimize every item that is not already completed.

        Args:
            items: Upload items; their status fields are updated in place

        Returns:
            BatchStats for this run
        """
        queue = [item for item in items if item.status != ItemStatus.COMPLETED]
        self.stats = BatchStats(total=len(queue), skipped=len(items) - len(queue))

        if self._stop_requested:
            self.logger.info("Stop was requested before upload started")
            return self.stats

        self.logger.info(
            f"Starting batch: {len(queue)} items, concurrency {self.concurrency}"
            + (f" ({self.stats.skipped} already completed)" if self.stats.skipped else "")
        )

        for item in queue:
            item.error = None
            item.result = None
            self._set_status(item, ItemStatus.PENDING)

        await self._assign_targets(queue)

        semaphore = asyncio.Semaphore(self.concurrency)
        await asyncio.gather(*(
            self._process(item, semaphore)
            for item in queue if item.status == ItemStatus.PENDING
        ))

        self.logger.info(
            f"Batch complete: {self.stats.completed} completed, "
            f"{self.stats.errors} errors ({self.stats.elapsed_seconds:.1f}s)"
        )
        return self.stats

    async def _assign_targets(self, queue: List[UploadItem]) -> None:
        for start in range(0, len(queue), self.presign_batch_size):
            chunk = queue[start:start + self.presign_batch_size]
            try:
                targets = await self.service.get_upload_targets([
                    {'filename': item.filename, 'content_type': item.content_type, 'prefix': self.prefix}
                    for item in chunk
                ])
                if len(targets) != len(chunk):
                    raise RuntimeError("Failed to get upload URL")
            except Exception as e:
                for item in chunk:
                    self._fail(item, e)
                continue
            for item, target in zip(chunk, targets):
                item.upload_url = target['url']
                item.full_key = target['key']

    async def _process(self, item: UploadItem, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            if self._stop_requested:
                return
            self.stats.enter()
            try:
                self._set_status(item, ItemStatus.UPLOADING)
                await asyncio.to_thread(self.transport.put, item.upload_url, item.data, item.content_type)
                self.stats.bytes_uploaded += item.size

                record = await self.service.create_pending_record(item.filename, item.full_key)
                item.pk = record['pk']

                self._set_status(item, ItemStatus.OPTIMIZING)
                item.result = await self.service.optimize(item.full_key)

                self.stats.completed += 1
                self.stats.bytes_generated += item.result.thumbnail_size + item.result.gallery_size
                self._set_status(item, ItemStatus.COMPLETED)
            except Exception as e:
                self._fail(item, e)
            finally:
                self.stats.leave()
                if self.progress:
                    self.progress.on_progress_update(self.stats)

    def _fail(self, item: UploadItem, error: BaseException) -> None:
        item.error = str(error) or error.__class__.__name__
        self.stats.errors += 1
        self.stats.error_details.append(f"{item.filename}: {item.error}")
        self.logger.error(f"Error processing {item.filename}: {item.error}")
        self._set_status(item, ItemStatus.ERROR)

    def _set_status(self, item: UploadItem, status: ItemStatus) -> None:
        item.status = status
        if self.progress:
            self.progress.on_status_change(item)
