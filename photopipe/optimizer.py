"""
Optimizer - Turns one raw upload into thumbnail and gallery renditions.
"""

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .capture_metadata import MetadataExtractor
from .errors import RecordUpdateFailure
from .key_lock import KeyedLock
from .photo_record import base_name, gallery_key_for, thumbnail_key_for
from .rendition_generator import GALLERY, THUMBNAIL, RenditionGenerator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OptimizeResult:
    """
    Outcome of a successful optimize call.

    Attributes:
        pk: Photo record primary key
        full_key: Store key of the raw upload
        raw_size: Raw upload size in bytes
        thumbnail_size: Thumbnail rendition size in bytes
        gallery_size: Gallery rendition size in bytes
        thumbnail_key: Store key of the thumbnail
        gallery_key: Store key of the gallery rendition
    """
    pk: str
    full_key: str
    raw_size: int
    thumbnail_size: int
    gallery_size: int
    thumbnail_key: str
    gallery_key: str

    def to_dict(self) -> dict:
        return asdict(self)


class Optimizer:
    """
    Fetch, extract, render, store, record.

    The record only becomes READY after both renditions are written, in a
    single update that sets both keys. Any failure marks an existing record
    as ERROR and is re-raised; nothing is retried here.
    """

    def __init__(
        self,
        store,
        photo_db,
        extractor: Optional[MetadataExtractor] = None,
        renditions: Optional[RenditionGenerator] = None,
        key_lock: Optional[KeyedLock] = None,
        serialize_per_key: bool = True,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize optimizer.

        Args:
            store: Object store client (get/put)
            photo_db: Record store (mark_ready/mark_error)
            extractor: Metadata extractor
            renditions: Rendition generator
            key_lock: Lock table shared by callers of this optimizer
            serialize_per_key: Allow at most one in-flight call per key
            clock: Source of the processing time used when no capture time exists
            logger: Optional logger instance
        """
        self.store = store
        self.db = photo_db
        self.logger = logger or logging.getLogger(__name__)
        self.extractor = extractor or MetadataExtractor(logger=self.logger)
        self.renditions = renditions or RenditionGenerator(logger=self.logger)
        self.key_lock = key_lock or KeyedLock()
        self.serialize_per_key = serialize_per_key
        self.clock = clock

    async def optimize(self, full_key: str) -> OptimizeResult:
        """
        Produce both renditions for a raw upload and mark its record READY.

        Args:
            full_key: Store key of the raw upload

        Returns:
            OptimizeResult with sizes and the record pk

        Raises:
            SourceNotFound: Raw upload is missing
            DecodeOrEncodeFailure: Image could not be decoded or encoded
            StoreWriteFailure: A rendition could not be written
            RecordUpdateFailure: Renditions were written but the record was not updated
        """
        guard = self.key_lock.hold(full_key) if self.serialize_per_key else nullcontext()
        async with guard:
            try:
                return await self._run(full_key)
            except Exception as e:
                self.logger.error(f"Error optimizing {full_key}: {e}")
                await self._mark_error(full_key)
                raise

    async def _run(self, full_key: str) -> OptimizeResult:
        self.logger.debug(f"Downloading: {full_key}")
        raw = await asyncio.to_thread(self.store.get, full_key)

        name = base_name(full_key)
        thumb_key = thumbnail_key_for(name)
        gallery_key = gallery_key_for(name)

        metadata = await asyncio.to_thread(self.extractor.extract, raw)

        self.logger.debug(f"Generating renditions: {name}")
        thumbnail, gallery = await asyncio.gather(
            asyncio.to_thread(self.renditions.generate, raw, THUMBNAIL.name, metadata),
            asyncio.to_thread(self.renditions.generate, raw, GALLERY.name, metadata),
        )

        object_metadata = metadata.to_object_metadata()
        self.logger.debug(f"Uploading: {thumb_key}, {gallery_key}")
        await asyncio.gather(
            asyncio.to_thread(self.store.put, thumb_key, thumbnail.data, thumbnail.content_type, object_metadata),
            asyncio.to_thread(self.store.put, gallery_key, gallery.data, gallery.content_type, object_metadata),
        )

        try:
            pk = await asyncio.to_thread(
                self.db.mark_ready,
                full_key,
                full_key.rsplit('/', 1)[-1] or name,
                thumb_key,
                gallery_key,
                metadata.captured_at or self.clock(),
                metadata.to_record_fields(),
            )
        except Exception as e:
            raise RecordUpdateFailure(full_key, e) from e

        self.logger.info(
            f"Optimized: {full_key} (raw {len(raw)} bytes, "
            f"thumbnail {len(thumbnail)} bytes, gallery {len(gallery)} bytes)"
        )
        return OptimizeResult(
            pk=pk,
            full_key=full_key,
            raw_size=len(raw),
            thumbnail_size=len(thumbnail),
            gallery_size=len(gallery),
            thumbnail_key=thumb_key,
            gallery_key=gallery_key,
        )

    async def _mark_error(self, full_key: str) -> None:
        try:
            marked = await asyncio.to_thread(self.db.mark_error, full_key)
        except Exception as e:
            self.logger.error(f"Could not mark {full_key} as error: {e}")
            return
        if marked:
            self.logger.info(f"Marked {full_key} as error")
