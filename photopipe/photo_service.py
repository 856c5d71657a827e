"""
PhotoService - Operations exposed to the admin UI and the batch driver.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .db_config import DbConfig
from .optimizer import OptimizeResult, Optimizer
from .photo_db import PhotoDb
from .photo_record import FULL_PREFIX, full_key_for
from .s3_client import S3Client
from .s3_config import S3Config


class PhotoService:
    """
    Thin coordination layer over the object store, the record store and the
    optimizer. Performs no authorization; callers are trusted.
    """

    def __init__(
        self,
        store,
        photo_db,
        optimizer: Optional[Optimizer] = None,
        s3_config: Optional[S3Config] = None,
        presign_concurrency: int = 10,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize service.

        Args:
            store: Object store client
            photo_db: Record store
            optimizer: Optimizer (built from store and photo_db when omitted)
            s3_config: Used for upload URL lifetime and public URLs
            presign_concurrency: Presigned URLs issued at once
            logger: Optional logger instance
        """
        self.store = store
        self.db = photo_db
        self.logger = logger or logging.getLogger(__name__)
        self.optimizer = optimizer or Optimizer(store, photo_db, logger=self.logger)
        self.s3_config = s3_config or S3Config()
        self.presign_concurrency = presign_concurrency

    async def get_upload_targets(self, files: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
        """
        Issue presigned PUT URLs.

        Args:
            files: Dicts with 'filename', 'content_type' and optional 'prefix'

        Returns:
            List of {'url', 'key'} in input order
        """
        semaphore = asyncio.Semaphore(self.presign_concurrency)

        async def presign(file: Dict[str, str]) -> Dict[str, str]:
            filename = (file.get('filename') or '').strip()
            if not filename:
                raise ValueError("filename is required")
            content_type = file.get('content_type') or 'application/octet-stream'
            key = full_key_for(filename, file.get('prefix', FULL_PREFIX))
            async with semaphore:
                url = await asyncio.to_thread(
                    self.store.presign_upload, key, content_type, self.s3_config.url_expiry
                )
            return {'url': url, 'key': key}

        return list(await asyncio.gather(*(presign(file) for file in files)))

    async def create_pending_record(self, name: str, full_key: str) -> Dict[str, str]:
        """Create (or reset) the PENDING record for an uploaded key."""
        if not full_key:
            raise ValueError("full_key is required")
        pk = await asyncio.to_thread(self.db.create_pending_record, name or full_key, full_key)
        self.logger.info(f"Pending record {pk} for {full_key}")
        return {'pk': pk}

    async def optimize(self, full_key: str) -> OptimizeResult:
        return await self.optimizer.optimize(full_key)

    async def list_ready_photos(
        self,
        tags: Optional[Sequence[str]] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        order: str = 'desc',
        random: bool = False,
        limit: Optional[int] = None
    ) -> List[dict]:
        """
        Gallery-eligible photos with public rendition URLs.

        Args:
            tags: Tag pks; a photo matches when it carries any of them
            date_from: Inclusive lower bound on capture time
            date_to: Inclusive upper bound on capture time
            order: 'asc' or 'desc' by capture time
            random: Shuffle instead of ordering by time
            limit: Maximum number of photos
        """
        records = await asyncio.to_thread(
            self.db.list_ready,
            tag_pks=list(tags) if tags else None,
            date_from=date_from,
            date_to=date_to,
            order=order,
            random=random,
            limit=limit,
        )
        photos = []
        for record in records:
            item = record.to_dict()
            item['thumbnail_url'] = self.s3_config.public_url(record.thumbnail_key)
            item['gallery_url'] = self.s3_config.public_url(record.gallery_key)
            item['full_url'] = self.s3_config.public_url(record.full_key)
            photos.append(item)
        return photos

    async def delete_photos(self, pks: Sequence[str]) -> Dict[str, object]:
        """
        Delete photos, their store objects and (by cascade) their tag links.

        Store objects are removed before the records. Unknown pks are ignored.

        Returns:
            {'deleted': record count, 'keys': store keys removed}
        """
        records = await asyncio.to_thread(self.db.get_by_pks, list(pks))
        if not records:
            return {'deleted': 0, 'keys': []}

        keys = list(dict.fromkeys(key for record in records for key in record.object_keys))
        await asyncio.to_thread(self.store.delete_many, keys)
        deleted = await asyncio.to_thread(self.db.delete_records, [record.pk for record in records])
        self.logger.info(f"Deleted {deleted} photos and {len(keys)} objects")
        return {'deleted': deleted, 'keys': keys}

    async def list_objects(self, prefix: str = '') -> List[dict]:
        """Raw listing of store objects under a prefix, with public URLs."""
        objects = await asyncio.to_thread(self.store.list_with_prefix, prefix)
        return [
            {'key': obj['key'], 'size': obj['size'], 'url': self.s3_config.public_url(obj['key'])}
            for obj in objects
        ]


def build_service(
    s3_config: S3Config,
    db_config: DbConfig,
    logger: Optional[logging.Logger] = None
) -> PhotoService:
    """Wire real clients into a service."""
    store = S3Client(s3_config, logger)
    photo_db = PhotoDb(db_config, logger)
    return PhotoService(store, photo_db, s3_config=s3_config, logger=logger)
