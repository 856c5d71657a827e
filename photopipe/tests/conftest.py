"""
Pytest fixtures for photopipe tests.
"""

import io
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from fractions import Fraction

import pytest


class FakeObjectStore:
    """In-memory stand-in for S3Client."""

    def __init__(self):
        self.objects = {}
        self.metadata = {}
        self.content_types = {}
        self.deleted = []
        self.fail_puts = set()
        self.lock = threading.Lock()

    def get(self, key):
        from photopipe.errors import SourceNotFound
        with self.lock:
            if key not in self.objects:
                raise SourceNotFound(key)
            return self.objects[key]

    def put(self, key, data, content_type='application/octet-stream', metadata=None):
        from photopipe.errors import StoreWriteFailure
        if key in self.fail_puts:
            raise StoreWriteFailure(key, RuntimeError('store unavailable'))
        with self.lock:
            self.objects[key] = data
            self.content_types[key] = content_type
            self.metadata[key] = dict(metadata or {})

    def delete_many(self, keys):
        with self.lock:
            for key in keys:
                self.deleted.append(key)
                self.objects.pop(key, None)

    def list_with_prefix(self, prefix=''):
        with self.lock:
            return [
                {'key': key, 'size': len(data)}
                for key, data in sorted(self.objects.items()) if key.startswith(prefix)
            ]

    def presign_upload(self, key, content_type, ttl=None):
        return f"https://uploads.example.com/{key}?X-Amz-Expires={ttl}"


class FakePhotoDb:
    """In-memory stand-in for PhotoDb, keyed by full_key."""

    def __init__(self):
        self.records = {}
        self.tags = {}
        self.fail_mark_ready = False
        self.lock = threading.Lock()

    def create_pending_record(self, photo_name, full_key, created_at=None):
        from photopipe.photo_record import PhotoRecord, PhotoStatus
        with self.lock:
            existing = self.records.get(full_key)
            pk = existing.pk if existing else str(uuid.uuid4())
            self.records[full_key] = PhotoRecord(
                pk=pk,
                status=PhotoStatus.PENDING,
                photo_name=photo_name,
                full_key=full_key,
                original_created_at=created_at or datetime.now(timezone.utc),
            )
            return pk

    def mark_ready(self, full_key, photo_name, thumbnail_key, gallery_key,
                   original_created_at, metadata_fields=None):
        from photopipe.photo_record import PhotoRecord, PhotoStatus
        if self.fail_mark_ready:
            raise RuntimeError('database unavailable')
        with self.lock:
            existing = self.records.get(full_key)
            record = PhotoRecord(
                pk=existing.pk if existing else str(uuid.uuid4()),
                status=PhotoStatus.READY,
                photo_name=existing.photo_name if existing else photo_name,
                full_key=full_key,
                original_created_at=original_created_at,
                thumbnail_key=thumbnail_key,
                gallery_key=gallery_key,
                **(metadata_fields or {}),
            )
            self.records[full_key] = record
            return record.pk

    def mark_error(self, full_key):
        from photopipe.photo_record import PhotoStatus
        with self.lock:
            record = self.records.get(full_key)
            if record is None:
                return False
            record.status = PhotoStatus.ERROR
            return True

    def get_by_full_key(self, full_key):
        return self.records.get(full_key)

    def get_by_pks(self, pks):
        return [record for record in self.records.values() if record.pk in pks]

    def list_ready(self, tag_pks=None, date_from=None, date_to=None,
                   order='desc', random=False, limit=None):
        records = [
            record for record in self.records.values()
            if record.is_displayable
            and (not tag_pks or any(tag.pk in tag_pks for tag in record.tags))
            and (date_from is None or record.original_created_at >= date_from)
            and (date_to is None or record.original_created_at <= date_to)
        ]
        records.sort(key=lambda r: r.original_created_at, reverse=(order == 'desc'))
        return records[:limit] if limit is not None else records

    def delete_records(self, pks):
        with self.lock:
            doomed = [key for key, record in self.records.items() if record.pk in pks]
            for key in doomed:
                del self.records[key]
            return len(doomed)


def make_image_bytes(size=(100, 100), mode='RGB', color='red', fmt='JPEG', exif=None):
    from PIL import Image

    img = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    options = {'format': fmt}
    if exif is not None:
        options['exif'] = exif.tobytes()
    img.save(buffer, **options)
    return buffer.getvalue()


@pytest.fixture
def logger():
    return logging.getLogger('photopipe.tests')


@pytest.fixture
def s3_config():
    """Fixture providing S3 configuration."""
    from photopipe.s3_config import S3Config

    return S3Config(
        endpoint='https://test-endpoint.example.com:9000',
        bucket='test-bucket',
        access_key='test-access-key',
        secret_key='test-secret-key',
        region='us-east-1',
        public_url_base='https://cdn.example.com',
        backoff_ms=0,
    )


@pytest.fixture
def db_config():
    from photopipe.db_config import DbConfig

    return DbConfig(user='photos', password='secret', database='photos_test')


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def photo_db():
    return FakePhotoDb()


@pytest.fixture
def capture_metadata():
    """Fixture providing a fully populated metadata record."""
    from photopipe.capture_metadata import CaptureMetadata

    return CaptureMetadata(
        make='Canon',
        model='EOS R5',
        captured_at=datetime(2024, 6, 1, 10, 30, 0, tzinfo=timezone(timedelta(hours=2))),
        f_number=2.8,
        iso=400,
        focal_length=50.0,
        exposure_time=Fraction(1, 250),
    )


@pytest.fixture
def sample_image_bytes():
    """Fixture providing JPEG bytes without EXIF."""
    return make_image_bytes()


@pytest.fixture
def large_image_bytes():
    """Fixture providing a landscape JPEG larger than both renditions."""
    return make_image_bytes(size=(3000, 2000), color='blue')


@pytest.fixture
def exif_image_bytes(capture_metadata):
    """Fixture providing JPEG bytes carrying camera EXIF."""
    return make_image_bytes(size=(800, 600), exif=capture_metadata.to_exif())


@pytest.fixture
def sample_png_bytes():
    """Fixture providing PNG bytes with transparency."""
    return make_image_bytes(mode='RGBA', color=(255, 0, 0, 128), fmt='PNG')


@pytest.fixture
def image_factory():
    """Fixture providing the image bytes builder."""
    return make_image_bytes
