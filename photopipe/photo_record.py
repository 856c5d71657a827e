"""
PhotoRecord - Relational record for one uploaded photo and its renditions.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .rendition_generator import GALLERY, RENDITION_EXTENSION, THUMBNAIL

FULL_PREFIX = 'full'
PLACEHOLDER_BASE_NAME = 'untitled'


class PhotoStatus(str, Enum):
    """Closed set of record states."""
    PENDING = 'pending'
    READY = 'ready'
    DISABLED = 'disabled'
    ERROR = 'error'


def base_name(full_key: str) -> str:
    """
    Path tail of a key with its last extension stripped.

    Falls back to a fixed placeholder when nothing is left.
    """
    tail = full_key.rstrip('/').rsplit('/', 1)[-1]
    stem = tail.rsplit('.', 1)[0] if '.' in tail else tail
    stem = stem.strip()
    return stem or PLACEHOLDER_BASE_NAME


def thumbnail_key_for(name: str) -> str:
    return f"{THUMBNAIL.name}/{name}{RENDITION_EXTENSION}"


def gallery_key_for(name: str) -> str:
    return f"{GALLERY.name}/{name}{RENDITION_EXTENSION}"


def full_key_for(filename: str, prefix: Optional[str] = FULL_PREFIX) -> str:
    """Object key for a raw upload."""
    filename = filename.replace('\\', '/').rsplit('/', 1)[-1]
    return f"{prefix.strip('/')}/{filename}" if prefix else filename


@dataclass
class Tag:
    """A named label photos can be grouped by."""
    pk: str
    name: str
    description: Optional[str] = None


@dataclass
class PhotoRecord:
    """
    Record for a single photo.

    Attributes:
        pk: Generated identifier
        status: Lifecycle state
        photo_name: Original file name
        full_key: Store key of the raw upload (unique)
        thumbnail_key: Store key of the thumbnail rendition, once optimized
        gallery_key: Store key of the gallery rendition, once optimized
        original_created_at: Capture time, or processing/creation time
        camera_make, camera_model, f_number, iso, focal_length, exposure_time:
            Capture metadata, None when unknown
        tags: Tags attached to the photo, when loaded
    """
    pk: str
    status: PhotoStatus
    photo_name: str
    full_key: str
    original_created_at: datetime
    thumbnail_key: Optional[str] = None
    gallery_key: Optional[str] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    exposure_time: Optional[str] = None
    tags: List[Tag] = field(default_factory=list)

    @property
    def is_displayable(self) -> bool:
        """Eligible for the gallery: READY with both renditions present."""
        return (
            self.status == PhotoStatus.READY
            and self.thumbnail_key is not None
            and self.gallery_key is not None
        )

    @property
    def camera(self) -> Optional[str]:
        if self.camera_make and self.camera_model:
            return f"{self.camera_make} {self.camera_model}".strip()
        return None

    @property
    def object_keys(self) -> List[str]:
        """Every store key this record references."""
        return [k for k in (self.full_key, self.thumbnail_key, self.gallery_key) if k]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['status'] = self.status.value
        data['original_created_at'] = self.original_created_at.isoformat()
        data['camera'] = self.camera
        return data

    @classmethod
    def from_row(cls, row: dict) -> 'PhotoRecord':
        """Create from a database row dictionary."""
        created = row['original_created_at']
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)

        return cls(
            pk=row['pk'],
            status=PhotoStatus(row['status']),
            photo_name=row['photo_name'],
            full_key=row['full_key'],
            original_created_at=created,
            thumbnail_key=row.get('thumbnail_key'),
            gallery_key=row.get('gallery_key'),
            camera_make=row.get('camera_make'),
            camera_model=row.get('camera_model'),
            f_number=_optional_float(row.get('f_number')),
            iso=row.get('iso'),
            focal_length=_optional_float(row.get('focal_length')),
            exposure_time=row.get('exposure_time'),
        )


def _optional_float(value) -> Optional[float]:
    return float(value) if value is not None else None
