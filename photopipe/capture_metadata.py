"""
CaptureMetadata - Camera and exposure metadata read from embedded EXIF.
"""

import io
import logging
import math
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from typing import Any, Callable, Dict, Optional

from PIL import Image, UnidentifiedImageError
from PIL.TiffImagePlugin import IFDRational

from .errors import MetadataParseFailure

# IFD0
TAG_MAKE = 0x010F
TAG_MODEL = 0x0110
TAG_DATETIME = 0x0132
TAG_EXIF_IFD = 0x8769

# Exif IFD
TAG_EXPOSURE_TIME = 0x829A
TAG_FNUMBER = 0x829D
TAG_ISO = 0x8827
TAG_DATETIME_ORIGINAL = 0x9003
TAG_DATETIME_DIGITIZED = 0x9004
TAG_OFFSET_TIME_ORIGINAL = 0x9011
TAG_FOCAL_LENGTH = 0x920A

EXIF_DATETIME_FORMAT = '%Y:%m:%d %H:%M:%S'


@dataclass
class CaptureMetadata:
    """
    Subset of capture metadata kept for every photo.

    Attributes:
        make: Camera manufacturer
        model: Camera model
        captured_at: Capture timestamp (timezone aware)
        f_number: Aperture as an f-number
        iso: ISO speed
        focal_length: Focal length in millimetres
        exposure_time: Exposure time in seconds
    """
    make: Optional[str] = None
    model: Optional[str] = None
    captured_at: Optional[datetime] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    exposure_time: Optional[Fraction] = None

    @property
    def camera(self) -> Optional[str]:
        """Make and model joined, or None unless both are known."""
        if self.make and self.model:
            return f"{self.make} {self.model}".strip()
        return None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    @property
    def exposure_time_text(self) -> Optional[str]:
        if self.exposure_time is None:
            return None
        return str(self.exposure_time)

    def to_object_metadata(self) -> Dict[str, str]:
        """
        Stringify for object-store metadata.

        Absent fields become empty strings and values are forced to ASCII,
        so this encoding is lossy. The photo record keeps the typed values.
        """
        values = {
            'camera': self.camera,
            'make': self.make,
            'model': self.model,
            'original-created-at': self.captured_at.isoformat() if self.captured_at else None,
            'f-number': _format_number(self.f_number),
            'iso': str(self.iso) if self.iso is not None else None,
            'focal-length': _format_number(self.focal_length),
            'exposure-time': self.exposure_time_text,
        }
        return {
            key: (value or '').encode('ascii', 'replace').decode('ascii')
            for key, value in values.items()
        }

    def to_record_fields(self) -> Dict[str, Any]:
        """Column values for the photo record; unknown stays None."""
        return {
            'camera_make': self.make,
            'camera_model': self.model,
            'f_number': self.f_number,
            'iso': self.iso,
            'focal_length': self.focal_length,
            'exposure_time': self.exposure_time_text,
        }

    def to_exif(self) -> Image.Exif:
        """Build an EXIF block carrying this subset, for embedding in renditions."""
        exif = Image.Exif()
        if self.make:
            exif[TAG_MAKE] = self.make
        if self.model:
            exif[TAG_MODEL] = self.model

        exif_ifd: Dict[int, Any] = {}
        if self.captured_at:
            stamp = self.captured_at.strftime(EXIF_DATETIME_FORMAT)
            exif[TAG_DATETIME] = stamp
            exif_ifd[TAG_DATETIME_ORIGINAL] = stamp
            offset = self.captured_at.strftime('%z')
            if offset:
                exif_ifd[TAG_OFFSET_TIME_ORIGINAL] = f"{offset[:3]}:{offset[3:]}"
        if self.f_number is not None:
            exif_ifd[TAG_FNUMBER] = IFDRational(Fraction(self.f_number).limit_denominator(1000))
        if self.iso is not None:
            exif_ifd[TAG_ISO] = self.iso
        if self.focal_length is not None:
            exif_ifd[TAG_FOCAL_LENGTH] = IFDRational(Fraction(self.focal_length).limit_denominator(1000))
        if self.exposure_time is not None:
            exif_ifd[TAG_EXPOSURE_TIME] = IFDRational(self.exposure_time)
        if exif_ifd:
            exif[TAG_EXIF_IFD] = exif_ifd
        return exif


def _format_number(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return f"{value:g}"


class MetadataExtractor:
    """
    Reads capture metadata from raw image bytes.

    Extraction never raises: a missing EXIF block gives an empty record, a
    tag that fails to parse is left as None, and any other failure is logged
    and downgraded to an empty record.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def extract(self, image_data: bytes) -> CaptureMetadata:
        """
        Extract capture metadata.

        Args:
            image_data: Raw image bytes

        Returns:
            CaptureMetadata, possibly empty
        """
        try:
            exif = self._read_exif(image_data)
            if not exif:
                return CaptureMetadata()
            return self._parse(exif)
        except MetadataParseFailure as e:
            self.logger.warning(f"Ignoring unreadable metadata: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected error during metadata extraction: {e}")
        return CaptureMetadata()

    def _read_exif(self, image_data: bytes) -> Optional[Image.Exif]:
        try:
            with Image.open(io.BytesIO(image_data)) as img:
                return img.getexif()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise MetadataParseFailure(str(e)) from e

    def _parse(self, exif: Image.Exif) -> CaptureMetadata:
        try:
            exif_ifd = exif.get_ifd(TAG_EXIF_IFD)
        except Exception as e:
            self.logger.debug(f"Exif IFD unreadable: {e}")
            exif_ifd = {}

        return CaptureMetadata(
            make=self._field('make', lambda: _clean_text(exif.get(TAG_MAKE))),
            model=self._field('model', lambda: _clean_text(exif.get(TAG_MODEL))),
            captured_at=self._field('captured_at', lambda: _capture_time(exif, exif_ifd)),
            f_number=self._field('f_number', lambda: _positive_float(exif_ifd.get(TAG_FNUMBER))),
            iso=self._field('iso', lambda: _iso(exif_ifd.get(TAG_ISO))),
            focal_length=self._field('focal_length', lambda: _positive_float(exif_ifd.get(TAG_FOCAL_LENGTH))),
            exposure_time=self._field('exposure_time', lambda: _fraction(exif_ifd.get(TAG_EXPOSURE_TIME))),
        )

    def _field(self, name: str, parse: Callable[[], Any]) -> Any:
        try:
            return parse()
        except (ValueError, TypeError, ArithmeticError, AttributeError, UnicodeDecodeError) as e:
            self.logger.debug(f"Could not parse EXIF field {name}: {e}")
            return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode('utf-8', 'replace')
    text = str(value).replace('\x00', '').strip()
    return text or None


def _capture_time(exif: Image.Exif, exif_ifd: dict) -> Optional[datetime]:
    raw = (
        _clean_text(exif_ifd.get(TAG_DATETIME_ORIGINAL))
        or _clean_text(exif_ifd.get(TAG_DATETIME_DIGITIZED))
        or _clean_text(exif.get(TAG_DATETIME))
    )
    if not raw:
        return None
    captured = datetime.strptime(raw[:19], EXIF_DATETIME_FORMAT)

    offset = _clean_text(exif_ifd.get(TAG_OFFSET_TIME_ORIGINAL))
    tz = timezone.utc
    if offset and len(offset) == 6 and offset[0] in '+-':
        sign = -1 if offset[0] == '-' else 1
        tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))
    return captured.replace(tzinfo=tz)


def _first(value: Any) -> Any:
    if isinstance(value, (tuple, list)):
        return value[0] if value else None
    return value


def _positive_float(value: Any) -> Optional[float]:
    value = _first(value)
    if value is None:
        return None
    number = float(value)
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return None
    return round(number, 2)


def _iso(value: Any) -> Optional[int]:
    value = _first(value)
    if value is None:
        return None
    iso = int(value)
    return iso if iso > 0 else None


def _fraction(value: Any) -> Optional[Fraction]:
    value = _first(value)
    if value is None:
        return None
    if isinstance(value, IFDRational):
        if value.denominator == 0:
            return None
        result = Fraction(int(value.numerator), int(value.denominator))
    else:
        result = Fraction(float(value)).limit_denominator(100000)
    return result if result > 0 else None
