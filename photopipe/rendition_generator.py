"""
RenditionGenerator - Resizes and re-encodes raw images into web renditions.
"""

import io
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .capture_metadata import CaptureMetadata
from .errors import DecodeOrEncodeFailure


@dataclass(frozen=True)
class RenditionProfile:
    """
    Fixed output settings for one rendition.

    Attributes:
        name: Profile name, also the key prefix in the store
        max_width: Bounding box width
        max_height: Bounding box height (None for unconstrained)
        quality: WebP quality
        method: WebP encoder effort (0 fast .. 6 smallest)
    """
    name: str
    max_width: int
    max_height: Optional[int]
    quality: int
    method: int = 6


THUMBNAIL = RenditionProfile(name='thumbnail', max_width=400, max_height=400, quality=80)
GALLERY = RenditionProfile(name='gallery', max_width=2700, max_height=None, quality=85)

PROFILES: Dict[str, RenditionProfile] = {
    THUMBNAIL.name: THUMBNAIL,
    GALLERY.name: GALLERY,
}

RENDITION_FORMAT = 'WEBP'
RENDITION_EXTENSION = '.webp'
RENDITION_CONTENT_TYPE = 'image/webp'


@dataclass
class Rendition:
    """An encoded rendition and its pixel dimensions."""
    profile: str
    data: bytes
    width: int
    height: int
    content_type: str = RENDITION_CONTENT_TYPE

    def __len__(self) -> int:
        return len(self.data)


def fit_inside(
    width: int,
    height: int,
    max_width: int,
    max_height: Optional[int]
) -> Tuple[int, int]:
    """
    Largest size that fits the bounding box without upscaling.

    Aspect ratio is preserved and neither dimension drops below 1.
    """
    scale = min(1.0, max_width / width)
    if max_height is not None:
        scale = min(scale, max_height / height)
    if scale >= 1.0:
        return width, height
    new_width = max(1, min(max_width, round(width * scale)))
    new_height = max(1, round(height * scale))
    if max_height is not None:
        new_height = min(max_height, new_height)
    return new_width, new_height


class RenditionGenerator:
    """
    Generates WebP renditions from original images using Pillow.
    """

    def __init__(
        self,
        profiles: Optional[Dict[str, RenditionProfile]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize rendition generator.

        Args:
            profiles: Profile table (default: thumbnail and gallery)
            logger: Optional logger instance
        """
        self.profiles = profiles or PROFILES
        self.logger = logger or logging.getLogger(__name__)

    def generate(
        self,
        image_data: bytes,
        profile_name: str,
        metadata: Optional[CaptureMetadata] = None
    ) -> Rendition:
        """
        Generate a rendition from image data.

        Args:
            image_data: Original image as bytes
            profile_name: 'thumbnail' or 'gallery'
            metadata: Capture metadata to embed in the output

        Returns:
            Rendition with the encoded bytes

        Raises:
            ValueError: Unknown profile
            DecodeOrEncodeFailure: Corrupt or unsupported input, or encode error
        """
        try:
            profile = self.profiles[profile_name]
        except KeyError:
            raise ValueError(f"Unknown rendition profile: {profile_name}")

        try:
            with Image.open(io.BytesIO(image_data)) as source:
                source.load()
                img = ImageOps.exif_transpose(source)
                img = self._convert_color_mode(img)
                size = fit_inside(img.width, img.height, profile.max_width, profile.max_height)
                if size != img.size:
                    img = img.resize(size, Image.Resampling.LANCZOS)

                output = io.BytesIO()
                save_options = {
                    'format': RENDITION_FORMAT,
                    'quality': profile.quality,
                    'method': profile.method,
                }
                if metadata is not None and not metadata.is_empty:
                    save_options['exif'] = metadata.to_exif().tobytes()
                img.save(output, **save_options)
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            self.logger.error(f"Error generating {profile_name} rendition: {e}")
            raise DecodeOrEncodeFailure(f"Cannot produce {profile_name} rendition: {e}") from e

        data = output.getvalue()
        if not data:
            raise DecodeOrEncodeFailure(f"Encoder produced an empty {profile_name} rendition")

        return Rendition(profile=profile.name, data=data, width=size[0], height=size[1])

    def _convert_color_mode(self, img: Image.Image) -> Image.Image:
        """Convert to a mode the WebP encoder accepts, keeping transparency."""
        if img.mode in ('RGB', 'RGBA'):
            return img
        if img.mode in ('LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info):
            return img.convert('RGBA')
        return img.convert('RGB')
