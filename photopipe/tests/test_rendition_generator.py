"""Tests for RenditionGenerator class."""

import io

import pytest
from PIL import Image

from photopipe.capture_metadata import TAG_MAKE
from photopipe.errors import DecodeOrEncodeFailure
from photopipe.rendition_generator import (
    GALLERY,
    THUMBNAIL,
    RenditionGenerator,
    RenditionProfile,
    fit_inside,
)

TAG_ORIENTATION = 0x0112


class TestFitInside:
    """Tests for bounding-box sizing."""

    def test_downscales_landscape(self):
        assert fit_inside(3000, 2000, 400, 400) == (400, 267)

    def test_downscales_portrait(self):
        assert fit_inside(2000, 3000, 400, 400) == (267, 400)

    def test_never_upscales(self):
        assert fit_inside(100, 50, 400, 400) == (100, 50)

    def test_unconstrained_height(self):
        assert fit_inside(1000, 5000, 2700, None) == (1000, 5000)
        assert fit_inside(5400, 100, 2700, None) == (2700, 50)

    def test_minimum_one_pixel(self):
        assert fit_inside(10000, 1, 400, 400) == (400, 1)


class TestRenditionGenerator:
    """Tests for RenditionGenerator class."""

    def test_profiles(self):
        assert (THUMBNAIL.max_width, THUMBNAIL.max_height, THUMBNAIL.quality) == (400, 400, 80)
        assert (GALLERY.max_width, GALLERY.max_height, GALLERY.quality) == (2700, None, 85)

    def test_thumbnail(self, large_image_bytes):
        rendition = RenditionGenerator().generate(large_image_bytes, 'thumbnail')

        img = Image.open(io.BytesIO(rendition.data))
        assert img.format == 'WEBP'
        assert img.size == (400, 267)
        assert (rendition.width, rendition.height) == (400, 267)
        assert rendition.content_type == 'image/webp'

    def test_gallery(self, large_image_bytes):
        rendition = RenditionGenerator().generate(large_image_bytes, 'gallery')

        img = Image.open(io.BytesIO(rendition.data))
        assert img.size == (2700, 1800)

    def test_small_image_kept_at_size(self, sample_image_bytes):
        rendition = RenditionGenerator().generate(sample_image_bytes, 'thumbnail')

        assert (rendition.width, rendition.height) == (100, 100)

    def test_transparency_preserved(self, sample_png_bytes):
        rendition = RenditionGenerator().generate(sample_png_bytes, 'thumbnail')

        img = Image.open(io.BytesIO(rendition.data))
        assert img.mode == 'RGBA'

    def test_orientation_applied(self, image_factory):
        exif = Image.Exif()
        exif[TAG_ORIENTATION] = 6
        data = image_factory(size=(200, 100), exif=exif)

        rendition = RenditionGenerator().generate(data, 'thumbnail')

        assert (rendition.width, rendition.height) == (100, 200)

    def test_metadata_embedded(self, exif_image_bytes, capture_metadata):
        rendition = RenditionGenerator().generate(exif_image_bytes, 'gallery', capture_metadata)

        img = Image.open(io.BytesIO(rendition.data))
        assert img.getexif().get(TAG_MAKE) == 'Canon'

    def test_custom_profiles(self, large_image_bytes):
        tiny = RenditionProfile(name='tiny', max_width=32, max_height=32, quality=50, method=0)

        rendition = RenditionGenerator(profiles={'tiny': tiny}).generate(large_image_bytes, 'tiny')

        assert (rendition.width, rendition.height) == (32, 21)

    def test_unknown_profile(self, sample_image_bytes):
        with pytest.raises(ValueError):
            RenditionGenerator().generate(sample_image_bytes, 'poster')

    def test_invalid_image(self):
        with pytest.raises(DecodeOrEncodeFailure):
            RenditionGenerator().generate(b'not an image', 'thumbnail')

    def test_truncated_image(self, large_image_bytes):
        with pytest.raises(DecodeOrEncodeFailure):
            RenditionGenerator().generate(large_image_bytes[:200], 'gallery')
