"""Tests for fixed-size resizing."""

import pytest
from PIL import Image

from skyhub.models import SIZES
from skyhub.resizer import resize_image


@pytest.mark.parametrize("size", SIZES, ids=lambda s: s.label)
@pytest.mark.parametrize("source", [(1024, 768), (200, 100), (640, 480), (300, 900)])
def test_output_matches_target_exactly(size, source):
    raster = Image.new("RGB", source, (10, 20, 30))
    resized = resize_image(raster, size)
    assert resized.size == (size.width, size.height)


def test_source_is_not_modified():
    raster = Image.new("RGB", (1000, 700), (255, 0, 0))
    for size in SIZES:
        resize_image(raster, size)
    assert raster.size == (1000, 700)
    assert raster.getpixel((0, 0)) == (255, 0, 0)


def test_solid_colour_is_preserved():
    raster = Image.new("RGB", (800, 600), (0, 0, 255))
    resized = resize_image(raster, SIZES[0])
    assert resized.getpixel((160, 120)) == (0, 0, 255)
