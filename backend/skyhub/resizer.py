"""Fixed-size resizing of decoded rasters."""

from PIL import Image

from .models import SizeSpec

RESAMPLE = Image.Resampling.BILINEAR


def resize_image(image: Image.Image, size: SizeSpec) -> Image.Image:
    """
    Return a new raster of exactly ``size.width`` x ``size.height``.

    The source is left untouched, so several sizes can be produced from
    the same raster concurrently. Aspect ratio is not preserved.
    """
    return image.resize(size.dimensions, RESAMPLE)
