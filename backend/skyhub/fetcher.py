"""
Image Fetcher

Downloads one manifest entry, decodes it as JPEG and derives its
logical name. Each call is independent; nothing is shared between
references except the HTTP client.
"""

import asyncio
import logging
from io import BytesIO
from urllib.parse import urlsplit

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, NameDerivationError, TransportError
from .models import DecodedImage, ImageReference

logger = logging.getLogger(__name__)

# Multi-picture JPEGs from cameras open as "MPO"; the first frame is a plain JPEG
SUPPORTED_FORMATS = {"JPEG", "MPO"}


def derive_logical_name(source_url: str) -> str:
    """
    Return the last path segment of the URL without its extension.

    http://54.152.221.29/images/b737_3.jpg -> "b737_3"

    Raises:
        NameDerivationError: if the path has no "/", the last segment
            has no ".", or the remaining name is empty
    """
    path = urlsplit(source_url).path
    slash = path.rfind("/")
    if slash == -1:
        raise NameDerivationError(f"No '/' in URL path: {source_url!r}")
    segment = path[slash + 1:]
    dot = segment.rfind(".")
    if dot == -1:
        raise NameDerivationError(f"No '.' after the last '/' in URL: {source_url!r}")
    name = segment[:dot]
    if not name:
        raise NameDerivationError(f"Empty image name in URL: {source_url!r}")
    return name


def decode_jpeg(data: bytes) -> Image.Image:
    """
    Decode JPEG bytes into a fully loaded RGB raster.

    Raises:
        DecodeError: if the bytes are not a decodable JPEG
    """
    try:
        img = Image.open(BytesIO(data))
        if img.format not in SUPPORTED_FORMATS:
            raise DecodeError(f"Unsupported image format: {img.format}")
        img.load()
    except DecodeError:
        raise
    except (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Failed to decode image: {e}") from e

    if img.mode != "RGB" or img.format == "MPO":
        img = img.convert("RGB")
    return img


class ImageFetcher:
    """
    Fetch + decode for a single image reference.

    Usage:
        fetcher = ImageFetcher(http_client, retries=2)
        decoded = await fetcher.fetch_and_decode(ref)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retries: int = 0,
        retry_backoff: float = 0.0,
    ):
        self.http_client = http_client
        self.retries = retries
        self.retry_backoff = retry_backoff

    async def download(self, url: str) -> bytes:
        """
        GET ``url``, retrying transport failures.

        Raises:
            TransportError: once every attempt has failed
        """
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = await self.http_client.get(url)
                response.raise_for_status()
                return response.content
            except httpx.HTTPStatusError as e:
                error = TransportError(f"HTTP {e.response.status_code} for {url}")
                cause = e
            except httpx.HTTPError as e:
                error = TransportError(f"Download failed for {url}: {e!r}")
                cause = e

            if attempt < attempts:
                logger.info(f"[ImageFetcher] Retry {attempt}/{self.retries}: {url[:80]}")
                if self.retry_backoff:
                    await asyncio.sleep(self.retry_backoff * attempt)

        raise error from cause

    async def fetch_and_decode(self, ref: ImageReference) -> DecodedImage:
        """
        Produce the decoded raster for one reference.

        The name is derived first so malformed URLs fail without any
        network traffic.

        Raises:
            NameDerivationError, TransportError, DecodeError
        """
        logical_name = derive_logical_name(ref.source_url)
        data = await self.download(ref.source_url)
        raster = await asyncio.to_thread(decode_jpeg, data)
        logger.info(
            f"[ImageFetcher] Decoded {logical_name} "
            f"({len(data)//1024}KB, {raster.width}x{raster.height})"
        )
        return DecodedImage(raster=raster, logical_name=logical_name, source_url=ref.source_url)
