"""
Image Storage

Persists resized rasters as JPEG files under a root directory and hands
back their public address.

Storage structure:
    storage_dir/
    ├── b737_3_320x240.jpg
    ├── b737_3_384x288.jpg
    └── ...

Writes go to a temporary file in the same directory and are moved into
place with ``os.replace``, so readers and concurrent writers of the same
name only ever see a complete file.
"""

import asyncio
import logging
import os
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from PIL import Image

from .errors import StorageWriteError

logger = logging.getLogger(__name__)


def is_plain_filename(name: str) -> bool:
    """True for a single path component that is not "." or ".."."""
    if not name or name in (".", ".."):
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    return True


class FileStorageWriter:
    """Filesystem-backed storage for resized images."""

    def __init__(
        self,
        root: Union[str, Path],
        base_url: str,
        jpeg_quality: int = 75,
    ):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.jpeg_quality = jpeg_quality

    def ensure_root(self) -> None:
        """Create the storage directory if it doesn't exist."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageWriteError(f"Cannot create storage directory {self.root}: {e}") from e
        logger.info(f"[Storage] Storage directory: {self.root}")

    def address_for(self, name: str) -> str:
        return f"{self.base_url}/{quote(name)}"

    def path_for(self, name: str) -> Optional[Path]:
        """Location of a stored image, or None if ``name`` is not a valid stored name."""
        if not is_plain_filename(name):
            return None
        return self.root / name

    def _encode(self, image: Image.Image) -> bytes:
        output = BytesIO()
        image.save(output, format="JPEG", quality=self.jpeg_quality)
        return output.getvalue()

    def _write_atomic(self, path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def store_sync(self, image: Image.Image, name: str) -> str:
        """
        Encode and write ``image`` as ``name``; overwrite is expected.

        Returns:
            The public address of the stored file.

        Raises:
            StorageWriteError: invalid name or any I/O failure
        """
        path = self.path_for(name)
        if path is None:
            raise StorageWriteError(f"Invalid storage name: {name!r}")

        try:
            data = self._encode(image)
        except (OSError, ValueError) as e:
            raise StorageWriteError(f"Failed to encode {name}: {e}") from e

        try:
            self._write_atomic(path, data)
        except OSError as e:
            raise StorageWriteError(f"Failed to write {path}: {e}") from e

        logger.debug(f"[Storage] Wrote {name} ({len(data)} bytes)")
        return self.address_for(name)

    async def store(self, image: Image.Image, name: str) -> str:
        """Async wrapper around :meth:`store_sync`; runs off the event loop."""
        return await asyncio.to_thread(self.store_sync, image, name)
