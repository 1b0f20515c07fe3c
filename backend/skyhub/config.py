"""
Skyhub Configuration

All runtime settings live in one dataclass that is built once at startup
and handed to every component. ``from_env`` reads ``SKYHUB_*`` variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_MANIFEST_URL = "http://54.152.221.29/images.json"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


@dataclass
class SkyhubConfig:
    """Settings for the ingestion pipeline and the HTTP service."""
    # Source
    manifest_url: str = DEFAULT_MANIFEST_URL

    # Storage / index
    storage_dir: Path = Path("./skyhub")
    index_path: Path = Path("./skyhub_index.json")
    public_base_url: Optional[str] = None   # Defaults to http://{host}:{port}/skyhub

    # HTTP service
    host: str = "localhost"
    port: int = 7366

    # Outbound HTTP
    http_timeout: float = 30.0
    fetch_retries: int = 2          # Extra attempts after a transport failure
    retry_backoff: float = 0.5      # Seconds, multiplied by the attempt number

    # Concurrency
    max_concurrent_fetches: int = 8
    max_concurrent_stores: int = 4
    run_timeout: Optional[float] = None  # Overall deadline in seconds

    # Output
    jpeg_quality: int = 75
    run_on_startup: bool = True

    def __post_init__(self):
        self.storage_dir = Path(self.storage_dir)
        self.index_path = Path(self.index_path)
        if self.max_concurrent_fetches < 1 or self.max_concurrent_stores < 1:
            raise ValueError("Concurrency limits must be at least 1")
        if self.fetch_retries < 0:
            raise ValueError("fetch_retries must not be negative")
        if not 1 <= self.jpeg_quality <= 95:
            raise ValueError("jpeg_quality must be between 1 and 95")
        if self.run_timeout is not None and self.run_timeout <= 0:
            raise ValueError("run_timeout must be positive")

    @property
    def base_url(self) -> str:
        """Prefix for the public address of every stored image."""
        base = self.public_base_url or f"http://{self.host}:{self.port}/skyhub"
        return base.rstrip("/")

    @classmethod
    def from_env(cls) -> "SkyhubConfig":
        """Build a config from ``SKYHUB_*`` environment variables."""
        return cls(
            manifest_url=os.getenv("SKYHUB_MANIFEST_URL", DEFAULT_MANIFEST_URL),
            storage_dir=Path(os.getenv("SKYHUB_STORAGE_DIR", "./skyhub")),
            index_path=Path(os.getenv("SKYHUB_INDEX_PATH", "./skyhub_index.json")),
            public_base_url=os.getenv("SKYHUB_PUBLIC_BASE_URL") or None,
            host=os.getenv("SKYHUB_HOST", "localhost"),
            port=int(os.getenv("SKYHUB_PORT", "7366")),
            http_timeout=float(os.getenv("SKYHUB_HTTP_TIMEOUT", "30")),
            fetch_retries=int(os.getenv("SKYHUB_FETCH_RETRIES", "2")),
            retry_backoff=float(os.getenv("SKYHUB_RETRY_BACKOFF", "0.5")),
            max_concurrent_fetches=int(os.getenv("SKYHUB_MAX_CONCURRENT_FETCHES", "8")),
            max_concurrent_stores=int(os.getenv("SKYHUB_MAX_CONCURRENT_STORES", "4")),
            run_timeout=_env_optional_float("SKYHUB_RUN_TIMEOUT"),
            jpeg_quality=int(os.getenv("SKYHUB_JPEG_QUALITY", "75")),
            run_on_startup=_env_bool("SKYHUB_RUN_ON_STARTUP", True),
        )
