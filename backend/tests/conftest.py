"""
Skyhub test configuration
测试配置文件

Fixtures for the pipeline tests. The remote manifest endpoint and the
image host are simulated with ``httpx.MockTransport`` so no network is
used; storage and index live in ``tmp_path``.
"""

import asyncio
import json
import sys
from collections import Counter
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, Tuple

import httpx
import pytest
from PIL import Image

# Make the backend packages importable when running from the repo root
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from skyhub.config import SkyhubConfig
from skyhub.index_store import JsonIndexStore
from skyhub.pipeline import build_pipeline

MANIFEST_URL = "http://images.test/images.json"
IMAGE_BASE = "http://images.test/images"


# ============================================
# Helpers
# ============================================

def make_jpeg(width: int = 800, height: int = 600, color=(200, 30, 30), mode: str = "RGB") -> bytes:
    """Encode a solid-colour JPEG."""
    if mode == "L":
        color = color[0]
    output = BytesIO()
    Image.new(mode, (width, height), color).save(output, format="JPEG")
    return output.getvalue()


def make_png(width: int = 64, height: int = 48) -> bytes:
    output = BytesIO()
    Image.new("RGB", (width, height), (0, 128, 0)).save(output, format="PNG")
    return output.getvalue()


def image_url(name: str) -> str:
    return f"{IMAGE_BASE}/{name}"


class FakeRemote:
    """
    In-memory stand-in for the manifest host and the image host.

    - routes: url -> (status, body)
    - failures: url -> number of connection errors to raise before succeeding
    - delays: url -> seconds to sleep before answering
    """

    def __init__(self):
        self.routes: Dict[str, Tuple[int, bytes]] = {}
        self.failures: Counter = Counter()
        self.delays: Dict[str, float] = {}
        self.calls: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    def set_manifest(self, urls: Iterable[str], url: str = MANIFEST_URL) -> None:
        body = json.dumps({"Images": [{"Url": u} for u in urls]}).encode()
        self.routes[url] = (200, body)

    def set_body(self, url: str, body: bytes, status: int = 200) -> None:
        self.routes[url] = (status, body)

    def add_images(self, count: int, width: int = 800, height: int = 600) -> list:
        """Register ``count`` valid JPEGs plus a manifest listing them."""
        urls = [image_url(f"plane_{i}.jpg") for i in range(count)]
        for i, url in enumerate(urls):
            self.set_body(url, make_jpeg(width, height, color=(i * 20 % 256, 80, 160)))
        self.set_manifest(urls)
        return urls

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls[url] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(url)
            if delay:
                await asyncio.sleep(delay)
            if self.failures[url] > 0:
                self.failures[url] -= 1
                raise httpx.ConnectError("connection refused", request=request)
            if url not in self.routes:
                return httpx.Response(404, content=b"not found")
            status, body = self.routes[url]
            return httpx.Response(status, content=body)
        finally:
            self.in_flight -= 1

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def config(tmp_path):
    return SkyhubConfig(
        manifest_url=MANIFEST_URL,
        storage_dir=tmp_path / "skyhub",
        index_path=tmp_path / "index.json",
        public_base_url="http://testserver/skyhub",
        fetch_retries=0,
        retry_backoff=0,
        max_concurrent_fetches=4,
        max_concurrent_stores=4,
    )


@pytest.fixture
async def http_client(remote):
    client = remote.client()
    yield client
    await client.aclose()


@pytest.fixture
async def index(config):
    store = JsonIndexStore(config.index_path)
    await store.open()
    return store


@pytest.fixture
def pipeline(config, http_client, index):
    return build_pipeline(config, http_client, index)


def jpeg_size(path_or_bytes) -> Tuple[int, int]:
    """(width, height) of a JPEG file or byte string."""
    source = BytesIO(path_or_bytes) if isinstance(path_or_bytes, bytes) else path_or_bytes
    with Image.open(source) as img:
        assert img.format == "JPEG"
        return img.size
