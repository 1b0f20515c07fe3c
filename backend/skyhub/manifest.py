"""
Manifest Fetcher

Retrieves the remote image manifest and turns it into image references.

Expected body:
    {"Images": [{"Url": "http://host/images/b737_3.jpg"}, ...]}
"""

import json
import logging
from typing import List

import httpx
from pydantic import BaseModel, ValidationError

from .errors import MalformedResponseError, TransportError
from .models import ImageReference

logger = logging.getLogger(__name__)


class ManifestEntry(BaseModel):
    Url: str


class ManifestPayload(BaseModel):
    Images: List[ManifestEntry]


class ManifestFetcher:
    """Single-shot manifest retrieval. Retries are left to the caller."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def fetch(self, endpoint: str) -> List[ImageReference]:
        """
        Fetch and parse the manifest at ``endpoint``.

        Raises:
            TransportError: connection failure, timeout or non-2xx status
            MalformedResponseError: body is not JSON or has the wrong shape
        """
        logger.info(f"[Manifest] Fetching {endpoint}")
        try:
            response = await self.http_client.get(endpoint)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Manifest request failed with HTTP {e.response.status_code}: {endpoint}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Manifest request failed: {endpoint}: {e}") from e

        try:
            payload = ManifestPayload.model_validate(json.loads(response.content))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(f"Manifest is not valid JSON: {e}") from e
        except ValidationError as e:
            raise MalformedResponseError(f"Manifest has unexpected shape: {e}") from e

        references = [ImageReference(source_url=entry.Url) for entry in payload.Images]
        logger.info(f"[Manifest] {len(references)} image references")
        return references
