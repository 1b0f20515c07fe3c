"""
Skyhub API Routes

Provides endpoints for:
- GET  /skyhub          - Full index as pretty-printed JSON
- GET  /skyhub/{name}   - A stored image file
- POST /skyhub/refresh  - Re-run the ingestion pipeline
"""

import json
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from .errors import MalformedResponseError, TransportError

logger = logging.getLogger(__name__)


# ============================================
# Response Models
# ============================================


class PrettyJSONResponse(JSONResponse):
    """JSON response indented with tabs."""

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False, indent="\t").encode("utf-8")


class UnitFailureResponse(BaseModel):
    """One failed unit of a run."""
    source_url: str
    size: Optional[str] = None
    stage: str
    error: Optional[str] = None
    error_type: Optional[str] = None


class RefreshResponse(BaseModel):
    """Summary of a pipeline run."""
    success: bool
    endpoint: str
    reference_count: int
    succeeded: int
    failed: int
    timed_out: bool
    duration_seconds: Optional[float] = None
    failures: List[UnitFailureResponse]


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/skyhub", tags=["Skyhub"])


@router.get("", response_class=PrettyJSONResponse)
async def list_images(request: Request):
    """
    List every stored image.

    Example response:
        [
            {
                "Name": "b737_3_320x240.jpg",
                "Url": "http://localhost:7366/skyhub/b737_3_320x240.jpg"
            }
        ]
    """
    records = await request.app.state.index.find_all()
    return PrettyJSONResponse(content=[r.to_document() for r in records])


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(request: Request):
    """
    Fetch the manifest again and process every image.

    Safe to call repeatedly: records are upserted by name.
    """
    state = request.app.state
    if state.run_lock.locked():
        raise HTTPException(status_code=409, detail="A pipeline run is already in progress")

    async with state.run_lock:
        try:
            report = await state.pipeline.run()
        except (TransportError, MalformedResponseError) as e:
            logger.error(f"[Skyhub] Refresh failed: {e}")
            raise HTTPException(status_code=503, detail=f"Manifest unavailable: {e}")
        state.last_report = report

    summary = report.to_dict()
    return RefreshResponse(
        success=report.failed_count == 0 and not report.timed_out,
        endpoint=summary["endpoint"],
        reference_count=summary["reference_count"],
        succeeded=summary["succeeded"],
        failed=summary["failed"],
        timed_out=summary["timed_out"],
        duration_seconds=summary["duration_seconds"],
        failures=[
            UnitFailureResponse(
                source_url=f["source_url"],
                size=f["size"],
                stage=f["stage"],
                error=f["error"],
                error_type=f["error_type"],
            )
            for f in summary["failures"]
        ],
    )


@router.get("/{name}")
async def get_image(name: str, request: Request):
    """
    Serve one stored image.

    Only names present in the index are served, so a file left behind by
    a failed upsert is never exposed.
    """
    state = request.app.state
    record = await state.index.get(name)
    path = state.pipeline.storage.path_for(name)
    if record is None or path is None or not path.is_file():
        raise HTTPException(status_code=404, detail=f"Image not found: {name}")
    return FileResponse(path, media_type="image/jpeg")
