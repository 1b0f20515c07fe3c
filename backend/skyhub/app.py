"""
Skyhub FastAPI application.

Runs the ingestion pipeline once on startup, then serves the index and
the stored images.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .config import SkyhubConfig
from .index_store import JsonIndexStore
from .pipeline import build_pipeline, create_http_client
from .routes_fastapi import router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[SkyhubConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application.

    Startup fails (and the process exits under uvicorn) if the index
    cannot be opened or, with ``run_on_startup``, if the manifest cannot
    be fetched.

    Args:
        config: Settings, defaults to ``SkyhubConfig.from_env()``
        http_client: Outbound client; one is created (and closed) if omitted
    """
    config = config or SkyhubConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        index = JsonIndexStore(config.index_path)
        await index.open()

        client = http_client or create_http_client(config)
        try:
            app.state.config = config
            app.state.index = index
            app.state.pipeline = build_pipeline(config, client, index)
            app.state.run_lock = asyncio.Lock()
            app.state.last_report = None

            if config.run_on_startup:
                logger.info(f"[Skyhub] Ingesting images from {config.manifest_url}")
                async with app.state.run_lock:
                    app.state.last_report = await app.state.pipeline.run()

            logger.info(f"[Skyhub] Listening on {config.host}:{config.port}")
            yield
        finally:
            if http_client is None:
                await client.aclose()

    app = FastAPI(title="Skyhub", lifespan=lifespan)
    app.include_router(router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        report = app.state.last_report
        return JSONResponse(content={
            "status": "healthy",
            "service": "skyhub",
            "indexed_images": app.state.index.count(),
            "last_run": report.to_dict() if report else None,
        })

    return app
