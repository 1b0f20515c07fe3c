"""
Ingestion Pipeline

Orchestrates one run:

    manifest -> per reference: fetch + decode
             -> per size: resize -> store -> upsert

Handles:
- Bounded concurrency (separate limits for downloads and for writes)
- Per-reference and per-(reference, size) failure isolation
- Store-before-index ordering inside every chain
- An optional overall deadline that keeps already completed units
- Store+upsert commits that are never interrupted half-way
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Set

import httpx
from PIL import Image

from .config import SkyhubConfig
from .errors import DeadlineExceededError, SkyhubError
from .fetcher import ImageFetcher
from .index_store import JsonIndexStore
from .manifest import ManifestFetcher
from .models import (
    SIZES,
    DecodedImage,
    ImageReference,
    PipelineReport,
    SizeSpec,
    StoredImageRecord,
    UnitResult,
    stored_name,
)
from .resizer import resize_image
from .storage import FileStorageWriter

logger = logging.getLogger(__name__)

Resizer = Callable[[Image.Image, SizeSpec], Image.Image]


@dataclass
class _RunState:
    """Per-run shared state; created inside the running loop."""
    report: PipelineReport
    fetch_slots: asyncio.Semaphore
    store_slots: asyncio.Semaphore
    # store+upsert tasks; shielded from cancellation and drained by run()
    commits: Set[asyncio.Task] = field(default_factory=set)


class Pipeline:
    """
    Manifest-to-index ingestion.

    Usage:
        pipeline = build_pipeline(config, http_client, index)
        report = await pipeline.run()
    """

    def __init__(
        self,
        config: SkyhubConfig,
        manifest_fetcher: ManifestFetcher,
        image_fetcher: ImageFetcher,
        storage: FileStorageWriter,
        index: JsonIndexStore,
        resizer: Resizer = resize_image,
    ):
        self.config = config
        self.manifest_fetcher = manifest_fetcher
        self.image_fetcher = image_fetcher
        self.storage = storage
        self.index = index
        self.resizer = resizer

    async def run(
        self,
        endpoint: Optional[str] = None,
        sizes: Sequence[SizeSpec] = SIZES,
    ) -> PipelineReport:
        """
        Execute one full ingestion run.

        When the deadline expires, unfinished references are cancelled but
        any store+upsert already under way is allowed to finish and is
        reported, so the report always agrees with the index.

        Args:
            endpoint: Manifest URL, defaults to ``config.manifest_url``
            sizes: Target sizes produced for every image

        Returns:
            PipelineReport with one result per completed unit

        Raises:
            TransportError, MalformedResponseError: manifest could not be used
        """
        endpoint = endpoint or self.config.manifest_url
        report = PipelineReport(endpoint=endpoint)

        references = await self.manifest_fetcher.fetch(endpoint)
        report.reference_count = len(references)
        logger.info(f"[Pipeline] Starting run: {len(references)} references x {len(sizes)} sizes")

        state = _RunState(
            report=report,
            fetch_slots=asyncio.Semaphore(self.config.max_concurrent_fetches),
            store_slots=asyncio.Semaphore(self.config.max_concurrent_stores),
        )

        tasks = {
            asyncio.create_task(self._process_reference(ref, sizes, state)): ref
            for ref in references
        }

        try:
            if tasks:
                done, pending = await asyncio.wait(tasks, timeout=self.config.run_timeout)
            else:
                done, pending = set(), set()

            for task in done:
                if task.cancelled():
                    continue
                exc = task.exception()
                if exc is not None:
                    ref = tasks[task]
                    logger.error(f"[Pipeline] Unexpected error for {ref.source_url}", exc_info=exc)
                    report.record(UnitResult.failure(ref.source_url, exc))

            if pending:
                report.timed_out = True
                logger.warning(
                    f"[Pipeline] Deadline of {self.config.run_timeout}s exceeded, "
                    f"cancelling {len(pending)} references"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                for task in pending:
                    ref = tasks[task]
                    report.record(UnitResult.failure(
                        ref.source_url,
                        DeadlineExceededError(f"Run deadline exceeded before {ref.source_url} finished"),
                    ))
        finally:
            leftover = [task for task in tasks if not task.done()]
            for task in leftover:
                task.cancel()
            if leftover:
                await asyncio.gather(*leftover, return_exceptions=True)
            if state.commits:
                await asyncio.gather(*list(state.commits), return_exceptions=True)

        report.finished_at = time.time()
        logger.info(
            f"[Pipeline] Run complete: {report.succeeded_count} stored, "
            f"{report.failed_count} failed, {report.duration_seconds:.2f}s"
        )
        return report

    async def _process_reference(
        self,
        ref: ImageReference,
        sizes: Sequence[SizeSpec],
        state: _RunState,
    ) -> None:
        try:
            async with state.fetch_slots:
                decoded = await self.image_fetcher.fetch_and_decode(ref)
        except SkyhubError as e:
            logger.warning(f"[Pipeline] Skipping {ref.source_url}: [{e.stage}] {e}")
            state.report.record(UnitResult.failure(ref.source_url, e))
            return

        outcomes = await asyncio.gather(
            *(self._process_size(decoded, size, state) for size in sizes),
            return_exceptions=True,
        )
        for size, outcome in zip(sizes, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    f"[Pipeline] Unexpected error for {decoded.logical_name} {size.label}",
                    exc_info=outcome,
                )
                state.report.record(UnitResult.failure(decoded.source_url, outcome, size=size))

    async def _process_size(
        self,
        decoded: DecodedImage,
        size: SizeSpec,
        state: _RunState,
    ) -> None:
        resized = await asyncio.to_thread(self.resizer, decoded.raster, size)

        commit = asyncio.create_task(self._commit(decoded, size, resized, state))
        state.commits.add(commit)
        commit.add_done_callback(state.commits.discard)
        await asyncio.shield(commit)

    async def _commit(
        self,
        decoded: DecodedImage,
        size: SizeSpec,
        resized: Image.Image,
        state: _RunState,
    ) -> None:
        """Store then upsert one variant and record the outcome."""
        name = stored_name(decoded.logical_name, size)
        try:
            async with state.store_slots:
                address = await self.storage.store(resized, name)
                record = StoredImageRecord(name=name, address=address)
                await self.index.upsert(record)
        except SkyhubError as e:
            logger.warning(f"[Pipeline] Failed {name}: [{e.stage}] {e}")
            state.report.record(UnitResult.failure(decoded.source_url, e, size=size))
            return
        except Exception as e:
            logger.error(f"[Pipeline] Unexpected error for {name}", exc_info=e)
            state.report.record(UnitResult.failure(decoded.source_url, e, size=size))
            return

        logger.debug(f"[Pipeline] Stored {name} -> {address}")
        state.report.record(UnitResult.success(decoded.source_url, size, record))


def build_pipeline(
    config: SkyhubConfig,
    http_client: httpx.AsyncClient,
    index: JsonIndexStore,
) -> Pipeline:
    """Wire the default collaborators for ``config``."""
    storage = FileStorageWriter(
        root=config.storage_dir,
        base_url=config.base_url,
        jpeg_quality=config.jpeg_quality,
    )
    storage.ensure_root()
    return Pipeline(
        config=config,
        manifest_fetcher=ManifestFetcher(http_client),
        image_fetcher=ImageFetcher(
            http_client,
            retries=config.fetch_retries,
            retry_backoff=config.retry_backoff,
        ),
        storage=storage,
        index=index,
    )


def create_http_client(config: SkyhubConfig) -> httpx.AsyncClient:
    """Shared outbound client for manifest and image downloads."""
    return httpx.AsyncClient(
        timeout=config.http_timeout,
        follow_redirects=True,
        headers={
            "User-Agent": "skyhub-ingest/1.0",
            "Accept": "application/json, image/jpeg, */*;q=0.8",
        },
    )
