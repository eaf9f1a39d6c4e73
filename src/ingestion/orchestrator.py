"""
Ingestion orchestrator: fan sources out to a bounded worker pool.

Per source the pipeline is strictly sequential:

    quota pre-check -> adapter fetch -> normalize -> window filter
    -> dedup & upsert -> advance watermark

Failures are isolated per source except persistence failures, which
stop the whole batch. A source's watermark only moves after every one
of its events has been written.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import structlog

from src.events.schemas import Event
from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.config import IngestConfig
from src.ingestion.errors import IngestionError, NormalizationError
from src.ingestion.normalizer import EventNormalizer
from src.ingestion.schemas import EventType, Platform, RawItem
from src.ingestion.upsert import EventWriter
from src.ingestion.watermark import FetchWindowPolicy
from src.observability.metrics import MetricsCollector, get_metrics
from src.sources.repository import SourcesRepository
from src.sources.schemas import Source, error_tag
from src.storage.database import StorageError

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BatchResult:
    """Aggregate counters for one batch invocation."""

    succeeded: int = 0
    failed: int = 0
    deferred: int = 0
    skipped: int = 0
    events_upserted: int = 0
    events_suppressed: int = 0
    items_rejected: int = 0
    timed_out: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.deferred

    def to_dict(self) -> dict:
        return asdict(self)


class IngestionOrchestrator:
    """
    Runs one ingestion batch over a list of sources.

    Usage:
        orchestrator = IngestionOrchestrator(adapters, sources_repo, writer)
        result = await orchestrator.run_batch(due_sources)
    """

    def __init__(
        self,
        adapters: dict[Platform, PlatformAdapter],
        sources: SourcesRepository,
        writer: EventWriter,
        normalizer: EventNormalizer | None = None,
        window: FetchWindowPolicy | None = None,
        config: IngestConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        metrics: MetricsCollector | None = None,
    ):
        self._config = config or IngestConfig()
        self._adapters = adapters
        self._sources = sources
        self._writer = writer
        self._normalizer = normalizer or EventNormalizer()
        self._window = window or FetchWindowPolicy(self._config)
        self._clock = clock
        self._metrics = metrics or get_metrics()

    async def run_batch(self, sources: list[Source]) -> BatchResult:
        """
        Process ``sources`` with at most ``max_workers`` in flight.

        Raises:
            StorageError: persistence failed; remaining work is cancelled
        """
        result = BatchResult()
        if not sources:
            return result

        queue: asyncio.Queue[Source] = asyncio.Queue()
        for source in sources:
            queue.put_nowait(source)

        worker_count = min(self._config.max_workers, len(sources))
        workers = [
            asyncio.create_task(self._worker(queue, result), name=f"ingest-worker-{i}")
            for i in range(worker_count)
        ]
        logger.info(
            "Ingestion batch started",
            sources=len(sources),
            workers=worker_count,
            timeout=self._config.run_timeout_seconds,
        )

        started = time.monotonic()
        done, pending = await asyncio.wait(
            workers,
            timeout=self._config.run_timeout_seconds,
            return_when=asyncio.FIRST_EXCEPTION,
        )

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Ingestion batch aborted",
                    error=str(task.exception()),
                    error_type=type(task.exception()).__name__,
                )
                raise task.exception()

        if pending:
            result.timed_out = True
            # Queued plus cancelled in-flight sources; watermarks untouched
            result.skipped = len(sources) - result.processed
            logger.warning(
                "Ingestion batch deadline reached",
                timeout=self._config.run_timeout_seconds,
                skipped=result.skipped,
            )

        logger.info(
            "Ingestion batch finished",
            elapsed=round(time.monotonic() - started, 2),
            **result.to_dict(),
        )
        return result

    async def _worker(self, queue: asyncio.Queue[Source], result: BatchResult) -> None:
        while True:
            try:
                source = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self.process_source(source, result)
            finally:
                queue.task_done()

    async def process_source(self, source: Source, result: BatchResult) -> None:
        """Run the full pipeline for one source, updating ``result`` in place."""
        log = logger.bind(
            platform=source.platform.value,
            source_id=str(source.id),
            external_id=source.external_id,
        )

        adapter = self._adapters.get(source.platform)
        if adapter is None:
            log.warning("No adapter configured for platform, source skipped")
            result.skipped += 1
            self._metrics.record_source_fetch(source.platform, "skipped")
            return

        now = self._clock()
        since = self._window.fetch_since(source, now)
        started = time.monotonic()

        if adapter.metered and adapter.quota is not None:
            cost = adapter.estimated_cost(source.ref)
            if not adapter.quota.can_use(cost):
                log.warning(
                    "Quota insufficient, source deferred",
                    estimated_cost=cost,
                    remaining=adapter.quota.remaining(),
                )
                result.deferred += 1
                self._metrics.record_source_fetch(source.platform, "deferred")
                return

        try:
            raw_items = await adapter.list_items_since(source.ref, since)
            events, rejected = self._normalize(raw_items, source, since, log)
            write = await self._writer.write_source_batch(source, events, now)
        except StorageError:
            raise
        except Exception as e:
            if isinstance(e, IngestionError):
                log.warning("Source fetch failed", error=str(e), error_type=type(e).__name__)
            else:
                log.error(
                    "Source fetch failed unexpectedly",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            await self._sources.mark_failed(source.id, error_tag(e))
            result.failed += 1
            self._metrics.record_error(source.platform, type(e).__name__)
            self._metrics.record_source_fetch(
                source.platform, "failed", time.monotonic() - started
            )
            return

        await self._sources.mark_fetched(source.id, now)

        result.succeeded += 1
        result.events_upserted += write.upserted
        result.events_suppressed += write.suppressed
        result.items_rejected += rejected
        self._metrics.record_source_fetch(source.platform, "ok", time.monotonic() - started)
        self._metrics.record_events(
            source.platform, write.upserted, write.suppressed, rejected
        )
        log.info(
            "Source ingested",
            since=since.isoformat(),
            fetched=len(raw_items),
            upserted=write.upserted,
            suppressed=write.suppressed,
            rejected=rejected,
        )

    def _normalize(
        self,
        raw_items: list[RawItem],
        source: Source,
        since: datetime,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[list[Event], int]:
        """Normalize items in adapter order; drop bad ones and those before ``since``."""
        events: list[Event] = []
        rejected = 0
        outside = 0
        for raw in raw_items:
            try:
                event = self._normalizer.normalize(raw, source)
            except NormalizationError as e:
                rejected += 1
                log.warning("Item rejected", kind=raw.kind, error=str(e))
                continue

            # Live items are current regardless of when they started
            if event.type != EventType.LIVE and event.sort_at < since:
                outside += 1
                continue
            events.append(event)

        if outside:
            log.debug("Items outside fetch window dropped", count=outside)
        return events, rejected
