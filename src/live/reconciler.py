"""
Live-state reconciler.

Sweeps every open live event (no end, or an end in the future) on
platforms that can answer "what is this account broadcasting now?".
Events no longer reported live are closed: ``type`` becomes ``video``
and ``end_at`` the observation time. This is the only write that
changes an event's type after creation.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from src.events.repository import EventsRepository
from src.events.schemas import Event
from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.orchestrator import utc_now
from src.ingestion.schemas import Platform, SourceRef
from src.observability.metrics import MetricsCollector, get_metrics
from src.storage.database import StorageError

logger = structlog.get_logger(__name__)


@dataclass
class ReconcileResult:
    """Counters for one reconciliation sweep."""

    checked: int = 0
    closed: int = 0
    failed_accounts: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class LiveStateReconciler:
    """
    Closes live events that have ended upstream.

    One liveness call per account, not per event; accounts are checked
    with bounded concurrency. A failing account leaves its events
    untouched and does not stop the others.
    """

    def __init__(
        self,
        adapters: dict[Platform, PlatformAdapter],
        events: EventsRepository,
        clock: Callable[[], datetime] = utc_now,
        max_concurrency: int = 10,
        metrics: MetricsCollector | None = None,
    ):
        self._adapters = {p: a for p, a in adapters.items() if a.supports_live_state}
        self._events = events
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._metrics = metrics or get_metrics()

    async def reconcile(self) -> ReconcileResult:
        """
        Raises:
            StorageError: the event store is unavailable
        """
        result = ReconcileResult()
        if not self._adapters:
            logger.info("No liveness-capable adapters configured, nothing to reconcile")
            return result

        observed_at = self._clock()
        rows = await self._events.list_open_live_by_account(list(self._adapters), observed_at)
        result.checked = len(rows)

        by_account: dict[tuple[Platform, str], list[Event]] = defaultdict(list)
        for account_id, event in rows:
            by_account[(event.platform, account_id)].append(event)

        try:
            async with asyncio.TaskGroup() as group:
                for (platform, account_id), events in by_account.items():
                    group.create_task(
                        self._reconcile_account(platform, account_id, events, observed_at, result)
                    )
        except ExceptionGroup as eg:
            # Remaining accounts were cancelled; surface the failure unwrapped
            raise eg.exceptions[0] from None

        logger.info(
            "Live-state reconciliation finished",
            accounts=len(by_account),
            **result.to_dict(),
        )
        return result

    async def _reconcile_account(
        self,
        platform: Platform,
        account_id: str,
        events: list[Event],
        observed_at: datetime,
        result: ReconcileResult,
    ) -> None:
        adapter = self._adapters[platform]
        async with self._semaphore:
            try:
                live = await adapter.current_live_state(
                    SourceRef(platform=platform, external_id=account_id)
                )
            except StorageError:
                raise
            except Exception as e:
                logger.warning(
                    "Liveness query failed, account left untouched",
                    platform=platform.value,
                    account_id=account_id,
                    open_events=len(events),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.failed_accounts += 1
                return

            live_ids = {ref.external_id for ref in live}
            ended = [e.id for e in events if e.external_event_id not in live_ids]
            if not ended:
                return

            closed = await self._events.close_live(ended, observed_at)
            result.closed += closed
            self._metrics.record_live_closed(platform, closed)
            logger.info(
                "Closed ended live events",
                platform=platform.value,
                account_id=account_id,
                closed=closed,
                still_live=len(events) - len(ended),
            )
