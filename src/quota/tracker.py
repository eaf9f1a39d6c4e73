"""
Daily metered-budget tracker for rate-limited platform APIs.

One tracker instance is constructed per process and per metered
platform, then injected into every adapter and pipeline that spends
from the budget. The in-memory counter is authoritative for decisions;
the ledger table is written in the background and only read back at
startup.

``can_use`` and ``record_usage`` are individually atomic but not atomic
together: concurrent callers may each pass ``can_use`` and overshoot the
limit by the cost of their in-flight calls. Overshoot is bounded by the
worker count and is accepted.
"""

import asyncio
import threading
from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

import structlog

from src.ingestion.schemas import Platform
from src.quota.config import QuotaConfig
from src.quota.repository import QuotaRepository
from src.storage.database import StorageError

logger = structlog.get_logger(__name__)

# YouTube Data API v3 unit costs
ENDPOINT_COSTS: dict[str, int] = {
    "channels.list": 1,
    "videos.list": 1,
    "playlistItems.list": 1,
    "activities.list": 1,
    "search.list": 100,
}


def endpoint_cost(endpoint: str) -> int:
    """Unit cost of ``endpoint``; unknown endpoints cost 1."""
    return ENDPOINT_COSTS.get(endpoint, 1)


class QuotaTracker:
    """
    In-process counter of today's spend plus an async-flushed ledger.

    Usage:
        tracker = QuotaTracker(QuotaRepository(db), Platform.YOUTUBE, 10_000)
        await tracker.rehydrate()
        if tracker.can_use(endpoint_cost("videos.list")):
            ...  # make the call
            tracker.record_usage("videos.list")
        await tracker.flush()
    """

    def __init__(
        self,
        repository: QuotaRepository | None,
        platform: Platform,
        daily_limit: int,
        config: QuotaConfig | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        """
        Args:
            repository: Ledger store; None keeps usage in memory only
            platform: Metered platform this budget belongs to
            daily_limit: Units available per quota day
            config: Warning thresholds and reset timezone
            today: Clock override returning the current quota day
        """
        if daily_limit <= 0:
            raise ValueError("daily_limit must be positive")

        self._config = config or QuotaConfig()
        self._repo = repository
        self._platform = platform
        self._limit = daily_limit
        self._tz = ZoneInfo(self._config.reset_timezone)
        self._today = today or self._local_today

        self._lock = threading.Lock()
        self._day = self._today()
        self._used = 0
        self._warned: set[float] = set()
        self._pending: set[asyncio.Task] = set()

    def _local_today(self) -> date:
        return datetime.now(self._tz).date()

    def _roll_over(self) -> date:
        """Reset the counter if the quota day changed. Caller holds the lock."""
        today = self._today()
        if today != self._day:
            logger.info(
                "Quota day rolled over",
                platform=self._platform.value,
                previous_day=self._day.isoformat(),
                previous_used=self._used,
            )
            self._day = today
            self._used = 0
            self._warned.clear()
        return today

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def daily_limit(self) -> int:
        return self._limit

    @property
    def used(self) -> int:
        with self._lock:
            self._roll_over()
            return self._used

    def can_use(self, cost: int) -> bool:
        """True iff ``used + cost`` stays within today's limit."""
        with self._lock:
            self._roll_over()
            return self._used + cost <= self._limit

    def remaining(self) -> int:
        with self._lock:
            self._roll_over()
            return max(self._limit - self._used, 0)

    def usage_percent(self) -> float:
        with self._lock:
            self._roll_over()
            return self._used / self._limit * 100

    def record_usage(self, endpoint: str, cost: int | None = None) -> int:
        """
        Add the cost of one successful metered call.

        Only call this after the upstream call succeeded. The ledger
        write is scheduled on the running loop when there is one.

        Returns:
            Units used today after this call
        """
        if cost is None:
            cost = endpoint_cost(endpoint)
        if cost < 0:
            raise ValueError("cost must be non-negative")

        with self._lock:
            day = self._roll_over()
            self._used += cost
            used = self._used
            crossed = self._crossed_thresholds(used)

        percent = used / self._limit * 100
        for threshold in crossed:
            log = logger.error if threshold >= self._config.critical_percent else logger.warning
            log(
                "Metered API quota threshold crossed",
                platform=self._platform.value,
                threshold=threshold,
                usage_percent=round(percent, 1),
                used=used,
                limit=self._limit,
            )

        self._schedule_ledger_write(day, endpoint, cost)
        return used

    def _crossed_thresholds(self, used: int) -> list[float]:
        """Thresholds newly crossed today. Caller holds the lock."""
        percent = used / self._limit * 100
        crossed = []
        for threshold in (self._config.warning_percent, self._config.critical_percent):
            if percent >= threshold and threshold not in self._warned:
                self._warned.add(threshold)
                crossed.append(threshold)
        return crossed

    def _schedule_ledger_write(self, day: date, endpoint: str, cost: int) -> None:
        if self._repo is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop, quota ledger write dropped",
                platform=self._platform.value,
                endpoint=endpoint,
            )
            return
        task = loop.create_task(self._write_ledger(day, endpoint, cost))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_ledger(self, day: date, endpoint: str, cost: int) -> None:
        try:
            await self._repo.record(day, self._platform, endpoint, cost)
        except StorageError as e:
            # The in-memory counter still holds the spend for this process
            logger.warning(
                "Failed to persist quota usage",
                platform=self._platform.value,
                endpoint=endpoint,
                cost=cost,
                error=str(e),
            )

    async def rehydrate(self) -> int:
        """Load today's spend from the ledger. Call once at process start."""
        if self._repo is None:
            return self.used
        day = self._today()
        total = await self._repo.total_for(day, self._platform)
        with self._lock:
            self._roll_over()
            self._used = max(self._used, total)
            used = self._used
            # Thresholds already behind us are not re-announced
            self._crossed_thresholds(used)
        logger.info(
            "Quota rehydrated",
            platform=self._platform.value,
            used=used,
            limit=self._limit,
            usage_percent=round(used / self._limit * 100, 1),
        )
        return used

    async def flush(self) -> None:
        """Wait for all scheduled ledger writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
