"""
Platform adapter capability and shared helpers.

An adapter knows how to talk to one platform. It returns raw items in
the platform's own shape and never writes to storage; normalization,
dedup and watermarking all happen downstream in the orchestrator.

The base class provides:
- Per-adapter request rate limiting
- HTTPClientError -> AdapterError translation
- Quota hooks for metered platforms
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar

from src.ingestion.errors import AdapterError
from src.ingestion.http_client import HTTPClient, HTTPClientError
from src.ingestion.schemas import LiveRef, Platform, RawItem, SourceDetails, SourceRef
from src.quota.tracker import QuotaTracker, endpoint_cost

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RateLimiter:
    """
    Token bucket allowing ``rate`` requests per minute.

    Tokens refill continuously, so a burst drains the bucket and later
    callers wait roughly 60/rate seconds each.
    """

    rate: int
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now
            self._tokens = min(float(self.rate), self._tokens + elapsed * self.rate / 60.0)

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 0
            else:
                self._tokens -= 1


class PlatformAdapter(ABC):
    """
    Abstract base class for platform adapters.

    Subclasses must implement:
        - platform: Platform enum value
        - list_items_since(): every raw item published at or after ``since``,
          fully paged, or raise AdapterError

    Subclasses may override:
        - current_live_state(): when ``supports_live_state`` is True
        - fetch_source_details(): display metadata lookup
        - estimated_cost(): units a metered fetch is expected to spend
    """

    #: Calls spend from a daily QuotaTracker budget
    metered: bool = False
    #: current_live_state() is implemented
    supports_live_state: bool = False

    def __init__(
        self,
        http: HTTPClient | None,
        rate_limit: int = 60,
        quota: QuotaTracker | None = None,
    ):
        """
        Args:
            http: Open HTTPClient shared for the batch (None for offline adapters)
            rate_limit: Maximum requests per minute for this adapter
            quota: Budget tracker, required for metered adapters
        """
        if self.metered and quota is None:
            raise ValueError(f"{type(self).__name__} is metered and needs a QuotaTracker")
        self._http = http
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._quota = quota

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this adapter handles."""
        ...

    @property
    def name(self) -> str:
        return f"{self.platform.value}_adapter"

    @property
    def quota(self) -> QuotaTracker | None:
        return self._quota

    @abstractmethod
    async def list_items_since(self, source: SourceRef, since: datetime) -> list[RawItem]:
        """
        Fetch raw items for ``source`` published at or after ``since``.

        Adapters may over-return (older items, or items the API does not
        let us filter by date); the orchestrator applies the window again.
        """
        ...

    async def current_live_state(self, account: SourceRef) -> list[LiveRef]:
        """Items ``account`` is broadcasting right now."""
        raise NotImplementedError(f"{self.name} does not support liveness queries")

    async def fetch_source_details(self, source: SourceRef) -> SourceDetails | None:
        """Display metadata for ``source``, or None if the platform exposes none."""
        return None

    def estimated_cost(self, source: SourceRef) -> int:
        """Quota units one fetch of ``source`` is expected to spend."""
        return 0

    async def _call(self, request: Awaitable[T], what: str) -> T:
        """Rate-limit and await one upstream request, translating failures."""
        await self._rate_limiter.acquire()
        try:
            return await request
        except HTTPClientError as e:
            raise AdapterError(f"{what}: {e}", platform=self.platform.value) from e

    async def _metered_call(self, endpoint: str, request: Awaitable[T]) -> T:
        """Like _call, recording quota usage only if the request succeeded."""
        result = await self._call(request, endpoint)
        if self._quota is not None:
            self._quota.record_usage(endpoint, endpoint_cost(endpoint))
        return result


_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_text(text: str | None) -> str | None:
    """Strip control characters and surrounding whitespace; empty becomes None."""
    if text is None:
        return None
    text = _CONTROL_CHARS.sub("", text).strip()
    return text or None
