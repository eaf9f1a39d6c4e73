"""
Mock adapter for testing and development.

Serves canned raw items per account, or synthesizes realistic
platform-native payloads so the whole pipeline (normalizer included)
runs without credentials. Useful for:
- Unit and scenario tests of the orchestrator and reconciler
- ``castline ingest --mock`` against a local database
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Any

from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.errors import AdapterError
from src.ingestion.schemas import LiveRef, Platform, RawItem, SourceDetails, SourceRef
from src.quota.tracker import QuotaTracker

SAMPLE_TITLES = [
    "Morning show",
    "Late night talk",
    "Speedrun practice",
    "Weekly roundup",
    "Studio session",
    "Q&A with listeners",
    "Behind the scenes",
    "Deep dive",
]


class MockAdapter(PlatformAdapter):
    """
    In-memory adapter.

    With ``items`` given, ``list_items_since`` returns exactly the items
    registered for the account (the caller controls the window test).
    Without, it synthesizes ``items_per_fetch`` payloads dated within the
    last week, deterministic per account.
    """

    def __init__(
        self,
        platform: Platform,
        items: dict[str, list[RawItem]] | None = None,
        live: dict[str, list[LiveRef]] | None = None,
        failing: set[str] | None = None,
        items_per_fetch: int = 5,
        supports_live_state: bool | None = None,
        quota: QuotaTracker | None = None,
        cost_per_fetch: int = 0,
        delay: float = 0.0,
    ):
        """
        Args:
            platform: Which platform to mimic
            items: Canned raw items by account external id
            live: Canned current live state by account external id
            failing: Accounts whose fetches raise AdapterError
            items_per_fetch: Synthesized items per fetch when ``items`` is None
            supports_live_state: Override; defaults to True for Twitch
            quota: Makes the mock metered, charging ``cost_per_fetch`` per fetch
            cost_per_fetch: Quota units one fetch spends
            delay: Seconds each fetch sleeps (deadline tests)
        """
        self.metered = quota is not None
        super().__init__(None, rate_limit=6000, quota=quota)
        self._platform = platform
        self._items = items
        self._live = live or {}
        self._failing = failing or set()
        self._items_per_fetch = items_per_fetch
        self._cost = cost_per_fetch
        self._delay = delay
        self.supports_live_state = (
            supports_live_state if supports_live_state is not None else platform == Platform.TWITCH
        )
        self.fetch_calls: list[tuple[str, datetime]] = []
        self.live_calls: list[str] = []

    @property
    def platform(self) -> Platform:
        return self._platform

    def estimated_cost(self, source: SourceRef) -> int:
        return self._cost

    async def list_items_since(self, source: SourceRef, since: datetime) -> list[RawItem]:
        self.fetch_calls.append((source.external_id, since))
        if self._delay:
            await asyncio.sleep(self._delay)
        if source.external_id in self._failing:
            raise AdapterError(f"mock failure for {source.external_id}", platform=self._platform.value)

        if self._quota is not None and self._cost:
            self._quota.record_usage("mock.list", self._cost)

        if self._items is not None:
            return list(self._items.get(source.external_id, []))
        return self._synthesize(source)

    async def current_live_state(self, account: SourceRef) -> list[LiveRef]:
        if not self.supports_live_state:
            return await super().current_live_state(account)
        self.live_calls.append(account.external_id)
        if account.external_id in self._failing:
            raise AdapterError(f"mock liveness failure for {account.external_id}", platform=self._platform.value)
        return list(self._live.get(account.external_id, []))

    async def fetch_source_details(self, source: SourceRef) -> SourceDetails | None:
        return SourceDetails(
            external_id=source.external_id,
            display_name=f"Mock {self._platform.value} {source.external_id}",
            handle=source.external_id.lower(),
        )

    def _synthesize(self, source: SourceRef) -> list[RawItem]:
        rng = random.Random(f"{self._platform.value}:{source.external_id}")
        now = datetime.now(timezone.utc).replace(microsecond=0)
        items = []
        for i in range(self._items_per_fetch):
            at = now - timedelta(hours=rng.randint(1, 24 * 6), minutes=rng.randint(0, 59))
            title = f"{rng.choice(SAMPLE_TITLES)} #{i + 1}"
            item_id = f"mock-{source.external_id}-{i}"
            kind, data = self._payload(item_id, title, at, rng, source)
            items.append(RawItem(platform=self._platform, kind=kind, data=data))
        return items

    def _payload(
        self,
        item_id: str,
        title: str,
        at: datetime,
        rng: random.Random,
        source: SourceRef,
    ) -> tuple[str, dict[str, Any]]:
        stamp = at.isoformat().replace("+00:00", "Z")
        seconds = rng.randint(300, 3 * 3600)

        if self._platform == Platform.YOUTUBE:
            return "video", {
                "id": item_id,
                "snippet": {"title": title, "publishedAt": stamp, "liveBroadcastContent": "none"},
                "contentDetails": {"duration": f"PT{seconds // 3600}H{seconds % 3600 // 60}M{seconds % 60}S"},
                "statistics": {"viewCount": str(rng.randint(10, 100_000))},
            }
        if self._platform == Platform.TWITCH:
            return "video", {
                "id": item_id,
                "title": title,
                "created_at": stamp,
                "url": f"https://www.twitch.tv/videos/{item_id}",
                "view_count": rng.randint(10, 10_000),
                "duration": f"{seconds // 3600}h{seconds % 3600 // 60}m{seconds % 60}s",
                "type": "archive",
            }
        if self._platform == Platform.PODCAST:
            return "episode", {
                "guid": item_id,
                "title": title,
                "link": f"https://example.com/episodes/{item_id}",
                "published": at.isoformat(),
                "duration": str(seconds),
            }
        jst = at + timedelta(hours=9)
        return "program", {
            "id": item_id,
            "station_id": source.external_id,
            "ft": jst.strftime("%Y%m%d%H%M%S"),
            "to": (jst + timedelta(seconds=seconds)).strftime("%Y%m%d%H%M%S"),
            "dur": str(seconds),
            "title": title,
        }


def create_mock_adapters(items_per_fetch: int = 5) -> dict[Platform, MockAdapter]:
    """One synthesizing mock adapter per platform."""
    return {
        platform: MockAdapter(platform, items_per_fetch=items_per_fetch)
        for platform in Platform
    }
