"""
Idempotent event persistence with live/VOD shadow suppression.

Some platforms publish the same broadcast twice: once as a live stream
and again as an archive video that appears while the stream is still
running (or shortly after). The archive is a shadow of the live row and
is suppressed; the live-state reconciler later turns the live row into
a video instead.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.events.repository import EventsRepository
from src.events.schemas import Event
from src.ingestion.schemas import EventType, Platform
from src.sources.schemas import Source

logger = logging.getLogger(__name__)

# Platforms that expose both a live feed and a recorded feed for one broadcast
SHADOW_DEDUP_PLATFORMS = frozenset({Platform.TWITCH})


@dataclass
class WriteResult:
    """Outcome of writing one source's batch of events."""

    upserted: int = 0
    suppressed: int = 0


class EventWriter:
    """
    Writes normalized events for one source at a time.

    Every write is an ``INSERT ... ON CONFLICT DO UPDATE`` keyed by
    (platform, external_event_id); replaying a batch is a no-op apart
    from fields that actually changed upstream. Rows are independently
    atomic; a batch is not a transaction.
    """

    def __init__(
        self,
        repository: EventsRepository,
        tolerance: timedelta = timedelta(hours=2),
        shadow_platforms: frozenset[Platform] = SHADOW_DEDUP_PLATFORMS,
    ):
        if tolerance <= timedelta(0):
            raise ValueError("tolerance must be positive")
        self._repo = repository
        self._tolerance = tolerance
        self._shadow_platforms = shadow_platforms

    @property
    def tolerance(self) -> timedelta:
        return self._tolerance

    async def upsert(self, event: Event) -> Event:
        """Insert or overwrite one event (last write wins)."""
        return await self._repo.upsert(event)

    def is_shadow(self, event: Event, open_live_starts: list[datetime]) -> bool:
        """True if ``event`` was created within tolerance of an open live start."""
        created = event.published_at or event.start_at
        if created is None:
            return False
        return any(abs(created - start) <= self._tolerance for start in open_live_starts)

    async def write_source_batch(
        self,
        source: Source,
        events: list[Event],
        now: datetime,
    ) -> WriteResult:
        """
        Persist ``events`` for ``source``: live items first, then the rest.

        Recorded items on shadow-dedup platforms are checked against the
        source's open live events, including any just written above.
        """
        result = WriteResult()
        live = [e for e in events if e.type == EventType.LIVE]
        rest = [e for e in events if e.type != EventType.LIVE]

        for event in live:
            await self._repo.upsert(event)
            result.upserted += 1

        open_starts: list[datetime] = []
        if source.platform in self._shadow_platforms and any(e.is_recorded for e in rest):
            open_live = await self._repo.list_open_live(source.id, now)
            open_starts = [e.start_at for e in open_live if e.start_at is not None]

        for event in rest:
            if open_starts and event.is_recorded and self.is_shadow(event, open_starts):
                logger.info(
                    f"Suppressed {source.platform.value} recorded item "
                    f"{event.external_event_id} as shadow of an open live event"
                )
                result.suppressed += 1
                continue
            await self._repo.upsert(event)
            result.upserted += 1

        return result
