"""
Timeline query engine.

Serves a subscriber's consolidated events newest first using keyset
pagination. Reads only committed rows; ingestion state and errors are
never visible here.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import UUID

from src.events.repository import EventsRepository
from src.ingestion.schemas import Platform
from src.subscriptions.repository import SubscriptionStore
from src.timeline.config import TimelineConfig
from src.timeline.schemas import TimelineCursor, TimelineItem, TimelinePage

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimelineService:
    """
    Cursor-paginated reads over a subscriber's enabled sources.

    Ordering is coalesce(start_at, published_at) DESC, then insertion
    order (created_at DESC, id DESC), so chaining ``next_cursor`` visits
    every event exactly once for a fixed dataset.
    """

    def __init__(
        self,
        events: EventsRepository,
        subscriptions: SubscriptionStore,
        config: TimelineConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._events = events
        self._subscriptions = subscriptions
        self._config = config or TimelineConfig()
        self._clock = clock

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._config.default_limit
        return max(1, min(limit, self._config.max_limit))

    async def list_timeline(
        self,
        scope: str,
        before: str | None = None,
        limit: int | None = None,
        platforms: list[Platform] | None = None,
        source_ids: list[UUID] | None = None,
    ) -> TimelinePage:
        """
        Args:
            scope: Subscriber id whose enabled sources are read
            before: Cursor from a previous page, or an RFC3339 instant
            limit: Page size, clamped to [1, max_limit]
            platforms: Optional platform filter
            source_ids: Optional narrowing to specific sources in scope

        Raises:
            InvalidCursorError: ``before`` is malformed
        """
        cursor = TimelineCursor.decode(before) if before else None
        page_size = self.clamp_limit(limit)

        scoped = await self._subscriptions.enabled_sources(scope, platforms)
        if source_ids is not None:
            wanted = set(source_ids)
            scoped = [s for s in scoped if s in wanted]
        if not scoped:
            return TimelinePage()

        rows = await self._events.list_timeline(
            scoped,
            limit=page_size + 1,
            before=cursor.as_key() if cursor else None,
            platforms=platforms,
        )

        has_more = len(rows) > page_size
        rows = rows[:page_size]
        now = self._clock()
        items = [TimelineItem(event=e, is_live=e.is_live_at(now)) for e in rows]

        next_cursor = TimelineCursor.after(rows[-1]).encode() if has_more else None
        logger.debug(f"Timeline page for {scope}: {len(items)} item(s), has_more={has_more}")
        return TimelinePage(items=items, has_more=has_more, next_cursor=next_cursor)
