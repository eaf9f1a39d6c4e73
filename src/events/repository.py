"""Database repository for the events table."""

import json
import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from src.events.schemas import Event, dump_metrics, load_metrics
from src.ingestion.schemas import EventType, Platform
from src.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS events (
    id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    platform_id       TEXT NOT NULL,
    source_id         UUID NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    external_event_id TEXT NOT NULL,
    type              TEXT NOT NULL
        CHECK (type IN ('live', 'scheduled', 'video', 'episode', 'radio')),
    title             TEXT NOT NULL,
    description       TEXT,
    start_at          TIMESTAMPTZ,
    end_at            TIMESTAMPTZ,
    published_at      TIMESTAMPTZ,
    url               TEXT NOT NULL,
    image_url         TEXT,
    metrics           JSONB,
    duration          TEXT,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (platform_id, external_event_id),
    CHECK (start_at IS NOT NULL OR published_at IS NOT NULL)
);

CREATE INDEX IF NOT EXISTS idx_events_source_sort
    ON events(source_id, (COALESCE(start_at, published_at)) DESC, created_at DESC, id DESC);
CREATE INDEX IF NOT EXISTS idx_events_sort
    ON events((COALESCE(start_at, published_at)) DESC);
CREATE INDEX IF NOT EXISTS idx_events_open_live
    ON events(platform_id, source_id) WHERE type = 'live';
"""

# Last write wins on every mutable column; id and created_at are stable.
_UPSERT_SQL = """
INSERT INTO events (
    platform_id, source_id, external_event_id, type, title, description,
    start_at, end_at, published_at, url, image_url, metrics, duration
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12::jsonb, $13)
ON CONFLICT (platform_id, external_event_id) DO UPDATE SET
    source_id = EXCLUDED.source_id,
    type = EXCLUDED.type,
    title = EXCLUDED.title,
    description = EXCLUDED.description,
    start_at = EXCLUDED.start_at,
    end_at = EXCLUDED.end_at,
    published_at = EXCLUDED.published_at,
    url = EXCLUDED.url,
    image_url = EXCLUDED.image_url,
    metrics = EXCLUDED.metrics,
    duration = EXCLUDED.duration,
    updated_at = NOW()
RETURNING *
"""

_OPEN_LIVE_CONDITION = "e.type = 'live' AND (e.end_at IS NULL OR e.end_at > $1)"

# The type guard makes the live -> video transition happen at most once.
_CLOSE_LIVE_SQL = """
UPDATE events SET type = 'video', end_at = $2, updated_at = NOW()
WHERE id = ANY($1::uuid[]) AND type = 'live'
"""


def _record_to_event(record: Any) -> Event:
    """Convert an asyncpg Record to an Event."""
    platform = Platform(record["platform_id"])
    metrics = record["metrics"]
    if isinstance(metrics, str):
        metrics = json.loads(metrics)

    return Event(
        id=record["id"],
        platform=platform,
        source_id=record["source_id"],
        external_event_id=record["external_event_id"],
        type=EventType(record["type"]),
        title=record["title"],
        description=record["description"],
        start_at=record["start_at"],
        end_at=record["end_at"],
        published_at=record["published_at"],
        url=record["url"],
        image_url=record["image_url"],
        metrics=load_metrics(platform, metrics),
        duration=record["duration"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class EventsRepository:
    """Persistence for normalized events."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the events table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Events table ensured")

    async def upsert(self, event: Event) -> Event:
        """Insert or overwrite an event keyed by (platform, external_event_id)."""
        metrics = dump_metrics(event.metrics)
        row = await self._db.fetchrow(
            _UPSERT_SQL,
            event.platform.value,
            event.source_id,
            event.external_event_id,
            event.type.value,
            event.title,
            event.description,
            event.start_at,
            event.end_at,
            event.published_at,
            event.url,
            event.image_url,
            json.dumps(metrics) if metrics is not None else None,
            event.duration,
        )
        return _record_to_event(row)

    async def get_by_key(self, platform: Platform, external_event_id: str) -> Event | None:
        row = await self._db.fetchrow(
            "SELECT * FROM events WHERE platform_id = $1 AND external_event_id = $2",
            platform.value, external_event_id,
        )
        return _record_to_event(row) if row else None

    async def list_open_live(self, source_id: UUID, now: datetime) -> list[Event]:
        """Open live events (no end, or end in the future) for one source."""
        rows = await self._db.fetch(
            f"SELECT e.* FROM events e WHERE {_OPEN_LIVE_CONDITION} AND e.source_id = $2",
            now, source_id,
        )
        return [_record_to_event(r) for r in rows]

    async def list_open_live_by_account(
        self, platforms: list[Platform], now: datetime
    ) -> list[tuple[str, Event]]:
        """Open live events on ``platforms`` paired with the owning account id."""
        if not platforms:
            return []
        sql = f"""
            SELECT e.*, s.external_id AS account_id
            FROM events e
            JOIN sources s ON s.id = e.source_id
            WHERE {_OPEN_LIVE_CONDITION}
              AND e.platform_id = ANY($2::text[])
            ORDER BY s.external_id, e.start_at
        """
        rows = await self._db.fetch(sql, now, [p.value for p in platforms])
        return [(r["account_id"], _record_to_event(r)) for r in rows]

    async def close_live(self, event_ids: list[UUID], ended_at: datetime) -> int:
        """Transition live events to recorded videos. Returns rows changed."""
        if not event_ids:
            return 0
        result = await self._db.execute(_CLOSE_LIVE_SQL, event_ids, ended_at)
        return affected_rows(result)

    async def list_timeline(
        self,
        source_ids: list[UUID],
        limit: int,
        before: tuple[datetime, datetime | None, UUID | None] | None = None,
        platforms: list[Platform] | None = None,
    ) -> list[Event]:
        """Keyset page over events for ``source_ids``.

        Ordered by coalesce(start_at, published_at) DESC, then insertion
        order. ``before`` is the (sort_at, created_at, id) key of the last
        row already seen; a bare timestamp (created_at and id None) means
        strictly older than that instant.
        """
        if not source_ids:
            return []

        conditions = ["source_id = ANY($1::uuid[])"]
        params: list = [source_ids]
        idx = 2

        if platforms:
            conditions.append(f"platform_id = ANY(${idx}::text[])")
            params.append([p.value for p in platforms])
            idx += 1

        if before is not None:
            sort_at, created_at, event_id = before
            if created_at is not None and event_id is not None:
                conditions.append(
                    f"(COALESCE(start_at, published_at), created_at, id) "
                    f"< (${idx}, ${idx + 1}, ${idx + 2})"
                )
                params.extend([sort_at, created_at, event_id])
                idx += 3
            else:
                conditions.append(f"COALESCE(start_at, published_at) < ${idx}")
                params.append(sort_at)
                idx += 1

        sql = f"""
            SELECT * FROM events
            WHERE {" AND ".join(conditions)}
            ORDER BY COALESCE(start_at, published_at) DESC, created_at DESC, id DESC
            LIMIT ${idx}
        """
        params.append(limit)
        rows = await self._db.fetch(sql, *params)
        return [_record_to_event(r) for r in rows]
