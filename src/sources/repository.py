"""Database repository for the sources table."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from src.ingestion.schemas import Platform
from src.sources.schemas import FETCH_STATUS_OK, Source
from src.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS sources (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    platform_id     TEXT NOT NULL,
    external_id     TEXT NOT NULL,
    handle          TEXT,
    display_name    TEXT,
    thumbnail_url   TEXT,
    uploads_locator TEXT,
    last_fetched_at TIMESTAMPTZ,
    fetch_status    TEXT NOT NULL DEFAULT 'ok',
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (platform_id, external_id)
);

CREATE INDEX IF NOT EXISTS idx_sources_platform_id
    ON sources(platform_id);
CREATE INDEX IF NOT EXISTS idx_sources_fetch_status
    ON sources(fetch_status) WHERE fetch_status != 'ok';
CREATE INDEX IF NOT EXISTS idx_sources_last_fetched
    ON sources(last_fetched_at NULLS FIRST);
"""

# Display metadata only; the watermark columns are never touched here.
_UPSERT_SQL = """
INSERT INTO sources (platform_id, external_id, handle, display_name, thumbnail_url, uploads_locator)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (platform_id, external_id) DO UPDATE SET
    handle = COALESCE(EXCLUDED.handle, sources.handle),
    display_name = COALESCE(EXCLUDED.display_name, sources.display_name),
    thumbnail_url = COALESCE(EXCLUDED.thumbnail_url, sources.thumbnail_url),
    uploads_locator = COALESCE(EXCLUDED.uploads_locator, sources.uploads_locator),
    updated_at = NOW()
RETURNING *
"""

# GREATEST keeps the watermark non-decreasing even if two runs race.
_MARK_FETCHED_SQL = """
UPDATE sources SET
    last_fetched_at = GREATEST(COALESCE(last_fetched_at, $2), $2),
    fetch_status = $3,
    updated_at = NOW()
WHERE id = $1
"""

_MARK_FAILED_SQL = """
UPDATE sources SET fetch_status = $2, updated_at = NOW()
WHERE id = $1
"""


def _record_to_source(record) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    return Source(
        id=record["id"],
        platform=Platform(record["platform_id"]),
        external_id=record["external_id"],
        handle=record["handle"],
        display_name=record["display_name"],
        thumbnail_url=record["thumbnail_url"],
        uploads_locator=record["uploads_locator"],
        last_fetched_at=record["last_fetched_at"],
        fetch_status=record["fetch_status"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class SourcesRepository:
    """CRUD operations for the sources table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the sources table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Sources table ensured")

    async def upsert(self, source: Source) -> Source:
        """Insert a source or refresh its display metadata.

        Null incoming fields keep the stored value, so a sparse upsert
        (e.g. from an external search hit) never erases enrichment.
        """
        row = await self._db.fetchrow(
            _UPSERT_SQL,
            source.platform.value,
            source.external_id,
            source.handle,
            source.display_name,
            source.thumbnail_url,
            source.uploads_locator,
        )
        return _record_to_source(row)

    async def list_due(
        self,
        now: datetime,
        min_interval: timedelta,
        platforms: list[Platform] | None = None,
        limit: int = 1000,
    ) -> list[Source]:
        """Sources never fetched, or fetched at least ``min_interval`` ago.

        Oldest watermark first so a capped batch still makes progress
        on the most stale sources.
        """
        conditions = ["(last_fetched_at IS NULL OR last_fetched_at <= $1)"]
        params: list = [now - min_interval]
        idx = 2

        if platforms:
            conditions.append(f"platform_id = ANY(${idx}::text[])")
            params.append([p.value for p in platforms])
            idx += 1

        sql = f"""
            SELECT * FROM sources
            WHERE {" AND ".join(conditions)}
            ORDER BY last_fetched_at ASC NULLS FIRST, created_at ASC
            LIMIT ${idx}
        """
        params.append(limit)
        rows = await self._db.fetch(sql, *params)
        return [_record_to_source(r) for r in rows]

    async def mark_fetched(self, source_id: UUID, fetched_at: datetime) -> None:
        """Advance the watermark after a successful fetch."""
        await self._db.execute(_MARK_FETCHED_SQL, source_id, fetched_at, FETCH_STATUS_OK)

    async def mark_failed(self, source_id: UUID, status: str) -> bool:
        """Record an error tag without touching the watermark."""
        result = await self._db.execute(_MARK_FAILED_SQL, source_id, status)
        return affected_rows(result) == 1

    async def list_unenriched(
        self,
        platforms: list[Platform] | None = None,
        limit: int = 100,
    ) -> list[Source]:
        """Sources still missing display metadata, oldest first."""
        conditions = ["display_name IS NULL"]
        params: list = []
        idx = 1

        if platforms:
            conditions.append(f"platform_id = ANY(${idx}::text[])")
            params.append([p.value for p in platforms])
            idx += 1

        sql = f"""
            SELECT * FROM sources
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at ASC
            LIMIT ${idx}
        """
        params.append(limit)
        rows = await self._db.fetch(sql, *params)
        return [_record_to_source(r) for r in rows]
