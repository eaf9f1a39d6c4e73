"""Read-only access to subscriber scoping.

Subscriptions are managed by an external service. This module only
resolves which sources a subscriber has enabled.
"""

import logging
from uuid import UUID

from src.ingestion.schemas import Platform
from src.storage.database import Database

logger = logging.getLogger(__name__)

# Mirrors the externally owned table so local environments work.
_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS user_subscriptions (
    user_id    TEXT NOT NULL,
    source_id  UUID NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    enabled    BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, source_id)
);

CREATE INDEX IF NOT EXISTS idx_user_subscriptions_enabled
    ON user_subscriptions(user_id) WHERE enabled;
"""


class SubscriptionStore:
    """Resolve a subscriber scope to the source ids it covers."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("User subscriptions table ensured")

    async def enabled_sources(
        self,
        subscriber_id: str,
        platforms: list[Platform] | None = None,
    ) -> list[UUID]:
        """Source ids the subscriber has enabled, optionally by platform."""
        sql = """
            SELECT us.source_id
            FROM user_subscriptions us
            JOIN sources s ON s.id = us.source_id
            WHERE us.user_id = $1 AND us.enabled
        """
        params: list = [subscriber_id]
        if platforms:
            sql += " AND s.platform_id = ANY($2::text[])"
            params.append([p.value for p in platforms])

        rows = await self._db.fetch(sql, *params)
        return [r["source_id"] for r in rows]
