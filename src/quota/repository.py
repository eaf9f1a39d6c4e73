"""Durable ledger of metered API usage."""

import logging
from datetime import date

from src.ingestion.schemas import Platform
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS api_quota_usage (
    id          BIGSERIAL PRIMARY KEY,
    date        DATE NOT NULL,
    platform_id TEXT NOT NULL,
    endpoint    TEXT NOT NULL,
    quota_cost  INTEGER NOT NULL CHECK (quota_cost >= 0),
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_api_quota_usage_day
    ON api_quota_usage(date, platform_id);
"""


class QuotaRepository:
    """Append-only ledger; daily totals are sums over (date, platform)."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("API quota usage table ensured")

    async def record(self, day: date, platform: Platform, endpoint: str, cost: int) -> None:
        await self._db.execute(
            """
            INSERT INTO api_quota_usage (date, platform_id, endpoint, quota_cost)
            VALUES ($1, $2, $3, $4)
            """,
            day, platform.value, endpoint, cost,
        )

    async def total_for(self, day: date, platform: Platform) -> int:
        """Total cost recorded for ``platform`` on ``day``."""
        total = await self._db.fetchval(
            """
            SELECT COALESCE(SUM(quota_cost), 0)
            FROM api_quota_usage
            WHERE date = $1 AND platform_id = $2
            """,
            day, platform.value,
        )
        return int(total or 0)

    async def usage_by_endpoint(self, day: date, platform: Platform) -> dict[str, int]:
        """Per-endpoint breakdown for reporting."""
        rows = await self._db.fetch(
            """
            SELECT endpoint, SUM(quota_cost) AS cost
            FROM api_quota_usage
            WHERE date = $1 AND platform_id = $2
            GROUP BY endpoint
            ORDER BY cost DESC
            """,
            day, platform.value,
        )
        return {r["endpoint"]: int(r["cost"]) for r in rows}
