"""Idempotent schema bootstrap for ``castline init-db``."""

import logging

from src.events.repository import EventsRepository
from src.quota.repository import QuotaRepository
from src.sources.repository import SourcesRepository
from src.storage.database import Database
from src.subscriptions.repository import SubscriptionStore

logger = logging.getLogger(__name__)


async def create_schema(database: Database) -> None:
    """Create all tables in foreign-key order. Safe to run repeatedly."""
    await SourcesRepository(database).create_table()
    await SubscriptionStore(database).create_table()
    await EventsRepository(database).create_table()
    await QuotaRepository(database).create_table()
    logger.info("Schema ready")
