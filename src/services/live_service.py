"""Live-state service - one reconciliation sweep wired from configuration."""

import structlog

from src.config.settings import Settings, get_settings
from src.events.repository import EventsRepository
from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.http_client import HTTPClient, RetryConfig
from src.ingestion.mock_adapter import create_mock_adapters
from src.ingestion.schemas import Platform
from src.ingestion.twitch_adapter import TwitchAdapter
from src.live.reconciler import LiveStateReconciler, ReconcileResult
from src.storage.database import Database

logger = structlog.get_logger(__name__)


def _liveness_adapters(http: HTTPClient, settings: Settings, use_mock: bool) -> dict[Platform, PlatformAdapter]:
    if use_mock:
        return {p: a for p, a in create_mock_adapters().items() if a.supports_live_state}

    adapters: dict[Platform, PlatformAdapter] = {}
    if settings.twitch_configured:
        adapters[Platform.TWITCH] = TwitchAdapter(
            http,
            client_id=settings.twitch_client_id,
            client_secret=settings.twitch_client_secret,
        )
    return adapters


async def reconcile_live_state(
    use_mock: bool = False,
    database: Database | None = None,
    settings: Settings | None = None,
    max_concurrency: int = 10,
) -> ReconcileResult:
    """
    Close every open live event whose account is no longer broadcasting it.

    Raises:
        StorageError: the database is unreachable
    """
    settings = settings or get_settings()

    own_db = database is None
    db = database or Database()
    if own_db:
        await db.connect()

    try:
        async with HTTPClient(
            RetryConfig.from_settings(settings),
            timeout=settings.http_timeout_seconds,
        ) as http:
            adapters = _liveness_adapters(http, settings, use_mock)
            if not adapters:
                logger.warning("No liveness-capable platform configured")
            reconciler = LiveStateReconciler(
                adapters, EventsRepository(db), max_concurrency=max_concurrency
            )
            return await reconciler.reconcile()
    finally:
        if own_db:
            await db.close()
