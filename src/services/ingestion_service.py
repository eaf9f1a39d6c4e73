"""
Ingestion service - batch entry points wired from configuration.

Each entry point runs one bounded unit of work and returns its counters;
scheduling (cron, systemd timers, k8s CronJobs) lives outside the
process. Wiring per run:

- Database pool (unless one is injected)
- Shared HTTPClient with retry/backoff from settings
- One QuotaTracker per metered platform, rehydrated from the ledger
- Adapters for every platform with usable configuration
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from src.cache.channel_cache import ChannelDetailsCache
from src.cache.ttl_cache import CachePriority
from src.config.settings import Settings, get_settings
from src.events.repository import EventsRepository
from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.config import IngestConfig
from src.ingestion.errors import IngestionError
from src.ingestion.http_client import HTTPClient, RetryConfig
from src.ingestion.mock_adapter import create_mock_adapters
from src.ingestion.orchestrator import BatchResult, IngestionOrchestrator, utc_now
from src.ingestion.podcast_adapter import PodcastAdapter
from src.ingestion.radiko_adapter import RadikoAdapter
from src.ingestion.schemas import Platform
from src.ingestion.twitch_adapter import TwitchAdapter
from src.ingestion.upsert import EventWriter
from src.ingestion.youtube_adapter import YouTubeAdapter
from src.observability.metrics import get_metrics
from src.quota.repository import QuotaRepository
from src.quota.tracker import QuotaTracker
from src.sources.enrichment import SourceEnricher
from src.sources.repository import SourcesRepository
from src.storage.database import Database

logger = structlog.get_logger(__name__)


class IngestionSetupError(Exception):
    """The run cannot start: nothing usable is configured."""


def configured_platforms(settings: Settings) -> set[Platform]:
    """Platforms whose adapters can be built from ``settings``."""
    platforms = {Platform.PODCAST, Platform.RADIKO}
    if settings.youtube_configured:
        platforms.add(Platform.YOUTUBE)
    if settings.twitch_configured:
        platforms.add(Platform.TWITCH)
    return platforms


def resolve_platforms(
    settings: Settings,
    requested: list[Platform] | None,
    use_mock: bool,
) -> set[Platform]:
    """
    Intersect what was asked for with what is configured.

    Raises:
        IngestionSetupError: the intersection is empty
    """
    available = set(Platform) if use_mock else configured_platforms(settings)
    enabled = available & set(requested) if requested else available
    if not enabled:
        wanted = ", ".join(sorted(p.value for p in requested or []))
        raise IngestionSetupError(
            f"No credentials configured for requested platform(s): {wanted}"
        )
    return enabled


def build_adapters(
    http: HTTPClient,
    settings: Settings,
    platforms: set[Platform],
    youtube_quota: QuotaTracker | None = None,
) -> dict[Platform, PlatformAdapter]:
    """Create real adapters for ``platforms`` sharing ``http``."""
    adapters: dict[Platform, PlatformAdapter] = {}

    if Platform.YOUTUBE in platforms and settings.youtube_configured:
        if youtube_quota is None:
            raise IngestionSetupError("YouTube adapter needs a quota tracker")
        adapters[Platform.YOUTUBE] = YouTubeAdapter(
            http, api_key=settings.youtube_api_key, quota=youtube_quota
        )
        logger.info("YouTube adapter enabled", daily_quota=youtube_quota.daily_limit)

    if Platform.TWITCH in platforms and settings.twitch_configured:
        adapters[Platform.TWITCH] = TwitchAdapter(
            http,
            client_id=settings.twitch_client_id,
            client_secret=settings.twitch_client_secret,
        )
        logger.info("Twitch adapter enabled")

    # Public feeds, no credentials
    if Platform.PODCAST in platforms:
        adapters[Platform.PODCAST] = PodcastAdapter(http)
        logger.info("Podcast adapter enabled")

    if Platform.RADIKO in platforms:
        adapters[Platform.RADIKO] = RadikoAdapter(http, area_id=settings.radiko_area_id)
        logger.info("Radiko adapter enabled", area_id=settings.radiko_area_id)

    return adapters


def _select_adapters(
    http: HTTPClient,
    settings: Settings,
    platforms: set[Platform],
    use_mock: bool,
    youtube_quota: QuotaTracker,
) -> dict[Platform, PlatformAdapter]:
    if use_mock:
        mocks = create_mock_adapters()
        return {p: a for p, a in mocks.items() if p in platforms}
    return build_adapters(http, settings, platforms, youtube_quota)


async def run_ingestion_batch(
    platforms: list[Platform] | None = None,
    use_mock: bool = False,
    database: Database | None = None,
    settings: Settings | None = None,
    config: IngestConfig | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> BatchResult:
    """
    Ingest every due source once.

    Args:
        platforms: Restrict the run to these platforms
        use_mock: Use synthesizing mock adapters instead of real APIs
        database: Connected Database; a pool is opened and closed if None
        settings: Settings override
        config: IngestConfig override
        clock: Source of "now" for due selection and watermarks

    Raises:
        IngestionSetupError: no requested platform is configured
        StorageError: the database is unreachable or failed mid-batch
    """
    settings = settings or get_settings()
    config = config or IngestConfig()
    enabled = resolve_platforms(settings, platforms, use_mock)

    own_db = database is None
    db = database or Database()
    if own_db:
        await db.connect()

    try:
        youtube_quota = QuotaTracker(
            QuotaRepository(db), Platform.YOUTUBE, settings.youtube_daily_quota
        )
        await youtube_quota.rehydrate()

        sources_repo = SourcesRepository(db)
        writer = EventWriter(
            EventsRepository(db),
            tolerance=timedelta(hours=config.dedup_tolerance_hours),
        )

        async with HTTPClient(
            RetryConfig.from_settings(settings),
            timeout=settings.http_timeout_seconds,
        ) as http:
            adapters = _select_adapters(http, settings, enabled, use_mock, youtube_quota)
            due = await sources_repo.list_due(
                clock(),
                timedelta(minutes=config.min_fetch_interval_minutes),
                platforms=list(adapters),
                limit=config.max_sources,
            )
            logger.info(
                "Ingestion run starting",
                platforms=sorted(p.value for p in adapters),
                due_sources=len(due),
                mock=use_mock,
            )

            orchestrator = IngestionOrchestrator(
                adapters, sources_repo, writer, config=config, clock=clock
            )
            try:
                result = await orchestrator.run_batch(due)
            finally:
                await youtube_quota.flush()

        get_metrics().set_quota_used(Platform.YOUTUBE, youtube_quota.used)
        return result

    finally:
        if own_db:
            await db.close()


async def enrich_sources(
    platforms: list[Platform] | None = None,
    use_mock: bool = False,
    database: Database | None = None,
    settings: Settings | None = None,
    limit: int = 100,
    priority: CachePriority = CachePriority.MEDIUM,
) -> dict[str, int]:
    """
    Fill in display metadata for sources that have none yet.

    A failing lookup is logged and counted; quota-short lookups are
    counted as ``quota_limited`` and left for a later run.

    Raises:
        IngestionSetupError: no requested platform is configured
        StorageError: the database is unreachable
    """
    settings = settings or get_settings()
    enabled = resolve_platforms(settings, platforms, use_mock)
    counts = {"enriched": 0, "not_found": 0, "quota_limited": 0, "failed": 0}

    own_db = database is None
    db = database or Database()
    if own_db:
        await db.connect()

    cache = ChannelDetailsCache()
    try:
        youtube_quota = QuotaTracker(
            QuotaRepository(db), Platform.YOUTUBE, settings.youtube_daily_quota
        )
        await youtube_quota.rehydrate()
        repo = SourcesRepository(db)

        async with HTTPClient(
            RetryConfig.from_settings(settings),
            timeout=settings.http_timeout_seconds,
        ) as http:
            adapters = _select_adapters(http, settings, enabled, use_mock, youtube_quota)
            enricher = SourceEnricher(adapters, repo, cache)
            pending = await repo.list_unenriched(platforms=list(adapters), limit=limit)

            try:
                for source in pending:
                    try:
                        outcome = await enricher.enrich(source, priority)
                    except IngestionError as e:
                        logger.warning(
                            "Source enrichment failed",
                            platform=source.platform.value,
                            external_id=source.external_id,
                            error=str(e),
                        )
                        counts["failed"] += 1
                        continue
                    if outcome.quota_limited:
                        counts["quota_limited"] += 1
                    elif outcome.details is None:
                        counts["not_found"] += 1
                    else:
                        counts["enriched"] += 1
            finally:
                await youtube_quota.flush()

        logger.info("Source enrichment finished", **counts)
        return counts

    finally:
        cache.close()
        if own_db:
            await db.close()
