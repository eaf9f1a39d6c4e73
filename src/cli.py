"""
Command-line interface for castline.

Each command runs one bounded unit of work and exits; scheduling is
left to cron or a job runner.

Usage:
    castline init-db                  # Create tables and indexes
    castline ingest [--platform P]    # Ingest every due source once
    castline enrich                   # Fill in missing source metadata
    castline reconcile-live           # Close ended live broadcasts
    castline timeline SUBSCRIBER      # Print a timeline page as JSON
    castline quota                    # Today's metered API usage
    castline health                   # Check dependencies
"""

import asyncio
import json
import os
import sys
import uuid
from datetime import datetime
from zoneinfo import ZoneInfo

import click

from src.config.settings import get_settings
from src.ingestion.schemas import Platform
from src.observability.logging import bind_context, setup_logging
from src.observability.metrics import get_metrics
from src.storage.database import StorageError

PLATFORM_CHOICE = click.Choice([p.value for p in Platform], case_sensitive=False)


def _platforms(values: tuple[str, ...]) -> list[Platform] | None:
    return [Platform(v.lower()) for v in values] or None


def _fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """castline - multi-platform ingestion and timeline engine."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command("init-db")
def init_db() -> None:
    """Create tables and indexes (idempotent)."""
    from src.storage.database import Database
    from src.storage.schema import create_schema

    async def run():
        async with Database() as db:
            await create_schema(db)

    try:
        asyncio.run(run())
    except StorageError as e:
        _fail(str(e))
    click.echo("Database initialized successfully")


@main.command()
@click.option("--platform", "platforms", multiple=True, type=PLATFORM_CHOICE,
              help="Restrict to a platform (can repeat)")
@click.option("--mock", is_flag=True, help="Use mock adapters")
@click.option("--metrics", is_flag=True, help="Expose Prometheus metrics while running")
def ingest(platforms: tuple[str, ...], mock: bool, metrics: bool) -> None:
    """Ingest every due source once.

    Exits 0 when the batch completes, even if individual sources failed;
    exits 1 when nothing is configured or the database is unavailable.
    """
    from src.services.ingestion_service import IngestionSetupError, run_ingestion_batch

    bind_context(run_id=uuid.uuid4().hex[:12], command="ingest")
    if metrics:
        get_metrics().start_server()

    try:
        result = asyncio.run(run_ingestion_batch(platforms=_platforms(platforms), use_mock=mock))
    except (IngestionSetupError, StorageError) as e:
        _fail(str(e))
        return

    click.echo("\nIngestion Results:")
    for key, value in result.to_dict().items():
        click.echo(f"  {key}: {value}")
    if result.timed_out:
        click.echo(click.style("  Run deadline reached; remaining sources left for next run", fg="yellow"))


@main.command()
@click.option("--platform", "platforms", multiple=True, type=PLATFORM_CHOICE,
              help="Restrict to a platform (can repeat)")
@click.option("--mock", is_flag=True, help="Use mock adapters")
@click.option("--limit", default=100, show_default=True, help="Maximum sources to enrich")
def enrich(platforms: tuple[str, ...], mock: bool, limit: int) -> None:
    """Fill in display metadata for sources that have none."""
    from src.services.ingestion_service import IngestionSetupError, enrich_sources

    try:
        counts = asyncio.run(
            enrich_sources(platforms=_platforms(platforms), use_mock=mock, limit=limit)
        )
    except (IngestionSetupError, StorageError) as e:
        _fail(str(e))
        return

    click.echo("\nEnrichment Results:")
    for key, value in counts.items():
        click.echo(f"  {key}: {value}")


@main.command("reconcile-live")
@click.option("--mock", is_flag=True, help="Use mock adapters")
def reconcile_live(mock: bool) -> None:
    """Close live events that are no longer broadcasting."""
    from src.services.live_service import reconcile_live_state

    bind_context(run_id=uuid.uuid4().hex[:12], command="reconcile-live")
    try:
        result = asyncio.run(reconcile_live_state(use_mock=mock))
    except StorageError as e:
        _fail(str(e))
        return

    click.echo("\nReconciliation Results:")
    click.echo(f"  checked: {result.checked}")
    click.echo(f"  closed: {result.closed}")
    click.echo(f"  failed_accounts: {result.failed_accounts}")


@main.command()
@click.argument("subscriber")
@click.option("--before", default=None, help="Cursor or RFC3339 timestamp to page from")
@click.option("--limit", default=None, type=int, help="Page size (clamped to the configured max)")
@click.option("--platform", "platforms", multiple=True, type=PLATFORM_CHOICE,
              help="Filter by platform (can repeat)")
def timeline(subscriber: str, before: str | None, limit: int | None, platforms: tuple[str, ...]) -> None:
    """Print one page of SUBSCRIBER's timeline as JSON."""
    from src.events.repository import EventsRepository
    from src.storage.database import Database
    from src.subscriptions.repository import SubscriptionStore
    from src.timeline.schemas import InvalidCursorError
    from src.timeline.service import TimelineService

    async def run():
        async with Database() as db:
            service = TimelineService(EventsRepository(db), SubscriptionStore(db))
            return await service.list_timeline(
                subscriber,
                before=before,
                limit=limit,
                platforms=_platforms(platforms),
            )

    try:
        page = asyncio.run(run())
    except InvalidCursorError as e:
        raise click.BadParameter(str(e), param_hint="--before") from e
    except StorageError as e:
        _fail(str(e))
        return

    click.echo(json.dumps(page.to_dict(), indent=2, ensure_ascii=False))


@main.command()
@click.option("--platform", default=Platform.YOUTUBE.value, type=PLATFORM_CHOICE,
              show_default=True, help="Metered platform")
def quota(platform: str) -> None:
    """Show today's metered API usage."""
    from src.quota.config import QuotaConfig
    from src.quota.repository import QuotaRepository
    from src.storage.database import Database

    settings = get_settings()
    target = Platform(platform.lower())
    day = datetime.now(ZoneInfo(QuotaConfig().reset_timezone)).date()

    async def run():
        async with Database() as db:
            repo = QuotaRepository(db)
            return await repo.total_for(day, target), await repo.usage_by_endpoint(day, target)

    try:
        used, breakdown = asyncio.run(run())
    except StorageError as e:
        _fail(str(e))
        return

    limit = settings.youtube_daily_quota
    pct = used / limit * 100
    color = "green" if pct < 75 else ("yellow" if pct < 90 else "red")

    click.echo(f"\nQuota usage for {target.value} on {day.isoformat()}:")
    click.echo(click.style(f"  {used}/{limit} units ({pct:.1f}%)", fg=color))
    for endpoint, cost in breakdown.items():
        click.echo(f"    {endpoint}: {cost}")


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        try:
            from src.storage.database import Database
            async with Database() as db:
                results["postgres"] = await db.health_check()
        except StorageError as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        settings = get_settings()
        results["youtube_configured"] = settings.youtube_configured
        results["twitch_configured"] = settings.twitch_configured
        return results

    results = asyncio.run(check())

    click.echo("\nHealth Check Results:")
    click.echo("-" * 40)
    for name, status in results.items():
        icon = "✓" if status else "✗"
        color = "green" if status else "red"
        click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
    click.echo("-" * 40)

    if results["postgres"]:
        click.echo(click.style("All core services healthy!", fg="green"))
    else:
        click.echo(click.style("Some services unhealthy!", fg="red"))
        sys.exit(1)


if __name__ == "__main__":
    main()
