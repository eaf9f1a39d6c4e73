"""Ingestion batch configuration.

All settings can be overridden via ``INGEST_*`` environment variables.
The dedup tolerance also answers to the unprefixed
``DEDUP_TOLERANCE_HOURS``.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestConfig(BaseSettings):
    """Knobs for source selection, fan-out, windows and dedup."""

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Fan-out
    max_workers: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Concurrent per-source pipelines",
    )
    run_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Deadline for a whole batch; unset means no deadline",
    )

    # Source selection
    min_fetch_interval_minutes: int = Field(
        default=0,
        ge=0,
        description="Skip sources fetched more recently than this; 0 selects every source",
    )
    max_sources: int = Field(
        default=1000,
        ge=1,
        description="Cap on sources selected per batch",
    )

    # Fetch windows
    watermark_slack_minutes: int = Field(
        default=5,
        ge=0,
        description="Backward overlap applied to last_fetched_at",
    )
    youtube_backfill_days: int = Field(default=90, ge=1)
    twitch_backfill_days: int = Field(default=7, ge=1)
    twitch_floor_days: int | None = Field(default=7, ge=1)
    podcast_backfill_days: int = Field(default=90, ge=1)
    podcast_floor_days: int | None = Field(default=7, ge=1)
    radiko_backfill_days: int = Field(default=7, ge=1)

    # Live/VOD shadow suppression
    dedup_tolerance_hours: float = Field(
        default=2.0,
        gt=0.0,
        le=48.0,
        validation_alias=AliasChoices(
            "dedup_tolerance_hours",
            "INGEST_DEDUP_TOLERANCE_HOURS",
            "DEDUP_TOLERANCE_HOURS",
        ),
        description="Recorded items this close to an open live start are shadows",
    )
