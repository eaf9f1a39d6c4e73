"""
Canonical Event model and per-platform metrics.

Metrics are a closed union keyed by platform. The stored JSON blob is
opaque to the database; reading it back ignores unknown keys so a
newer writer never breaks an older reader.
"""

import re
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.ingestion.schemas import EventType, Platform

DURATION_PATTERN = re.compile(r"^(?:\d{2,}:)?[0-5]\d:[0-5]\d$")


class YouTubeMetrics(BaseModel):
    """Counters exposed by the YouTube Data API."""

    model_config = ConfigDict(extra="ignore")

    views: int | None = Field(default=None, ge=0)
    likes: int | None = Field(default=None, ge=0)


class TwitchMetrics(BaseModel):
    """Counters exposed by Helix: archive views or concurrent viewers."""

    model_config = ConfigDict(extra="ignore")

    views: int | None = Field(default=None, ge=0)
    viewers: int | None = Field(default=None, ge=0)


EventMetrics = YouTubeMetrics | TwitchMetrics

# Podcast and radiko carry no metrics
METRICS_MODELS: dict[Platform, type[BaseModel]] = {
    Platform.YOUTUBE: YouTubeMetrics,
    Platform.TWITCH: TwitchMetrics,
}


def load_metrics(platform: Platform, raw: dict[str, Any] | None) -> EventMetrics | None:
    """Parse a stored metrics blob for ``platform``; unknown keys are dropped."""
    model = METRICS_MODELS.get(platform)
    if model is None or not raw:
        return None
    return model.model_validate(raw)


def dump_metrics(metrics: EventMetrics | None) -> dict[str, int] | None:
    """Serialize metrics for storage, omitting unset counters."""
    if metrics is None:
        return None
    data = metrics.model_dump(exclude_none=True)
    return data or None


class Event(BaseModel):
    """One normalized content item belonging to a Source."""

    id: UUID | None = None
    platform: Platform
    source_id: UUID
    external_event_id: str = Field(min_length=1)
    type: EventType
    title: str = Field(min_length=1)
    description: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    published_at: datetime | None = None
    url: str = Field(min_length=1)
    image_url: str | None = None
    duration: str | None = None
    metrics: EventMetrics | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("start_at", "end_at", "published_at")
    @classmethod
    def _require_aware_utc(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return v
        if v.tzinfo is None:
            raise ValueError("timestamps must be timezone-aware")
        return v.astimezone(timezone.utc)

    @field_validator("duration")
    @classmethod
    def _check_duration(cls, v: str | None) -> str | None:
        if v is not None and not DURATION_PATTERN.match(v):
            raise ValueError(f"duration must be HH:MM:SS or MM:SS, got {v!r}")
        return v

    @model_validator(mode="after")
    def _check_consistency(self) -> "Event":
        if self.start_at is None and self.published_at is None:
            raise ValueError("at least one of start_at or published_at is required")
        if self.metrics is not None:
            expected = METRICS_MODELS.get(self.platform)
            if expected is None or not isinstance(self.metrics, expected):
                raise ValueError(
                    f"{type(self.metrics).__name__} is not valid for {self.platform.value}"
                )
        return self

    @property
    def sort_at(self) -> datetime:
        """Timeline ordering key: coalesce(start_at, published_at)."""
        return self.start_at or self.published_at  # type: ignore[return-value]

    @property
    def is_recorded(self) -> bool:
        return self.type not in (EventType.LIVE, EventType.SCHEDULED)

    def is_live_at(self, now: datetime) -> bool:
        """Derived liveness; never persisted."""
        if self.type != EventType.LIVE or self.start_at is None:
            return False
        if self.start_at > now:
            return False
        return self.end_at is None or self.end_at > now
