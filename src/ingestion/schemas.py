"""
Shared vocabulary for the ingestion pipeline.

Platform and EventType values are persisted verbatim in the
``platform_id`` and ``type`` columns, so renaming a member is a data
migration, not a refactor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Platform(str, Enum):
    """Supported content platforms."""

    YOUTUBE = "youtube"
    TWITCH = "twitch"
    PODCAST = "podcast"
    RADIKO = "radiko"


class EventType(str, Enum):
    """Canonical event kinds across platforms."""

    LIVE = "live"
    SCHEDULED = "scheduled"
    VIDEO = "video"
    EPISODE = "episode"
    RADIO = "radio"


@dataclass(frozen=True)
class SourceRef:
    """What an adapter needs to know about a Source to fetch it."""

    platform: Platform
    external_id: str
    uploads_locator: str | None = None
    display_name: str | None = None


@dataclass
class RawItem:
    """
    One upstream item, still in its platform-native shape.

    ``kind`` distinguishes payload shapes within a platform (a Twitch
    ``stream`` vs. an archived ``video``). ``data`` is whatever the
    adapter received; only the normalizer interprets it.
    """

    platform: Platform
    kind: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LiveRef:
    """An item an account is broadcasting right now."""

    external_id: str
    started_at: datetime | None = None


@dataclass(frozen=True)
class SourceDetails:
    """Display metadata an adapter can look up for an account."""

    external_id: str
    display_name: str | None = None
    handle: str | None = None
    thumbnail_url: str | None = None
    uploads_locator: str | None = None
