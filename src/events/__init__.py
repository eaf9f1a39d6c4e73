"""Events: canonical content items and their persistence."""

from src.events.repository import EventsRepository
from src.events.schemas import (
    Event,
    EventMetrics,
    TwitchMetrics,
    YouTubeMetrics,
    dump_metrics,
    load_metrics,
)

__all__ = [
    "Event",
    "EventMetrics",
    "EventsRepository",
    "TwitchMetrics",
    "YouTubeMetrics",
    "dump_metrics",
    "load_metrics",
]
