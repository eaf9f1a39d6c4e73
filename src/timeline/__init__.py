"""Timeline: cursor-paginated reads over consolidated events."""

from src.timeline.config import TimelineConfig
from src.timeline.schemas import (
    InvalidCursorError,
    TimelineCursor,
    TimelineItem,
    TimelinePage,
)
from src.timeline.service import TimelineService

__all__ = [
    "InvalidCursorError",
    "TimelineConfig",
    "TimelineCursor",
    "TimelineItem",
    "TimelinePage",
    "TimelineService",
]
