"""Timeline page, item and cursor types."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.events.schemas import Event

_CURSOR_SEPARATOR = "|"


class InvalidCursorError(ValueError):
    """A ``before`` cursor could not be parsed."""


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError("cursor timestamp must carry an offset")
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimelineCursor:
    """
    Keyset position in the timeline ordering.

    Encoded as ``<sort_at>|<created_at>|<id>`` (RFC3339, RFC3339, UUID).
    A bare RFC3339 timestamp is also accepted and means "strictly older
    than this instant".
    """

    sort_at: datetime
    created_at: datetime | None = None
    event_id: UUID | None = None

    @classmethod
    def after(cls, event: Event) -> "TimelineCursor":
        """Cursor positioned just past ``event``."""
        return cls(sort_at=event.sort_at, created_at=event.created_at, event_id=event.id)

    @classmethod
    def decode(cls, value: str) -> "TimelineCursor":
        parts = value.strip().split(_CURSOR_SEPARATOR)
        try:
            if len(parts) == 1:
                return cls(sort_at=_parse_instant(parts[0]))
            if len(parts) == 3:
                return cls(
                    sort_at=_parse_instant(parts[0]),
                    created_at=_parse_instant(parts[1]),
                    event_id=UUID(parts[2]),
                )
        except ValueError as e:
            raise InvalidCursorError(f"Invalid cursor {value!r}: {e}") from e
        raise InvalidCursorError(f"Invalid cursor {value!r}")

    def encode(self) -> str:
        if self.created_at is None or self.event_id is None:
            return _rfc3339(self.sort_at)
        return _CURSOR_SEPARATOR.join(
            [_rfc3339(self.sort_at), _rfc3339(self.created_at), str(self.event_id)]
        )

    def as_key(self) -> tuple[datetime, datetime | None, UUID | None]:
        return (self.sort_at, self.created_at, self.event_id)


@dataclass
class TimelineItem:
    """An event plus its liveness at read time."""

    event: Event
    is_live: bool

    def to_dict(self) -> dict[str, Any]:
        data = self.event.model_dump(mode="json", exclude={"created_at", "updated_at"})
        data["is_live"] = self.is_live
        return data


@dataclass
class TimelinePage:
    items: list[TimelineItem] = field(default_factory=list)
    has_more: bool = False
    next_cursor: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "has_more": self.has_more,
            "next_cursor": self.next_cursor,
        }
