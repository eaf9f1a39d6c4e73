"""
Event normalizer: platform-native raw items -> canonical Event.

Each platform payload shape gets one pure mapping function. Missing
optional fields become None, never 0 or "". Missing required fields
(id, title, every timestamp) raise NormalizationError so the caller can
skip that single item.

Durations leave this module as ``HH:MM:SS`` (``MM:SS`` under an hour)
whatever the upstream encoding was.
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from src.events.schemas import Event, EventMetrics, TwitchMetrics, YouTubeMetrics
from src.ingestion.base_adapter import clean_text
from src.ingestion.errors import NormalizationError
from src.ingestion.schemas import EventType, Platform, RawItem
from src.sources.schemas import Source

logger = logging.getLogger(__name__)

JST = ZoneInfo("Asia/Tokyo")

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
_TWITCH_DURATION = re.compile(r"^(?:(?P<hours>\d+)h)?(?:(?P<minutes>\d+)m)?(?:(?P<seconds>\d+)s)?$")

_YOUTUBE_TYPES = {
    "live": EventType.LIVE,
    "upcoming": EventType.SCHEDULED,
    "none": EventType.VIDEO,
}

THUMBNAIL_WIDTH = "640"
THUMBNAIL_HEIGHT = "360"


# -- Durations --------------------------------------------------------------


def format_duration(total_seconds: int | None) -> str | None:
    """Seconds -> ``HH:MM:SS``, or ``MM:SS`` when under an hour."""
    if total_seconds is None or total_seconds < 0:
        return None
    hours, rem = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def _seconds_from_match(match: re.Match | None) -> int | None:
    if match is None or not any(match.groupdict().values()):
        return None
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def parse_iso8601_duration(value: str | None) -> str | None:
    """``PT1H2M3S`` -> ``01:02:03``. Zero-length (``P0D``) and garbage -> None."""
    if not value:
        return None
    total = _seconds_from_match(_ISO_DURATION.match(value.strip()))
    if not total:
        if total is None:
            logger.debug(f"Unparseable ISO-8601 duration: {value!r}")
        return None
    return format_duration(total)


def parse_twitch_duration(value: str | None) -> str | None:
    """``1h2m3s`` -> ``01:02:03``."""
    if not value:
        return None
    total = _seconds_from_match(_TWITCH_DURATION.match(value.strip()))
    return format_duration(total) if total else None


def parse_itunes_duration(value: str | int | None) -> str | None:
    """iTunes durations come as seconds (``3723``), ``MM:SS`` or ``H:MM:SS``."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return format_duration(value) if value > 0 else None

    parts = value.strip().split(":")
    if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
        return None
    total = 0
    for part in parts:
        total = total * 60 + int(part)
    return format_duration(total) if total > 0 else None


# -- Timestamps -------------------------------------------------------------


def parse_rfc3339(value: str | None) -> datetime | None:
    """Parse an RFC3339 timestamp to aware UTC; empty -> None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise NormalizationError(f"Invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_radiko_time(value: str | None) -> datetime | None:
    """Radiko ``YYYYMMDDHHMMSS`` in Japan time -> aware UTC."""
    if not value:
        return None
    try:
        local = datetime.strptime(value, "%Y%m%d%H%M%S")
    except ValueError as e:
        raise NormalizationError(f"Invalid radiko timestamp {value!r}") from e
    return local.replace(tzinfo=JST).astimezone(timezone.utc)


# -- Field helpers ----------------------------------------------------------


def _required(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise NormalizationError(f"Missing required field {key!r}")
    return str(value).strip()


def _optional_int(value: Any) -> int | None:
    """Counters arrive as ints or numeric strings; anything else is unset."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _sized_thumbnail(url: str | None) -> str | None:
    if not url:
        return None
    for placeholder, size in (
        ("%{width}", THUMBNAIL_WIDTH),
        ("%{height}", THUMBNAIL_HEIGHT),
        ("{width}", THUMBNAIL_WIDTH),
        ("{height}", THUMBNAIL_HEIGHT),
    ):
        url = url.replace(placeholder, size)
    return url


def _metrics_or_none(metrics: EventMetrics) -> EventMetrics | None:
    return metrics if metrics.model_dump(exclude_none=True) else None


# -- Normalizer -------------------------------------------------------------


class EventNormalizer:
    """
    Maps RawItem -> Event for every supported (platform, kind) pair.

    Usage:
        normalizer = EventNormalizer()
        event = normalizer.normalize(raw_item, source)
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[Platform, str], Callable[[dict, Source], Event]] = {
            (Platform.YOUTUBE, "video"): self._youtube_video,
            (Platform.TWITCH, "stream"): self._twitch_stream,
            (Platform.TWITCH, "video"): self._twitch_video,
            (Platform.PODCAST, "episode"): self._podcast_episode,
            (Platform.RADIKO, "program"): self._radiko_program,
        }

    def normalize(self, raw: RawItem, source: Source) -> Event:
        """
        Raises:
            NormalizationError: the item cannot be represented as an Event
        """
        if source.id is None:
            raise ValueError("source must be persisted before normalizing its items")

        handler = self._handlers.get((raw.platform, raw.kind))
        if handler is None:
            raise NormalizationError(f"No mapping for {raw.platform.value}/{raw.kind}")

        try:
            return handler(raw.data, source)
        except NormalizationError:
            raise
        except ValidationError as e:
            raise NormalizationError(
                f"{raw.platform.value}/{raw.kind} item failed validation: "
                f"{e.error_count()} error(s)"
            ) from e
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise NormalizationError(
                f"{raw.platform.value}/{raw.kind} item has unexpected shape: {e}"
            ) from e

    # YouTube: videos.list resource, or a bare playlistItems snippet when
    # details were skipped for quota.
    def _youtube_video(self, data: dict, source: Source) -> Event:
        video_id = _required(data, "id")
        snippet = data.get("snippet") or {}
        details = data.get("contentDetails") or {}
        stats = data.get("statistics") or {}
        live = data.get("liveStreamingDetails") or {}

        event_type = _YOUTUBE_TYPES.get(snippet.get("liveBroadcastContent") or "none", EventType.VIDEO)
        published_at = parse_rfc3339(snippet.get("publishedAt"))

        start_at = None
        if event_type == EventType.LIVE:
            start_at = parse_rfc3339(live.get("actualStartTime") or live.get("scheduledStartTime"))
        elif event_type == EventType.SCHEDULED:
            start_at = parse_rfc3339(live.get("scheduledStartTime"))
        end_at = parse_rfc3339(live.get("actualEndTime"))

        thumbnails = snippet.get("thumbnails") or {}
        image_url = None
        for size in ("high", "medium", "default"):
            if thumbnails.get(size, {}).get("url"):
                image_url = thumbnails[size]["url"]
                break

        metrics = _metrics_or_none(
            YouTubeMetrics(
                views=_optional_int(stats.get("viewCount")),
                likes=_optional_int(stats.get("likeCount")),
            )
        )

        return Event(
            platform=Platform.YOUTUBE,
            source_id=source.id,
            external_event_id=video_id,
            type=event_type,
            title=_required(snippet, "title"),
            description=clean_text(snippet.get("description")),
            start_at=start_at,
            end_at=end_at,
            published_at=published_at,
            url=f"https://www.youtube.com/watch?v={video_id}",
            image_url=image_url,
            duration=parse_iso8601_duration(details.get("duration")),
            metrics=metrics,
        )

    # Twitch: helix/streams entry (currently live)
    def _twitch_stream(self, data: dict, source: Source) -> Event:
        stream_id = _required(data, "id")
        login = data.get("user_login") or source.external_id
        started_at = parse_rfc3339(data.get("started_at"))
        if started_at is None:
            raise NormalizationError("Twitch stream has no started_at")

        # Twitch allows blank stream titles
        title = clean_text(data.get("title")) or data.get("user_name") or login
        game = clean_text(data.get("game_name"))

        return Event(
            platform=Platform.TWITCH,
            source_id=source.id,
            external_event_id=stream_id,
            type=EventType.LIVE,
            title=title,
            description=f"LIVE - {game}" if game else None,
            start_at=started_at,
            published_at=started_at,
            url=f"https://www.twitch.tv/{login}",
            image_url=_sized_thumbnail(data.get("thumbnail_url")),
            metrics=_metrics_or_none(TwitchMetrics(viewers=_optional_int(data.get("viewer_count")))),
        )

    # Twitch: helix/videos entry (archives, highlights, uploads)
    def _twitch_video(self, data: dict, source: Source) -> Event:
        video_id = _required(data, "id")
        created_at = parse_rfc3339(data.get("created_at") or data.get("published_at"))
        is_live = data.get("type") == "live"

        return Event(
            platform=Platform.TWITCH,
            source_id=source.id,
            external_event_id=video_id,
            type=EventType.LIVE if is_live else EventType.VIDEO,
            title=_required(data, "title"),
            description=clean_text(data.get("description")),
            start_at=created_at if is_live else None,
            published_at=created_at,
            url=data.get("url") or f"https://www.twitch.tv/videos/{video_id}",
            image_url=_sized_thumbnail(data.get("thumbnail_url")),
            duration=parse_twitch_duration(data.get("duration")),
            metrics=_metrics_or_none(TwitchMetrics(views=_optional_int(data.get("view_count")))),
        )

    # Podcast: flattened feed entry built by the podcast adapter
    def _podcast_episode(self, data: dict, source: Source) -> Event:
        return Event(
            platform=Platform.PODCAST,
            source_id=source.id,
            external_event_id=_required(data, "guid"),
            type=EventType.EPISODE,
            title=_required(data, "title"),
            description=clean_text(data.get("description")),
            published_at=parse_rfc3339(data.get("published")),
            url=_required(data, "link"),
            image_url=data.get("image") or None,
            duration=parse_itunes_duration(data.get("duration")),
        )

    # Radiko: <prog> element from the weekly station schedule
    def _radiko_program(self, data: dict, source: Source) -> Event:
        program_id = _required(data, "id")
        start_at = parse_radiko_time(data.get("ft"))
        if start_at is None:
            raise NormalizationError("Radiko program has no start time")
        end_at = parse_radiko_time(data.get("to"))

        station = data.get("station_id") or source.external_id
        url = data.get("url") or f"https://radiko.jp/#!/ts/{station}/{data['ft']}"

        return Event(
            platform=Platform.RADIKO,
            source_id=source.id,
            external_event_id=program_id,
            type=EventType.RADIO,
            title=_required(data, "title"),
            description=clean_text(data.get("desc")),
            start_at=start_at,
            end_at=end_at,
            published_at=start_at,
            url=url,
            image_url=data.get("img") or None,
            duration=format_duration(_optional_int(data.get("dur"))),
        )
