"""Per-platform fetch-since policy."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from src.ingestion.config import IngestConfig
from src.ingestion.schemas import Platform
from src.sources.schemas import Source


@dataclass(frozen=True)
class WindowPolicy:
    """How far back a platform is fetched.

    ``rolling_floor`` is set for platforms whose catalog rolls off, so a
    long-stale watermark never asks for more than the upstream keeps.
    """

    default_backfill: timedelta
    rolling_floor: timedelta | None = None


class FetchWindowPolicy:
    """Computes the ``since`` instant for one source fetch."""

    def __init__(self, config: IngestConfig | None = None):
        self._config = config or IngestConfig()
        c = self._config

        def days(n: int | None) -> timedelta | None:
            return timedelta(days=n) if n else None

        self._policies: dict[Platform, WindowPolicy] = {
            Platform.YOUTUBE: WindowPolicy(timedelta(days=c.youtube_backfill_days)),
            Platform.TWITCH: WindowPolicy(
                timedelta(days=c.twitch_backfill_days), days(c.twitch_floor_days)
            ),
            Platform.PODCAST: WindowPolicy(
                timedelta(days=c.podcast_backfill_days), days(c.podcast_floor_days)
            ),
            Platform.RADIKO: WindowPolicy(timedelta(days=c.radiko_backfill_days)),
        }
        self._slack = timedelta(minutes=c.watermark_slack_minutes)

    def policy_for(self, platform: Platform) -> WindowPolicy:
        return self._policies[platform]

    def fetch_since(self, source: Source, now: datetime) -> datetime:
        """
        Prior fetch: last_fetched_at minus the slack.
        No prior fetch: now minus the platform's default backfill.
        Either way, never earlier than now minus the rolling floor.
        """
        policy = self.policy_for(source.platform)
        if source.last_fetched_at is not None:
            since = source.last_fetched_at - self._slack
        else:
            since = now - policy.default_backfill

        if policy.rolling_floor is not None:
            since = max(since, now - policy.rolling_floor)
        return since
