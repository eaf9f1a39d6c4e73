"""Tests for the per-platform fetch window."""

from datetime import datetime, timedelta, timezone

import pytest

from src.ingestion.config import IngestConfig
from src.ingestion.schemas import Platform
from src.ingestion.watermark import FetchWindowPolicy
from src.sources.schemas import Source

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def policy() -> FetchWindowPolicy:
    return FetchWindowPolicy(IngestConfig())


class TestFetchSince:
    def test_first_twitch_fetch_backfills_seven_days(self, policy):
        source = Source(platform=Platform.TWITCH, external_id="1001")
        assert policy.fetch_since(source, NOW) == NOW - timedelta(days=7)

    def test_first_youtube_fetch_backfills_ninety_days(self, policy):
        source = Source(platform=Platform.YOUTUBE, external_id="UCx")
        assert policy.fetch_since(source, NOW) == NOW - timedelta(days=90)

    def test_prior_fetch_applies_slack(self, policy):
        last = NOW - timedelta(hours=1)
        source = Source(platform=Platform.YOUTUBE, external_id="UCx", last_fetched_at=last)
        assert policy.fetch_since(source, NOW) == last - timedelta(minutes=5)

    def test_rolling_floor_caps_stale_watermark(self, policy):
        last = NOW - timedelta(days=30)
        source = Source(platform=Platform.TWITCH, external_id="1001", last_fetched_at=last)
        assert policy.fetch_since(source, NOW) == NOW - timedelta(days=7)

    def test_no_floor_for_youtube(self, policy):
        last = NOW - timedelta(days=30)
        source = Source(platform=Platform.YOUTUBE, external_id="UCx", last_fetched_at=last)
        assert policy.fetch_since(source, NOW) == last - timedelta(minutes=5)

    def test_configurable_slack(self):
        policy = FetchWindowPolicy(IngestConfig(watermark_slack_minutes=0))
        last = NOW - timedelta(hours=1)
        source = Source(platform=Platform.RADIKO, external_id="TBS", last_fetched_at=last)
        assert policy.fetch_since(source, NOW) == last

    def test_disabled_floor(self):
        policy = FetchWindowPolicy(IngestConfig(twitch_floor_days=None))
        last = NOW - timedelta(days=30)
        source = Source(platform=Platform.TWITCH, external_id="1001", last_fetched_at=last)
        assert policy.fetch_since(source, NOW) == last - timedelta(minutes=5)


class TestDedupToleranceConfig:
    def test_default(self):
        assert IngestConfig().dedup_tolerance_hours == 2.0

    def test_unprefixed_env_var(self, monkeypatch):
        monkeypatch.setenv("DEDUP_TOLERANCE_HOURS", "3")
        assert IngestConfig().dedup_tolerance_hours == 3.0

    def test_prefixed_env_var(self, monkeypatch):
        monkeypatch.setenv("INGEST_DEDUP_TOLERANCE_HOURS", "1.5")
        assert IngestConfig().dedup_tolerance_hours == 1.5
