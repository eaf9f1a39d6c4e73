"""Tests for the Event model and metrics union."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.events.schemas import (
    Event,
    TwitchMetrics,
    YouTubeMetrics,
    dump_metrics,
    load_metrics,
)
from src.ingestion.schemas import EventType, Platform

T0 = datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc)


def _event(**overrides) -> Event:
    fields = {
        "platform": Platform.TWITCH,
        "source_id": uuid4(),
        "external_event_id": "v1",
        "type": EventType.VIDEO,
        "title": "Archive",
        "url": "https://www.twitch.tv/videos/v1",
        "published_at": T0,
    }
    fields.update(overrides)
    return Event(**fields)


class TestValidation:
    def test_requires_start_or_published(self):
        with pytest.raises(ValidationError, match="start_at or published_at"):
            _event(published_at=None, start_at=None)

    def test_rejects_naive_timestamps(self):
        with pytest.raises(ValidationError):
            _event(published_at=datetime(2026, 3, 1, 20, 0))

    def test_converts_offsets_to_utc(self):
        jst = timezone(timedelta(hours=9))
        event = _event(published_at=datetime(2026, 3, 2, 5, 0, tzinfo=jst))
        assert event.published_at == T0
        assert event.published_at.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("duration", ["01:02:03", "59:59", "120:00:00"])
    def test_accepts_canonical_durations(self, duration):
        assert _event(duration=duration).duration == duration

    @pytest.mark.parametrize("duration", ["1:02:03", "PT1H", "61:00", "3723"])
    def test_rejects_other_duration_formats(self, duration):
        with pytest.raises(ValidationError):
            _event(duration=duration)

    def test_rejects_metrics_from_another_platform(self):
        with pytest.raises(ValidationError, match="not valid for twitch"):
            _event(metrics=YouTubeMetrics(views=10))

    def test_rejects_metrics_on_platform_without_metrics(self):
        with pytest.raises(ValidationError):
            _event(platform=Platform.PODCAST, type=EventType.EPISODE, metrics=TwitchMetrics(views=1))

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            _event(title="")


class TestDerivedFields:
    def test_sort_at_prefers_start(self):
        event = _event(start_at=T0, published_at=T0 - timedelta(days=1))
        assert event.sort_at == T0

    def test_sort_at_falls_back_to_published(self):
        assert _event().sort_at == T0

    def test_is_live_at_open_live(self):
        event = _event(type=EventType.LIVE, start_at=T0)
        assert event.is_live_at(T0 + timedelta(hours=1))
        assert not event.is_live_at(T0 - timedelta(minutes=1))

    def test_is_live_at_respects_end(self):
        event = _event(type=EventType.LIVE, start_at=T0, end_at=T0 + timedelta(hours=2))
        assert event.is_live_at(T0 + timedelta(hours=1))
        assert not event.is_live_at(T0 + timedelta(hours=2))

    def test_recorded_items_are_never_live(self):
        assert not _event(start_at=T0).is_live_at(T0 + timedelta(minutes=5))

    def test_is_recorded(self):
        assert _event().is_recorded
        assert not _event(type=EventType.LIVE, start_at=T0).is_recorded
        assert not _event(type=EventType.SCHEDULED, start_at=T0).is_recorded


class TestMetricsBlob:
    def test_load_ignores_unknown_keys(self):
        metrics = load_metrics(Platform.YOUTUBE, {"views": 5, "likes": 2, "comments": 9})
        assert metrics == YouTubeMetrics(views=5, likes=2)

    def test_load_for_platform_without_metrics(self):
        assert load_metrics(Platform.RADIKO, {"views": 1}) is None

    def test_load_empty(self):
        assert load_metrics(Platform.TWITCH, None) is None
        assert load_metrics(Platform.TWITCH, {}) is None

    def test_dump_omits_unset_counters(self):
        assert dump_metrics(TwitchMetrics(viewers=42)) == {"viewers": 42}

    def test_dump_all_unset_is_none(self):
        assert dump_metrics(TwitchMetrics()) is None
        assert dump_metrics(None) is None
