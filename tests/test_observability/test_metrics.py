"""Tests for the Prometheus metrics collector and log context helpers."""

import structlog
from prometheus_client import REGISTRY

from src.ingestion.schemas import Platform
from src.observability.logging import bind_context, clear_context
from src.observability.metrics import get_metrics


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_source_fetch_outcomes(self):
        metrics = get_metrics()
        before = _sample("castline_sources_fetched_total", platform="radiko", status="deferred")

        metrics.record_source_fetch(Platform.RADIKO, "deferred", latency=0.2)

        after = _sample("castline_sources_fetched_total", platform="radiko", status="deferred")
        assert after == before + 1

    def test_event_counters_skip_zero(self):
        metrics = get_metrics()
        before = _sample("castline_events_suppressed_total", platform="twitch")

        metrics.record_events(Platform.TWITCH, upserted=3, suppressed=0)

        assert _sample("castline_events_suppressed_total", platform="twitch") == before

    def test_quota_gauge(self):
        get_metrics().set_quota_used(Platform.YOUTUBE, 1234)
        assert _sample("castline_quota_used", platform="youtube") == 1234


class TestLogContext:
    def test_bind_and_clear(self):
        bind_context(run_id="abc123")
        assert structlog.contextvars.get_contextvars()["run_id"] == "abc123"

        clear_context()
        assert "run_id" not in structlog.contextvars.get_contextvars()
