"""
Prometheus metrics for monitoring ingestion batches.

Defines and exposes metrics for:
- Source fetch outcomes per platform
- Event upserts and live/VOD suppressions
- Rejected raw items (parse/shape errors)
- Live-state reconciliation
- Metered API quota usage

Batch jobs are short-lived, so the HTTP endpoint is optional; the
counters are still useful when a long-running scheduler imports the
services in-process.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings
from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

# Buckets for per-source pipeline latency (in seconds)
LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


def _label(platform: Platform | str) -> str:
    return platform.value if isinstance(platform, Platform) else platform


class MetricsCollector:
    """
    Prometheus metrics collector for the castline batch jobs.

    Usage:
        metrics = MetricsCollector()
        metrics.record_source_fetch("twitch", "ok", latency=1.2)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.sources_fetched = Counter(
            "castline_sources_fetched_total",
            "Per-source pipeline outcomes",
            ["platform", "status"],  # status: ok, failed, deferred
        )

        self.events_upserted = Counter(
            "castline_events_upserted_total",
            "Events written through the upsert path",
            ["platform"],
        )

        self.events_suppressed = Counter(
            "castline_events_suppressed_total",
            "Recorded items suppressed as shadows of a live event",
            ["platform"],
        )

        self.items_rejected = Counter(
            "castline_items_rejected_total",
            "Raw items skipped because they could not be normalized",
            ["platform"],
        )

        self.live_events_closed = Counter(
            "castline_live_events_closed_total",
            "Live events transitioned to video by the reconciler",
            ["platform"],
        )

        self.adapter_errors = Counter(
            "castline_adapter_errors_total",
            "Adapter failures by error type",
            ["platform", "error_type"],
        )

        self.source_latency = Histogram(
            "castline_source_pipeline_seconds",
            "Time to fetch, normalize and upsert one source",
            ["platform"],
            buckets=LATENCY_BUCKETS,
        )

        self.quota_used = Gauge(
            "castline_quota_used",
            "Metered API cost consumed today",
            ["platform"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Start Prometheus metrics HTTP server (port defaults to settings)."""
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_source_fetch(
        self,
        platform: Platform | str,
        status: str,
        latency: float | None = None,
    ) -> None:
        """Record one source pipeline outcome."""
        label = _label(platform)
        self.sources_fetched.labels(platform=label, status=status).inc()
        if latency is not None:
            self.source_latency.labels(platform=label).observe(latency)

    def record_events(
        self,
        platform: Platform | str,
        upserted: int = 0,
        suppressed: int = 0,
        rejected: int = 0,
    ) -> None:
        """Record event write counters for one source."""
        label = _label(platform)
        if upserted:
            self.events_upserted.labels(platform=label).inc(upserted)
        if suppressed:
            self.events_suppressed.labels(platform=label).inc(suppressed)
        if rejected:
            self.items_rejected.labels(platform=label).inc(rejected)

    def record_error(self, platform: Platform | str, error_type: str) -> None:
        """Record an adapter error."""
        self.adapter_errors.labels(
            platform=_label(platform), error_type=error_type
        ).inc()

    def record_live_closed(self, platform: Platform | str, count: int = 1) -> None:
        """Record live events closed by the reconciler."""
        if count:
            self.live_events_closed.labels(platform=_label(platform)).inc(count)

    def set_quota_used(self, platform: Platform | str, used: int) -> None:
        """Set the metered usage gauge."""
        self.quota_used.labels(platform=_label(platform)).set(used)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
