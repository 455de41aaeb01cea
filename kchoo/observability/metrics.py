"""
Prometheus metrics for the kchoo work queue.

Defines and exposes metrics for:
- Source claims and report-backs
- Image discovery and storage
- Store errors by type
- Refresh cycle latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from kchoo.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for refresh cycle latency (in seconds)
CYCLE_BUCKETS = (0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the work queue.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_sources_claimed("twitter", "populate", 10)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Source lifecycle counters
        self.sources_claimed = Counter(
            "kchoo_sources_claimed_total",
            "Total number of sources handed out to workers",
            ["site", "kind"],  # kind: populate, refresh
        )

        self.sources_finished = Counter(
            "kchoo_sources_finished_total",
            "Total number of sources settled into standby",
            ["action"],
        )

        self.sources_errored = Counter(
            "kchoo_sources_errored_total",
            "Total number of sources moved to the error state",
        )

        # Image counters
        self.images_discovered = Counter(
            "kchoo_images_discovered_total",
            "Total number of new image urls recorded",
        )

        self.images_stored = Counter(
            "kchoo_images_stored_total",
            "Total number of image storage locations recorded",
        )

        self.pending_images = Gauge(
            "kchoo_pending_images",
            "Number of images without a stored location",
        )

        # Store health
        self.store_errors = Counter(
            "kchoo_store_errors_total",
            "Total store errors surfaced to callers",
            ["error_type"],  # ConstraintViolation, StoreUnavailable, StoreConflict
        )

        # Refresh scheduler
        self.refresh_cycle_latency = Histogram(
            "kchoo_refresh_cycle_latency_seconds",
            "Time to claim and hand off one refresh sweep",
            buckets=CYCLE_BUCKETS,
        )

        self.refresh_cycle_sources = Gauge(
            "kchoo_refresh_cycle_sources",
            "Number of sources claimed by the most recent refresh sweep",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (default from settings)
        """
        port = port or get_settings().metrics_port
        start_http_server(port)
        logger.info(f"Metrics server started on port {port}")

    def record_sources_claimed(self, site: str, kind: str, count: int) -> None:
        """
        Record sources handed out by a claim.

        Args:
            site: Site name ("all" for refresh sweeps)
            kind: populate or refresh
            count: Number of sources claimed
        """
        self.sources_claimed.labels(site=site, kind=kind).inc(count)

    def record_sources_finished(self, action: str, count: int) -> None:
        self.sources_finished.labels(action=action).inc(count)

    def record_sources_errored(self, count: int) -> None:
        self.sources_errored.inc(count)

    def record_images_discovered(self, count: int) -> None:
        self.images_discovered.inc(count)

    def record_images_stored(self) -> None:
        self.images_stored.inc()

    def set_pending_images(self, count: int) -> None:
        self.pending_images.set(count)

    def record_store_error(self, error_type: str) -> None:
        """
        Record a translated store error.

        Args:
            error_type: Error class name
        """
        self.store_errors.labels(error_type=error_type).inc()

    def record_refresh_cycle(self, claimed: int, latency: float) -> None:
        """
        Record one refresh sweep.

        Args:
            claimed: Number of sources claimed
            latency: Cycle latency in seconds
        """
        self.refresh_cycle_sources.set(claimed)
        self.refresh_cycle_latency.observe(latency)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
