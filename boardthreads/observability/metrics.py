"""Prometheus metrics for thread reconstruction.

Defines counters and histograms and provides a helper to start the metrics
HTTP server when enabled via configuration.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)


# Note: keep label cardinality low. Boards are few; record ids are never labels.
thread_build_duration_seconds = Histogram(
    "thread_build_duration_seconds",
    "Duration of a thread build (per board and layout mode)",
    labelnames=("board", "mode"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

thread_builds_total = Counter(
    "thread_builds_total",
    "Number of thread builds by outcome (delivered|cancelled|failed|stale)",
    labelnames=("board", "outcome"),
)

thread_placeholders_created_total = Counter(
    "thread_placeholders_created_total",
    "Placeholders synthesized for missing ancestors",
    labelnames=("board",),
)

thread_records_pruned_total = Counter(
    "thread_records_pruned_total",
    "Nodes removed by the cascading leaf prune",
    labelnames=("board",),
)

thread_merges_total = Counter(
    "thread_merges_total",
    "Incremental merges by placement kind",
    labelnames=("board", "placement"),
)

scheduler_supersessions_total = Counter(
    "scheduler_supersessions_total",
    "Running builds cancelled because a newer request arrived",
)

scheduler_activity = Gauge(
    "scheduler_activity",
    "Reconstruction activity in progress (1) or idle (0)",
)

store_read_errors_total = Counter(
    "store_read_errors_total",
    "Recovered record store failures by operation (stream|fetch|clear)",
    labelnames=("board", "operation"),
)


_server_started: bool = False


def ensure_metrics_server(port: int) -> None:
    """Start Prometheus metrics HTTP server once per process.

    Args:
        port: Port to bind the metrics endpoint to.
    """
    global _server_started
    if _server_started:
        return
    try:
        start_http_server(port)
        _server_started = True
        logger.info("Prometheus metrics server started", extra={"port": port})
    except Exception as e:
        # Don't fail the service if metrics cannot be started
        logger.warning("Failed to start metrics server: %s", e, exc_info=True)
