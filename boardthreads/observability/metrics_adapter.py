"""Metrics Adapter abstraction to decouple Prometheus from services.

Provides a minimal interface for build/merge/scheduler metrics with a
Prometheus-backed implementation and a no-op fallback.
"""

from __future__ import annotations

import logging
from typing import Protocol

from boardthreads.observability.metrics import (
    scheduler_activity,
    scheduler_supersessions_total,
    store_read_errors_total,
    thread_build_duration_seconds,
    thread_builds_total,
    thread_merges_total,
    thread_placeholders_created_total,
    thread_records_pruned_total,
)

logger = logging.getLogger(__name__)


class MetricsAdapter(Protocol):
    """Abstract metrics interface used by services."""

    def observe_build(
        self,
        board: str,
        mode: str,
        duration_seconds: float,
        placeholders_created: int,
        pruned: int,
    ) -> None:
        """Record a finished build's duration and tree statistics."""

    def inc_build_outcome(self, board: str, outcome: str) -> None:
        """Count a build by outcome (delivered|cancelled|failed|stale)."""

    def inc_merge(self, board: str, placement: str) -> None:
        """Count an incremental merge by placement kind."""

    def inc_supersession(self) -> None:
        """Count a running build cancelled by a newer request."""

    def set_activity(self, active: bool) -> None:
        """Set the reconstruction-activity gauge."""

    def inc_store_error(self, board: str, operation: str) -> None:
        """Count a recovered record store failure."""


class PrometheusMetricsAdapter:
    """Prometheus-backed metrics adapter.

    Handles exceptions internally to avoid impacting the main workflow.
    """

    def observe_build(
        self,
        board: str,
        mode: str,
        duration_seconds: float,
        placeholders_created: int,
        pruned: int,
    ) -> None:
        try:
            thread_build_duration_seconds.labels(board=board, mode=mode).observe(
                duration_seconds
            )
            if placeholders_created:
                thread_placeholders_created_total.labels(board=board).inc(
                    placeholders_created
                )
            if pruned:
                thread_records_pruned_total.labels(board=board).inc(pruned)
        except Exception:
            logger.debug(
                "Prometheus observe_build failed (non-fatal)",
                extra={"board": board, "mode": mode},
                exc_info=True,
            )

    def inc_build_outcome(self, board: str, outcome: str) -> None:
        try:
            thread_builds_total.labels(board=board, outcome=outcome).inc()
        except Exception:
            logger.debug("Prometheus inc_build_outcome failed", exc_info=True)

    def inc_merge(self, board: str, placement: str) -> None:
        try:
            thread_merges_total.labels(board=board, placement=placement).inc()
        except Exception:
            logger.debug("Prometheus inc_merge failed", exc_info=True)

    def inc_supersession(self) -> None:
        try:
            scheduler_supersessions_total.inc()
        except Exception:
            logger.debug("Prometheus inc_supersession failed", exc_info=True)

    def set_activity(self, active: bool) -> None:
        try:
            scheduler_activity.set(1 if active else 0)
        except Exception:
            logger.debug("Prometheus set_activity failed", exc_info=True)

    def inc_store_error(self, board: str, operation: str) -> None:
        try:
            store_read_errors_total.labels(board=board, operation=operation).inc()
        except Exception:
            logger.debug("Prometheus inc_store_error failed", exc_info=True)


class NoopMetricsAdapter:
    """No-op adapter used when metrics are disabled."""

    def observe_build(
        self,
        board: str,
        mode: str,
        duration_seconds: float,
        placeholders_created: int,
        pruned: int,
    ) -> None:  # noqa: ARG002
        return

    def inc_build_outcome(self, board: str, outcome: str) -> None:  # noqa: ARG002
        return

    def inc_merge(self, board: str, placement: str) -> None:  # noqa: ARG002
        return

    def inc_supersession(self) -> None:
        return

    def set_activity(self, active: bool) -> None:  # noqa: ARG002
        return

    def inc_store_error(self, board: str, operation: str) -> None:  # noqa: ARG002
        return
