"""Application DI container.

Builds and wires the thread view components from configuration.
"""

from __future__ import annotations

from contextlib import suppress
from typing import Optional

from boardthreads.core.config import ThreadViewConfig
from boardthreads.observability.logging_config import setup_logging
from boardthreads.observability.metrics import ensure_metrics_server
from boardthreads.observability.metrics_adapter import (
    MetricsAdapter,
    NoopMetricsAdapter,
    PrometheusMetricsAdapter,
)
from boardthreads.repositories.memory_repository import InMemoryRecordStore
from boardthreads.repositories.protocols import RecordStoreProtocol
from boardthreads.services.board_state import BoardStateRegistry
from boardthreads.services.consumer import LoggingTreeConsumer, TreeConsumerProtocol
from boardthreads.services.filtering.filter_policy import FilterPolicy
from boardthreads.services.scheduler.update_scheduler import UpdateScheduler
from boardthreads.services.thread_view_service import ThreadViewService
from boardthreads.services.threads.incremental_merge import IncrementalMerger
from boardthreads.services.threads.thread_builder import ThreadBuilder


class Container:
    """Container building all primary services of the thread view."""

    def __init__(
        self,
        *,
        config: ThreadViewConfig,
        store: Optional[RecordStoreProtocol] = None,
        consumer: Optional[TreeConsumerProtocol] = None,
    ) -> None:
        """Build and wire core components from configuration.

        Args:
            config: Thread view configuration
            store: Record store adapter; defaults to an empty in-memory store
            consumer: Tree consumer; defaults to a consumer that only logs
        """
        self._config = config

        # Store and metrics
        self._store: RecordStoreProtocol = (
            store if store is not None else InMemoryRecordStore()
        )
        self._metrics: MetricsAdapter = (
            PrometheusMetricsAdapter()
            if config.enable_metrics
            else NoopMetricsAdapter()
        )

        # Policy, builder, merger
        self._policy = FilterPolicy(show_junk=config.show_junk_messages)
        self._builder = ThreadBuilder(self._store, self._policy, self._metrics)
        self._merger = IncrementalMerger(self._policy, self._metrics)

        # Board state and facade
        self._registry = BoardStateRegistry(config.default_board_filter())
        self._consumer: TreeConsumerProtocol = (
            consumer if consumer is not None else LoggingTreeConsumer()
        )
        self._service = ThreadViewService(
            config=config,
            store=self._store,
            policy=self._policy,
            builder=self._builder,
            merger=self._merger,
            registry=self._registry,
            consumer=self._consumer,
            metrics=self._metrics,
        )

    def initialize_runtime(self) -> None:
        """Perform side-effectful initialization (logging, metrics server)."""
        setup_logging(
            level=self._config.log_level,
            log_format=self._config.log_format,
            service_name=self._config.service_name,
        )
        if self._config.enable_metrics:
            with suppress(Exception):
                ensure_metrics_server(self._config.metrics_port)

    def provide_config(self) -> ThreadViewConfig:
        return self._config

    def provide_store(self) -> RecordStoreProtocol:
        """Provide record store adapter."""
        return self._store

    def provide_metrics(self) -> MetricsAdapter:
        """Provide metrics adapter instance."""
        return self._metrics

    def provide_filter_policy(self) -> FilterPolicy:
        """Provide filter policy shared by builder and merger."""
        return self._policy

    def provide_thread_builder(self) -> ThreadBuilder:
        return self._builder

    def provide_incremental_merger(self) -> IncrementalMerger:
        return self._merger

    def provide_board_registry(self) -> BoardStateRegistry:
        """Provide per-board state registry."""
        return self._registry

    def provide_scheduler(self) -> UpdateScheduler:
        """Provide the process-wide update scheduler."""
        return self._service.scheduler

    def provide_thread_view_service(self) -> ThreadViewService:
        """Provide thread view facade."""
        return self._service
