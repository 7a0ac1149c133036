"""Process-wide single-flight scheduler for thread rebuilds.

At most one rebuild runs at a time across all boards. A request for another
board while a run is active cancels that run and is queued; a newer request
overwrites an older queued one. State transitions happen without awaiting,
so they are atomic with respect to other tasks on the event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from boardthreads.core.cancellation import CancellationToken
from boardthreads.core.exceptions import BuildCancelledError, SchedulerClosedError
from boardthreads.models.schemas import BuildWindow
from boardthreads.observability.metrics_adapter import (
    MetricsAdapter,
    NoopMetricsAdapter,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebuildRequest:
    """A request to rebuild one board's tree."""

    collection_id: str
    window: BuildWindow
    prior_selection_id: Optional[str] = None
    build_id: int = 0


JobRunner = Callable[[RebuildRequest, CancellationToken], Awaitable[None]]


class UpdateScheduler:
    """Single-flight rebuild scheduler (Idle, Running, Queued)."""

    def __init__(self, runner: JobRunner, metrics: Optional[MetricsAdapter] = None):
        """Initialize scheduler.

        Args:
            runner: Coroutine function performing one rebuild; it delivers the
                result itself and must honor the cancellation token
            metrics: Optional metrics adapter
        """
        self._runner = runner
        self._metrics: MetricsAdapter = metrics or NoopMetricsAdapter()
        self._build_ids = itertools.count(1)

        self._running: Optional[RebuildRequest] = None
        self._running_token: Optional[CancellationToken] = None
        self._queued: Optional[RebuildRequest] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._unacknowledged: set[str] = set()
        self._closed = False

    # --- state ----------------------------------------------------------

    @property
    def running(self) -> Optional[RebuildRequest]:
        return self._running

    @property
    def queued(self) -> Optional[RebuildRequest]:
        return self._queued

    @property
    def is_loading(self) -> bool:
        """True while a rebuild is running or queued, or a result is unrendered."""
        return (
            self._running is not None
            or self._queued is not None
            or bool(self._unacknowledged)
        )

    def is_busy(self, collection_id: str) -> bool:
        """True if a live run or the queued request targets `collection_id`."""
        if (
            self._running is not None
            and self._running.collection_id == collection_id
            and self._running_token is not None
            and not self._running_token.cancelled
        ):
            return True
        return self._queued is not None and self._queued.collection_id == collection_id

    # --- transitions ----------------------------------------------------

    def request(
        self,
        collection_id: str,
        window: BuildWindow,
        prior_selection_id: Optional[str] = None,
    ) -> bool:
        """Request a rebuild of `collection_id`.

        Returns:
            False if the request was ignored because the same board is
            already being rebuilt, True otherwise

        Raises:
            SchedulerClosedError: If the scheduler was closed
        """
        if self._closed:
            raise SchedulerClosedError("Rebuild requested after scheduler close")

        running, token = self._running, self._running_token
        if running is not None and token is not None:
            if running.collection_id == collection_id and not token.cancelled:
                logger.debug(
                    "Rebuild already in progress, request ignored",
                    extra={"collection_id": collection_id},
                )
                return False

            new_request = self._new_request(collection_id, window, prior_selection_id)
            if not token.cancelled:
                token.cancel("superseded")
                self._metrics.inc_supersession()
            if self._queued is not None:
                logger.debug(
                    "Queued rebuild replaced",
                    extra={
                        "collection_id": self._queued.collection_id,
                        "replaced_by": collection_id,
                    },
                )
            self._queued = new_request
            logger.info(
                "Rebuild queued, superseding running build",
                extra={
                    "collection_id": collection_id,
                    "build_id": new_request.build_id,
                    "superseded": running.collection_id,
                },
            )
            return True

        self._start(self._new_request(collection_id, window, prior_selection_id))
        return True

    def _new_request(
        self,
        collection_id: str,
        window: BuildWindow,
        prior_selection_id: Optional[str],
    ) -> RebuildRequest:
        return RebuildRequest(
            collection_id=collection_id,
            window=window,
            prior_selection_id=prior_selection_id,
            build_id=next(self._build_ids),
        )

    def _start(self, request: RebuildRequest) -> None:
        self._running = request
        self._running_token = CancellationToken(request.collection_id, request.build_id)
        self._idle.clear()
        self._metrics.set_activity(True)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drive())

    async def _drive(self) -> None:
        try:
            while self._running is not None and self._running_token is not None:
                request, token = self._running, self._running_token
                try:
                    await self._runner(request, token)
                except BuildCancelledError:
                    logger.debug(
                        "Superseded build discarded",
                        extra={
                            "collection_id": request.collection_id,
                            "build_id": request.build_id,
                        },
                    )
                except Exception:
                    logger.error(
                        "Rebuild failed",
                        extra={
                            "collection_id": request.collection_id,
                            "build_id": request.build_id,
                        },
                        exc_info=True,
                    )

                next_request, self._queued = self._queued, None
                if next_request is not None:
                    self._running = next_request
                    self._running_token = CancellationToken(
                        next_request.collection_id, next_request.build_id
                    )
                else:
                    self._running = None
                    self._running_token = None
        finally:
            if self._running is not None:
                # Task cancelled from outside
                self._running = None
                self._running_token = None
                self._queued = None
            self._metrics.set_activity(self.is_loading)
            self._idle.set()

    # --- consumer acknowledgement ---------------------------------------

    def mark_delivered(self, collection_id: str) -> None:
        """Record that a finished tree was handed to the consumer."""
        self._unacknowledged.add(collection_id)
        self._metrics.set_activity(True)

    def acknowledge_rendered(self, collection_id: str) -> None:
        """Record that the consumer finished applying a delivered tree."""
        self._unacknowledged.discard(collection_id)
        self._metrics.set_activity(self.is_loading)

    # --- shutdown -------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until no rebuild is running or queued."""
        await self._idle.wait()

    async def close(self) -> None:
        """Drop the queued request, cancel the running build and wait for it."""
        self._closed = True
        self._queued = None
        if self._running_token is not None:
            self._running_token.cancel("closed")
        await self.wait_idle()
        logger.info("Update scheduler closed")
