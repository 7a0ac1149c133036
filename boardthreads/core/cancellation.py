"""Cooperative cancellation for thread builds.

A token is handed to each builder invocation and checked at pass boundaries.
Cancelling never interrupts a pass; the builder unwinds at its next check.
"""

import asyncio
import logging
from typing import Optional

from boardthreads.core.exceptions import BuildCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation flag shared between the scheduler and one build run."""

    def __init__(self, collection_id: str, build_id: Optional[int] = None) -> None:
        """Initialize token for a single build.

        Args:
            collection_id: Board the build runs for
            build_id: Scheduler-assigned build id
        """
        self.collection_id = collection_id
        self.build_id = build_id
        self._cancelled_event = asyncio.Event()
        self._cancelled = False
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "superseded") -> None:
        """Request cancellation.

        Can be called repeatedly; only the first reason is kept.
        """
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason
            self._cancelled_event.set()
            logger.debug(
                "Build cancellation requested",
                extra={
                    "collection_id": self.collection_id,
                    "build_id": self.build_id,
                    "reason": reason,
                },
            )

    @property
    def cancelled(self) -> bool:
        """Check if cancellation has been requested.

        Returns:
            True if cancelled, False otherwise
        """
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise BuildCancelledError when cancelled.

        Args:
            stage: Build stage name, used in the error message

        Raises:
            BuildCancelledError: If cancellation was requested
        """
        if self._cancelled:
            raise BuildCancelledError(
                f"Build cancelled before {stage} ({self._reason})",
                collection_id=self.collection_id,
                build_id=self.build_id,
            )

    async def wait_cancelled(self, timeout: Optional[float] = None) -> bool:
        """Wait for cancellation.

        Args:
            timeout: Optional timeout in seconds

        Returns:
            True if cancelled, False if timeout reached
        """
        if timeout:
            try:
                await asyncio.wait_for(self._cancelled_event.wait(), timeout=timeout)
                return True
            except asyncio.TimeoutError:
                return False
        await self._cancelled_event.wait()
        return True
