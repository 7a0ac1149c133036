"""Registry of per-board state.

Board state is created on first reference and kept for the process lifetime.
Every mutation of a board's state or tree happens under that board's lock;
unrelated boards never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterator, Optional

from boardthreads.models.schemas import BoardFilterConfig, BoardState, BuildStats

logger = logging.getLogger(__name__)


class BoardStateRegistry:
    """Owns BoardState instances and their locks."""

    def __init__(self, default_filter: Optional[BoardFilterConfig] = None) -> None:
        """Initialize registry.

        Args:
            default_filter: Filter configuration new boards start with
        """
        self._default_filter = default_filter or BoardFilterConfig()
        self._states: dict[str, BoardState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_or_create(self, collection_id: str) -> BoardState:
        state = self._states.get(collection_id)
        if state is None:
            state = BoardState(
                collection_id=collection_id,
                filter_config=self._default_filter.model_copy(),
            )
            self._states[collection_id] = state
            logger.debug("Board state created", extra={"collection_id": collection_id})
        return state

    def get(self, collection_id: str) -> Optional[BoardState]:
        return self._states.get(collection_id)

    def lock(self, collection_id: str) -> asyncio.Lock:
        """Return the lock serializing mutations of `collection_id`."""
        lock = self._locks.get(collection_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[collection_id] = lock
        return lock

    def __iter__(self) -> Iterator[BoardState]:
        return iter(list(self._states.values()))

    def __contains__(self, collection_id: object) -> bool:
        return collection_id in self._states

    def commit_build(
        self, collection_id: str, build_id: int, stats: BuildStats
    ) -> bool:
        """Apply the aggregates of a finished build.

        Must be called while holding the board lock.

        Returns:
            False if a newer build was already committed (state unchanged)
        """
        state = self.get_or_create(collection_id)
        if build_id <= state.last_build_id:
            logger.info(
                "Stale build result ignored",
                extra={
                    "collection_id": collection_id,
                    "build_id": build_id,
                    "last_build_id": state.last_build_id,
                },
            )
            return False
        state.unread_count = stats.unread_count
        state.has_flagged = stats.has_flagged
        state.has_starred = stats.has_starred
        state.blocked_count = stats.blocked_count
        state.last_build_id = build_id
        state.times_built += 1
        return True

    def set_filter_config(self, collection_id: str, config: BoardFilterConfig) -> bool:
        """Replace a board's filter configuration.

        Returns:
            True if the configuration changed
        """
        state = self.get_or_create(collection_id)
        if state.filter_config == config:
            return False
        state.filter_config = config.model_copy()
        return True
