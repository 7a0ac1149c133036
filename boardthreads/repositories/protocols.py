"""Record store protocol (port) for hexagonal architecture.

The durable record store is an external collaborator. This Protocol defines the
minimal contract the thread view depends on; concrete adapters satisfy it via
structural subtyping (no inheritance required).
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Protocol

from boardthreads.models.schemas import BuildWindow, Record

# Called once per streamed record; returning True stops the stream.
RecordCallback = Callable[[Record], bool]


class RecordStoreProtocol(Protocol):
    """Port for record retrieval and read-state persistence."""

    async def stream_window(
        self, collection_id: str, window: BuildWindow, callback: RecordCallback
    ) -> None:  # noqa: D401
        """Stream the board's records inside `window` to `callback`.

        Streaming stops early when the callback returns True. The awaiting
        task is the cancellable handle.
        """

    async def fetch_by_id(
        self, collection_id: str, record_id: str, *, include_deleted: bool = False
    ) -> Optional[Record]:  # noqa: D401
        """Return the board's record with `record_id`, or None."""

    async def clear_read(
        self, collection_id: str, record_ids: Iterable[str]
    ) -> None:  # noqa: D401
        """Persist the read state (is_new=False) for the given records."""

    async def mark_all_read(self, collection_id: str) -> None:  # noqa: D401
        """Persist the read state for every record of the board."""

    async def count_unread(self, collection_id: str) -> int:  # noqa: D401
        """Return the number of unread records of the board."""

    async def has_flagged(self, collection_id: str) -> bool:  # noqa: D401
        """Return True if the board has at least one flagged record."""

    async def has_starred(self, collection_id: str) -> bool:  # noqa: D401
        """Return True if the board has at least one starred record."""
