"""In-memory record store adapter.

Reference implementation of RecordStoreProtocol. Used by tests and as the
default store when no durable adapter is wired in. Returned records are copies,
so read-state changes only persist through clear_read/mark_all_read.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

from boardthreads.models.schemas import BuildWindow, Record, ShowMode
from boardthreads.repositories.protocols import RecordCallback

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Store keeping records per board in insertion order."""

    def __init__(self, records: Optional[Iterable[Record]] = None) -> None:
        """Initialize store, optionally pre-populated.

        Args:
            records: Records to add, in order
        """
        self._records: dict[str, list[Record]] = {}
        self._by_id: dict[str, dict[str, Record]] = {}
        for record in records or ():
            self.add(record)

    def add(self, record: Record) -> bool:
        """Add a record to its board.

        Returns:
            False if a record with the same id already exists (not added)
        """
        by_id = self._by_id.setdefault(record.collection_id, {})
        if record.id is not None and record.id in by_id:
            logger.warning(
                "Duplicate record, not added to store",
                extra={"collection_id": record.collection_id, "record_id": record.id},
            )
            return False
        stored = record.model_copy(deep=True)
        self._records.setdefault(record.collection_id, []).append(stored)
        if stored.id is not None:
            by_id[stored.id] = stored
        return True

    def get(self, collection_id: str, record_id: str) -> Optional[Record]:
        """Return the stored instance (not a copy), for inspection in tests."""
        return self._by_id.get(collection_id, {}).get(record_id)

    def _matches(self, record: Record, window: BuildWindow, oldest: datetime) -> bool:
        if record.timestamp < oldest:
            return False
        if record.deleted and not window.include_deleted:
            return False
        if window.show is ShowMode.UNREAD_ONLY:
            return record.is_new
        if window.show is ShowMode.FLAGGED_ONLY:
            return record.flagged
        if window.show is ShowMode.STARRED_ONLY:
            return record.starred
        return True

    async def stream_window(
        self, collection_id: str, window: BuildWindow, callback: RecordCallback
    ) -> None:
        oldest = window.oldest()
        selected = [
            r
            for r in self._records.get(collection_id, [])
            if self._matches(r, window, oldest)
        ]
        selected.sort(key=lambda r: r.timestamp)
        for record in selected:
            if callback(record.model_copy(deep=True)):
                break
        await asyncio.sleep(0)

    async def fetch_by_id(
        self, collection_id: str, record_id: str, *, include_deleted: bool = False
    ) -> Optional[Record]:
        await asyncio.sleep(0)
        record = self.get(collection_id, record_id)
        if record is None or (record.deleted and not include_deleted):
            return None
        return record.model_copy(deep=True)

    async def clear_read(self, collection_id: str, record_ids: Iterable[str]) -> None:
        by_id = self._by_id.get(collection_id, {})
        for record_id in record_ids:
            record = by_id.get(record_id)
            if record is not None:
                record.is_new = False
        await asyncio.sleep(0)

    async def mark_all_read(self, collection_id: str) -> None:
        for record in self._records.get(collection_id, []):
            record.is_new = False
        await asyncio.sleep(0)

    async def count_unread(self, collection_id: str) -> int:
        await asyncio.sleep(0)
        return sum(
            1
            for r in self._records.get(collection_id, [])
            if r.is_new and not r.deleted
        )

    async def has_flagged(self, collection_id: str) -> bool:
        await asyncio.sleep(0)
        return any(r.flagged for r in self._records.get(collection_id, []))

    async def has_starred(self, collection_id: str) -> bool:
        await asyncio.sleep(0)
        return any(r.starred for r in self._records.get(collection_id, []))
