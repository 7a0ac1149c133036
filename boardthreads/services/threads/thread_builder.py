"""Thread builder: reconstructs a board's thread tree from a record window.

Threaded builds run in passes:

1. stream the window, putting unreferenceable records straight under root
2. resolve the ancestor closure by fetching missing ancestors by id, with a
   placeholder for every ancestor the store does not have
3. attach every node under its nearest ancestor
4. prune blocked records and placeholders from the leaves until stable
5. label surviving placeholders after their first real descendant

The builder only suspends at store I/O. Cancellation is checked at the top of
every resolution and prune pass, before attaching, and while streaming.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from boardthreads.core.cancellation import CancellationToken
from boardthreads.core.exceptions import MalformedRecordError, StoreReadError
from boardthreads.models.schemas import (
    BoardFilterConfig,
    BuildStats,
    BuildWindow,
    Record,
)
from boardthreads.models.tree import ThreadNode, ThreadTree
from boardthreads.observability.logging_config import board_logger
from boardthreads.observability.metrics_adapter import (
    MetricsAdapter,
    NoopMetricsAdapter,
)
from boardthreads.repositories.protocols import RecordStoreProtocol
from boardthreads.services.filtering.filter_policy import FilterPolicy

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Finished tree, its statistics and the records to mark as read."""

    tree: ThreadTree
    stats: BuildStats
    mark_as_read: list[Record] = field(default_factory=list)

    @property
    def mark_as_read_ids(self) -> list[str]:
        return [r.id for r in self.mark_as_read if r.id]


class ThreadBuilder:
    """Build thread trees for one board window at a time."""

    def __init__(
        self,
        store: RecordStoreProtocol,
        policy: FilterPolicy,
        metrics: Optional[MetricsAdapter] = None,
    ) -> None:
        """Initialize builder.

        Args:
            store: Record store to stream windows and fetch ancestors from
            policy: Filter policy applied while pruning
            metrics: Optional metrics adapter
        """
        self._store = store
        self._policy = policy
        self._metrics: MetricsAdapter = metrics or NoopMetricsAdapter()

    async def build(
        self,
        collection_id: str,
        window: BuildWindow,
        prior_selection_id: Optional[str],
        token: CancellationToken,
        *,
        board_config: BoardFilterConfig,
        threaded: bool = True,
    ) -> BuildResult:
        """Build the tree for `collection_id`.

        Args:
            collection_id: Board to build
            window: Records to stream
            prior_selection_id: Id of the record selected before the rebuild
            token: Cancellation token of this run
            board_config: Filter configuration of the board
            threaded: False lays every record out directly under root

        Returns:
            BuildResult with the finished tree

        Raises:
            BuildCancelledError: If the token was cancelled at a pass boundary
        """
        log = board_logger(logger, collection_id, token.build_id)
        started = time.perf_counter()

        tree = ThreadTree(
            collection_id, build_id=token.build_id or 0, threaded=threaded
        )
        stats = BuildStats()
        mark_as_read: list[Record] = []

        records = await self._stream_window(collection_id, window, token, log)
        stats.records_loaded = len(records)
        token.raise_if_cancelled("layout")

        if threaded:
            await self._build_threaded(
                tree, records, window, token, board_config, stats, mark_as_read, log
            )
        else:
            self._build_flat(tree, records, board_config, stats, mark_as_read)

        self._collect_stats(tree, stats)
        stats.marked_read_count = len(mark_as_read)
        tree.selected_node = tree.find(prior_selection_id)
        stats.duration_seconds = time.perf_counter() - started

        self._metrics.observe_build(
            collection_id,
            "threaded" if threaded else "flat",
            stats.duration_seconds,
            stats.placeholders_created,
            stats.pruned_count,
        )
        log.info(
            "Thread build finished",
            extra={
                "threaded": threaded,
                "records_loaded": stats.records_loaded,
                "records_fetched": stats.records_fetched,
                "placeholders_remaining": stats.placeholders_remaining,
                "pruned": stats.pruned_count,
                "unread": stats.unread_count,
                "duration_seconds": round(stats.duration_seconds, 4),
            },
        )
        return BuildResult(tree=tree, stats=stats, mark_as_read=mark_as_read)

    # --- streaming ------------------------------------------------------

    async def _stream_window(
        self,
        collection_id: str,
        window: BuildWindow,
        token: CancellationToken,
        log: logging.LoggerAdapter,
    ) -> list[Record]:
        records: list[Record] = []

        def on_record(record: Record) -> bool:
            if token.cancelled:
                return True
            records.append(record)
            return False

        try:
            await self._store.stream_window(collection_id, window, on_record)
        except Exception as e:
            # Partial windows are still built
            err = StoreReadError(f"Window stream failed: {e}", collection_id)
            log.warning(
                str(err),
                extra={"records_received": len(records)},
                exc_info=True,
            )
            self._metrics.inc_store_error(collection_id, "stream")
        return records

    async def _fetch_ancestor(
        self,
        collection_id: str,
        record_id: str,
        include_deleted: bool,
        log: logging.LoggerAdapter,
    ) -> Optional[Record]:
        try:
            record = await self._store.fetch_by_id(
                collection_id, record_id, include_deleted=include_deleted
            )
        except Exception as e:
            err = StoreReadError(
                f"Ancestor fetch failed: {e}", collection_id, record_id=record_id
            )
            log.warning(str(err), extra={"record_id": record_id}, exc_info=True)
            self._metrics.inc_store_error(collection_id, "fetch")
            return None
        if record is not None and record.id != record_id:
            log.warning(
                "Store returned a different record for ancestor lookup",
                extra={"record_id": record_id, "returned_id": record.id},
            )
            return None
        return record

    # --- layouts --------------------------------------------------------

    def _build_flat(
        self,
        tree: ThreadTree,
        records: list[Record],
        board_config: BoardFilterConfig,
        stats: BuildStats,
        mark_as_read: list[Record],
    ) -> None:
        for record in records:
            if self._policy.is_blocked(record, board_config):
                self._suppress(record, stats, mark_as_read)
                continue
            tree.root.add(ThreadNode(record))

    async def _build_threaded(
        self,
        tree: ThreadTree,
        records: list[Record],
        window: BuildWindow,
        token: CancellationToken,
        board_config: BoardFilterConfig,
        stats: BuildStats,
        mark_as_read: list[Record],
        log: logging.LoggerAdapter,
    ) -> None:
        index: dict[str, ThreadNode] = {}
        for record in records:
            if not record.id:
                # Unreferenceable, nothing can point at it
                if self._policy.is_blocked(record, board_config):
                    self._suppress(record, stats, mark_as_read)
                else:
                    tree.root.add(ThreadNode(record))
                continue
            kept = index.get(record.id)
            if kept is not None:
                log.debug("Duplicate record in window", extra={"record_id": record.id})
                stats.duplicates_dropped += 1
                # Read state is stored per id, clearing it must not hide the kept copy
                if record.is_new and kept.record is not None and not kept.record.is_new:
                    mark_as_read.append(record)
                continue
            index[record.id] = ThreadNode(record)

        await self._resolve_ancestors(
            tree.collection_id, index, window, token, stats, log
        )

        token.raise_if_cancelled("attach")
        self._attach(tree, index, stats, log)

        self._prune(tree, token, board_config, stats, mark_as_read)
        self._label_placeholders(tree)

    async def _resolve_ancestors(
        self,
        collection_id: str,
        index: dict[str, ThreadNode],
        window: BuildWindow,
        token: CancellationToken,
        stats: BuildStats,
        log: logging.LoggerAdapter,
    ) -> None:
        """Load or stand in for every ancestor until a pass adds no new id."""
        pending = list(index.values())
        passes = 0
        while pending:
            token.raise_if_cancelled("ancestor resolution")
            passes += 1
            added: list[ThreadNode] = []
            for node in pending:
                chain = node.ancestors
                for x in range(len(chain) - 1, -1, -1):
                    ancestor_id = chain[x]
                    if not ancestor_id or ancestor_id in index:
                        continue
                    record = await self._fetch_ancestor(
                        collection_id, ancestor_id, window.include_deleted, log
                    )
                    if record is not None:
                        ancestor = ThreadNode(record)
                        stats.records_fetched += 1
                    else:
                        ancestor = ThreadNode.placeholder(ancestor_id, chain[:x])
                        stats.placeholders_created += 1
                    index[ancestor_id] = ancestor
                    added.append(ancestor)
            pending = added
        log.debug(
            "Ancestor closure resolved",
            extra={"passes": passes, "nodes": len(index)},
        )

    def _attach(
        self,
        tree: ThreadTree,
        index: dict[str, ThreadNode],
        stats: BuildStats,
        log: logging.LoggerAdapter,
    ) -> None:
        """Attach every indexed node under its nearest ancestor."""
        for record_id, node in list(index.items()):
            chain = node.ancestors
            if chain and not chain[-1] and not node.is_placeholder:
                err = MalformedRecordError(
                    "Record has an empty direct parent id, skipped",
                    record_id=record_id,
                    position=len(chain) - 1,
                )
                log.warning(str(err), extra={"record_id": record_id})
                del index[record_id]

        queue = list(index.values())
        i = 0
        while i < len(queue):
            node = queue[i]
            i += 1
            chain = node.ancestors
            if not chain or not chain[-1]:
                # Placeholders with a broken farther chain start a thread
                parent = tree.root
            else:
                parent_id = chain[-1]
                parent = index.get(parent_id)
                if parent is None:
                    parent = ThreadNode.placeholder(parent_id, chain[:-1])
                    index[parent_id] = parent
                    queue.append(parent)
                    stats.placeholders_created += 1
            if parent is not tree.root and node.is_ancestor_of(parent):
                log.warning(
                    "Ancestor chain forms a cycle, attaching to root",
                    extra={"record_id": node.record_id},
                )
                parent = tree.root
            parent.add(node)

    def _prune(
        self,
        tree: ThreadTree,
        token: CancellationToken,
        board_config: BoardFilterConfig,
        stats: BuildStats,
        mark_as_read: list[Record],
    ) -> None:
        """Remove blocked and placeholder leaves until a pass removes nothing."""
        not_blocked: set[ThreadNode] = set()
        while True:
            token.raise_if_cancelled("prune")
            removed = 0
            for node in list(tree.iter_nodes()):
                if not node.is_leaf:
                    continue
                if node.is_placeholder:
                    node.remove_from_parent()
                    removed += 1
                    continue
                if node in not_blocked:
                    continue
                record = node.record
                if record is not None and self._policy.is_blocked(record, board_config):
                    self._suppress(record, stats, mark_as_read)
                    node.remove_from_parent()
                    removed += 1
                else:
                    not_blocked.add(node)
            if not removed:
                break
            stats.pruned_count += removed

    @staticmethod
    def _label_placeholders(tree: ThreadTree) -> None:
        for placeholder in tree.placeholders():
            for descendant in placeholder.iter_depth_first():
                if descendant.record is not None:
                    placeholder.subject = f"[{descendant.record.subject}]"
                    break

    # --- helpers --------------------------------------------------------

    @staticmethod
    def _suppress(
        record: Record, stats: BuildStats, mark_as_read: list[Record]
    ) -> None:
        stats.blocked_count += 1
        if record.is_new:
            mark_as_read.append(record)

    @staticmethod
    def _collect_stats(tree: ThreadTree, stats: BuildStats) -> None:
        unread = 0
        remaining = 0
        for node in tree.iter_nodes():
            if node.is_placeholder:
                remaining += 1
                continue
            if node.is_new:
                unread += 1
            if node.flagged:
                stats.has_flagged = True
            if node.starred:
                stats.has_starred = True
        stats.unread_count = unread
        stats.placeholders_remaining = remaining
