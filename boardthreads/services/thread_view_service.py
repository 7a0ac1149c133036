"""Thread view service: inbound operations of the thread view subsystem.

Coordinates the update scheduler, thread builder and incremental merger, owns
the current tree of every board and applies their side effects to board state
under the board lock. Results go to the consumer best-effort.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from boardthreads.core.cancellation import CancellationToken
from boardthreads.core.config import ThreadViewConfig
from boardthreads.core.exceptions import BuildCancelledError
from boardthreads.models.schemas import (
    BoardFilterConfig,
    BoardState,
    BuildStats,
    BuildWindow,
    Record,
    window_start,
)
from boardthreads.models.tree import ThreadTree
from boardthreads.observability.logging_config import board_logger
from boardthreads.observability.metrics_adapter import (
    MetricsAdapter,
    NoopMetricsAdapter,
)
from boardthreads.repositories.protocols import RecordStoreProtocol
from boardthreads.services.attached_boards import collect_known_boards
from boardthreads.services.board_state import BoardStateRegistry
from boardthreads.services.consumer import TreeConsumerProtocol
from boardthreads.services.filtering.filter_policy import FilterPolicy
from boardthreads.services.scheduler.update_scheduler import (
    RebuildRequest,
    UpdateScheduler,
)
from boardthreads.services.threads.incremental_merge import (
    IncrementalMerger,
    MergeResult,
    Placement,
)
from boardthreads.services.threads.thread_builder import ThreadBuilder

logger = logging.getLogger(__name__)


class ThreadViewService:
    """Facade for rebuild requests, record merges and read-state changes."""

    def __init__(
        self,
        *,
        config: ThreadViewConfig,
        store: RecordStoreProtocol,
        policy: FilterPolicy,
        builder: ThreadBuilder,
        merger: IncrementalMerger,
        registry: BoardStateRegistry,
        consumer: TreeConsumerProtocol,
        metrics: Optional[MetricsAdapter] = None,
    ) -> None:
        """Initialize service with its collaborators.

        Args:
            config: Thread view configuration
            store: Record store for read-state persistence and recounts
            policy: Filter policy shared with builder and merger
            builder: Thread builder used by scheduled rebuilds
            merger: Incremental merger for single new records
            registry: Board state registry
            consumer: Receiver of finished trees and merges
            metrics: Optional metrics adapter
        """
        self._config = config
        self._store = store
        self._policy = policy
        self._builder = builder
        self._merger = merger
        self._registry = registry
        self._consumer = consumer
        self._metrics: MetricsAdapter = metrics or NoopMetricsAdapter()
        self._scheduler = UpdateScheduler(self._run_rebuild, self._metrics)

        self._threaded = config.show_threads
        self._trees: dict[str, ThreadTree] = {}
        self._windows: dict[str, BuildWindow] = {}
        self._current: Optional[str] = None

    # --- accessors ------------------------------------------------------

    @property
    def scheduler(self) -> UpdateScheduler:
        return self._scheduler

    @property
    def registry(self) -> BoardStateRegistry:
        return self._registry

    @property
    def is_loading(self) -> bool:
        return self._scheduler.is_loading

    @property
    def current_collection(self) -> Optional[str]:
        """Board of the most recent rebuild request."""
        return self._current

    def current_tree(self, collection_id: str) -> Optional[ThreadTree]:
        return self._trees.get(collection_id)

    def board_state(self, collection_id: str) -> BoardState:
        return self._registry.get_or_create(collection_id)

    def acknowledge_rendered(self, collection_id: str) -> None:
        """Called by the consumer once a delivered tree is fully applied."""
        self._scheduler.acknowledge_rendered(collection_id)

    # --- rebuilds -------------------------------------------------------

    def request_rebuild(
        self,
        collection_id: str,
        window: Optional[BuildWindow] = None,
        prior_selection_id: Optional[str] = None,
    ) -> bool:
        """Request a rebuild of the board's tree.

        Args:
            collection_id: Board to rebuild
            window: Records to show; defaults to the board's display window
                and the configured show modes
            prior_selection_id: Record to keep selected if still visible

        Returns:
            False if ignored because the board is already being rebuilt
        """
        state = self._registry.get_or_create(collection_id)
        if window is None:
            window = self._config.default_window(
                state.filter_config.max_message_display
            )
        self._windows[collection_id] = window
        self._current = collection_id
        return self._scheduler.request(collection_id, window, prior_selection_id)

    def _reload(self, collection_id: str) -> bool:
        tree = self._trees.get(collection_id)
        selected = tree.selected_node if tree is not None else None
        return self.request_rebuild(
            collection_id,
            self._windows.get(collection_id),
            selected.record_id if selected is not None else None,
        )

    async def _run_rebuild(
        self, request: RebuildRequest, token: CancellationToken
    ) -> None:
        cid = request.collection_id
        log = board_logger(logger, cid, request.build_id)
        state = self._registry.get_or_create(cid)

        try:
            result = await self._builder.build(
                cid,
                request.window,
                request.prior_selection_id,
                token,
                board_config=state.filter_config.model_copy(),
                threaded=self._threaded,
            )
            async with self._registry.lock(cid):
                token.raise_if_cancelled("commit")
                committed = self._registry.commit_build(
                    cid, request.build_id, result.stats
                )
                if not committed:
                    self._metrics.inc_build_outcome(cid, "stale")
                    return
                self._trees[cid] = result.tree
                self._scheduler.mark_delivered(cid)
        except BuildCancelledError:
            self._metrics.inc_build_outcome(cid, "cancelled")
            log.info("Build cancelled", extra={"reason": token.reason})
            raise
        except Exception:
            self._metrics.inc_build_outcome(cid, "failed")
            raise

        self._metrics.inc_build_outcome(cid, "delivered")
        await self._deliver_tree(cid, result.tree, result.stats)

        if result.mark_as_read_ids:
            async with self._registry.lock(cid):
                await self._persist_read(cid, result.mark_as_read_ids)

    # --- merges ---------------------------------------------------------

    async def merge_new_record(
        self, collection_id: str, record: Record
    ) -> Optional[MergeResult]:
        """Fold a newly stored record into the board's current tree.

        Returns:
            MergeResult, or None if the board is being rebuilt (the rebuild
            picks the record up) or has no tree yet
        """
        if self._deferred(collection_id, record):
            return None

        state = self._registry.get_or_create(collection_id)
        async with self._registry.lock(collection_id):
            # A rebuild may have started while waiting for the lock
            if self._deferred(collection_id, record):
                return None
            tree = self._trees.get(collection_id)
            if tree is None:
                await self._count_without_tree(state, record)
                return None

            result = self._merger.merge(tree, record, state.filter_config)
            if result.attached:
                self._count_record(state, record)
            elif result.placement is Placement.WITHHELD and record.is_new and record.id:
                await self._persist_read(collection_id, [record.id])

        if result.attached:
            await self._deliver_merge(collection_id, result)
        return result

    def _deferred(self, collection_id: str, record: Record) -> bool:
        if not self._scheduler.is_busy(collection_id):
            return False
        logger.debug(
            "Board is being rebuilt, merge deferred to rebuild",
            extra={"collection_id": collection_id, "record_id": record.id},
        )
        return True

    async def receive_new_record(
        self, collection_id: str, record: Record
    ) -> Optional[MergeResult]:
        """Intake of a record just accepted by the store.

        Applies the read-state rules for new records, merges the record if it
        falls inside the board's display window and reports attached boards.
        """
        state = self._registry.get_or_create(collection_id)

        own_not_new = self._config.handle_own_messages_as_new_disabled
        if record.is_new and record.from_me and own_not_new:
            record = record.model_copy(update={"is_new": False})
            if record.id:
                await self._persist_read(collection_id, [record.id])

        if record.is_new and self._policy.is_blocked(record, state.filter_config):
            record = record.model_copy(update={"is_new": False})
            if record.id:
                await self._persist_read(collection_id, [record.id])

        result: Optional[MergeResult] = None
        oldest = window_start(state.filter_config.max_message_display)
        if record.timestamp >= oldest:
            result = await self.merge_new_record(collection_id, record)
        else:
            logger.debug(
                "Record older than display window, not merged",
                extra={"collection_id": collection_id, "record_id": record.id},
            )

        names = collect_known_boards(record, self._config)
        if names:
            await self._deliver_known_boards(collection_id, names)
        return result

    @staticmethod
    def _count_record(state: BoardState, record: Record) -> None:
        if record.is_new:
            state.increment_unread()
        if record.flagged:
            state.has_flagged = True
        if record.starred:
            state.has_starred = True

    async def _count_without_tree(self, state: BoardState, record: Record) -> None:
        if self._policy.is_blocked(record, state.filter_config):
            if record.is_new and record.id:
                await self._persist_read(state.collection_id, [record.id])
            return
        self._count_record(state, record)

    # --- read state -----------------------------------------------------

    async def clear_read_state(
        self, collection_id: str, record_ids: Iterable[str]
    ) -> int:
        """Mark records as read in the store, the tree and the unread counter.

        Without a tree the unread counter is refreshed from the store.

        Returns:
            Number of unread records in the current tree that were cleared
        """
        ids = {i for i in record_ids if i}
        if not ids:
            return 0
        state = self._registry.get_or_create(collection_id)
        async with self._registry.lock(collection_id):
            await self._persist_read(collection_id, sorted(ids))
            cleared = 0
            tree = self._trees.get(collection_id)
            if tree is not None:
                for node in tree.iter_nodes():
                    record = node.record
                    if record is not None and record.id in ids and record.is_new:
                        record.is_new = False
                        cleared += 1
                if cleared:
                    tree.touch()
                state.decrement_unread(cleared)
            else:
                # Counted by intake only, the store knows what is still unread
                await self._refresh_unread(state)
        return cleared

    async def mark_all_read(self, collection_id: str) -> None:
        """Mark every record of the board as read."""
        state = self._registry.get_or_create(collection_id)
        async with self._registry.lock(collection_id):
            try:
                await self._store.mark_all_read(collection_id)
            except Exception:
                logger.warning(
                    "Store mark_all_read failed",
                    extra={"collection_id": collection_id},
                    exc_info=True,
                )
                self._metrics.inc_store_error(collection_id, "clear")
                return
            tree = self._trees.get(collection_id)
            if tree is not None:
                for node in tree.iter_nodes():
                    if node.record is not None:
                        node.record.is_new = False
                tree.touch()
            state.unread_count = 0

    async def recount_unread(self, collection_id: str) -> BoardState:
        """Refresh the board's unread counter and flags from the store."""
        state = self._registry.get_or_create(collection_id)
        async with self._registry.lock(collection_id):
            try:
                unread = await self._store.count_unread(collection_id)
                flagged = await self._store.has_flagged(collection_id)
                starred = await self._store.has_starred(collection_id)
            except Exception:
                logger.warning(
                    "Unread recount failed, counters unchanged",
                    extra={"collection_id": collection_id},
                    exc_info=True,
                )
                self._metrics.inc_store_error(collection_id, "count")
                return state
            state.unread_count = unread
            state.has_flagged = flagged
            state.has_starred = starred
        return state

    async def _refresh_unread(self, state: BoardState) -> None:
        try:
            state.unread_count = await self._store.count_unread(state.collection_id)
        except Exception:
            logger.warning(
                "Unread recount failed, counter unchanged",
                extra={"collection_id": state.collection_id},
                exc_info=True,
            )
            self._metrics.inc_store_error(state.collection_id, "count")

    async def _persist_read(self, collection_id: str, record_ids: list[str]) -> None:
        try:
            await self._store.clear_read(collection_id, record_ids)
        except Exception:
            logger.warning(
                "Store clear_read failed",
                extra={"collection_id": collection_id, "records": len(record_ids)},
                exc_info=True,
            )
            self._metrics.inc_store_error(collection_id, "clear")

    # --- configuration --------------------------------------------------

    async def update_filter_config(
        self, collection_id: str, config: BoardFilterConfig
    ) -> bool:
        """Replace the board's filter configuration.

        A board with a tree is rebuilt so the new policy takes effect.

        Returns:
            True if the configuration changed
        """
        async with self._registry.lock(collection_id):
            changed = self._registry.set_filter_config(collection_id, config)
        if changed and collection_id in self._trees:
            self._reload(collection_id)
        return changed

    def set_show_junk(self, show: bool) -> bool:
        """Switch junk display and reload the current board.

        Returns:
            True if the setting changed
        """
        if self._policy.show_junk == show:
            return False
        self._policy.show_junk = show
        self._config.show_junk_messages = show
        self._invalidate_other_trees()
        if self._current is not None:
            self._reload(self._current)
        return True

    def set_show_threads(self, threaded: bool) -> bool:
        """Switch threaded/flat layout and reload the current board."""
        if self._threaded == threaded:
            return False
        self._threaded = threaded
        self._config.show_threads = threaded
        self._invalidate_other_trees()
        if self._current is not None:
            self._reload(self._current)
        return True

    def _invalidate_other_trees(self) -> None:
        for cid in list(self._trees):
            if cid != self._current:
                del self._trees[cid]

    # --- delivery -------------------------------------------------------

    async def _deliver_tree(
        self, collection_id: str, tree: ThreadTree, stats: BuildStats
    ) -> None:
        try:
            await self._consumer.on_tree_ready(collection_id, tree, stats)
        except Exception:
            logger.error(
                "Consumer failed to handle tree",
                extra={"collection_id": collection_id, "build_id": tree.build_id},
                exc_info=True,
            )

    async def _deliver_merge(self, collection_id: str, result: MergeResult) -> None:
        try:
            await self._consumer.on_merge_applied(collection_id, result)
        except Exception:
            logger.error(
                "Consumer failed to handle merge",
                extra={"collection_id": collection_id, "record_id": result.record_id},
                exc_info=True,
            )

    async def _deliver_known_boards(self, collection_id: str, names: list[str]) -> None:
        try:
            await self._consumer.on_known_boards(collection_id, names)
        except Exception:
            logger.error(
                "Consumer failed to handle known boards",
                extra={"collection_id": collection_id},
                exc_info=True,
            )

    # --- shutdown -------------------------------------------------------

    async def close(self) -> None:
        await self._scheduler.close()

