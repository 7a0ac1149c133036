"""Outbound consumer interface for finished trees and merges.

The consumer (rendering layer) is an external collaborator. Delivery is
best-effort: consumer failures are logged and never reach the scheduler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from boardthreads.models.schemas import BuildStats
from boardthreads.models.tree import ThreadTree

if TYPE_CHECKING:
    from boardthreads.services.threads.incremental_merge import MergeResult

logger = logging.getLogger(__name__)


class TreeConsumerProtocol(Protocol):
    """Receiver of thread view updates."""

    async def on_tree_ready(
        self, collection_id: str, tree: ThreadTree, stats: BuildStats
    ) -> None:
        """Handle a finished rebuild, delivered once per non-superseded run."""
        ...

    async def on_merge_applied(self, collection_id: str, result: MergeResult) -> None:
        """Handle a record merged into the board's current tree."""
        ...

    async def on_known_boards(self, collection_id: str, board_names: list[str]) -> None:
        """Handle board names found attached to a received record."""
        ...


class LoggingTreeConsumer:
    """Consumer that only logs updates; used when no renderer is wired in."""

    async def on_tree_ready(
        self, collection_id: str, tree: ThreadTree, stats: BuildStats
    ) -> None:
        logger.info(
            "Tree ready",
            extra={
                "collection_id": collection_id,
                "build_id": tree.build_id,
                "nodes": tree.node_count(),
                "unread": stats.unread_count,
            },
        )

    async def on_merge_applied(self, collection_id: str, result: MergeResult) -> None:
        logger.info(
            "Merge applied: %s",
            result.describe(),
            extra={"collection_id": collection_id, "record_id": result.record_id},
        )

    async def on_known_boards(self, collection_id: str, board_names: list[str]) -> None:
        logger.info(
            "Known boards found in attachments",
            extra={"collection_id": collection_id, "boards": board_names},
        )
