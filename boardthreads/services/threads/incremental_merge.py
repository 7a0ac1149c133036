"""Incremental merge of a single new record into an existing thread tree.

Used for boards that already have a tree and are not being rebuilt. The record
either fills a placeholder standing in for it, is attached under its nearest
ancestor already in the tree, or starts a new placeholder chain under root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from boardthreads.models.schemas import BoardFilterConfig, Record
from boardthreads.models.tree import ThreadNode, ThreadTree
from boardthreads.observability.metrics_adapter import (
    MetricsAdapter,
    NoopMetricsAdapter,
)
from boardthreads.services.filtering.filter_policy import FilterPolicy

logger = logging.getLogger(__name__)


class Placement(str, Enum):
    """Where a merged record ended up."""

    ROOT = "root"
    FILLED_PLACEHOLDER = "filled_placeholder"
    ATTACHED = "attached"
    ROOT_CHAIN = "root_chain"
    WITHHELD = "withheld"
    DUPLICATE = "duplicate"


_ATTACHED_PLACEMENTS = frozenset(
    {
        Placement.ROOT,
        Placement.FILLED_PLACEHOLDER,
        Placement.ATTACHED,
        Placement.ROOT_CHAIN,
    }
)


@dataclass
class MergeResult:
    """Outcome of one merge, handed to the consumer as placement description."""

    collection_id: str
    record: Record
    placement: Placement
    parent_id: Optional[str] = None
    placeholders_created: list[str] = field(default_factory=list)
    tree_version: int = 0

    @property
    def record_id(self) -> Optional[str]:
        return self.record.id

    @property
    def attached(self) -> bool:
        """True if the record is now visible in the tree."""
        return self.placement in _ATTACHED_PLACEMENTS

    def describe(self) -> str:
        if self.placement is Placement.ATTACHED:
            return f"{self.record_id} attached under {self.parent_id}"
        if self.placement is Placement.FILLED_PLACEHOLDER:
            return f"{self.record_id} filled its placeholder"
        if self.placement is Placement.ROOT_CHAIN:
            return (
                f"{self.record_id} attached under root with "
                f"{len(self.placeholders_created)} placeholder(s)"
            )
        return f"{self.record_id} {self.placement.value}"


class IncrementalMerger:
    """Fold single records into an existing tree."""

    def __init__(
        self, policy: FilterPolicy, metrics: Optional[MetricsAdapter] = None
    ) -> None:
        """Initialize merger.

        Args:
            policy: Filter policy deciding whether a record is withheld
            metrics: Optional metrics adapter
        """
        self._policy = policy
        self._metrics: MetricsAdapter = metrics or NoopMetricsAdapter()

    def merge(
        self, tree: ThreadTree, record: Record, board_config: BoardFilterConfig
    ) -> MergeResult:
        """Merge `record` into `tree` in place.

        Blocked records are withheld instead of being inserted and pruned, so
        they never satisfy an ancestor reference for a later record.

        Returns:
            MergeResult describing the placement
        """
        result = self._place(tree, record, board_config)
        if result.attached:
            tree.touch()
        result.tree_version = tree.version
        self._metrics.inc_merge(tree.collection_id, result.placement.value)
        logger.debug(
            "Record merged",
            extra={
                "collection_id": tree.collection_id,
                "record_id": record.id,
                "placement": result.placement.value,
                "parent_id": result.parent_id,
            },
        )
        return result

    def _place(
        self, tree: ThreadTree, record: Record, board_config: BoardFilterConfig
    ) -> MergeResult:
        cid = tree.collection_id

        if self._policy.is_blocked(record, board_config):
            return MergeResult(cid, record, Placement.WITHHELD)

        existing = tree.find(record.id) if record.id else None
        if existing is not None:
            if not existing.is_placeholder:
                return MergeResult(cid, record, Placement.DUPLICATE)
            # A previously missing ancestor arrived
            existing.fill(record)
            parent_id = existing.parent.record_id if existing.parent else None
            return MergeResult(
                cid, record, Placement.FILLED_PLACEHOLDER, parent_id=parent_id
            )

        if not tree.threaded or not record.id or not record.ancestors:
            tree.root.add(ThreadNode(record))
            return MergeResult(cid, record, Placement.ROOT)

        chain = record.ancestors
        for x in range(len(chain) - 1, -1, -1):
            ancestor_id = chain[x]
            if not ancestor_id:
                continue
            anchor = tree.find(ancestor_id)
            if anchor is None:
                continue
            created = self._attach_chain(anchor, record, start=x + 1)
            return MergeResult(
                cid,
                record,
                Placement.ATTACHED,
                parent_id=ancestor_id,
                placeholders_created=created,
            )

        created = self._attach_chain(tree.root, record, start=0)
        return MergeResult(
            cid, record, Placement.ROOT_CHAIN, placeholders_created=created
        )

    @staticmethod
    def _attach_chain(anchor: ThreadNode, record: Record, start: int) -> list[str]:
        """Attach placeholders for chain[start:] under anchor, then the record.

        Returns:
            Ids of the placeholders created
        """
        chain = record.ancestors
        created: list[str] = []
        parent = anchor
        for i in range(start, len(chain)):
            ancestor_id = chain[i]
            if not ancestor_id:
                continue
            placeholder = ThreadNode.placeholder(ancestor_id, chain[:i])
            placeholder.subject = f"[{record.subject}]"
            parent.add(placeholder)
            created.append(ancestor_id)
            parent = placeholder
        parent.add(ThreadNode(record))
        return created
