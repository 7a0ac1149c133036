"""In-memory thread tree.

A ThreadNode wraps either a stored Record or a placeholder standing in for an
ancestor that has not been loaded. Placeholders keep the farther part of the
original ancestor chain so the search upward can continue later.
"""

from __future__ import annotations

from typing import Iterator, Optional

from boardthreads.models.schemas import Record


class ThreadNode:
    """Tree element: the root, a real record, or a placeholder."""

    __slots__ = (
        "record",
        "_placeholder_id",
        "_placeholder_ancestors",
        "_placeholder_subject",
        "_is_root",
        "parent",
        "children",
    )

    def __init__(
        self,
        record: Optional[Record] = None,
        *,
        placeholder_id: Optional[str] = None,
        placeholder_ancestors: Optional[list[Optional[str]]] = None,
        is_root: bool = False,
    ) -> None:
        if not is_root and record is None and not placeholder_id:
            raise ValueError("A non-root node needs a record or a placeholder id")
        self.record = record
        self._placeholder_id = placeholder_id
        self._placeholder_ancestors = list(placeholder_ancestors or [])
        self._placeholder_subject: Optional[str] = None
        self._is_root = is_root
        self.parent: Optional[ThreadNode] = None
        self.children: list[ThreadNode] = []

    @classmethod
    def root(cls) -> ThreadNode:
        return cls(is_root=True)

    @classmethod
    def placeholder(
        cls, record_id: str, ancestors: Optional[list[Optional[str]]] = None
    ) -> ThreadNode:
        """Create a placeholder for a missing ancestor.

        Args:
            record_id: Id of the missing record
            ancestors: Farther, still unresolved part of the ancestor chain
        """
        return cls(placeholder_id=record_id, placeholder_ancestors=ancestors)

    # --- identity -------------------------------------------------------

    @property
    def is_root(self) -> bool:
        return self._is_root

    @property
    def is_placeholder(self) -> bool:
        return not self._is_root and self.record is None

    @property
    def record_id(self) -> Optional[str]:
        if self.record is not None:
            return self.record.id
        return self._placeholder_id

    @property
    def ancestors(self) -> list[Optional[str]]:
        if self.record is not None:
            return self.record.ancestors
        return self._placeholder_ancestors

    # --- content --------------------------------------------------------

    @property
    def subject(self) -> Optional[str]:
        if self.record is not None:
            return self.record.subject
        return self._placeholder_subject

    @subject.setter
    def subject(self, value: Optional[str]) -> None:
        if self.record is not None:
            raise ValueError("Subject of a real record cannot be changed")
        self._placeholder_subject = value

    @property
    def is_new(self) -> bool:
        return self.record is not None and self.record.is_new

    @property
    def flagged(self) -> bool:
        return self.record is not None and self.record.flagged

    @property
    def starred(self) -> bool:
        return self.record is not None and self.record.starred

    def fill(self, record: Record) -> None:
        """Replace placeholder content with the record it stands for.

        Position in the tree is preserved.

        Raises:
            ValueError: If this node is not a placeholder for `record.id`
        """
        if not self.is_placeholder:
            raise ValueError("Only placeholders can be filled")
        if record.id != self._placeholder_id:
            raise ValueError(
                f"Record {record.id!r} cannot fill placeholder {self._placeholder_id!r}"
            )
        self.record = record
        self._placeholder_ancestors = []
        self._placeholder_subject = None

    # --- structure ------------------------------------------------------

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def add(self, child: ThreadNode) -> None:
        """Append a child node.

        Raises:
            ValueError: If the child already has a parent or is the root
        """
        if child.is_root:
            raise ValueError("The root cannot be added as a child")
        if child.parent is not None:
            raise ValueError(f"Node {child.record_id!r} already has a parent")
        child.parent = self
        self.children.append(child)

    def remove_from_parent(self) -> None:
        if self.parent is None:
            return
        self.parent.children.remove(self)
        self.parent = None

    def is_ancestor_of(self, node: ThreadNode) -> bool:
        """Return True if this node is `node` or lies on its path to the root."""
        current: Optional[ThreadNode] = node
        while current is not None:
            if current is self:
                return True
            current = current.parent
        return False

    def depth(self) -> int:
        d = 0
        current = self.parent
        while current is not None:
            d += 1
            current = current.parent
        return d

    def iter_depth_first(self) -> Iterator[ThreadNode]:
        """Yield this subtree in post-order (children before their parent)."""
        stack: list[tuple[ThreadNode, int]] = [(self, 0)]
        while stack:
            node, index = stack[-1]
            if index < len(node.children):
                stack[-1] = (node, index + 1)
                stack.append((node.children[index], 0))
            else:
                stack.pop()
                yield node

    def iter_preorder(self) -> Iterator[ThreadNode]:
        """Yield this subtree in pre-order (parent before its children)."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def __repr__(self) -> str:
        if self._is_root:
            kind = "root"
        elif self.is_placeholder:
            kind = "placeholder"
        else:
            kind = "record"
        return (
            f"ThreadNode({kind}, id={self.record_id!r}, "
            f"children={len(self.children)})"
        )


class ThreadTree:
    """A rooted thread tree for one board, handed to the consumer by reference.

    `version` is bumped on every in-place change so consumers can detect
    updates made by incremental merges.
    """

    def __init__(
        self,
        collection_id: str,
        *,
        build_id: int = 0,
        threaded: bool = True,
        root: Optional[ThreadNode] = None,
    ) -> None:
        self.collection_id = collection_id
        self.build_id = build_id
        self.threaded = threaded
        self.root = root if root is not None else ThreadNode.root()
        self.version = 0
        self.selected_node: Optional[ThreadNode] = None

    def touch(self) -> None:
        self.version += 1

    def iter_nodes(self) -> Iterator[ThreadNode]:
        """Yield every node except the root, depth-first post-order."""
        for node in self.root.iter_depth_first():
            if node is not self.root:
                yield node

    def find(
        self, record_id: Optional[str], *, placeholders_only: bool = False
    ) -> Optional[ThreadNode]:
        """Find the first node carrying `record_id`.

        Args:
            record_id: Id to look for; None never matches
            placeholders_only: Restrict the search to placeholders
        """
        if record_id is None:
            return None
        for node in self.iter_nodes():
            if node.record_id != record_id:
                continue
            if placeholders_only and not node.is_placeholder:
                continue
            return node
        return None

    def placeholders(self) -> list[ThreadNode]:
        return [n for n in self.iter_nodes() if n.is_placeholder]

    def records(self) -> list[Record]:
        return [n.record for n in self.iter_nodes() if n.record is not None]

    def leaf_ids(self) -> set[Optional[str]]:
        return {n.record_id for n in self.iter_nodes() if n.is_leaf}

    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())
