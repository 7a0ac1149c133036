"""Data models package.

Exports Pydantic models for records and board state, and the thread tree.
"""

from boardthreads.models.schemas import (
    BoardFilterConfig,
    BoardState,
    BuildStats,
    BuildWindow,
    Record,
    SenderIdentity,
    ShowMode,
    TrustState,
    window_start,
)
from boardthreads.models.tree import ThreadNode, ThreadTree

__all__ = [
    "Record",
    "SenderIdentity",
    "TrustState",
    "ShowMode",
    "BoardFilterConfig",
    "BoardState",
    "BuildWindow",
    "BuildStats",
    "ThreadNode",
    "ThreadTree",
    "window_start",
]
