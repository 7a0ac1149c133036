"""Collect board names attached to received records.

Attached boards become known boards unless the sender's trust class is
configured as untrusted for this purpose.
"""

from __future__ import annotations

from boardthreads.core.config import ThreadViewConfig
from boardthreads.models.schemas import Record, TrustState


def attachments_blocked(trust: TrustState, config: ThreadViewConfig) -> bool:
    """Return True if boards attached by a record of `trust` are ignored."""
    if trust is TrustState.TAMPERED:
        return True
    if trust is TrustState.NONE:
        return config.known_boards_block_from_unsigned
    if trust is TrustState.BAD:
        return config.known_boards_block_from_bad
    if trust is TrustState.NEUTRAL:
        return config.known_boards_block_from_neutral
    if trust is TrustState.GOOD:
        return config.known_boards_block_from_good
    return False


def collect_known_boards(record: Record, config: ThreadViewConfig) -> list[str]:
    """Return the distinct attached board names of `record`, in order.

    Empty when the record attaches no boards or its trust class is blocked.
    """
    if not record.attached_boards or attachments_blocked(record.trust, config):
        return []
    seen: set[str] = set()
    names: list[str] = []
    for name in record.attached_boards:
        cleaned = name.strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        names.append(cleaned)
    return names
