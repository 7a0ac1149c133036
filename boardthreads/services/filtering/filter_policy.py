"""Filter policy deciding which records a board hides.

The policy is a pure function of the record and the board's filter
configuration, plus the global junk-display switch. It is evaluated both while
building a tree and while merging single records, so it must stay free of side
effects.
"""

from __future__ import annotations

import logging

from boardthreads.models.schemas import BoardFilterConfig, Record, TrustState

logger = logging.getLogger(__name__)

# Trust classes exempt from sender-count and keyword rules
_TRUSTED = frozenset({TrustState.GOOD, TrustState.FRIEND})


def split_words(words: str) -> list[str]:
    """Split a ';'-delimited block list into lowercase tokens.

    Empty tokens (e.g. from ";;" or a trailing ";") are dropped.
    """
    return [w.strip().lower() for w in words.split(";") if w.strip()]


class FilterPolicy:
    """Evaluate the block rules for a record.

    Rules are evaluated in order and the first match wins:

    1. junk records while junk display is disabled
    2. hidden trust classes (friend is never hidden)
    3. senders below the board's accepted-record threshold
    4. subject, body and attached board name block lists
    """

    def __init__(self, show_junk: bool = False) -> None:
        """Initialize policy.

        Args:
            show_junk: Global switch, True displays records marked as junk
        """
        self._show_junk = show_junk

    @property
    def show_junk(self) -> bool:
        return self._show_junk

    @show_junk.setter
    def show_junk(self, value: bool) -> None:
        self._show_junk = value

    def is_blocked(self, record: Record, config: BoardFilterConfig) -> bool:
        """Return True if `record` must be hidden on a board using `config`."""
        if record.junk and not self._show_junk:
            return True

        if self._blocked_by_trust(record.trust, config):
            return True

        if record.trust in _TRUSTED:
            return False

        if self._blocked_by_sender_count(record, config):
            return True

        return self._blocked_by_words(record, config)

    @staticmethod
    def _blocked_by_trust(trust: TrustState, config: BoardFilterConfig) -> bool:
        if trust in (TrustState.NONE, TrustState.TAMPERED):
            return config.hide_unsigned
        if trust is TrustState.BAD:
            return config.hide_bad
        if trust is TrustState.NEUTRAL:
            return config.hide_neutral
        if trust is TrustState.GOOD:
            return config.hide_good
        return False

    @staticmethod
    def _blocked_by_sender_count(record: Record, config: BoardFilterConfig) -> bool:
        if config.hide_message_count <= 0 or record.from_me:
            return False
        if record.sender is None:
            return False
        if config.hide_message_count_exclude_private and record.is_private:
            return False
        return record.sender.received_message_count < config.hide_message_count

    @staticmethod
    def _blocked_by_words(record: Record, config: BoardFilterConfig) -> bool:
        if config.block_subject_enabled:
            subject = record.subject.lower()
            if any(w in subject for w in split_words(config.block_subject_words)):
                return True

        if config.block_body_enabled:
            body = record.body.lower()
            if any(w in body for w in split_words(config.block_body_words)):
                return True

        if config.block_boardname_enabled and record.attached_boards:
            # Tokens are board names, so compare whole names
            blocked_names = set(split_words(config.block_boardname_words))
            if any(name.lower() in blocked_names for name in record.attached_boards):
                return True

        return False
