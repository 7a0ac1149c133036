"""Pydantic models for records, board state and build results.

Records are produced by the external record store. Everything else in this
module is owned by the thread view subsystem.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def window_start(max_age_days: int, now: Optional[datetime] = None) -> datetime:
    """Return the oldest timestamp inside a window of `max_age_days`.

    The window starts at midnight UTC, `max_age_days` days before now.
    """
    current = now or datetime.now(timezone.utc)
    start = current.astimezone(timezone.utc) - timedelta(days=max_age_days)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


class TrustState(str, Enum):
    """Trust classification assigned to a record by upstream verification."""

    NONE = "none"
    BAD = "bad"
    NEUTRAL = "neutral"
    GOOD = "good"
    FRIEND = "friend"
    TAMPERED = "tampered"


class ShowMode(str, Enum):
    """Which records a board window streams from the store."""

    ALL = "all"
    UNREAD_ONLY = "unread_only"
    FLAGGED_ONLY = "flagged_only"
    STARRED_ONLY = "starred_only"


class SenderIdentity(BaseModel):
    """Sender identity as seen by the filter policy.

    Attributes:
        name: Unique sender name
        received_message_count: Lifetime count of accepted records from sender
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique sender name")
    received_message_count: int = Field(
        default=0, ge=0, description="Lifetime accepted-record count"
    )


class Record(BaseModel):
    """A single stored message.

    Immutable once stored, except for the read state (`is_new`), which this
    subsystem may clear.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "m2",
                "collection_id": "freenet",
                "timestamp": "2025-11-06T10:30:00+00:00",
                "ancestors": ["m1"],
                "trust": "good",
                "is_new": True,
                "subject": "Re: hello",
                "body": "text",
            }
        }
    )

    id: Optional[str] = Field(
        default=None, description="Record id, absent for unreferenceable records"
    )
    collection_id: str = Field(..., min_length=1, description="Owning board")
    timestamp: datetime = Field(..., description="Record timestamp")
    ancestors: list[Optional[str]] = Field(
        default_factory=list,
        description="In-reply-to chain, nearest ancestor last",
    )
    trust: TrustState = Field(default=TrustState.NONE, description="Trust class")
    is_new: bool = Field(default=False, description="Unread flag")
    subject: str = Field(default="", description="Subject line")
    body: str = Field(default="", description="Record content")
    sender: Optional[SenderIdentity] = Field(default=None, description="Sender")
    recipient: Optional[str] = Field(
        default=None, description="Recipient name, set for private records"
    )
    from_me: bool = Field(default=False, description="Authored by the local user")
    junk: bool = Field(default=False, description="Marked as junk")
    flagged: bool = Field(default=False, description="Flagged by the user")
    starred: bool = Field(default=False, description="Starred by the user")
    deleted: bool = Field(default=False, description="Deleted by the user")
    attached_boards: list[str] = Field(
        default_factory=list, description="Names of boards attached to the record"
    )

    @field_validator("timestamp", mode="after")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def direct_parent_id(self) -> Optional[str]:
        """Return the nearest ancestor id, or None for thread starters."""
        if not self.ancestors:
            return None
        return self.ancestors[-1]

    @property
    def is_private(self) -> bool:
        return bool(self.recipient)


class BoardFilterConfig(BaseModel):
    """Per-board filter configuration.

    New boards start from the defaults in ThreadViewConfig; the configuration
    source for later changes is external.
    """

    hide_unsigned: bool = Field(
        default=False, description="Hide records classified none or tampered"
    )
    hide_bad: bool = Field(default=False, description="Hide BAD records")
    hide_neutral: bool = Field(default=False, description="Hide NEUTRAL records")
    hide_good: bool = Field(default=False, description="Hide GOOD records")
    hide_message_count: int = Field(
        default=0,
        ge=0,
        description="Hide senders with fewer accepted records than this (0 disables)",
    )
    hide_message_count_exclude_private: bool = Field(
        default=False, description="Exempt private records from the sender count rule"
    )
    block_subject_enabled: bool = Field(default=False)
    block_subject_words: str = Field(
        default="", description="';'-separated words blocked in subjects"
    )
    block_body_enabled: bool = Field(default=False)
    block_body_words: str = Field(
        default="", description="';'-separated words blocked in bodies"
    )
    block_boardname_enabled: bool = Field(default=False)
    block_boardname_words: str = Field(
        default="", description="';'-separated attached board names to block"
    )
    max_message_display: int = Field(
        default=15, ge=1, le=3650, description="Days of records shown for the board"
    )


class BuildWindow(BaseModel):
    """Bounded window of records requested for one build."""

    model_config = ConfigDict(frozen=True)

    max_age_days: int = Field(default=15, ge=1, le=3650)
    show: ShowMode = Field(default=ShowMode.ALL)
    include_deleted: bool = Field(default=False)

    def oldest(self, now: Optional[datetime] = None) -> datetime:
        return window_start(self.max_age_days, now)


class BuildStats(BaseModel):
    """Aggregates of a finished build."""

    unread_count: int = Field(default=0, ge=0)
    has_flagged: bool = False
    has_starred: bool = False
    records_loaded: int = Field(default=0, ge=0, description="Records streamed")
    records_fetched: int = Field(
        default=0, ge=0, description="Ancestors loaded by id"
    )
    placeholders_created: int = Field(default=0, ge=0)
    placeholders_remaining: int = Field(default=0, ge=0)
    pruned_count: int = Field(default=0, ge=0)
    blocked_count: int = Field(
        default=0, ge=0, description="Records suppressed by the filter policy"
    )
    marked_read_count: int = Field(
        default=0, ge=0, description="Unread records queued for a read-state clear"
    )
    duplicates_dropped: int = Field(
        default=0, ge=0, description="Repeated ids in the window, first copy kept"
    )
    duration_seconds: float = Field(default=0.0, ge=0.0)


class BoardState(BaseModel):
    """Mutable per-board counters and configuration.

    Created when a board is first referenced and kept for the process lifetime.
    """

    collection_id: str = Field(..., min_length=1)
    unread_count: int = Field(default=0, ge=0)
    has_flagged: bool = False
    has_starred: bool = False
    last_build_id: int = Field(
        default=0, ge=0, description="Id of the last committed build"
    )
    blocked_count: int = Field(default=0, ge=0)
    times_built: int = Field(default=0, ge=0)
    filter_config: BoardFilterConfig = Field(default_factory=BoardFilterConfig)

    def increment_unread(self) -> None:
        self.unread_count += 1

    def decrement_unread(self, amount: int = 1) -> None:
        """Decrease the unread counter without going below zero."""
        self.unread_count = max(0, self.unread_count - amount)
