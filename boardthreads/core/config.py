"""Configuration management using Pydantic BaseSettings.

This module provides strongly-typed configuration with automatic validation
and environment variable loading. Per-board filter settings start from the
defaults defined here.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from boardthreads.models.schemas import BoardFilterConfig, BuildWindow, ShowMode


class ThreadViewConfig(BaseSettings):
    """Thread view configuration with Pydantic validation.

    All settings are loaded from environment variables with type validation
    and custom validators for complex fields.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # === Tree Layout ===
    show_threads: bool = Field(
        default=True, description="Build threaded trees; False lays records out flat"
    )

    # === Display Filters ===
    show_junk_messages: bool = Field(
        default=False, description="Display records marked as junk"
    )
    show_deleted_messages: bool = Field(
        default=False, description="Include deleted records in board windows"
    )
    show_unread_only: bool = Field(
        default=False, description="Stream unread records only"
    )
    show_flagged_only: bool = Field(
        default=False, description="Stream flagged records only"
    )
    show_starred_only: bool = Field(
        default=False, description="Stream starred records only"
    )

    # === New Records ===
    handle_own_messages_as_new_disabled: bool = Field(
        default=False, description="Records authored locally never arrive as unread"
    )

    # === Keyword Blocking ===
    message_block_subject_enabled: bool = Field(default=False)
    message_block_subject: str = Field(
        default="", description="';'-separated words blocked in subjects"
    )
    message_block_body_enabled: bool = Field(default=False)
    message_block_body: str = Field(
        default="", description="';'-separated words blocked in bodies"
    )
    message_block_boardname_enabled: bool = Field(default=False)
    message_block_boardname: str = Field(
        default="", description="';'-separated attached board names to block"
    )

    # === Per-Board Defaults ===
    message_hide_unsigned: bool = Field(default=False)
    message_hide_bad: bool = Field(default=False)
    message_hide_neutral: bool = Field(default=False)
    message_hide_good: bool = Field(default=False)
    message_hide_count: int = Field(
        default=0,
        ge=0,
        le=100000,
        description="Hide senders with fewer accepted records (0 disables)",
    )
    message_hide_count_exclude_private: bool = Field(default=False)
    max_message_display: int = Field(
        default=15, ge=1, le=3650, description="Days of records shown per board"
    )

    # === Known Boards From Attachments ===
    known_boards_block_from_unsigned: bool = Field(default=False)
    known_boards_block_from_bad: bool = Field(default=True)
    known_boards_block_from_neutral: bool = Field(default=False)
    known_boards_block_from_good: bool = Field(default=False)

    # === Logging ===
    log_level: str = Field(
        default="INFO",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level",
    )
    log_format: str = Field(
        default="json",
        pattern=r"^(json|text)$",
        description="Log output format: json or text",
    )
    service_name: str = Field(
        default="boardthreads",
        description="Service name to include in logs and metrics",
    )

    # === Observability ===
    enable_metrics: bool = Field(
        default=False, description="Enable Prometheus metrics export"
    )
    metrics_port: int = Field(
        default=9090, ge=1024, le=65535, description="Port for metrics HTTP server"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept log levels in any case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator(
        "message_block_subject",
        "message_block_body",
        "message_block_boardname",
        mode="after",
    )
    @classmethod
    def strip_block_lists(cls, v: str) -> str:
        """Drop surrounding whitespace from block word lists."""
        return v.strip()

    def show_mode(self) -> ShowMode:
        """Resolve the show-only flags; the first enabled flag wins."""
        if self.show_unread_only:
            return ShowMode.UNREAD_ONLY
        if self.show_flagged_only:
            return ShowMode.FLAGGED_ONLY
        if self.show_starred_only:
            return ShowMode.STARRED_ONLY
        return ShowMode.ALL

    def default_board_filter(self) -> BoardFilterConfig:
        """Build the filter configuration a newly referenced board starts with."""
        return BoardFilterConfig(
            hide_unsigned=self.message_hide_unsigned,
            hide_bad=self.message_hide_bad,
            hide_neutral=self.message_hide_neutral,
            hide_good=self.message_hide_good,
            hide_message_count=self.message_hide_count,
            hide_message_count_exclude_private=self.message_hide_count_exclude_private,
            block_subject_enabled=self.message_block_subject_enabled,
            block_subject_words=self.message_block_subject,
            block_body_enabled=self.message_block_body_enabled,
            block_body_words=self.message_block_body,
            block_boardname_enabled=self.message_block_boardname_enabled,
            block_boardname_words=self.message_block_boardname,
            max_message_display=self.max_message_display,
        )

    def default_window(self, max_age_days: int | None = None) -> BuildWindow:
        """Build the window used when a rebuild request does not carry one.

        Args:
            max_age_days: Board-specific window length, defaults to
                max_message_display
        """
        return BuildWindow(
            max_age_days=max_age_days or self.max_message_display,
            show=self.show_mode(),
            include_deleted=self.show_deleted_messages,
        )
