"""Logging configuration with structured (JSON) output.

Adds a context filter that injects core fields (service, environment, host,
version) into every record, and lifts the board/build identifiers passed via
``extra=`` into top-level JSON keys.
"""

import logging
import os
import socket
import sys

from pythonjsonlogger import jsonlogger

# Keys promoted to top-level JSON fields when present on a record
_CONTEXT_KEYS = ("service", "environment", "host", "version")
_BUILD_KEYS = ("collection_id", "build_id", "record_id")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with additional fields."""

    def add_fields(
        self, log_record: dict, record: logging.LogRecord, message_dict: dict
    ) -> None:
        """Add custom fields to log record.

        Args:
            log_record: Dictionary to be logged
            record: Original LogRecord
            message_dict: Message dictionary from format string
        """
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for key in _BUILD_KEYS + _CONTEXT_KEYS:
            if hasattr(record, key):
                log_record[key] = getattr(record, key)


class _ContextFilter(logging.Filter):
    """Inject default context fields into every log record if missing."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name
        self._environment = os.getenv("ENVIRONMENT", "development")
        # Prefer ENV HOSTNAME over socket hostname for consistency in containers
        self._host = os.getenv("HOSTNAME", socket.gethostname())
        self._version = os.getenv("APP_VERSION", None)

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self._service
        if not hasattr(record, "environment"):
            record.environment = self._environment
        if not hasattr(record, "host"):
            record.host = self._host
        if self._version and not hasattr(record, "version"):
            record.version = self._version
        return True


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    service_name: str = "boardthreads",
) -> None:
    """Set up console logging for the thread view service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format - 'json' or 'text'
        service_name: Service name injected into every record
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    for existing in list(root_logger.filters):
        if isinstance(existing, _ContextFilter):
            root_logger.removeFilter(existing)

    context_filter = _ContextFilter(service_name)
    root_logger.addFilter(context_filter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    # Handler-level filter so records from child loggers get context too
    console_handler.addFilter(context_filter)

    if log_format == "json":
        console_handler.setFormatter(
            CustomJsonFormatter(
                "%(timestamp)s %(level)s %(logger)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    else:
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.addHandler(console_handler)

    root_logger.info(
        "Logging configured",
        extra={
            "level": level,
            "format": log_format,
            "service": service_name,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for a module.

    Args:
        name: Logger name (usually __name__ from calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class _BoardLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges per-call extra fields with its own."""

    def process(self, msg, kwargs):  # type: ignore[no-untyped-def]
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def board_logger(
    logger: logging.Logger, collection_id: str, build_id: int | None = None
) -> logging.LoggerAdapter:
    """Create a logger adapter carrying the board (and build) identifiers.

    Args:
        logger: Base logger instance
        collection_id: Board the log lines refer to
        build_id: Optional scheduler-assigned build id

    Returns:
        LoggerAdapter with collection_id/build_id in extra fields
    """
    extra: dict[str, object] = {"collection_id": collection_id}
    if build_id is not None:
        extra["build_id"] = build_id
    return _BoardLoggerAdapter(logger, extra)
