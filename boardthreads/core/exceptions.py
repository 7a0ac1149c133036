"""Custom exception types for thread reconstruction.

Every fault raised inside this package is recovered locally (skip-and-continue)
except cancellation, which unwinds a superseded build without delivering it.
"""

from typing import Optional


class ThreadViewError(Exception):
    """Base exception for all thread view errors."""

    def __init__(  # noqa: B042
        self,
        message: str,
        *,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize error with message and optional correlation id."""
        super().__init__(message)
        self.correlation_id = correlation_id


class StoreReadError(ThreadViewError):
    """Record store read failed.

    Raised (and caught) when:
    - Streaming a board window fails part way
    - Fetching a single ancestor record by id fails

    The caller treats the failure as "no more data" / "not found".
    """

    def __init__(  # noqa: B042
        self,
        message: str,
        collection_id: str,
        record_id: Optional[str] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize store read error.

        Args:
            message: Error message
            collection_id: Board whose store query failed
            record_id: Record id for by-id fetches, None for window streams
            correlation_id: Optional correlation ID for tracing
        """
        super().__init__(message, correlation_id=correlation_id)
        self.collection_id = collection_id
        self.record_id = record_id


class MalformedRecordError(ThreadViewError):
    """Record carries an unusable ancestor reference.

    Raised when an ancestor id is null or empty where a value was expected.
    Only the affected record is skipped during attachment.
    """

    def __init__(  # noqa: B042
        self,
        message: str,
        record_id: Optional[str],
        position: Optional[int] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize malformed record error.

        Args:
            message: Error message
            record_id: Id of the record with the broken ancestor chain
            position: Index of the bad entry within the ancestor chain
            correlation_id: Optional correlation ID for tracing
        """
        super().__init__(message, correlation_id=correlation_id)
        self.record_id = record_id
        self.position = position


class BuildCancelledError(ThreadViewError):
    """A thread build was superseded by a newer request.

    Not a user-facing error: the scheduler discards the run silently.
    """

    def __init__(  # noqa: B042
        self,
        message: str,
        collection_id: str,
        build_id: Optional[int] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize cancellation error.

        Args:
            message: Error message
            collection_id: Board of the cancelled build
            build_id: Scheduler-assigned id of the cancelled build
            correlation_id: Optional correlation ID for tracing
        """
        super().__init__(message, correlation_id=correlation_id)
        self.collection_id = collection_id
        self.build_id = build_id


class SchedulerClosedError(ThreadViewError):
    """Rebuild requested after the update scheduler was closed."""
