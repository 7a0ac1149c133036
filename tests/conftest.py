"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import pytest

from boardthreads.models.schemas import Record, SenderIdentity, TrustState


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test wiring all components"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")


RecordFactory = Callable[..., Record]


@pytest.fixture
def make_record() -> RecordFactory:
    """Factory for records inside the default display window.

    Each call is one minute newer than the previous one unless `minutes_ago`
    is given, so records stream in creation order.
    """
    base = datetime.now(timezone.utc) - timedelta(hours=1)
    counter = {"n": 0}

    def _make(
        record_id: Optional[str],
        ancestors: Iterable[Optional[str]] = (),
        *,
        collection_id: str = "board",
        minutes_ago: Optional[int] = None,
        sender_count: Optional[int] = None,
        **fields,
    ) -> Record:
        counter["n"] += 1
        if minutes_ago is None:
            timestamp = base + timedelta(minutes=counter["n"])
        else:
            timestamp = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
        sender = None
        if sender_count is not None:
            sender = SenderIdentity(name="alice", received_message_count=sender_count)
        fields.setdefault("trust", TrustState.NEUTRAL)
        fields.setdefault("subject", f"subject {record_id}")
        return Record(
            id=record_id,
            collection_id=collection_id,
            timestamp=timestamp,
            ancestors=list(ancestors),
            sender=sender,
            **fields,
        )

    return _make
