"""Pytest configuration for unit tests."""

import pytest

from boardthreads.core.config import ThreadViewConfig


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Keep settings from the host environment out of ThreadViewConfig."""
    for name in ThreadViewConfig.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
        monkeypatch.delenv(name.lower(), raising=False)
    yield
