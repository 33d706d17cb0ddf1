"""
Shared pytest fixtures and configuration for MutaStore tests.
"""

import pytest

from mutastore import create_store
from mutastore.bridge import ProviderContext
from mutastore.config import reset_settings

_ENV_VARS = ("APP_ENV", "MUTASTORE_APP_ENV", "MUTASTORE_ENABLE_PATCHES", "MUTASTORE_LOG_LEVEL")


@pytest.fixture(autouse=True)
def reset_process_state(monkeypatch):
    """Reset settings and providers before each test to prevent state leakage."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    ProviderContext._reset_state()
    yield
    reset_settings()
    ProviderContext._reset_state()


@pytest.fixture
def counter_store():
    """Provide a fresh store holding ``{"count": 0}``."""
    return create_store({"count": 0})
