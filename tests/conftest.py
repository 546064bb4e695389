"""
Shared pytest fixtures for httpbridge tests.

Logging is configured once per session so structlog loggers are bound
before any CLI test swaps the standard streams. Every test runs in its own
working directory with no ``HTTPBRIDGE_*`` variables, so a developer's
``.env`` or shell environment never leaks into settings.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime

import pytest

from httpbridge.core.config import clear_settings_cache
from httpbridge.core.logging import configure_logging
from httpbridge.core.records import MappingRecord
from httpbridge.templating.clock import PollingClock, TimeTokenResolver


def pytest_configure(config: pytest.Config) -> None:
    configure_logging(level="DEBUG", json_format=True)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("HTTPBRIDGE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


# ── Deterministic time ───────────────────────────────────────────────────

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)


@pytest.fixture()
def fixed_now():
    return lambda: FIXED_NOW


@pytest.fixture()
def seconds_tokens(fixed_now):
    """Time tokens with the window starting at epoch 1000, seconds unit."""
    return TimeTokenResolver(PollingClock.from_epoch(1000), now=fixed_now)


@pytest.fixture()
def record():
    return MappingRecord.from_dict({"id": "42", "name": "alpha"})
