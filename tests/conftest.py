"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest

from support import RecordingSink, RecordingSleep


@pytest.fixture(autouse=True)
def _clean_supervisor_env(monkeypatch):
    """Keep DBQ_SUPERVISOR_* from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("DBQ_SUPERVISOR_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def recording_sink() -> RecordingSink:
    return RecordingSink()
