"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import io

import pytest

from fakes import StateRecorder
from spectacular.adapters import MemoryStore
from spectacular.utils.logging import configure_logging


@pytest.fixture(autouse=True)
def quiet_logging():
    """Send log output to a throwaway buffer for every test."""
    configure_logging(level="debug", format_type="json", stream=io.StringIO())
    yield


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def recorder() -> StateRecorder:
    return StateRecorder()
