"""Shared fixtures for the screentally test suite."""

from __future__ import annotations

import logging
from typing import Callable, Iterator

import pytest

from screentally.core.types import EventSource, EventType, RawEvent
from screentally.storage.sqlite import SqliteStore

SAMPLE_DATE = "2025-06-15"
# 2025-06-15T00:00:00Z
DAY_START_MS = 1_749_945_600_000
DAY_END_MS = DAY_START_MS + 86_400_000 - 1


@pytest.fixture()
def sample_date() -> str:
    return SAMPLE_DATE


@pytest.fixture()
def day_start_ms() -> int:
    return DAY_START_MS


@pytest.fixture()
def make_event() -> Callable[..., RawEvent]:
    """Factory for :class:`RawEvent` with sample-day defaults.

    ``offset_ms`` is relative to the start of the sample day.
    """

    def _make(
        event_type: EventType,
        package_name: str,
        offset_ms: int,
        *,
        value: int | None = None,
        date_string: str = SAMPLE_DATE,
        source: EventSource = EventSource.SYSTEM,
    ) -> RawEvent:
        return RawEvent(
            package_name=package_name,
            event_type=event_type,
            timestamp_ms=DAY_START_MS + offset_ms,
            date_string=date_string,
            source=source,
            value=value,
        )

    return _make


@pytest.fixture()
def store() -> Iterator[SqliteStore]:
    """In-memory store whose "today" is the sample day (UTC)."""
    s = SqliteStore(":memory:", tz="UTC", today=lambda: SAMPLE_DATE)
    yield s
    s.close()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo handlers and levels installed by CLI runs."""
    pkg_logger = logging.getLogger("screentally")
    handlers, level = list(pkg_logger.handlers), pkg_logger.level
    yield
    pkg_logger.handlers[:] = handlers
    pkg_logger.setLevel(level)
