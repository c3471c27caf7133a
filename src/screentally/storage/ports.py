"""Storage and event-source ports.

The aggregation core talks to persistence only through these
protocols.  Any object exposing the listed methods satisfies them; no
inheritance required.  :class:`~screentally.storage.sqlite.SqliteStore`
implements all of them.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Callable, Protocol, Sequence, runtime_checkable

from screentally.core.types import (
    AppMetadata,
    DailyAppUsageRecord,
    DailyDeviceSummary,
    RawEvent,
    ScrollSession,
)

EventSnapshot = tuple[RawEvent, ...]
SnapshotCallback = Callable[[EventSnapshot], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class EventQuery(Protocol):
    """Read access to stored raw events."""

    def events_for_period(self, start_ms: int, end_ms: int) -> list[RawEvent]:
        """All events with ``start_ms <= timestamp_ms <= end_ms``, oldest first."""
        ...


@runtime_checkable
class EventSink(Protocol):
    def insert_events(self, events: Sequence[RawEvent]) -> int: ...


@runtime_checkable
class EventFeed(Protocol):
    """Push-style delivery of the current day's event set.

    Each callback receives a complete, immutable snapshot; a snapshot
    is never a delta.
    """

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe: ...


@runtime_checkable
class MetadataRepository(Protocol):
    def all_metadata(self) -> list[AppMetadata]: ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Checkpoint port used at the sync boundary only."""

    def get_int(self, key: str, default: int = 0) -> int: ...

    def set_int(self, key: str, value: int) -> None: ...


@runtime_checkable
class DerivedStore(Protocol):
    """Sole write path for derived daily rows.

    Each ``replace_*`` call is a delete-then-insert for one date.  Called
    inside :meth:`transaction` the calls join that transaction, so the
    whole group commits or rolls back together.
    """

    def transaction(self) -> AbstractContextManager[None]: ...

    def replace_scroll_sessions_for_date(
        self, date_string: str, sessions: Sequence[ScrollSession],
    ) -> None: ...

    def replace_usage_records_for_date(
        self, date_string: str, records: Sequence[DailyAppUsageRecord],
    ) -> None: ...

    def replace_device_summary_for_date(
        self, date_string: str, summary: DailyDeviceSummary | None,
    ) -> None: ...

    def clear_date(self, date_string: str) -> None: ...

    def scroll_sessions_for_date(self, date_string: str) -> list[ScrollSession]: ...

    def usage_records_for_date(self, date_string: str) -> list[DailyAppUsageRecord]: ...

    def device_summary_for_date(self, date_string: str) -> DailyDeviceSummary | None: ...
