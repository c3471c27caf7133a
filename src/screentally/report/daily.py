"""Daily aggregation and replace-style persistence.

:func:`aggregate_day` is the pure part: given one day's events and the
filter set it derives scroll sessions, per-app usage records and the
device summary.  Identical input always yields identical output, which
lets the live projector reuse it outside any transaction.

:class:`DailyPipeline` wires it to the storage ports and replaces all
derived rows of a date inside a single transaction.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from pydantic import BaseModel, Field

from screentally.core.config import AggregationSettings
from screentally.core.defaults import DEFAULT_TIMEZONE
from screentally.core.time import day_bounds
from screentally.core.types import (
    DailyAppUsageRecord,
    DailyDeviceSummary,
    RawEvent,
    ScrollSession,
)
from screentally.features.active_time import UsageTotals, aggregate_usage
from screentally.features.counters import aggregate_unlocks, count_app_opens, count_notifications
from screentally.features.filters import load_filter_set
from screentally.features.foreground import reconstruct_foreground
from screentally.features.scroll import merge_scroll_sessions
from screentally.storage.ports import DerivedStore, EventQuery, MetadataRepository

logger = logging.getLogger(__name__)

DayBoundsResolver = Callable[[str], tuple[int, int]]


class DailyAggregation(BaseModel, frozen=True):
    """Everything derived for one calendar day."""

    date_string: str = Field(description="Calendar day (YYYY-MM-DD).")
    scroll_sessions: list[ScrollSession] = Field(default_factory=list)
    usage_records: list[DailyAppUsageRecord] = Field(default_factory=list)
    device_summary: DailyDeviceSummary


def aggregate_day(
    events: Sequence[RawEvent],
    filter_set: frozenset[str],
    date_string: str,
    period_end_ms: int,
    *,
    settings: AggregationSettings | None = None,
) -> DailyAggregation:
    """Derive scroll sessions, usage records and the device summary.

    Args:
        events: All events of the day, unfiltered, in any order.
        filter_set: Packages excluded from every output.
        date_string: The day being aggregated.
        period_end_ms: Close time for foreground runs still open.
        settings: Thresholds and switches; defaults when ``None``.

    Returns:
        A :class:`DailyAggregation`.  Usage records are sorted by package
        and include only packages whose usage meets the significance
        threshold.  ``last_updated_timestamp`` on every row is the
        newest event timestamp in *events* (0 when empty).
    """
    settings = settings or AggregationSettings()
    watermark = max((e.timestamp_ms for e in events), default=0)

    scroll_sessions = merge_scroll_sessions(events, filter_set, merge_gap_ms=settings.merge_gap_ms)

    kept = [e for e in events if e.package_name not in filter_set]
    intervals = reconstruct_foreground(kept, period_end_ms)
    usage = aggregate_usage(intervals, kept, active_window_ms=settings.active_window_ms)
    opens = count_app_opens(kept, debounce_ms=settings.open_debounce_ms)
    notifications = count_notifications(kept)
    unlocks = aggregate_unlocks(kept if settings.unlocks_respect_filter else events)

    records: list[DailyAppUsageRecord] = []
    for pkg in sorted(usage.keys() | opens.keys() | notifications.keys()):
        totals = usage.get(pkg, UsageTotals())
        if totals.usage_ms < settings.min_significant_usage_ms:
            continue
        records.append(DailyAppUsageRecord(
            package_name=pkg,
            date_string=date_string,
            usage_time_millis=totals.usage_ms,
            active_time_millis=totals.active_ms,
            app_open_count=opens.get(pkg, 0),
            notification_count=notifications.get(pkg, 0),
            last_updated_timestamp=watermark,
        ))

    summary = DailyDeviceSummary(
        date_string=date_string,
        total_usage_time_millis=sum(r.usage_time_millis for r in records),
        total_unlock_count=unlocks.count,
        first_unlock_timestamp=unlocks.first_timestamp,
        last_unlock_timestamp=unlocks.last_timestamp,
        total_notification_count=sum(notifications.values()),
        total_app_opens=sum(opens.values()),
        last_updated_timestamp=watermark,
    )

    return DailyAggregation(
        date_string=date_string,
        scroll_sessions=scroll_sessions,
        usage_records=records,
        device_summary=summary,
    )


class DailyPipeline:
    """Fetch, aggregate and persist one calendar day at a time.

    Callers must not run two ``process_date`` calls for the same date
    concurrently; the replace transaction is the only write protection.

    Args:
        events: Raw event query port.
        store: Derived-row store; the only component that is written to.
        metadata: App metadata source for the filter set.
        settings: Aggregation thresholds.
        tz: Zone used to resolve day bounds when *bounds* is not given.
        bounds: Override for ``date_string -> (start_ms, end_ms)``.
    """

    def __init__(
        self,
        events: EventQuery,
        store: DerivedStore,
        metadata: MetadataRepository,
        *,
        settings: AggregationSettings | None = None,
        tz: str = DEFAULT_TIMEZONE,
        bounds: DayBoundsResolver | None = None,
    ) -> None:
        self._events = events
        self._store = store
        self._metadata = metadata
        self._settings = settings or AggregationSettings()
        self._bounds = bounds or (lambda d: day_bounds(d, tz))

    @property
    def settings(self) -> AggregationSettings:
        return self._settings

    def filter_set(self) -> frozenset[str]:
        return load_filter_set(self._metadata, own_package=self._settings.own_package)

    def aggregate(self, events: Sequence[RawEvent], date_string: str) -> DailyAggregation:
        """Run the pure aggregation for *date_string* without persisting."""
        _, end_ms = self._bounds(date_string)
        return aggregate_day(
            events, self.filter_set(), date_string, end_ms, settings=self._settings,
        )

    def process_date(self, date_string: str) -> DailyAggregation | None:
        """Recompute and replace every derived row for *date_string*.

        A day without events has its derived rows deleted and returns
        ``None``.  Errors from the event query propagate before anything
        is written; errors during the replace roll the whole date back.
        """
        start_ms, end_ms = self._bounds(date_string)
        events = self._events.events_for_period(start_ms, end_ms)

        if not events:
            logger.info("No events for %s, clearing derived rows", date_string)
            self._store.clear_date(date_string)
            return None

        result = self.aggregate(events, date_string)
        with self._store.transaction():
            self._store.replace_usage_records_for_date(date_string, result.usage_records)
            self._store.replace_scroll_sessions_for_date(date_string, result.scroll_sessions)
            self._store.replace_device_summary_for_date(date_string, result.device_summary)

        logger.info(
            "Processed %s: %d events, %d scroll sessions, %d usage records",
            date_string, len(events), len(result.scroll_sessions), len(result.usage_records),
        )
        return result
