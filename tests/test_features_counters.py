"""Tests for debounced app opens, notification counts and unlock stats."""

from __future__ import annotations

from screentally.core.types import EventSource, EventType, RawEvent
from screentally.features.counters import (
    UnlockStats,
    aggregate_unlocks,
    count_app_opens,
    count_notifications,
)


def _ev(event_type: EventType, pkg: str, ts: int) -> RawEvent:
    return RawEvent(
        package_name=pkg, event_type=event_type, timestamp_ms=ts,
        date_string="2025-06-15", source=EventSource.SYSTEM,
    )


def _resume(pkg: str, ts: int) -> RawEvent:
    return _ev(EventType.ACTIVITY_RESUMED, pkg, ts)


class TestCountAppOpens:
    def test_first_resume_counts(self) -> None:
        assert count_app_opens([_resume("A", 0)]) == {"A": 1}

    def test_resume_within_debounce_not_counted(self) -> None:
        assert count_app_opens([_resume("A", 0), _resume("A", 1_000)], debounce_ms=1_500) == {"A": 1}

    def test_gap_measured_from_last_seen_resume(self) -> None:
        events = [_resume("A", 0), _resume("A", 1_000), _resume("A", 2_000)]
        # 2000 - 1000 is within the window even though 2000 - 0 is not.
        assert count_app_opens(events, debounce_ms=1_500) == {"A": 1}

    def test_gap_beyond_debounce_counts(self) -> None:
        events = [_resume("A", 0), _resume("A", 1_000), _resume("A", 2_600)]
        assert count_app_opens(events, debounce_ms=1_500) == {"A": 2}

    def test_first_gap_past_window_after_last_seen(self) -> None:
        events = [_resume("A", 0), _resume("A", 1_000), _resume("A", 2_000), _resume("A", 3_501)]
        assert count_app_opens(events, debounce_ms=1_500) == {"A": 2}

    def test_gap_equal_to_debounce_not_counted(self) -> None:
        assert count_app_opens([_resume("A", 0), _resume("A", 1_500)], debounce_ms=1_500) == {"A": 1}

    def test_packages_debounced_independently(self) -> None:
        events = [_resume("A", 0), _resume("B", 100), _resume("A", 200)]
        assert count_app_opens(events) == {"A": 1, "B": 1}

    def test_rapid_burst_is_single_open(self) -> None:
        events = [_resume("A", t) for t in range(0, 10_000, 1_000)]
        assert count_app_opens(events, debounce_ms=1_500) == {"A": 1}

    def test_unsorted_input(self) -> None:
        events = [_resume("A", 5_000), _resume("A", 0)]
        assert count_app_opens(events) == {"A": 2}

    def test_other_event_types_ignored(self) -> None:
        assert count_app_opens([_ev(EventType.ACTIVITY_PAUSED, "A", 0)]) == {}


class TestCountNotifications:
    def test_grouped_by_package(self) -> None:
        events = [
            _ev(EventType.NOTIFICATION_POSTED, "A", 0),
            _ev(EventType.NOTIFICATION_POSTED, "A", 10),
            _ev(EventType.NOTIFICATION_POSTED, "B", 20),
            _ev(EventType.ACTIVITY_RESUMED, "B", 30),
        ]
        assert count_notifications(events) == {"A": 2, "B": 1}

    def test_empty(self) -> None:
        assert count_notifications([]) == {}


class TestAggregateUnlocks:
    def test_counts_present_and_keyguard_hidden(self) -> None:
        events = [
            _ev(EventType.KEYGUARD_HIDDEN, "android", 5_000),
            _ev(EventType.USER_PRESENT, "android", 1_000),
            _ev(EventType.USER_UNLOCKED, "android", 2_000),
            _ev(EventType.KEYGUARD_SHOWN, "android", 3_000),
        ]
        assert aggregate_unlocks(events) == UnlockStats(
            count=2, first_timestamp=1_000, last_timestamp=5_000,
        )

    def test_no_unlocks(self) -> None:
        stats = aggregate_unlocks([_resume("A", 0)])
        assert stats.count == 0
        assert stats.first_timestamp is None
        assert stats.last_timestamp is None
