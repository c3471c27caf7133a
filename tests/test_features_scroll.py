"""Tests for scroll session merging.

Covers:
- merge gap boundary (inclusive)
- package switch closes a session
- filter set exclusion
- events without magnitude ignored, delta fallback used
- measured and inferred scrolls folded independently
- unsorted input and stable ordering of equal timestamps
"""

from __future__ import annotations

from screentally.core.types import EventSource, EventType, RawEvent, ScrollDataType
from screentally.features.scroll import merge_scroll_sessions

_DAY = "2025-06-15"


def _scroll(pkg: str, ts: int, value: int | None = 10, **kw) -> RawEvent:
    return RawEvent(
        package_name=pkg,
        event_type=kw.pop("event_type", EventType.SCROLL),
        timestamp_ms=ts,
        date_string=_DAY,
        source=EventSource.CAPTURE,
        value=value,
        **kw,
    )


class TestMergeGap:
    def test_chain_within_gap_merges(self) -> None:
        events = [_scroll("A", 0), _scroll("A", 4_000), _scroll("A", 9_000)]
        sessions = merge_scroll_sessions(events)
        assert len(sessions) == 1
        assert (sessions[0].start_time, sessions[0].end_time) == (0, 9_000)
        assert sessions[0].scroll_amount == 30

    def test_gap_just_over_threshold_splits(self) -> None:
        events = [_scroll("A", 0), _scroll("A", 5_001)]
        sessions = merge_scroll_sessions(events)
        assert [(s.start_time, s.end_time) for s in sessions] == [(0, 0), (5_001, 5_001)]

    def test_gap_equal_to_threshold_merges(self) -> None:
        sessions = merge_scroll_sessions([_scroll("A", 0), _scroll("A", 5_000)])
        assert len(sessions) == 1

    def test_gap_measured_from_last_event_not_session_start(self) -> None:
        events = [_scroll("A", 0), _scroll("A", 4_000), _scroll("A", 8_500), _scroll("A", 14_000)]
        sessions = merge_scroll_sessions(events)
        assert [(s.start_time, s.end_time) for s in sessions] == [(0, 8_500), (14_000, 14_000)]

    def test_custom_gap(self) -> None:
        events = [_scroll("A", 0), _scroll("A", 4_000)]
        assert len(merge_scroll_sessions(events, merge_gap_ms=3_000)) == 2


class TestPackageSwitch:
    def test_interleaved_packages_split(self) -> None:
        events = [_scroll("A", 0), _scroll("B", 1_000), _scroll("A", 2_000)]
        sessions = merge_scroll_sessions(events)
        assert [s.package_name for s in sessions] == ["A", "B", "A"]
        assert all(s.scroll_amount == 10 for s in sessions)

    def test_session_fields(self) -> None:
        (session,) = merge_scroll_sessions([_scroll("A", 100, value=7)])
        assert session.date_string == _DAY
        assert session.end_reason == "PROCESSED"
        assert session.data_type == ScrollDataType.MEASURED


class TestInputHandling:
    def test_empty(self) -> None:
        assert merge_scroll_sessions([]) == []

    def test_filtered_packages_excluded(self) -> None:
        events = [_scroll("A", 0), _scroll("hidden", 1_000), _scroll("A", 2_000)]
        sessions = merge_scroll_sessions(events, frozenset({"hidden"}))
        assert len(sessions) == 1
        assert sessions[0].scroll_amount == 20

    def test_all_filtered_yields_nothing(self) -> None:
        assert merge_scroll_sessions([_scroll("A", 0)], {"A"}) == []

    def test_non_scroll_events_ignored(self) -> None:
        other = RawEvent(
            package_name="A", event_type=EventType.VIEW_CLICKED, timestamp_ms=500,
            date_string=_DAY, source=EventSource.CAPTURE, value=99,
        )
        sessions = merge_scroll_sessions([_scroll("A", 0), other])
        assert sessions[0].scroll_amount == 10

    def test_event_without_magnitude_ignored(self) -> None:
        events = [_scroll("A", 0), _scroll("A", 1_000, value=None)]
        (session,) = merge_scroll_sessions(events)
        assert session.end_time == 0

    def test_delta_fallback(self) -> None:
        events = [_scroll("A", 0, value=None, scroll_delta_y=-30)]
        assert merge_scroll_sessions(events)[0].scroll_amount == 30

    def test_unsorted_input(self) -> None:
        events = [_scroll("A", 4_000), _scroll("A", 0), _scroll("A", 2_000)]
        (session,) = merge_scroll_sessions(events)
        assert (session.start_time, session.end_time) == (0, 4_000)

    def test_equal_timestamps_keep_encounter_order(self) -> None:
        events = [_scroll("A", 1_000), _scroll("B", 1_000)]
        sessions = merge_scroll_sessions(events)
        assert [s.package_name for s in sessions] == ["A", "B"]


class TestInferredScrolls:
    def test_inferred_never_merges_with_measured(self) -> None:
        events = [
            _scroll("A", 0),
            _scroll("A", 1_000, value=5, event_type=EventType.SCROLL_INFERRED),
            _scroll("A", 2_000),
        ]
        sessions = merge_scroll_sessions(events)
        measured = [s for s in sessions if s.data_type == ScrollDataType.MEASURED]
        inferred = [s for s in sessions if s.data_type == ScrollDataType.INFERRED]
        assert [(s.start_time, s.end_time, s.scroll_amount) for s in measured] == [(0, 2_000, 20)]
        assert [(s.start_time, s.scroll_amount) for s in inferred] == [(1_000, 5)]

    def test_output_sorted_by_start(self) -> None:
        events = [
            _scroll("A", 3_000),
            _scroll("B", 1_000, event_type=EventType.SCROLL_INFERRED),
        ]
        assert [s.start_time for s in merge_scroll_sessions(events)] == [1_000, 3_000]
