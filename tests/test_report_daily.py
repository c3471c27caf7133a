"""Tests for daily aggregation and the replace-style daily pipeline.

Covers:
- usage records: significance floor, active <= usage, opens, notifications
- device summary totals and unlock window
- filter exclusion across every output
- idempotent re-runs
- empty day clears previously persisted rows
- fetch and write failures leave prior state intact
"""

from __future__ import annotations

from typing import Callable

import pytest

from screentally.core.config import AggregationSettings
from screentally.core.defaults import DEFAULT_OWN_PACKAGE, SYSTEM_SHELL_PACKAGE
from screentally.core.types import AppMetadata, DailyDeviceSummary, EventType, RawEvent
from screentally.report.daily import DailyPipeline, aggregate_day
from screentally.storage.sqlite import SqliteStore, StoreError

SAMPLE_DATE = "2025-06-15"
DAY_START_MS = 1_749_945_600_000
DAY_END_MS = DAY_START_MS + 86_400_000 - 1

Make = Callable[..., RawEvent]


@pytest.fixture()
def day_events(make_event: Make) -> list[RawEvent]:
    """A small realistic day for two visible apps and some noise."""
    return [
        make_event(EventType.USER_PRESENT, "android", 1_000),
        # com.feed: 60 s in foreground, scrolled and clicked
        make_event(EventType.ACTIVITY_RESUMED, "com.feed", 2_000),
        make_event(EventType.SCROLL, "com.feed", 3_000, value=100),
        make_event(EventType.SCROLL, "com.feed", 6_000, value=50),
        make_event(EventType.VIEW_CLICKED, "com.feed", 10_000),
        make_event(EventType.ACTIVITY_PAUSED, "com.feed", 62_000),
        # com.chat: fast switch right after, then screen off
        make_event(EventType.ACTIVITY_RESUMED, "com.chat", 62_000),
        make_event(EventType.TYPING, "com.chat", 63_000),
        make_event(EventType.NOTIFICATION_POSTED, "com.chat", 64_000),
        make_event(EventType.SCREEN_NON_INTERACTIVE, "android", 72_000),
        # com.blip: too short to be significant
        make_event(EventType.ACTIVITY_RESUMED, "com.blip", 80_000),
        make_event(EventType.ACTIVITY_PAUSED, "com.blip", 80_500),
        make_event(EventType.KEYGUARD_HIDDEN, "android", 90_000),
    ]


class TestAggregateDay:
    def test_usage_records(self, day_events: list[RawEvent]) -> None:
        result = aggregate_day(day_events, frozenset(), SAMPLE_DATE, DAY_END_MS)
        records = {r.package_name: r for r in result.usage_records}

        assert sorted(records) == ["com.chat", "com.feed"]
        feed = records["com.feed"]
        assert feed.usage_time_millis == 59_999
        assert feed.active_time_millis == 5_000
        assert feed.app_open_count == 1

        chat = records["com.chat"]
        assert chat.usage_time_millis == 10_000
        assert chat.active_time_millis == 5_000
        assert chat.notification_count == 1

    def test_records_sorted_by_package(self, day_events: list[RawEvent]) -> None:
        result = aggregate_day(day_events, frozenset(), SAMPLE_DATE, DAY_END_MS)
        names = [r.package_name for r in result.usage_records]
        assert names == sorted(names)

    def test_scroll_sessions(self, day_events: list[RawEvent]) -> None:
        result = aggregate_day(day_events, frozenset(), SAMPLE_DATE, DAY_END_MS)
        (session,) = result.scroll_sessions
        assert session.scroll_amount == 150
        assert session.end_time - session.start_time == 3_000

    def test_device_summary(self, day_events: list[RawEvent]) -> None:
        summary = aggregate_day(day_events, frozenset(), SAMPLE_DATE, DAY_END_MS).device_summary
        assert summary.total_usage_time_millis == 59_999 + 10_000
        assert summary.total_unlock_count == 2
        assert summary.first_unlock_timestamp == DAY_START_MS + 1_000
        assert summary.last_unlock_timestamp == DAY_START_MS + 90_000
        assert summary.total_notification_count == 1
        # com.blip's open counts even though its usage record is dropped.
        assert summary.total_app_opens == 3

    def test_watermark_is_newest_event(self, day_events: list[RawEvent]) -> None:
        result = aggregate_day(day_events, frozenset(), SAMPLE_DATE, DAY_END_MS)
        assert result.device_summary.last_updated_timestamp == DAY_START_MS + 90_000
        assert {r.last_updated_timestamp for r in result.usage_records} == {DAY_START_MS + 90_000}

    def test_significance_floor_configurable(self, day_events: list[RawEvent]) -> None:
        settings = AggregationSettings(min_significant_usage_ms=0)
        result = aggregate_day(day_events, frozenset(), SAMPLE_DATE, DAY_END_MS, settings=settings)
        assert "com.blip" in {r.package_name for r in result.usage_records}

    def test_active_never_exceeds_usage(self, day_events: list[RawEvent], make_event: Make) -> None:
        burst = [make_event(EventType.TYPING, "com.chat", 62_000 + i * 100) for i in range(200)]
        result = aggregate_day(day_events + burst, frozenset(), SAMPLE_DATE, DAY_END_MS)
        for record in result.usage_records:
            assert record.active_time_millis <= record.usage_time_millis

    def test_empty_input(self) -> None:
        result = aggregate_day([], frozenset(), SAMPLE_DATE, DAY_END_MS)
        assert result.usage_records == []
        assert result.scroll_sessions == []
        assert result.device_summary == DailyDeviceSummary(date_string=SAMPLE_DATE)


class TestFilterExclusion:
    def test_filtered_package_contributes_nothing(
        self, day_events: list[RawEvent], make_event: Make,
    ) -> None:
        noisy = [
            make_event(EventType.ACTIVITY_RESUMED, "com.hidden", 100_000),
            *(make_event(EventType.SCROLL, "com.hidden", 100_000 + i, value=1_000) for i in range(50)),
            *(make_event(EventType.NOTIFICATION_POSTED, "com.hidden", 101_000 + i) for i in range(50)),
            make_event(EventType.ACTIVITY_PAUSED, "com.hidden", 200_000),
        ]
        baseline = aggregate_day(day_events, frozenset({"com.hidden"}), SAMPLE_DATE, DAY_END_MS)
        result = aggregate_day(day_events + noisy, frozenset({"com.hidden"}), SAMPLE_DATE, DAY_END_MS)

        assert "com.hidden" not in {r.package_name for r in result.usage_records}
        assert all(s.package_name != "com.hidden" for s in result.scroll_sessions)
        assert result.usage_records == [
            r.model_copy(update={"last_updated_timestamp": result.device_summary.last_updated_timestamp})
            for r in baseline.usage_records
        ]
        assert result.device_summary.total_notification_count == baseline.device_summary.total_notification_count
        assert result.device_summary.total_usage_time_millis == baseline.device_summary.total_usage_time_millis

    def test_unlocks_follow_filter_by_default(self, make_event: Make) -> None:
        events = [make_event(EventType.USER_PRESENT, SYSTEM_SHELL_PACKAGE, 1_000)]
        filter_set = frozenset({SYSTEM_SHELL_PACKAGE})
        assert aggregate_day(events, filter_set, SAMPLE_DATE, DAY_END_MS).device_summary.total_unlock_count == 0

        settings = AggregationSettings(unlocks_respect_filter=False)
        summary = aggregate_day(events, filter_set, SAMPLE_DATE, DAY_END_MS, settings=settings).device_summary
        assert summary.total_unlock_count == 1


@pytest.fixture()
def pipeline(store: SqliteStore) -> DailyPipeline:
    return DailyPipeline(store, store, store, tz="UTC")


class TestDailyPipeline:
    def test_persists_all_three_tables(
        self, store: SqliteStore, pipeline: DailyPipeline, day_events: list[RawEvent],
    ) -> None:
        store.insert_events(day_events)
        result = pipeline.process_date(SAMPLE_DATE)

        assert result is not None
        assert store.usage_records_for_date(SAMPLE_DATE) == result.usage_records
        assert store.scroll_sessions_for_date(SAMPLE_DATE) == result.scroll_sessions
        assert store.device_summary_for_date(SAMPLE_DATE) == result.device_summary

    def test_idempotent(
        self, store: SqliteStore, pipeline: DailyPipeline, day_events: list[RawEvent],
    ) -> None:
        store.insert_events(day_events)
        pipeline.process_date(SAMPLE_DATE)
        first = (
            store.usage_records_for_date(SAMPLE_DATE),
            store.scroll_sessions_for_date(SAMPLE_DATE),
            store.device_summary_for_date(SAMPLE_DATE),
        )
        pipeline.process_date(SAMPLE_DATE)
        second = (
            store.usage_records_for_date(SAMPLE_DATE),
            store.scroll_sessions_for_date(SAMPLE_DATE),
            store.device_summary_for_date(SAMPLE_DATE),
        )
        assert first == second

    def test_rerun_leaves_stored_rows_byte_identical(
        self, store: SqliteStore, pipeline: DailyPipeline, day_events: list[RawEvent],
    ) -> None:
        def _dump() -> dict[str, list[tuple]]:
            return {
                table: [tuple(r) for r in store._query(f"SELECT * FROM {table} ORDER BY 1, 2, 3")]
                for table in ("scroll_sessions", "daily_app_usage", "daily_device_summary")
            }

        store.insert_events(day_events)
        pipeline.process_date(SAMPLE_DATE)
        first = _dump()
        pipeline.process_date(SAMPLE_DATE)
        pipeline.process_date(SAMPLE_DATE)

        assert first["scroll_sessions"]
        assert _dump() == first

    def test_empty_day_clears_previous_rows(
        self, store: SqliteStore, pipeline: DailyPipeline, day_events: list[RawEvent],
    ) -> None:
        store.insert_events(day_events)
        pipeline.process_date(SAMPLE_DATE)
        store.delete_events_for_period(DAY_START_MS, DAY_END_MS)

        assert pipeline.process_date(SAMPLE_DATE) is None
        assert store.usage_records_for_date(SAMPLE_DATE) == []
        assert store.scroll_sessions_for_date(SAMPLE_DATE) == []
        assert store.device_summary_for_date(SAMPLE_DATE) is None

    def test_metadata_feeds_filter_set(
        self, store: SqliteStore, pipeline: DailyPipeline, day_events: list[RawEvent],
    ) -> None:
        store.upsert_metadata([AppMetadata(package_name="com.chat", user_hides_override=True)])
        store.insert_events(day_events)
        pipeline.process_date(SAMPLE_DATE)
        assert [r.package_name for r in store.usage_records_for_date(SAMPLE_DATE)] == ["com.feed"]

    def test_own_package_always_filtered(
        self, store: SqliteStore, pipeline: DailyPipeline, make_event: Make,
    ) -> None:
        store.insert_events([
            make_event(EventType.ACTIVITY_RESUMED, DEFAULT_OWN_PACKAGE, 0),
            make_event(EventType.ACTIVITY_PAUSED, DEFAULT_OWN_PACKAGE, 30_000),
        ])
        result = pipeline.process_date(SAMPLE_DATE)
        assert result is not None
        assert result.usage_records == []

    def test_other_days_untouched(
        self, store: SqliteStore, pipeline: DailyPipeline, make_event: Make,
    ) -> None:
        store.insert_events([
            make_event(EventType.ACTIVITY_RESUMED, "com.a", -60_000, date_string="2025-06-14"),
            make_event(EventType.ACTIVITY_PAUSED, "com.a", -10_000, date_string="2025-06-14"),
        ])
        pipeline.process_date("2025-06-14")
        pipeline.process_date(SAMPLE_DATE)
        assert len(store.usage_records_for_date("2025-06-14")) == 1

    def test_fetch_failure_writes_nothing(self, store: SqliteStore) -> None:
        class BrokenEvents:
            def events_for_period(self, start_ms: int, end_ms: int) -> list[RawEvent]:
                raise OSError("collector unavailable")

        store.replace_device_summary_for_date(SAMPLE_DATE, DailyDeviceSummary(date_string=SAMPLE_DATE))
        pipeline = DailyPipeline(BrokenEvents(), store, store)
        with pytest.raises(OSError, match="collector unavailable"):
            pipeline.process_date(SAMPLE_DATE)
        assert store.device_summary_for_date(SAMPLE_DATE) is not None

    def test_write_failure_rolls_back_date(
        self,
        store: SqliteStore,
        pipeline: DailyPipeline,
        day_events: list[RawEvent],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        store.insert_events(day_events)
        pipeline.process_date(SAMPLE_DATE)
        before_usage = store.usage_records_for_date(SAMPLE_DATE)
        before_summary = store.device_summary_for_date(SAMPLE_DATE)

        def _fail(date_string: str, summary: object) -> None:
            raise StoreError("disk full")

        monkeypatch.setattr(store, "replace_device_summary_for_date", _fail)
        with pytest.raises(StoreError):
            pipeline.process_date(SAMPLE_DATE)
        monkeypatch.undo()

        assert store.usage_records_for_date(SAMPLE_DATE) == before_usage
        assert store.device_summary_for_date(SAMPLE_DATE) == before_summary
