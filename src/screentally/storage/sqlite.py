"""SQLite reference implementation of every storage port.

One connection in autocommit mode is shared by all callers and guarded
by a re-entrant lock; :meth:`SqliteStore.transaction` issues explicit
``BEGIN IMMEDIATE`` / ``COMMIT`` / ``ROLLBACK`` so a group of writes is
all-or-nothing.  Nested ``transaction()`` blocks join the outermost one.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Sequence

from screentally.core.defaults import DEFAULT_TIMEZONE
from screentally.core.time import day_bounds, today_date_string
from screentally.core.types import (
    AppMetadata,
    DailyAppUsageRecord,
    DailyDeviceSummary,
    EventType,
    RawEvent,
    ScrollSession,
)
from screentally.storage.ports import EventSnapshot, SnapshotCallback, Unsubscribe

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS raw_events (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    package_name    TEXT NOT NULL,
    class_name      TEXT,
    event_type      TEXT NOT NULL,
    timestamp_ms    INTEGER NOT NULL,
    date_string     TEXT NOT NULL,
    source          TEXT NOT NULL,
    value           INTEGER,
    scroll_delta_x  INTEGER,
    scroll_delta_y  INTEGER
);

CREATE INDEX IF NOT EXISTS idx_raw_events_ts ON raw_events(timestamp_ms);

CREATE TABLE IF NOT EXISTS app_metadata (
    package_name         TEXT PRIMARY KEY,
    app_name             TEXT,
    is_user_visible      INTEGER NOT NULL DEFAULT 1,
    user_hides_override  INTEGER,
    is_installed         INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS scroll_sessions (
    package_name    TEXT NOT NULL,
    start_time      INTEGER NOT NULL,
    end_time        INTEGER NOT NULL,
    scroll_amount   INTEGER NOT NULL,
    date_string     TEXT NOT NULL,
    end_reason      TEXT NOT NULL,
    data_type       TEXT NOT NULL,
    PRIMARY KEY (date_string, package_name, start_time, data_type)
);

CREATE INDEX IF NOT EXISTS idx_scroll_sessions_date ON scroll_sessions(date_string);

CREATE TABLE IF NOT EXISTS daily_app_usage (
    package_name            TEXT NOT NULL,
    date_string             TEXT NOT NULL,
    usage_time_millis       INTEGER NOT NULL,
    active_time_millis      INTEGER NOT NULL,
    app_open_count          INTEGER NOT NULL,
    notification_count      INTEGER NOT NULL,
    last_updated_timestamp  INTEGER NOT NULL,
    PRIMARY KEY (package_name, date_string)
);

CREATE INDEX IF NOT EXISTS idx_daily_app_usage_date ON daily_app_usage(date_string);

CREATE TABLE IF NOT EXISTS daily_device_summary (
    date_string               TEXT PRIMARY KEY,
    total_usage_time_millis   INTEGER NOT NULL,
    total_unlock_count        INTEGER NOT NULL,
    first_unlock_timestamp    INTEGER,
    last_unlock_timestamp     INTEGER,
    total_notification_count  INTEGER NOT NULL,
    total_app_opens           INTEGER NOT NULL,
    last_updated_timestamp    INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS kv (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);
"""

_EVENT_COLUMNS = (
    "package_name", "class_name", "event_type", "timestamp_ms", "date_string",
    "source", "value", "scroll_delta_x", "scroll_delta_y",
)
_SESSION_COLUMNS = (
    "package_name", "start_time", "end_time", "scroll_amount", "date_string",
    "end_reason", "data_type",
)
_USAGE_COLUMNS = tuple(DailyAppUsageRecord.model_fields)
_SUMMARY_COLUMNS = tuple(DailyDeviceSummary.model_fields)
_METADATA_COLUMNS = tuple(AppMetadata.model_fields)


class StoreError(RuntimeError):
    """A storage write failed; the enclosing transaction was rolled back."""


def _insert_sql(table: str, columns: Sequence[str], *, replace: bool = False) -> str:
    verb = "INSERT OR REPLACE" if replace else "INSERT"
    placeholders = ", ".join("?" for _ in columns)
    return f"{verb} INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def _row_values(model: Any, columns: Sequence[str]) -> tuple[Any, ...]:
    data = model.model_dump(mode="json")
    return tuple(data[c] for c in columns)


class SqliteStore:
    """Event store, metadata repository, derived-row store and checkpoint store.

    Args:
        path: Database file, or ``":memory:"`` for an ephemeral store.
        tz: IANA zone used to resolve "today" for the event feed.
        today: Override for the current calendar day (tests, replays).
    """

    def __init__(
        self,
        path: Path | str = ":memory:",
        *,
        tz: str = DEFAULT_TIMEZONE,
        today: Callable[[], str] | None = None,
    ) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tz = tz
        self._today = today or (lambda: today_date_string(self._tz))
        self._subscribers: list[SnapshotCallback] = []
        with self._lock:
            self._conn.executescript(SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- transactions -------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """All writes inside the block commit together or not at all."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def _query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    # -- raw events -----------------------------------------------------------------

    def insert_events(self, events: Sequence[RawEvent]) -> int:
        """Append *events* and notify feed subscribers.  Returns the count."""
        if not events:
            return 0
        with self.transaction():
            self._conn.executemany(
                _insert_sql("raw_events", _EVENT_COLUMNS),
                [_row_values(e, _EVENT_COLUMNS) for e in events],
            )
        self._notify()
        return len(events)

    def events_for_period(self, start_ms: int, end_ms: int) -> list[RawEvent]:
        rows = self._query(
            f"SELECT {', '.join(_EVENT_COLUMNS)} FROM raw_events "
            "WHERE timestamp_ms BETWEEN ? AND ? ORDER BY timestamp_ms, id",
            (start_ms, end_ms),
        )
        return [RawEvent.model_validate(dict(r)) for r in rows]

    def delete_events_for_period(self, start_ms: int, end_ms: int) -> int:
        with self.transaction():
            cur = self._conn.execute(
                "DELETE FROM raw_events WHERE timestamp_ms BETWEEN ? AND ?", (start_ms, end_ms),
            )
        self._notify()
        return cur.rowcount

    # -- event feed -------------------------------------------------------------------

    def _today_snapshot(self) -> EventSnapshot:
        start_ms, end_ms = day_bounds(self._today(), self._tz)
        return tuple(self.events_for_period(start_ms, end_ms))

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        """Deliver today's events now and after every change to the event table."""
        with self._lock:
            self._subscribers.append(callback)
        callback(self._today_snapshot())

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return
        snapshot = self._today_snapshot()
        for callback in subscribers:
            callback(snapshot)

    # -- app metadata -------------------------------------------------------------------

    def upsert_metadata(self, items: Sequence[AppMetadata]) -> int:
        with self.transaction():
            self._conn.executemany(
                _insert_sql("app_metadata", _METADATA_COLUMNS, replace=True),
                [_row_values(m, _METADATA_COLUMNS) for m in items],
            )
        return len(items)

    def all_metadata(self) -> list[AppMetadata]:
        rows = self._query(
            f"SELECT {', '.join(_METADATA_COLUMNS)} FROM app_metadata ORDER BY package_name"
        )
        return [AppMetadata.model_validate(dict(r)) for r in rows]

    def set_user_hides_override(self, package_name: str, hides: bool | None) -> None:
        """Record the user's explicit hide choice; ``None`` clears it.

        Unknown packages get a metadata row with default visibility so
        the choice applies as soon as their events arrive.
        """
        value = None if hides is None else int(hides)
        with self.transaction():
            self._conn.execute(
                "INSERT INTO app_metadata (package_name, user_hides_override) VALUES (?, ?) "
                "ON CONFLICT(package_name) DO UPDATE SET user_hides_override = excluded.user_hides_override",
                (package_name, value),
            )

    def mark_uninstalled(self, package_name: str) -> bool:
        """Flag *package_name* as uninstalled.  Returns False for unknown packages."""
        with self.transaction():
            cur = self._conn.execute(
                "UPDATE app_metadata SET is_installed = 0 WHERE package_name = ?", (package_name,),
            )
        return cur.rowcount > 0

    def installed_metadata(self) -> list[AppMetadata]:
        return [m for m in self.all_metadata() if m.is_installed]

    # -- checkpoints ------------------------------------------------------------------------

    def get_int(self, key: str, default: int = 0) -> int:
        rows = self._query("SELECT value FROM kv WHERE key = ?", (key,))
        return int(rows[0]["value"]) if rows else default

    def set_int(self, key: str, value: int) -> None:
        with self.transaction():
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, str(value)),
            )

    # -- derived rows: writes --------------------------------------------------------------

    @contextmanager
    def _replacing(self, what: str, date_string: str) -> Iterator[None]:
        try:
            with self.transaction():
                yield
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to replace {what} for {date_string}: {exc}") from exc

    def replace_scroll_sessions_for_date(
        self, date_string: str, sessions: Sequence[ScrollSession],
    ) -> None:
        with self._replacing("scroll sessions", date_string):
            self._conn.execute("DELETE FROM scroll_sessions WHERE date_string = ?", (date_string,))
            self._conn.executemany(
                _insert_sql("scroll_sessions", _SESSION_COLUMNS),
                [_row_values(s, _SESSION_COLUMNS) for s in sessions],
            )

    def replace_usage_records_for_date(
        self, date_string: str, records: Sequence[DailyAppUsageRecord],
    ) -> None:
        with self._replacing("usage records", date_string):
            self._conn.execute("DELETE FROM daily_app_usage WHERE date_string = ?", (date_string,))
            self._conn.executemany(
                _insert_sql("daily_app_usage", _USAGE_COLUMNS),
                [_row_values(r, _USAGE_COLUMNS) for r in records],
            )

    def replace_device_summary_for_date(
        self, date_string: str, summary: DailyDeviceSummary | None,
    ) -> None:
        with self._replacing("device summary", date_string):
            self._conn.execute("DELETE FROM daily_device_summary WHERE date_string = ?", (date_string,))
            if summary is not None:
                self._conn.execute(
                    _insert_sql("daily_device_summary", _SUMMARY_COLUMNS),
                    _row_values(summary, _SUMMARY_COLUMNS),
                )

    def clear_date(self, date_string: str) -> None:
        """Delete every derived row for *date_string* in one transaction."""
        with self.transaction():
            self.replace_usage_records_for_date(date_string, [])
            self.replace_scroll_sessions_for_date(date_string, [])
            self.replace_device_summary_for_date(date_string, None)

    # -- derived rows: reads ----------------------------------------------------------------

    def scroll_sessions_for_date(self, date_string: str) -> list[ScrollSession]:
        rows = self._query(
            f"SELECT {', '.join(_SESSION_COLUMNS)} FROM scroll_sessions "
            "WHERE date_string = ? ORDER BY start_time, package_name, data_type",
            (date_string,),
        )
        return [ScrollSession.model_validate(dict(r)) for r in rows]

    def total_scroll_for_date(self, date_string: str) -> int:
        rows = self._query(
            "SELECT COALESCE(SUM(scroll_amount), 0) AS total FROM scroll_sessions WHERE date_string = ?",
            (date_string,),
        )
        return int(rows[0]["total"])

    def usage_records_for_date(self, date_string: str) -> list[DailyAppUsageRecord]:
        return self.usage_records_for_range(date_string, date_string)

    def usage_records_for_range(self, start_date: str, end_date: str) -> list[DailyAppUsageRecord]:
        """Usage rows with ``start_date <= date_string <= end_date``."""
        rows = self._query(
            f"SELECT {', '.join(_USAGE_COLUMNS)} FROM daily_app_usage "
            "WHERE date_string BETWEEN ? AND ? ORDER BY date_string, package_name",
            (start_date, end_date),
        )
        return [DailyAppUsageRecord.model_validate(dict(r)) for r in rows]

    def device_summary_for_date(self, date_string: str) -> DailyDeviceSummary | None:
        rows = self._query(
            f"SELECT {', '.join(_SUMMARY_COLUMNS)} FROM daily_device_summary WHERE date_string = ?",
            (date_string,),
        )
        return DailyDeviceSummary.model_validate(dict(rows[0])) if rows else None

    def all_device_summaries(self) -> list[DailyDeviceSummary]:
        rows = self._query(
            f"SELECT {', '.join(_SUMMARY_COLUMNS)} FROM daily_device_summary ORDER BY date_string"
        )
        return [DailyDeviceSummary.model_validate(dict(r)) for r in rows]

    def usage_dates(self) -> list[str]:
        """Every date holding at least one usage row, newest first."""
        rows = self._query("SELECT DISTINCT date_string FROM daily_app_usage ORDER BY date_string DESC")
        return [r["date_string"] for r in rows]

    def usage_for_package(
        self, package_name: str, dates: Sequence[str],
    ) -> list[DailyAppUsageRecord]:
        """Usage rows of one package restricted to *dates*, oldest first."""
        if not dates:
            return []
        placeholders = ", ".join("?" for _ in dates)
        rows = self._query(
            f"SELECT {', '.join(_USAGE_COLUMNS)} FROM daily_app_usage "
            f"WHERE package_name = ? AND date_string IN ({placeholders}) ORDER BY date_string",
            (package_name, *dates),
        )
        return [DailyAppUsageRecord.model_validate(dict(r)) for r in rows]

    def scroll_totals_for_package(self, package_name: str, dates: Sequence[str]) -> dict[str, int]:
        """Summed scroll amount per date for one package.  Dates without sessions are absent."""
        if not dates:
            return {}
        placeholders = ", ".join("?" for _ in dates)
        rows = self._query(
            "SELECT date_string, SUM(scroll_amount) AS total FROM scroll_sessions "
            f"WHERE package_name = ? AND date_string IN ({placeholders}) "
            "GROUP BY date_string ORDER BY date_string",
            (package_name, *dates),
        )
        return {r["date_string"]: int(r["total"]) for r in rows}

    def notification_counts_per_app(self, start_date: str, end_date: str) -> dict[str, int]:
        """Notifications per package over an inclusive date range, busiest first.

        Counted from raw ``NOTIFICATION_POSTED`` events, so packages
        whose usage fell below the persistence floor still show up.
        """
        rows = self._query(
            "SELECT package_name, COUNT(*) AS n FROM raw_events "
            "WHERE event_type = ? AND date_string BETWEEN ? AND ? "
            "GROUP BY package_name ORDER BY n DESC, package_name",
            (EventType.NOTIFICATION_POSTED.value, start_date, end_date),
        )
        return {r["package_name"]: int(r["n"]) for r in rows}

    def notification_counts_per_date(self, start_date: str, end_date: str) -> dict[str, int]:
        """Notifications per day over an inclusive date range, oldest first."""
        rows = self._query(
            "SELECT date_string, COUNT(*) AS n FROM raw_events "
            "WHERE event_type = ? AND date_string BETWEEN ? AND ? "
            "GROUP BY date_string ORDER BY date_string",
            (EventType.NOTIFICATION_POSTED.value, start_date, end_date),
        )
        return {r["date_string"]: int(r["n"]) for r in rows}
