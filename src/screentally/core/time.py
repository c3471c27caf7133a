"""Calendar-day keys and epoch-millisecond bounds.

Events are stamped in UTC epoch milliseconds but grouped by *local*
calendar day.  All conversions go through :class:`zoneinfo.ZoneInfo` so
that DST transitions yield 23- or 25-hour days instead of overlapping or
missing ranges.
"""

from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

from screentally.core.defaults import DEFAULT_TIMEZONE


def parse_date_string(date_string: str) -> dt.date:
    """Parse a ``YYYY-MM-DD`` key, raising ``ValueError`` on anything else."""
    try:
        return dt.date.fromisoformat(date_string)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date string {date_string!r}; expected YYYY-MM-DD") from exc


def _local_midnight(day: dt.date, tz: ZoneInfo) -> dt.datetime:
    return dt.datetime(day.year, day.month, day.day, tzinfo=tz)


def start_of_day_utc_millis(date_string: str, tz: str = DEFAULT_TIMEZONE) -> int:
    """Epoch milliseconds of local midnight starting *date_string*."""
    day = parse_date_string(date_string)
    return int(_local_midnight(day, ZoneInfo(tz)).timestamp() * 1000)


def end_of_day_utc_millis(date_string: str, tz: str = DEFAULT_TIMEZONE) -> int:
    """Epoch milliseconds of the last millisecond of *date_string* (inclusive)."""
    day = parse_date_string(date_string) + dt.timedelta(days=1)
    return int(_local_midnight(day, ZoneInfo(tz)).timestamp() * 1000) - 1


def day_bounds(date_string: str, tz: str = DEFAULT_TIMEZONE) -> tuple[int, int]:
    """Return ``(start_ms, end_ms)`` for *date_string*, both inclusive."""
    return start_of_day_utc_millis(date_string, tz), end_of_day_utc_millis(date_string, tz)


def local_date_string(timestamp_ms: int, tz: str = DEFAULT_TIMEZONE) -> str:
    """Local calendar day that *timestamp_ms* falls on."""
    moment = dt.datetime.fromtimestamp(timestamp_ms / 1000, tz=ZoneInfo(tz))
    return moment.date().isoformat()


def today_date_string(tz: str = DEFAULT_TIMEZONE) -> str:
    return dt.datetime.now(ZoneInfo(tz)).date().isoformat()


def past_date_string(today: str, days_ago: int) -> str:
    """Calendar day *days_ago* days before *today*."""
    return (parse_date_string(today) - dt.timedelta(days=days_ago)).isoformat()
