"""Raw event ingestion: JSON export parsing and checkpointed sync.

:func:`parse_event_export` reads a collector export into validated
:class:`~screentally.core.types.RawEvent` instances.  Items whose code
or name has no internal mapping are dropped silently (debug log only).

:func:`sync_events` appends only events newer than the stored
``last_system_event_sync_timestamp`` checkpoint and then advances it.

:func:`parse_metadata_csv` loads the app-visibility table that feeds
the filter set.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from screentally.adapters.usagestats.mapping import map_event_name, map_usage_event_code
from screentally.core.defaults import (
    DEFAULT_SYNC_LOOKBACK_MS,
    DEFAULT_TIMEZONE,
    LAST_SYSTEM_EVENT_SYNC_KEY,
)
from screentally.core.time import local_date_string
from screentally.core.types import AppMetadata, EventSource, EventType, RawEvent
from screentally.storage.ports import EventSink, KeyValueStore

logger = logging.getLogger(__name__)


def _optional_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    return None if value is None else int(value)


def _resolve_type(raw: dict[str, Any]) -> tuple[EventType | None, EventSource]:
    """Map a raw item's ``code`` (system) or ``type`` (capture) field."""
    if "code" in raw:
        return map_usage_event_code(int(raw["code"])), EventSource.SYSTEM
    return map_event_name(str(raw.get("type", ""))), EventSource.CAPTURE


def raw_item_to_event(raw: dict[str, Any], *, tz: str = DEFAULT_TIMEZONE) -> RawEvent | None:
    """Convert one export item into a :class:`RawEvent`, or ``None`` if unmapped.

    Raises:
        KeyError: If ``package`` or ``timestamp`` is missing.
        ValueError: If a present field fails validation.
    """
    event_type, source = _resolve_type(raw)
    if event_type is None:
        logger.debug("Dropping unmapped event code=%s type=%s", raw.get("code"), raw.get("type"))
        return None

    timestamp_ms = int(raw["timestamp"])
    return RawEvent(
        package_name=str(raw["package"]),
        class_name=raw.get("class"),
        event_type=event_type,
        timestamp_ms=timestamp_ms,
        date_string=raw.get("date") or local_date_string(timestamp_ms, tz),
        source=EventSource(raw["source"]) if "source" in raw else source,
        value=_optional_int(raw, "value"),
        scroll_delta_x=_optional_int(raw, "scrollDeltaX"),
        scroll_delta_y=_optional_int(raw, "scrollDeltaY"),
    )


def parse_event_export(path: Path, *, tz: str = DEFAULT_TIMEZONE) -> list[RawEvent]:
    """Parse a collector JSON export into normalized events.

    The file holds either ``{"events": [...]}`` or a bare list.  Each
    item carries ``package`` and ``timestamp`` (epoch ms) plus either a
    numeric ``code`` (usage-stats source) or a ``type`` name (capture
    source), and optionally ``class``, ``value``, ``scrollDeltaX``,
    ``scrollDeltaY`` and ``date``.

    Args:
        path: Path to the export file.
        tz: Zone used to derive ``date_string`` for items without ``date``.

    Returns:
        Events sorted by timestamp.  Unmapped items are omitted.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the top-level JSON shape is not recognised or an
            item is not an object.
        KeyError: If an item lacks ``package`` or ``timestamp``.
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    items = raw.get("events") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ValueError(f"{path}: expected a list of events or an object with 'events'")

    events: list[RawEvent] = []
    dropped = 0
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"{path}: event #{index} is not an object")
        event = raw_item_to_event(item, tz=tz)
        if event is None:
            dropped += 1
            continue
        events.append(event)

    logger.info("Parsed %d events from %s (%d unmapped dropped)", len(events), path, dropped)
    events.sort(key=lambda e: e.timestamp_ms)
    return events


def sync_events(
    events: Sequence[RawEvent],
    store: EventSink,
    checkpoints: KeyValueStore,
    *,
    now_ms: int | None = None,
) -> int:
    """Insert events newer than the last sync checkpoint, then advance it.

    Without a prior checkpoint only the last day before *now_ms* is
    accepted.  The checkpoint moves to *now_ms* even when nothing new
    was found.

    Args:
        events: Candidate events, e.g. from :func:`parse_event_export`.
        store: Destination for the accepted events.
        checkpoints: Key-value port holding the sync watermark.
        now_ms: Upper bound of this sync; defaults to wall-clock time.

    Returns:
        Number of events inserted.
    """
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    last_sync = checkpoints.get_int(LAST_SYSTEM_EVENT_SYNC_KEY, 0)
    start_ms = now_ms - DEFAULT_SYNC_LOOKBACK_MS if last_sync == 0 else last_sync + 1

    fresh = [e for e in events if start_ms <= e.timestamp_ms <= now_ms]
    inserted = store.insert_events(fresh) if fresh else 0
    if inserted:
        logger.info("Inserted %d new events (window %d..%d)", inserted, start_ms, now_ms)
    else:
        logger.info("No new events to insert (window %d..%d)", start_ms, now_ms)

    checkpoints.set_int(LAST_SYSTEM_EVENT_SYNC_KEY, now_ms)
    return inserted


def _optional_bool(value: Any) -> bool | None:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def parse_metadata_csv(path: Path) -> list[AppMetadata]:
    """Read app metadata rows from a CSV file and validate each row.

    Required columns: ``package_name``, ``is_user_visible``.
    Optional columns: ``user_hides_override`` (blank means no override),
    ``app_name``, ``is_installed``.

    Raises:
        ValueError: If required columns are missing or a row fails validation.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])

    required = {"package_name", "is_user_visible"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"CSV missing required columns: {sorted(missing)}")

    items: list[AppMetadata] = []
    for row in df.to_dict(orient="records"):
        kwargs: dict[str, Any] = {
            "package_name": row["package_name"],
            "is_user_visible": _optional_bool(row["is_user_visible"]),
            "user_hides_override": _optional_bool(row.get("user_hides_override")),
        }
        if row.get("app_name") is not None and not pd.isna(row["app_name"]):
            kwargs["app_name"] = row["app_name"]
        installed = _optional_bool(row.get("is_installed"))
        if installed is not None:
            kwargs["is_installed"] = installed
        items.append(AppMetadata(**kwargs))
    return items
