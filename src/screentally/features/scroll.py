"""Scroll session merging.

A *scroll session* is a run of scroll events from one package where
each event follows the previous one within a merge gap.  Switching
package, or pausing for longer than the gap, closes the session.
"""

from __future__ import annotations

from typing import Collection, Sequence

from screentally.core.defaults import MERGE_GAP_MS, SCROLL_END_REASON_PROCESSED
from screentally.core.types import EventType, RawEvent, ScrollDataType, ScrollSession

_DATA_TYPE_BY_EVENT: dict[EventType, ScrollDataType] = {
    EventType.SCROLL: ScrollDataType.MEASURED,
    EventType.SCROLL_INFERRED: ScrollDataType.INFERRED,
}


def _open_session(event: RawEvent, magnitude: int, data_type: ScrollDataType) -> ScrollSession:
    return ScrollSession(
        package_name=event.package_name,
        start_time=event.timestamp_ms,
        end_time=event.timestamp_ms,
        scroll_amount=magnitude,
        date_string=event.date_string,
        end_reason=SCROLL_END_REASON_PROCESSED,
        data_type=data_type,
    )


def _fold_sessions(
    scrolls: Sequence[tuple[RawEvent, int]],
    data_type: ScrollDataType,
    merge_gap_ms: int,
) -> list[ScrollSession]:
    """Left-fold time-sorted ``(event, magnitude)`` pairs into sessions."""
    sessions: list[ScrollSession] = []
    current: ScrollSession | None = None

    for event, magnitude in scrolls:
        if current is None:
            current = _open_session(event, magnitude, data_type)
            continue

        gap = event.timestamp_ms - current.end_time
        if event.package_name == current.package_name and gap <= merge_gap_ms:
            current = current.model_copy(update={
                "end_time": event.timestamp_ms,
                "scroll_amount": current.scroll_amount + magnitude,
            })
        else:
            sessions.append(current)
            current = _open_session(event, magnitude, data_type)

    if current is not None:
        sessions.append(current)
    return sessions


def merge_scroll_sessions(
    events: Sequence[RawEvent],
    filter_set: Collection[str] = frozenset(),
    *,
    merge_gap_ms: int = MERGE_GAP_MS,
) -> list[ScrollSession]:
    """Fold a day's scroll events into contiguous per-package sessions.

    Only events carrying a scroll magnitude and belonging to a package
    outside *filter_set* contribute.  Events are stable-sorted by
    timestamp, so equal timestamps keep their encounter order.
    Measured (``SCROLL``) and inferred (``SCROLL_INFERRED``) events are
    folded independently and never share a session.

    Args:
        events: All events of the day, in any order.
        filter_set: Packages to ignore.
        merge_gap_ms: Largest gap (inclusive) between an open session's
            last event and the next same-package event that still extends it.

    Returns:
        Sessions ordered by start time.  Empty if no scroll event survives.
    """
    sessions: list[ScrollSession] = []
    for event_type, data_type in _DATA_TYPE_BY_EVENT.items():
        scrolls = sorted(
            (
                (e, e.scroll_magnitude) for e in events
                if e.event_type == event_type
                and e.scroll_magnitude is not None
                and e.package_name not in filter_set
            ),
            key=lambda pair: pair[0].timestamp_ms,
        )
        sessions.extend(_fold_sessions(scrolls, data_type, merge_gap_ms))

    sessions.sort(key=lambda s: s.start_time)
    return sessions
