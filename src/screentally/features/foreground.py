"""Foreground interval reconstruction from app lifecycle events.

Each package moves between two states, ``NOT_RUNNING`` and
``RUNNING(start)``:

* ``ACTIVITY_RESUMED`` starts a run unless one is already open
  (repeated resumes are ignored).
* ``ACTIVITY_PAUSED`` / ``ACTIVITY_STOPPED`` close the run.  When the
  very next event in the stream is a resume (of any package) the run
  ends one millisecond before that resume, so a fast app switch never
  counts the transition gap twice.
* ``SCREEN_NON_INTERACTIVE`` closes every open run at once.
* Runs still open at the end of the period close at ``period_end_ms``.

Only intervals of positive length are emitted.
"""

from __future__ import annotations

from typing import Sequence

from screentally.core.types import EventType, ForegroundInterval, RawEvent

_CLOSING_TYPES = frozenset({EventType.ACTIVITY_PAUSED, EventType.ACTIVITY_STOPPED})


def _emit(
    out: list[ForegroundInterval],
    package_name: str,
    start_time: int,
    end_time: int,
) -> None:
    if end_time > start_time:
        out.append(ForegroundInterval(
            package_name=package_name,
            start_time=start_time,
            end_time=end_time,
        ))


def reconstruct_foreground(
    events: Sequence[RawEvent],
    period_end_ms: int,
) -> list[ForegroundInterval]:
    """Rebuild per-package foreground intervals for one period.

    The input is not filtered here; callers drop excluded packages
    beforehand when they want them ignored.

    Args:
        events: Events of the period, in any order.  They are
            stable-sorted by timestamp before the state machine runs.
        period_end_ms: Close time for packages still running at the end.

    Returns:
        Intervals in the order they were closed.
    """
    ordered = sorted(events, key=lambda e: e.timestamp_ms)
    running: dict[str, int] = {}
    intervals: list[ForegroundInterval] = []

    for idx, event in enumerate(ordered):
        pkg = event.package_name

        if event.event_type == EventType.ACTIVITY_RESUMED:
            running.setdefault(pkg, event.timestamp_ms)

        elif event.event_type in _CLOSING_TYPES:
            start = running.pop(pkg, None)
            if start is None:
                continue
            nxt = ordered[idx + 1] if idx + 1 < len(ordered) else None
            if nxt is not None and nxt.event_type == EventType.ACTIVITY_RESUMED:
                end = nxt.timestamp_ms - 1
            else:
                end = event.timestamp_ms
            _emit(intervals, pkg, start, end)

        elif event.event_type == EventType.SCREEN_NON_INTERACTIVE:
            for running_pkg, start in running.items():
                _emit(intervals, running_pkg, start, event.timestamp_ms)
            running.clear()

    for running_pkg, start in running.items():
        _emit(intervals, running_pkg, start, period_end_ms)

    return intervals
