"""Active-time estimation inside foreground intervals.

Every interaction marker (click, focus, typing) at time ``t`` is taken
to mean the user was engaged during ``[t, t + active_window_ms)``.
Overlapping windows are merged and the union, clipped to the
interval, is the interval's active time.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Sequence

from screentally.core.defaults import ACTIVE_WINDOW_MS
from screentally.core.types import INTERACTION_EVENT_TYPES, ForegroundInterval, RawEvent


@dataclass(frozen=True)
class UsageTotals:
    """Per-package usage and active time summed over a day's intervals."""

    usage_ms: int = 0
    active_ms: int = 0


def merge_windows(starts: Iterable[int], width: int) -> list[tuple[int, int]]:
    """Sweep-merge ``[t, t + width)`` windows into disjoint spans.

    A window joins the previous span only if it starts strictly before
    that span's end, so windows that merely touch stay separate.
    """
    merged: list[tuple[int, int]] = []
    for start in sorted(starts):
        end = start + width
        if merged and start < merged[-1][1]:
            prev_start, prev_end = merged[-1]
            merged[-1] = (prev_start, max(prev_end, end))
        else:
            merged.append((start, end))
    return merged


def estimate_active_time(
    interval: ForegroundInterval,
    interaction_timestamps: Iterable[int],
    *,
    active_window_ms: int = ACTIVE_WINDOW_MS,
) -> int:
    """Milliseconds of *interval* covered by merged interaction windows.

    Timestamps outside ``[start_time, end_time]`` are ignored.  The
    result never exceeds ``interval.duration_ms``.
    """
    inside = [
        t for t in interaction_timestamps
        if interval.start_time <= t <= interval.end_time
    ]
    total = 0
    for start, end in merge_windows(inside, active_window_ms):
        clipped = min(end, interval.end_time) - max(start, interval.start_time)
        total += max(clipped, 0)
    return total


def aggregate_usage(
    intervals: Sequence[ForegroundInterval],
    events: Sequence[RawEvent],
    *,
    active_window_ms: int = ACTIVE_WINDOW_MS,
) -> dict[str, UsageTotals]:
    """Sum usage and active time per package.

    Args:
        intervals: Foreground intervals of the day.
        events: Events of the day; only interaction markers are read.
        active_window_ms: Width of each interaction window.

    Returns:
        Mapping of package name to :class:`UsageTotals`, for every
        package that has at least one interval.
    """
    interactions: dict[str, list[int]] = defaultdict(list)
    for event in events:
        if event.event_type in INTERACTION_EVENT_TYPES:
            interactions[event.package_name].append(event.timestamp_ms)

    totals: dict[str, UsageTotals] = {}
    for interval in intervals:
        active = estimate_active_time(
            interval,
            interactions.get(interval.package_name, ()),
            active_window_ms=active_window_ms,
        )
        prev = totals.get(interval.package_name, UsageTotals())
        totals[interval.package_name] = UsageTotals(
            usage_ms=prev.usage_ms + interval.duration_ms,
            active_ms=prev.active_ms + active,
        )
    return totals
