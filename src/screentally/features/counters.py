"""Grouped counters: debounced app opens, notifications, and unlocks."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from screentally.core.defaults import OPEN_DEBOUNCE_MS
from screentally.core.types import UNLOCK_EVENT_TYPES, EventType, RawEvent


@dataclass(frozen=True)
class UnlockStats:
    """Unlock count and the first/last unlock timestamps of a day."""

    count: int = 0
    first_timestamp: int | None = None
    last_timestamp: int | None = None


def count_app_opens(
    events: Sequence[RawEvent],
    *,
    debounce_ms: int = OPEN_DEBOUNCE_MS,
) -> dict[str, int]:
    """Count debounced ``ACTIVITY_RESUMED`` occurrences per package.

    A resume counts as an open when it is the package's first, or when
    more than *debounce_ms* passed since the package's previous resume.
    The previous-resume timestamp advances on every resume, counted or
    not, so a burst of rapid resumes yields a single open.

    Args:
        events: Events of the day, in any order.
        debounce_ms: Minimum spacing (exclusive) between counted opens.

    Returns:
        Mapping of package name to open count; packages without a
        counted open are absent.
    """
    resumes = sorted(
        (e for e in events if e.event_type == EventType.ACTIVITY_RESUMED),
        key=lambda e: e.timestamp_ms,
    )
    last_seen: dict[str, int] = {}
    opens: Counter[str] = Counter()

    for event in resumes:
        prev = last_seen.get(event.package_name)
        if prev is None or event.timestamp_ms - prev > debounce_ms:
            opens[event.package_name] += 1
        last_seen[event.package_name] = event.timestamp_ms

    return dict(opens)


def count_notifications(events: Sequence[RawEvent]) -> dict[str, int]:
    """Number of ``NOTIFICATION_POSTED`` events per package."""
    return dict(Counter(
        e.package_name for e in events
        if e.event_type == EventType.NOTIFICATION_POSTED
    ))


def aggregate_unlocks(events: Sequence[RawEvent]) -> UnlockStats:
    """Count ``USER_PRESENT`` / ``KEYGUARD_HIDDEN`` events with min/max time."""
    stamps = [e.timestamp_ms for e in events if e.event_type in UNLOCK_EVENT_TYPES]
    if not stamps:
        return UnlockStats()
    return UnlockStats(count=len(stamps), first_timestamp=min(stamps), last_timestamp=max(stamps))
