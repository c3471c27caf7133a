"""Live "today so far" device summary.

:class:`LiveSummaryProjector` consumes complete event snapshots from an
:class:`~screentally.storage.ports.EventFeed`, re-runs the pure daily
aggregation on each one, and republishes the resulting
:class:`~screentally.core.types.DailyDeviceSummary`.  Nothing is
persisted.

At most one recompute runs at a time.  Snapshots that arrive while a
recompute is in flight overwrite a single pending slot, so only the
newest one is computed next; stale snapshots are dropped, never queued.
A snapshot equal to the last computed one is skipped.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from screentally.core.types import DailyDeviceSummary
from screentally.report.daily import DailyPipeline
from screentally.storage.ports import EventFeed, EventSnapshot, Unsubscribe

logger = logging.getLogger(__name__)

SummaryCallback = Callable[[DailyDeviceSummary], None]

_UNSET: object = object()


class LiveSummaryProjector:
    """Recompute and publish today's device summary on every event change.

    Args:
        pipeline: Supplies the aggregation, filter set and day bounds.
        date_string: Returns the calendar day snapshots belong to.
    """

    def __init__(self, pipeline: DailyPipeline, date_string: Callable[[], str]) -> None:
        self._pipeline = pipeline
        self._date_string = date_string
        self._lock = threading.Lock()
        self._pending: EventSnapshot | None = None
        self._running = False
        self._last_snapshot: object = _UNSET
        self._latest: DailyDeviceSummary | None = None
        self._subscribers: list[SummaryCallback] = []
        self._detach: Unsubscribe | None = None

    @property
    def latest(self) -> DailyDeviceSummary | None:
        """Most recently published summary, or ``None`` before the first one."""
        with self._lock:
            return self._latest

    def subscribe(self, callback: SummaryCallback) -> Unsubscribe:
        """Register *callback*; it immediately receives the latest summary if any."""
        with self._lock:
            self._subscribers.append(callback)
            latest = self._latest
        if latest is not None:
            callback(latest)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def attach(self, feed: EventFeed) -> None:
        """Start consuming snapshots from *feed*."""
        self.close()
        self._detach = feed.subscribe(self.submit)

    def close(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def _compute(self, snapshot: EventSnapshot) -> DailyDeviceSummary:
        date_string = self._date_string()
        if not snapshot:
            return DailyDeviceSummary(date_string=date_string)
        logger.debug("Live summary for %s over %d events", date_string, len(snapshot))
        return self._pipeline.aggregate(snapshot, date_string).device_summary

    def submit(self, snapshot: EventSnapshot) -> None:
        """Offer a new snapshot.

        If no recompute is running, the calling thread performs it (and
        any newer snapshot submitted meanwhile) before returning.
        Otherwise the snapshot replaces the pending one and the call
        returns at once.

        A failed recompute does not stop the drain: newer pending
        snapshots are still computed, then the first failure is re-raised.
        """
        with self._lock:
            self._pending = snapshot
            if self._running:
                return
            self._running = True

        failure: Exception | None = None
        try:
            while True:
                with self._lock:
                    current = self._pending
                    self._pending = None
                    if current is None:
                        self._running = False
                        break
                    if current == self._last_snapshot:
                        continue
                try:
                    self._publish(current)
                except Exception as exc:
                    # Keep draining; the pending snapshot has no other owner.
                    logger.exception("Live summary recompute failed")
                    if failure is None:
                        failure = exc
        except BaseException:
            with self._lock:
                self._running = False
            raise
        if failure is not None:
            raise failure

    def _publish(self, snapshot: EventSnapshot) -> None:
        summary = self._compute(snapshot)
        with self._lock:
            self._last_snapshot = snapshot
            self._latest = summary
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(summary)
