"""Core data contracts: raw interaction events and the derived daily rows."""

from __future__ import annotations

from enum import StrEnum
from typing import Final

from pydantic import BaseModel, Field, model_validator

_DATE_PATTERN: Final[str] = r"^\d{4}-\d{2}-\d{2}$"


class EventType(StrEnum):
    """Internal event vocabulary.

    External codes (OS usage-stats integers, accessibility event names)
    are mapped onto these members at ingestion; the aggregation core only
    ever sees this enum.
    """

    ACTIVITY_RESUMED = "ACTIVITY_RESUMED"
    ACTIVITY_PAUSED = "ACTIVITY_PAUSED"
    ACTIVITY_STOPPED = "ACTIVITY_STOPPED"
    USER_INTERACTION = "USER_INTERACTION"
    SCREEN_INTERACTIVE = "SCREEN_INTERACTIVE"
    SCREEN_NON_INTERACTIVE = "SCREEN_NON_INTERACTIVE"
    KEYGUARD_SHOWN = "KEYGUARD_SHOWN"
    KEYGUARD_HIDDEN = "KEYGUARD_HIDDEN"
    USER_PRESENT = "USER_PRESENT"
    USER_UNLOCKED = "USER_UNLOCKED"
    NOTIFICATION_POSTED = "NOTIFICATION_POSTED"
    SCROLL = "SCROLL"
    SCROLL_INFERRED = "SCROLL_INFERRED"
    VIEW_CLICKED = "VIEW_CLICKED"
    VIEW_FOCUSED = "VIEW_FOCUSED"
    TYPING = "TYPING"


INTERACTION_EVENT_TYPES: Final[frozenset[EventType]] = frozenset({
    EventType.VIEW_CLICKED,
    EventType.VIEW_FOCUSED,
    EventType.TYPING,
})

UNLOCK_EVENT_TYPES: Final[frozenset[EventType]] = frozenset({
    EventType.USER_PRESENT,
    EventType.KEYGUARD_HIDDEN,
})


class EventSource(StrEnum):
    """Collector that produced a :class:`RawEvent`."""

    CAPTURE = "CAPTURE"
    SYSTEM = "SYSTEM"


class ScrollDataType(StrEnum):
    """Whether a scroll session was measured directly or inferred."""

    MEASURED = "MEASURED"
    INFERRED = "INFERRED"


class RawEvent(BaseModel, frozen=True):
    """A single normalized interaction event.

    ``date_string`` is the local calendar day the collector assigned to
    the event; the pipeline treats it as an opaque key and never
    re-derives it from ``timestamp_ms``.
    """

    package_name: str = Field(description="Package that owns the event.")
    class_name: str | None = Field(default=None, description="Originating component class, if any.")
    event_type: EventType = Field(description="Internal event type.")
    timestamp_ms: int = Field(ge=0, description="Epoch milliseconds (UTC).")
    date_string: str = Field(pattern=_DATE_PATTERN, description="Local calendar day (YYYY-MM-DD).")
    source: EventSource = Field(description="Collector that produced the event.")
    value: int | None = Field(default=None, description="Scroll magnitude for scroll events.")
    scroll_delta_x: int | None = Field(default=None, description="Horizontal scroll delta.")
    scroll_delta_y: int | None = Field(default=None, description="Vertical scroll delta.")

    @property
    def scroll_magnitude(self) -> int | None:
        """Scroll amount carried by this event.

        ``value`` wins when present.  Measured scrolls recorded only as
        deltas fall back to ``|dx| + |dy|``.
        """
        if self.value is not None:
            return self.value
        if self.scroll_delta_x is None and self.scroll_delta_y is None:
            return None
        return abs(self.scroll_delta_x or 0) + abs(self.scroll_delta_y or 0)


class AppMetadata(BaseModel, frozen=True):
    """Per-package visibility metadata used to build the filter set."""

    package_name: str = Field(description="Package identifier.")
    app_name: str | None = Field(default=None, description="Human-readable label.")
    is_user_visible: bool = Field(default=True, description="True for launcher-visible apps.")
    user_hides_override: bool | None = Field(
        default=None, description="Explicit user choice; overrides is_user_visible when set."
    )
    is_installed: bool = Field(default=True, description="False once the package is uninstalled.")

    @property
    def is_hidden(self) -> bool:
        if self.user_hides_override is not None:
            return self.user_hides_override
        return not self.is_user_visible


class ForegroundInterval(BaseModel, frozen=True):
    """A closed time range during which one package owned the screen."""

    package_name: str
    start_time: int = Field(ge=0)
    end_time: int = Field(ge=0)

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    @model_validator(mode="after")
    def _check_positive(self) -> ForegroundInterval:
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be strictly after "
                f"start_time ({self.start_time})"
            )
        return self


class ScrollSession(BaseModel, frozen=True):
    """A contiguous run of same-package scroll events."""

    package_name: str = Field(description="Package the scrolling happened in.")
    start_time: int = Field(ge=0, description="Timestamp of the first contributing event (ms).")
    end_time: int = Field(ge=0, description="Timestamp of the last contributing event (ms).")
    scroll_amount: int = Field(description="Sum of contributing scroll magnitudes.")
    date_string: str = Field(pattern=_DATE_PATTERN, description="Calendar day of the session.")
    end_reason: str = Field(description="Why the session was closed, e.g. 'PROCESSED'.")
    data_type: ScrollDataType = Field(default=ScrollDataType.MEASURED)

    @model_validator(mode="after")
    def _check_order(self) -> ScrollSession:
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must not precede start_time ({self.start_time})"
            )
        return self


class DailyAppUsageRecord(BaseModel, frozen=True):
    """Per-package usage totals for one calendar day."""

    package_name: str = Field(description="Package identifier.")
    date_string: str = Field(pattern=_DATE_PATTERN, description="Calendar day (YYYY-MM-DD).")
    usage_time_millis: int = Field(ge=0, description="Sum of foreground interval durations.")
    active_time_millis: int = Field(ge=0, description="Portion of usage covered by interaction windows.")
    app_open_count: int = Field(ge=0, description="Debounced resume count.")
    notification_count: int = Field(ge=0, description="Notifications posted by the package.")
    last_updated_timestamp: int = Field(ge=0, description="Latest event timestamp the row reflects (ms).")

    @model_validator(mode="after")
    def _check_active_within_usage(self) -> DailyAppUsageRecord:
        if self.active_time_millis > self.usage_time_millis:
            raise ValueError(
                f"active_time_millis ({self.active_time_millis}) exceeds "
                f"usage_time_millis ({self.usage_time_millis}) for {self.package_name!r}"
            )
        return self


class DailyDeviceSummary(BaseModel, frozen=True):
    """Device-wide totals for one calendar day.

    ``DailyDeviceSummary(date_string=d)`` is the empty summary published
    for a day with no events yet.
    """

    date_string: str = Field(pattern=_DATE_PATTERN, description="Calendar day (YYYY-MM-DD).")
    total_usage_time_millis: int = Field(default=0, ge=0)
    total_unlock_count: int = Field(default=0, ge=0)
    first_unlock_timestamp: int | None = Field(default=None, description="Earliest unlock (ms).")
    last_unlock_timestamp: int | None = Field(default=None, description="Latest unlock (ms).")
    total_notification_count: int = Field(default=0, ge=0)
    total_app_opens: int = Field(default=0, ge=0)
    last_updated_timestamp: int = Field(default=0, ge=0)
