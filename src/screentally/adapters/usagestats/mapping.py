"""External event codes to internal :class:`~screentally.core.types.EventType`.

The OS usage-stats service reports lifecycle and device-state changes
as integer codes; the capture service reports interaction markers,
scrolls and notifications under symbolic names.  Both are mapped here
so that the aggregation core only ever sees :class:`EventType`.
Anything unmapped yields ``None`` and is dropped by the caller.
"""

from __future__ import annotations

from typing import Final

from screentally.core.types import EventType

# Android ``UsageEvents.Event`` constants.
_USAGE_EVENT_CODES: Final[dict[int, EventType]] = {
    1: EventType.ACTIVITY_RESUMED,
    2: EventType.ACTIVITY_PAUSED,
    7: EventType.USER_INTERACTION,
    12: EventType.USER_PRESENT,  # reported under this code before API 33
    15: EventType.SCREEN_INTERACTIVE,
    16: EventType.SCREEN_NON_INTERACTIVE,
    17: EventType.KEYGUARD_SHOWN,
    18: EventType.KEYGUARD_HIDDEN,
    23: EventType.ACTIVITY_STOPPED,
}

# Accessibility / listener names emitted by the capture service.
_CAPTURE_ALIASES: Final[dict[str, EventType]] = {
    "type_view_scrolled": EventType.SCROLL,
    "scroll_measured": EventType.SCROLL,
    "type_window_content_changed": EventType.SCROLL_INFERRED,
    "type_view_clicked": EventType.VIEW_CLICKED,
    "accessibility_view_clicked": EventType.VIEW_CLICKED,
    "type_view_focused": EventType.VIEW_FOCUSED,
    "accessibility_view_focused": EventType.VIEW_FOCUSED,
    "type_view_text_changed": EventType.TYPING,
    "accessibility_typing": EventType.TYPING,
    "action_user_unlocked": EventType.USER_UNLOCKED,
    "notification_posted": EventType.NOTIFICATION_POSTED,
}


def map_usage_event_code(code: int) -> EventType | None:
    """Map an OS usage-stats event code, or ``None`` if it is not tracked."""
    return _USAGE_EVENT_CODES.get(code)


def map_event_name(name: str) -> EventType | None:
    """Map an event name, case-insensitively.

    Accepts internal :class:`EventType` values (``"SCROLL"``) as well as
    the capture service's aliases (``"TYPE_VIEW_CLICKED"``).
    """
    key = name.strip().upper()
    if key in EventType.__members__:
        return EventType[key]
    return _CAPTURE_ALIASES.get(key.lower())
