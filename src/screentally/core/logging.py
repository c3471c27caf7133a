"""Log hygiene for interaction data.

Captured events can carry text the user typed, notification content,
and class names of on-screen components.  :class:`SanitizingFilter`
masks those values wherever they show up in a log record: as
``key=value`` / ``key: value`` pairs inside the formatted message, or
as attributes passed through ``extra=``.  Package names, event types
and timestamps pass through untouched.
"""

from __future__ import annotations

import logging
import re
from typing import IO, Final

PRIVATE_FIELDS: Final[frozenset[str]] = frozenset({
    "class_name",
    "content_description",
    "notification_text",
    "notification_title",
    "typed_text",
    "view_text",
})

_MASK: Final[str] = "[REDACTED]"

_PAIR_RE: Final[re.Pattern[str]] = re.compile(
    r"\b(?P<field>" + "|".join(sorted(PRIVATE_FIELDS)) + r")"
    r"\s*[=:]\s*(?:\"[^\"]*\"|'[^']*'|\S+)",
    re.IGNORECASE,
)

_LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_PACKAGE_LOGGER: Final[str] = "screentally"


def redact_message(message: str) -> str:
    """Mask the value of every private ``field=value`` pair in *message*."""
    return _PAIR_RE.sub(lambda m: f"{m.group('field')}={_MASK}", message)


class SanitizingFilter(logging.Filter):
    """Rewrites records in place so no private value reaches a handler.

    The message is rendered once (``msg % args``) and then redacted, so
    private values passed as ``%s`` arguments are caught as well.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_message(record.getMessage())
        record.args = None
        for field in PRIVATE_FIELDS.intersection(vars(record)):
            setattr(record, field, _MASK)
        return True


def install_sanitizing_filter(
    target: logging.Logger | logging.Handler | None = None,
) -> SanitizingFilter:
    """Attach a new :class:`SanitizingFilter` to *target*.

    With no target the filter goes on every handler of the root logger.
    Handler filters also see records propagated from child loggers,
    which logger filters do not.
    """
    filt = SanitizingFilter()
    if target is None:
        for handler in logging.getLogger().handlers:
            handler.addFilter(filt)
    else:
        target.addFilter(filt)
    return filt


def configure_logging(
    level: int | str = logging.WARNING,
    *,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Send ``screentally.*`` records at *level* to *stream* (stderr by default).

    Calling it again replaces the handler installed by the previous call
    instead of stacking another one.
    """
    pkg_logger = logging.getLogger(_PACKAGE_LOGGER)
    for old in [h for h in pkg_logger.handlers if getattr(h, "_screentally", False)]:
        pkg_logger.removeHandler(old)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    install_sanitizing_filter(handler)
    handler._screentally = True  # type: ignore[attr-defined]

    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(level)
    return handler
