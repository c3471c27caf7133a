"""Centralised default constants for screentally.

Every project-wide magic number / string lives here.
Import these instead of hard-coding values in function signatures or CLI options.
"""

from __future__ import annotations

from typing import Final

# ── Aggregation thresholds (milliseconds) ──
MERGE_GAP_MS: Final[int] = 5_000
ACTIVE_WINDOW_MS: Final[int] = 5_000
OPEN_DEBOUNCE_MS: Final[int] = 1_500
MIN_SIGNIFICANT_USAGE_MS: Final[int] = 2_000

# ── Filter set ──
DEFAULT_OWN_PACKAGE: Final[str] = "io.screentally.app"
SYSTEM_SHELL_PACKAGE: Final[str] = "com.android.systemui"

# ── Scroll sessions ──
SCROLL_END_REASON_PROCESSED: Final[str] = "PROCESSED"

# ── Sync ──
LAST_SYSTEM_EVENT_SYNC_KEY: Final[str] = "last_system_event_sync_timestamp"
DEFAULT_SYNC_LOOKBACK_MS: Final[int] = 24 * 60 * 60 * 1000

# ── Paths ──
DEFAULT_DATA_DIR: Final[str] = "data/processed"
DEFAULT_DB_FILENAME: Final[str] = "screentally.db"
DEFAULT_OUT_DIR: Final[str] = "artifacts"

# ── Time ──
DEFAULT_TIMEZONE: Final[str] = "UTC"
DATE_FORMAT: Final[str] = "%Y-%m-%d"

# ── Backfill ──
DEFAULT_BACKFILL_DAYS: Final[int] = 7
