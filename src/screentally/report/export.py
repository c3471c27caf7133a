"""Export of a persisted day: JSON summary plus tabular session/usage files."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd

from screentally.core.logging import PRIVATE_FIELDS
from screentally.core.store import TableFormat, write_table
from screentally.core.types import DailyAppUsageRecord, DailyDeviceSummary, ScrollSession
from screentally.storage.ports import DerivedStore

_USAGE_COLUMNS = list(DailyAppUsageRecord.model_fields)
_SESSION_COLUMNS = list(ScrollSession.model_fields)


def _assert_no_private_fields(data: object, where: str = "$") -> None:
    if isinstance(data, dict):
        for key, value in data.items():
            if key in PRIVATE_FIELDS:
                raise ValueError(f"Private field {where}.{key} must not be exported")
            _assert_no_private_fields(value, f"{where}.{key}")
    elif isinstance(data, list):
        for i, item in enumerate(data):
            _assert_no_private_fields(item, f"{where}[{i}]")


def export_summary_json(summary: DailyDeviceSummary, path: Path) -> Path:
    """Dump *summary* as indented JSON; private keys anywhere in it abort the write."""
    data = summary.model_dump(mode="json")
    _assert_no_private_fields(data)
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return out


def usage_frame(records: list[DailyAppUsageRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [r.model_dump(mode="json") for r in records], columns=_USAGE_COLUMNS,
    )


def sessions_frame(sessions: list[ScrollSession]) -> pd.DataFrame:
    return pd.DataFrame(
        [s.model_dump(mode="json") for s in sessions], columns=_SESSION_COLUMNS,
    )


def export_day(
    store: DerivedStore,
    date_string: str,
    out_dir: Path,
    *,
    fmt: TableFormat = "parquet",
) -> dict[str, Path]:
    """Write every persisted artifact of *date_string* under *out_dir*.

    Files written: ``summary_<date>.json`` (when a summary exists),
    ``usage_<date>.<fmt>`` and ``scroll_sessions_<date>.<fmt>``.

    Args:
        store: Source of the persisted rows.
        date_string: Day to export.
        out_dir: Destination directory.
        fmt: Tabular format for usage and session rows.

    Returns:
        Mapping of artifact name (``summary``, ``usage``,
        ``scroll_sessions``) to written path.
    """
    written: dict[str, Path] = {}

    summary = store.device_summary_for_date(date_string)
    if summary is not None:
        written["summary"] = export_summary_json(summary, out_dir / f"summary_{date_string}.json")

    written["usage"] = write_table(
        usage_frame(store.usage_records_for_date(date_string)),
        out_dir / f"usage_{date_string}.{fmt}",
        fmt,
    )
    written["scroll_sessions"] = write_table(
        sessions_frame(store.scroll_sessions_for_date(date_string)),
        out_dir / f"scroll_sessions_{date_string}.{fmt}",
        fmt,
    )
    return written
