"""Atomic tabular file writers (Parquet, CSV, JSON) for exported day data."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Final, Literal

import pandas as pd

TableFormat = Literal["parquet", "csv", "json"]

TABLE_FORMATS: Final[tuple[str, ...]] = ("parquet", "csv", "json")


def _dump(df: pd.DataFrame, target: str, fmt: TableFormat) -> None:
    if fmt == "parquet":
        df.to_parquet(target, engine="pyarrow", index=False)
    elif fmt == "csv":
        df.to_csv(target, index=False)
    else:
        df.to_json(target, orient="records", indent=2)


def write_table(df: pd.DataFrame, path: Path, fmt: TableFormat = "parquet") -> Path:
    """Write *df* to *path* in *fmt*, atomically.

    The frame is written to a temporary sibling first and moved into
    place with :func:`os.replace`, so readers never see a partial file.

    Args:
        df: Frame to persist.
        path: Destination file path; parent directories are created.
        fmt: One of ``"parquet"``, ``"csv"`` or ``"json"``.

    Returns:
        The *path* that was written.

    Raises:
        ValueError: If *fmt* is not a supported format.
    """
    if fmt not in TABLE_FORMATS:
        raise ValueError(f"Unsupported format {fmt!r}; expected one of {TABLE_FORMATS}")

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=f".{fmt}.tmp")
    try:
        os.close(fd)
        _dump(df, tmp, fmt)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    return path


def read_table(path: Path) -> pd.DataFrame:
    """Load a file written by :func:`write_table`, dispatching on its suffix."""
    suffix = path.suffix.lstrip(".")
    if suffix == "parquet":
        return pd.read_parquet(path, engine="pyarrow")
    if suffix == "csv":
        return pd.read_csv(path)
    if suffix == "json":
        return pd.read_json(path, orient="records", convert_dates=False)
    raise ValueError(f"Cannot infer table format from {path.name!r}")
