"""Pipeline configuration persistence.

Per-install tuning lives in ``<data_dir>/config.json``.  Nothing is
written until the first :meth:`PipelineConfig.update`; before that every
key resolves to :mod:`screentally.core.defaults`.

Example::

    cfg = PipelineConfig(data_dir)
    cfg.update({"merge_gap_ms": 4000})
    tz = cfg.timezone
    settings = cfg.settings()
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from screentally.core.defaults import (
    ACTIVE_WINDOW_MS,
    DEFAULT_DATA_DIR,
    DEFAULT_OWN_PACKAGE,
    DEFAULT_TIMEZONE,
    MERGE_GAP_MS,
    MIN_SIGNIFICANT_USAGE_MS,
    OPEN_DEBOUNCE_MS,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"


class AggregationSettings(BaseModel, frozen=True):
    """Thresholds and switches consumed by the pure aggregation functions."""

    merge_gap_ms: int = Field(default=MERGE_GAP_MS, ge=0, description="Scroll session merge gap.")
    active_window_ms: int = Field(default=ACTIVE_WINDOW_MS, ge=0, description="Interaction activity window.")
    open_debounce_ms: int = Field(default=OPEN_DEBOUNCE_MS, ge=0, description="App-open debounce window.")
    min_significant_usage_ms: int = Field(
        default=MIN_SIGNIFICANT_USAGE_MS, ge=0, description="Usage-record persistence floor."
    )
    own_package: str = Field(default=DEFAULT_OWN_PACKAGE, description="Host app, always filtered.")
    unlocks_respect_filter: bool = Field(
        default=True,
        description="Count only unlock events whose package survives the filter set.",
    )


_SETTINGS_KEYS = frozenset(AggregationSettings.model_fields)


def _read_json_object(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        logger.warning("Corrupt config at %s, using defaults", path)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config at %s is not an object, using defaults", path)
        return {}
    return data


class PipelineConfig:
    """Read/write access to ``config.json`` in a data directory.

    Unknown keys are preserved so the file can be hand-edited.  Values
    are validated through :class:`AggregationSettings` on every update,
    so an invalid patch raises ``ValueError`` and leaves the file untouched.
    """

    def __init__(self, data_dir: Path | str = DEFAULT_DATA_DIR) -> None:
        self._path = Path(data_dir).joinpath(CONFIG_FILE_NAME)
        self._data: dict[str, Any] = _read_json_object(self._path)

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(self._data, indent=2, sort_keys=True)
        self._path.write_text(text + "\n", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    # -- timezone ----------------------------------------------------------------

    @property
    def timezone(self) -> str:
        """IANA zone used to resolve calendar days."""
        return self._data.get("timezone", DEFAULT_TIMEZONE)

    @timezone.setter
    def timezone(self, value: str) -> None:
        self.update({"timezone": value})

    # -- aggregation settings ----------------------------------------------------

    def settings(self) -> AggregationSettings:
        """Validated, immutable view of the aggregation keys."""
        return AggregationSettings.model_validate(
            {k: v for k, v in self._data.items() if k in _SETTINGS_KEYS}
        )

    # -- generic helpers ---------------------------------------------------------

    def as_dict(self) -> dict[str, Any]:
        """Raw file contents overlaid with the effective settings."""
        effective = dict(self._data)
        effective.update(self.settings().model_dump())
        effective["timezone"] = self.timezone
        return effective

    def update(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Validate *patch* against the current values, then write it out.

        Returns the effective config after the write.

        Raises:
            ValueError: If the merged settings fail validation or the
                timezone is unknown.
        """
        merged = {**self._data, **patch}
        AggregationSettings.model_validate({k: v for k, v in merged.items() if k in _SETTINGS_KEYS})
        if "timezone" in patch:
            try:
                ZoneInfo(str(patch["timezone"]))
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"Unknown timezone {patch['timezone']!r}") from exc
        self._data = merged
        self._write()
        return self.as_dict()
