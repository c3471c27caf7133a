"""Sequential replay of the daily pipeline over past days."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from screentally.core.time import past_date_string
from screentally.report.daily import DailyPipeline

logger = logging.getLogger(__name__)


class BackfillResult(BaseModel, frozen=True):
    """Outcome of :func:`backfill`.

    ``processed`` lists the dates that were committed, oldest last
    (processing runs from yesterday backwards).
    """

    success: bool
    processed: list[str] = Field(default_factory=list)
    failed_date: str | None = None
    error: str | None = None


def backfill(pipeline: DailyPipeline, days: int, *, today: str) -> BackfillResult:
    """Recompute the *days* calendar days before *today*, newest first.

    Today itself is never touched.  The first failing date stops the
    run; dates already processed keep their committed rows.

    Args:
        pipeline: Daily pipeline to invoke per date.
        days: Number of past days to process.
        today: Current calendar day (YYYY-MM-DD).

    Returns:
        A :class:`BackfillResult`; ``success`` is ``True`` only when
        every date succeeded.

    Raises:
        ValueError: If *days* is negative.
    """
    if days < 0:
        raise ValueError(f"days must be >= 0, got {days}")

    logger.info("Starting backfill of %d days before %s", days, today)
    processed: list[str] = []
    for offset in range(1, days + 1):
        date_string = past_date_string(today, offset)
        try:
            pipeline.process_date(date_string)
        except Exception as exc:
            logger.exception("Backfill failed for %s", date_string)
            return BackfillResult(
                success=False,
                processed=processed,
                failed_date=date_string,
                error=str(exc),
            )
        processed.append(date_string)

    logger.info("Backfill completed for %d days", len(processed))
    return BackfillResult(success=True, processed=processed)
