"""Typer CLI entrypoint and command definitions for screentally."""

import json
from pathlib import Path

import typer

from screentally.core.defaults import (
    DEFAULT_BACKFILL_DAYS,
    DEFAULT_DATA_DIR,
    DEFAULT_DB_FILENAME,
    DEFAULT_OUT_DIR,
)

app = typer.Typer()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Turn raw interaction events into daily usage, scroll and device summaries."""
    from screentally.core.logging import configure_logging

    configure_logging("DEBUG" if verbose else "WARNING")


def _open(data_dir: str):
    """Return ``(config, store)`` for *data_dir*."""
    from screentally.core.config import PipelineConfig
    from screentally.storage.sqlite import SqliteStore

    cfg = PipelineConfig(data_dir)
    store = SqliteStore(Path(data_dir) / DEFAULT_DB_FILENAME, tz=cfg.timezone)
    return cfg, store


def _pipeline(cfg, store):
    from screentally.report.daily import DailyPipeline

    return DailyPipeline(store, store, store, settings=cfg.settings(), tz=cfg.timezone)


def _check_date(date: str) -> str:
    from screentally.core.time import parse_date_string

    try:
        parse_date_string(date)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    return date


# -- ingest -------------------------------------------------------------------


@app.command("ingest")
def ingest_cmd(
    input_file: str = typer.Option(..., "--input", help="Path to a collector JSON export"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
    incremental: bool = typer.Option(
        False, "--incremental", help="Only insert events newer than the last sync checkpoint",
    ),
    now_ms: int = typer.Option(None, "--now-ms", help="Sync upper bound (epoch ms); defaults to now"),
) -> None:
    """Parse a raw event export and store its events."""
    from screentally.adapters.usagestats.client import parse_event_export, sync_events

    path = Path(input_file)
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)

    cfg, store = _open(data_dir)
    try:
        try:
            events = parse_event_export(path, tz=cfg.timezone)
        except (KeyError, TypeError, ValueError) as exc:
            typer.echo(f"Invalid export {path}: {exc}", err=True)
            raise typer.Exit(code=1)
        if incremental:
            inserted = sync_events(events, store, store, now_ms=now_ms)
        else:
            inserted = store.insert_events(events)
    finally:
        store.close()
    typer.echo(f"Inserted {inserted} of {len(events)} parsed events")


# -- metadata -----------------------------------------------------------------
metadata_app = typer.Typer()
app.add_typer(metadata_app, name="metadata")


@metadata_app.command("import")
def metadata_import_cmd(
    file: str = typer.Option(..., "--file", help="CSV with package_name, is_user_visible[, user_hides_override, app_name]"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Import app visibility metadata used to build the filter set."""
    from screentally.adapters.usagestats.client import parse_metadata_csv

    csv_path = Path(file)
    if not csv_path.exists():
        typer.echo(f"File not found: {csv_path}", err=True)
        raise typer.Exit(code=1)

    try:
        items = parse_metadata_csv(csv_path)
    except ValueError as exc:
        typer.echo(f"Invalid metadata: {exc}", err=True)
        raise typer.Exit(code=1)

    _, store = _open(data_dir)
    try:
        store.upsert_metadata(items)
    finally:
        store.close()
    typer.echo(f"Imported metadata for {len(items)} packages")


def _set_override(package: str, hides: bool | None, data_dir: str) -> None:
    _, store = _open(data_dir)
    try:
        store.set_user_hides_override(package, hides)
    finally:
        store.close()


@metadata_app.command("hide")
def metadata_hide_cmd(
    package: str = typer.Argument(..., help="Package to exclude from all derived data"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Hide a package regardless of its launcher visibility."""
    _set_override(package, True, data_dir)
    typer.echo(f"Hidden {package}; re-run process or backfill to update stored days")


@metadata_app.command("unhide")
def metadata_unhide_cmd(
    package: str = typer.Argument(..., help="Package to include in derived data"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Show a package regardless of its launcher visibility."""
    _set_override(package, False, data_dir)
    typer.echo(f"Unhidden {package}; re-run process or backfill to update stored days")


@metadata_app.command("reset")
def metadata_reset_cmd(
    package: str = typer.Argument(..., help="Package whose explicit choice to clear"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Drop the explicit hide choice so launcher visibility decides again."""
    _set_override(package, None, data_dir)
    typer.echo(f"Cleared hide override for {package}")


@metadata_app.command("uninstall")
def metadata_uninstall_cmd(
    package: str = typer.Argument(..., help="Package that was removed from the device"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Mark a package as uninstalled; its history is kept."""
    _, store = _open(data_dir)
    try:
        found = store.mark_uninstalled(package)
    finally:
        store.close()
    if not found:
        typer.echo(f"Unknown package: {package}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Marked {package} as uninstalled")


@metadata_app.command("list")
def metadata_list_cmd(
    installed_only: bool = typer.Option(False, "--installed-only", help="Skip uninstalled packages"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Print app metadata as JSON, with the effective hidden flag."""
    _, store = _open(data_dir)
    try:
        items = store.installed_metadata() if installed_only else store.all_metadata()
    finally:
        store.close()
    rows = [{**m.model_dump(mode="json"), "is_hidden": m.is_hidden} for m in items]
    typer.echo(json.dumps(rows, indent=2))


# -- process / backfill -------------------------------------------------------


@app.command("process")
def process_cmd(
    date: str = typer.Option(..., help="Date in YYYY-MM-DD format"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Recompute and replace all derived rows for one date."""
    _check_date(date)
    cfg, store = _open(data_dir)
    try:
        result = _pipeline(cfg, store).process_date(date)
    finally:
        store.close()

    if result is None:
        typer.echo(f"No events for {date}; cleared derived data")
        return
    typer.echo(
        f"Processed {date}: {len(result.scroll_sessions)} scroll sessions, "
        f"{len(result.usage_records)} usage records, "
        f"{result.device_summary.total_usage_time_millis} ms total usage"
    )


@app.command("backfill")
def backfill_cmd(
    days: int = typer.Option(DEFAULT_BACKFILL_DAYS, min=0, help="Number of past days to recompute"),
    today: str = typer.Option(None, help="Treat this date as today (YYYY-MM-DD)"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Recompute the N days before today, stopping at the first failure."""
    from screentally.core.time import today_date_string
    from screentally.report.backfill import backfill

    cfg, store = _open(data_dir)
    current = _check_date(today) if today else today_date_string(cfg.timezone)
    try:
        result = backfill(_pipeline(cfg, store), days, today=current)
    finally:
        store.close()

    if not result.success:
        typer.echo(
            f"Backfill failed at {result.failed_date} after {len(result.processed)} day(s): {result.error}",
            err=True,
        )
        raise typer.Exit(code=1)
    typer.echo(f"Backfilled {len(result.processed)} day(s)")


# -- summary ------------------------------------------------------------------


@app.command("summary")
def summary_cmd(
    date: str = typer.Option(None, help="Persisted date to show (YYYY-MM-DD)"),
    live: bool = typer.Option(False, "--live", help="Compute today's summary from raw events"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Print a device summary as JSON."""
    from screentally.core.time import today_date_string
    from screentally.report.live import LiveSummaryProjector

    if not live and date is None:
        typer.echo("Pass --date or --live", err=True)
        raise typer.Exit(code=1)

    cfg, store = _open(data_dir)
    try:
        if live:
            projector = LiveSummaryProjector(
                _pipeline(cfg, store), lambda: today_date_string(cfg.timezone),
            )
            projector.attach(store)
            summary = projector.latest
            projector.close()
        else:
            summary = store.device_summary_for_date(_check_date(date))
    finally:
        store.close()

    if summary is None:
        typer.echo(f"No summary stored for {date}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(summary.model_dump(mode="json"), indent=2))


# -- history ------------------------------------------------------------------


@app.command("notifications")
def notifications_cmd(
    start: str = typer.Option(..., help="First date of the period (YYYY-MM-DD)"),
    end: str = typer.Option(..., help="Last date of the period (YYYY-MM-DD)"),
    by: str = typer.Option("app", help="Group counts by 'app' or 'date'"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Print notification counts for a period as JSON."""
    _check_date(start)
    _check_date(end)
    if by not in ("app", "date"):
        typer.echo(f"Unsupported grouping {by!r}; choose app or date", err=True)
        raise typer.Exit(code=1)

    _, store = _open(data_dir)
    try:
        if by == "app":
            counts = store.notification_counts_per_app(start, end)
        else:
            counts = store.notification_counts_per_date(start, end)
    finally:
        store.close()
    typer.echo(json.dumps(counts, indent=2))


@app.command("app-history")
def app_history_cmd(
    package: str = typer.Option(..., help="Package to report on"),
    dates: list[str] = typer.Option(None, "--date", help="Date to include (repeatable); all usage dates if omitted"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Print one package's usage and scroll totals per date as JSON."""
    for date in dates or []:
        _check_date(date)

    _, store = _open(data_dir)
    try:
        selected = list(dates) if dates else store.usage_dates()
        usage = {r.date_string: r for r in store.usage_for_package(package, selected)}
        scroll = store.scroll_totals_for_package(package, selected)
    finally:
        store.close()

    rows = []
    for date in sorted(set(usage) | set(scroll)):
        record = usage.get(date)
        rows.append({
            "date_string": date,
            "usage_time_millis": record.usage_time_millis if record else 0,
            "active_time_millis": record.active_time_millis if record else 0,
            "app_open_count": record.app_open_count if record else 0,
            "notification_count": record.notification_count if record else 0,
            "scroll_amount": scroll.get(date, 0),
        })
    typer.echo(json.dumps(rows, indent=2))


# -- export -------------------------------------------------------------------


@app.command("export")
def export_cmd(
    date: str = typer.Option(..., help="Date in YYYY-MM-DD format"),
    out_dir: str = typer.Option(DEFAULT_OUT_DIR, help="Output directory"),
    fmt: str = typer.Option("parquet", "--format", help="parquet, csv or json"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Export the persisted rows of one date."""
    from screentally.core.store import TABLE_FORMATS
    from screentally.report.export import export_day

    _check_date(date)
    if fmt not in TABLE_FORMATS:
        typer.echo(f"Unsupported format {fmt!r}; choose from {', '.join(TABLE_FORMATS)}", err=True)
        raise typer.Exit(code=1)

    _, store = _open(data_dir)
    try:
        written = export_day(store, date, Path(out_dir), fmt=fmt)  # type: ignore[arg-type]
    finally:
        store.close()
    for name, path in written.items():
        typer.echo(f"{name}: {path}")


# -- config -------------------------------------------------------------------
config_app = typer.Typer()
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show_cmd(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Print the effective configuration."""
    from screentally.core.config import PipelineConfig

    typer.echo(json.dumps(PipelineConfig(data_dir).as_dict(), indent=2, sort_keys=True))


@config_app.command("set")
def config_set_cmd(
    key: str = typer.Argument(..., help="Configuration key"),
    value: str = typer.Argument(..., help="New value (parsed as JSON when possible)"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Processed data directory"),
) -> None:
    """Update one configuration key."""
    from screentally.core.config import PipelineConfig

    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    try:
        PipelineConfig(data_dir).update({key: parsed})
    except ValueError as exc:
        typer.echo(f"Invalid value for {key}: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {parsed!r}")


if __name__ == "__main__":
    app()
