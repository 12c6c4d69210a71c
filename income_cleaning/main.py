#!/usr/bin/env python3
"""
Household Income Cleaning - Command Line Entry Point

Usage:
    python -m income_cleaning.main init-db
    python -m income_cleaning.main run
    python -m income_cleaning.main schedule
    python -m income_cleaning.main insert rows.json --mode incremental
    python -m income_cleaning.main check
"""

import json
import sys
from datetime import timedelta
from pathlib import Path

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from income_cleaning.cleaning import CleaningReport, create_pipeline
from income_cleaning.config import settings
from income_cleaning.database import init_db
from income_cleaning.diagnostics import build_report
from income_cleaning.errors import CleaningError
from income_cleaning.hooks import MODES, InsertionHook
from income_cleaning.scheduler import Scheduler
from income_cleaning.utils.logging import setup_logging


console = Console()


def print_report(report: CleaningReport) -> None:
    table = Table(title=f"Cleaning run ({report.trigger})")
    table.add_column("Metric")
    table.add_column("Value")

    status_colour = {"success": "green", "skipped": "yellow"}.get(report.status, "red")
    table.add_row("Status", f"[{status_colour}]{report.status}[/{status_colour}]")
    table.add_row("Run time", str(report.run_time or "-"))
    table.add_row("Copied", str(report.records_copied))
    table.add_row("Duplicates removed", str(report.duplicates_removed))
    table.add_row("Normalized", str(report.records_normalized))
    table.add_row("Invalid (skipped)", str(report.records_invalid))
    duration = f"{report.duration_seconds:.2f}s" if report.duration_seconds is not None else "-"
    table.add_row("Duration", duration)

    console.print(table)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write logs to this file (default: CLEANING_LOG_FILE)",
)
def cli(debug, log_file):
    """US Household Income - Automated Data Cleaning"""
    setup_logging(level="DEBUG" if debug else None, log_file=log_file)


@cli.command("init-db")
def init_db_command():
    """Create the raw, cleaned and heartbeat tables if they do not exist."""
    try:
        pipeline = create_pipeline()
        init_db(pipeline.cleaned_store.engine)
    except CleaningError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]Tables ready ({settings.database.url})[/green]")


@cli.command()
def run():
    """Run the cleaning pipeline once."""
    try:
        pipeline = create_pipeline()
        report = pipeline.run(trigger="manual")
    except CleaningError as e:
        console.print(f"[red]Cleaning failed: {e}[/red]")
        logger.exception("Cleaning run failed")
        sys.exit(1)
    print_report(report)


@cli.command()
@click.option("--once", is_flag=True, help="Tick once and exit")
@click.option("--interval-days", type=float, default=None, help="Override the run interval")
@click.option("--catch-up/--no-catch-up", default=None, help="Run once after missed periods, or skip them")
def schedule(once: bool, interval_days: float | None, catch_up: bool | None):
    """Run the pipeline on a fixed interval (foreground)."""
    try:
        pipeline = create_pipeline()
    except CleaningError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    interval = timedelta(days=interval_days) if interval_days else None
    scheduler = Scheduler(pipeline, interval=interval, catch_up=catch_up)

    if once:
        report = scheduler.tick()
        if report is None:
            console.print(f"[dim]Nothing due; next run at {scheduler.next_fire()}[/dim]")
        else:
            print_report(report)
        return

    console.print(f"[bold blue]Scheduler running every {scheduler.interval}[/bold blue] (Ctrl+C to stop)")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()


@cli.command()
@click.argument("rows_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--mode", type=click.Choice(MODES), default=None, help="Hook mode (default from settings)")
@click.option("--wait", is_flag=True, help="Wait for an in-flight run instead of skipping")
def insert(rows_file: Path, mode: str | None, wait: bool):
    """
    Insert raw rows from a JSON file and clean them via the insertion hook.

    ROWS_FILE holds a JSON list of objects keyed by column name.
    """
    with open(rows_file, encoding="utf-8") as f:
        rows = json.load(f)
    if isinstance(rows, dict):
        rows = [rows]

    try:
        pipeline = create_pipeline()
        pipeline.raw_source.ensure_table()
        hook = InsertionHook(pipeline, mode=mode, blocking=wait or None).attach()
        inserted = pipeline.raw_source.insert(rows)
    except CleaningError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(f"Inserted {len(inserted)} raw rows")
    if hook.last_report is not None:
        print_report(hook.last_report)


@cli.command()
@click.option("--states/--no-states", default=True, help="Show State_Name counts")
def check(states: bool):
    """Report residual duplicates, identity collisions and row counts."""
    try:
        pipeline = create_pipeline()
        pipeline.cleaned_store.ensure_table()
        with pipeline.cleaned_store.transaction() as session:
            report = build_report(session, pipeline.corrections)
    except CleaningError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    summary = Table(title="Cleaned table")
    summary.add_column("Metric")
    summary.add_column("Value")
    summary.add_row("Rows", str(report.row_count))
    summary.add_row("Residual (id, TimeStamp) duplicates", str(len(report.residual_duplicates)))
    summary.add_row("Ids seen at several timestamps", str(len(report.duplicate_ids)))
    summary.add_row("Unnormalized rows", str(report.unnormalized))
    console.print(summary)

    if report.residual_duplicates:
        table = Table(title="Residual duplicates")
        table.add_column("id")
        table.add_column("TimeStamp")
        table.add_column("Count")
        for record_id, timestamp, count in report.residual_duplicates:
            table.add_row(str(record_id), str(timestamp), str(count))
        console.print(table)

    if states and report.state_name_counts:
        table = Table(title="Rows per State_Name")
        table.add_column("State_Name")
        table.add_column("Count")
        for state_name, count in report.state_name_counts:
            table.add_row(state_name or "[dim]NULL[/dim]", str(count))
        console.print(table)

    if not report.clean:
        sys.exit(2)


if __name__ == "__main__":
    cli()
