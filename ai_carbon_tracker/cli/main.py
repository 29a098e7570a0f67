"""
CLI interface for AI Carbon Tracker.

Provides command-line access to all tool functionality.
"""

import logging
import sqlite3
import sys
import threading
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ai_carbon_tracker.config.loader import (
    DEFAULT_CONFIG_PATH,
    TrackerConfig,
    load_config_or_defaults
)
from ai_carbon_tracker.config.watcher import ConfigWatcher
from ai_carbon_tracker.core.scheduler import ThreadingScheduler
from ai_carbon_tracker.core.tiers import DEFAULT_TIER_TABLE
from ai_carbon_tracker.core.tracker import CarbonTracker
from ai_carbon_tracker.storage.models import AccumulatedStats
from ai_carbon_tracker.storage.repository import StatsRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to YAML config file (default: {DEFAULT_CONFIG_PATH})"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging"
    )
):
    """AI Carbon Tracker CLI."""
    _configure_logging(verbose)
    ctx.obj = {"config_path": config}
    if ctx.invoked_subcommand is None:
        console.print("AI Carbon Tracker - Use --help to see available commands")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)]
    )


def _load_config(ctx: typer.Context) -> TrackerConfig:
    try:
        return load_config_or_defaults(ctx.obj["config_path"])
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _build_tracker(config: TrackerConfig, scheduler: ThreadingScheduler) -> CarbonTracker:
    try:
        repository = StatsRepository(config.db_path)
    except (sqlite3.Error, OSError) as e:
        console.print(f"[red]Error opening database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    return CarbonTracker(
        config=config,
        repository=repository,
        scheduler=scheduler,
        notifier=_print_milestone,
        on_warning=_print_warning
    )


def _print_milestone(message: str, emoji: str) -> None:
    console.print(f"🌿 {message}")


def _print_warning(message: str) -> None:
    console.print(f"[yellow]AI Carbon Tracker:[/] {message}")


def _format_status_line(stats: AccumulatedStats) -> str:
    tier = DEFAULT_TIER_TABLE.current_tier(stats.total_emitted_mass_kg)
    return (
        f"{tier.emoji} {stats.total_emitted_mass_kg:.4f} kg CO₂ | "
        f"{stats.total_tokens:,} tokens | {stats.request_count} requests"
    )


@app.command()
def status(ctx: typer.Context):
    """Show accumulated emissions, current tier and equivalents."""
    config = _load_config(ctx)
    tracker = _build_tracker(config, ThreadingScheduler())
    _display_stats(tracker)


@app.command()
def scan(ctx: typer.Context):
    """Scan transcripts once and record any new usage."""
    config = _load_config(ctx)
    tracker = _build_tracker(config, ThreadingScheduler())

    ingested = tracker.scan()
    monitoring = tracker.get_monitoring_status()
    if monitoring.paths_found:
        console.print(f"[green]✓[/] Recorded {ingested} new requests")
    console.print(_format_status_line(tracker.get_stats()))


@app.command()
def watch(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        "-d",
        help="Stop after this many seconds instead of waiting for Ctrl-C"
    )
):
    """
    Keep polling transcripts and report milestones as they happen.

    Edits to the config file's emission_factor are applied while running.
    """
    config_path = ctx.obj["config_path"]
    config = _load_config(ctx)
    scheduler = ThreadingScheduler()
    tracker = _build_tracker(config, scheduler)

    watcher = ConfigWatcher(config_path or DEFAULT_CONFIG_PATH, tracker.apply_config)
    watcher.start(scheduler, config.refresh_interval)

    if config.show_in_status_bar:
        console.print(_format_status_line(tracker.get_stats()))
        tracker.start_status_refresh(
            lambda stats: console.print(_format_status_line(stats))
        )

    try:
        tracker.start()
        threading.Event().wait(duration)
    except KeyboardInterrupt:
        console.print("\nStopping carbon tracking")
    finally:
        tracker.stop()
        watcher.stop()
        scheduler.shutdown()


@app.command()
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt"
    )
):
    """Reset all carbon tracking statistics."""
    config = _load_config(ctx)
    if not yes and not typer.confirm(
        "Are you sure you want to reset carbon tracking statistics?"
    ):
        console.print("Reset cancelled")
        sys.exit(EXIT_CODE_PASS)

    tracker = _build_tracker(config, ThreadingScheduler())
    tracker.reset_stats()
    console.print("[green]✓[/] Carbon tracking statistics have been reset")


@app.command()
def tiers():
    """List milestone tiers and waypoints."""
    table = Table(title="Milestone Tiers")
    table.add_column("Tier")
    table.add_column("Range (kg CO₂)", justify="right")
    table.add_column("Equivalent")

    for tier in DEFAULT_TIER_TABLE.tiers:
        upper = "∞" if tier.upper_bound == float("inf") else f"{tier.upper_bound:g}"
        table.add_row(
            f"{tier.emoji} {tier.name}",
            f"{tier.lower_bound:g} - {upper}",
            tier.equivalent
        )
    console.print(table)

    waypoints = Table(title="Waypoints")
    waypoints.add_column("At (kg CO₂)", justify="right")
    waypoints.add_column("Equivalent")
    for waypoint in DEFAULT_TIER_TABLE.waypoints:
        waypoints.add_row(f"{waypoint.threshold_kg:g}", f"{waypoint.emoji} {waypoint.equivalent}")
    console.print(waypoints)


@app.command()
def monitoring(ctx: typer.Context):
    """Show which transcript directories are being monitored."""
    config = _load_config(ctx)
    tracker = _build_tracker(config, ThreadingScheduler())
    monitoring_status = tracker.get_monitoring_status()

    console.print(f"Paths found: {monitoring_status.paths_found}")
    for source_dir in config.source_dirs:
        marker = "[green]✓[/]" if Path(source_dir).expanduser().is_dir() else "[red]✗[/]"
        console.print(f"  {marker} {source_dir}")
    console.print(f"Messages processed: {monitoring_status.records_processed}")


def _display_stats(tracker: CarbonTracker) -> None:
    """Display accumulated stats in the same groups as the stats view."""
    stats = tracker.get_stats()
    current = tracker.get_current_tier()
    upcoming = tracker.get_next_tier()
    equivalents = tracker.get_equivalents()

    console.print(f"\n[bold]{current.emoji} Current: {current.name}[/bold]")
    console.print(f"  ≈ {current.equivalent}")
    console.print(f"  {current.description}")
    if upcoming:
        console.print(f"  Next: {upcoming.emoji} {upcoming.name}")
        console.print(f"  Progress: {tracker.get_progress():.0f}%")

    table = Table(show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total CO₂", f"{stats.total_emitted_mass_kg:.4f} kg")
    table.add_row("Total Tokens", f"{stats.total_tokens:,}")
    table.add_row("  Input", f"{stats.input_tokens:,}")
    table.add_row("  Output", f"{stats.output_tokens:,}")
    table.add_row("Requests", str(stats.request_count))
    table.add_row("Tracking since", stats.started_at.strftime("%Y-%m-%d"))
    table.add_row("Emission factor", f"{tracker.emission_factor} kg / 1K tokens")
    console.print(table)

    console.print("\n[bold]Environmental Impact[/bold]")
    console.print(f"  {equivalents.trees_needed:.2f} trees/year needed")
    console.print(f"  = {equivalents.km_driven:.2f} km driven")
    console.print(f"  = {equivalents.smartphone_charges:.0f} smartphones charged")
    console.print(f"  = {equivalents.bulb_hours:.0f} hours of 60W bulb")


if __name__ == "__main__":
    app()
