"""fleetwatch CLI: health and capacity status for a fleet of storage clusters.

Commands:
    status          Collect every selected cluster and show the fleet report
    profiles        List configured cluster profiles
    cache show      Show cached snapshots and their age
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

import click
from pydantic import ValidationError

from fleetwatch import __version__
from fleetwatch.cache.store import FileSnapshotCache
from fleetwatch.cli.render import format_bytes, render_report
from fleetwatch.config import ConfigError, FleetConfig, RunOptions, default_cache_path, load_config
from fleetwatch.health.alerts import format_age
from fleetwatch.models import Report
from fleetwatch.sdk.client import FleetWatch, FleetWatchError
from fleetwatch.timing import TimingReport

EXIT_ALL_UNREACHABLE = 2


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_cfg(config_path: str | None) -> FleetConfig:
    """Load config or exit with an error message."""
    try:
        return load_config(config_path)
    except (ConfigError, FileNotFoundError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


def _emit(report: Report, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps(report.to_json_dict(), indent=2))
    else:
        click.echo(render_report(report))


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """fleetwatch: health and capacity dashboard for storage cluster fleets."""


# --- status command ---


@cli.command()
@click.option(
    "--profile", "-p", "profiles", multiple=True,
    help="Profile to include (repeatable, default: all)",
)
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.option("--watch", is_flag=True, help="Refresh continuously")
@click.option(
    "--interval", type=float, default=None,
    help="Seconds between refreshes in watch mode",
)
@click.option("--no-cache", is_flag=True, help="Neither read nor write the snapshot cache")
@click.option("--timeout", type=float, default=None, help="Per-request timeout in seconds")
@click.option(
    "--timing", is_flag=True,
    help="Print per-API-call timings to stderr (single live run only)",
)
@click.option(
    "--cached", is_flag=True,
    help="Show the last cached status without contacting clusters",
)
@click.option("--config", "config_path", default=None, help="Path to fleetwatch.yaml")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv)")
def status(
    profiles: tuple[str, ...],
    json_output: bool,
    watch: bool,
    interval: float | None,
    no_cache: bool,
    timeout: float | None,
    timing: bool,
    cached: bool,
    config_path: str | None,
    verbose: int,
) -> None:
    """Show fleet health, capacity and alerts.

    Exits 2 when no cluster could be reached.
    """
    _configure_logging(verbose)
    cfg = _load_cfg(config_path)

    try:
        options = RunOptions(
            profiles=list(profiles),
            timeout=timeout if timeout is not None else cfg.timeout,
            no_cache=no_cache,
            watch=watch,
            interval=interval if interval is not None else cfg.interval,
        )
    except ValidationError as e:
        click.echo(f"Error: invalid options: {e}", err=True)
        sys.exit(1)
    if timing and (watch or cached):
        click.echo("Error: --timing applies to a single live run only", err=True)
        sys.exit(1)

    timing_report = TimingReport() if timing else None
    try:
        fw = FleetWatch(cfg, options=options, timing=timing_report)
    except FleetWatchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if cached:
        _emit(fw.cached_report(), json_output)
        return

    if watch:
        try:
            for report in fw.watch():
                if not json_output:
                    click.clear()
                _emit(report, json_output)
        except KeyboardInterrupt:
            click.echo("Stopped.", err=True)
        return

    report = fw.collect()
    _emit(report, json_output)
    if timing_report is not None:
        for line in timing_report.render_lines():
            click.echo(line, err=True)
    if report.all_unreachable:
        sys.exit(EXIT_ALL_UNREACHABLE)


# --- profiles command ---


@cli.command("profiles")
@click.option("--config", "config_path", default=None, help="Path to fleetwatch.yaml")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def list_profiles(config_path: str | None, json_output: bool) -> None:
    """List configured cluster profiles."""
    cfg = _load_cfg(config_path)
    profiles = cfg.select()

    if json_output:
        data = [p.model_dump(mode="json", exclude={"token"}) for p in profiles]
        click.echo(json.dumps(data, indent=2))
        return

    if not profiles:
        click.echo("No profiles configured.")
        return
    width = max(len(p.name) for p in profiles)
    for p in profiles:
        platform = p.platform.label if p.platform is not None else "auto"
        flags = "  insecure" if p.insecure else ""
        click.echo(f"  {p.name:<{width}}  {p.url}  ({platform}){flags}")
    click.echo(f"\n{len(profiles)} profile(s).")


# --- cache commands ---


@cli.group()
def cache() -> None:
    """Inspect the snapshot cache."""


@cache.command("show")
@click.option("--config", "config_path", default=None, help="Path to fleetwatch.yaml")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def cache_show(config_path: str | None, json_output: bool) -> None:
    """Show cached snapshots and their age."""
    cfg = _load_cfg(config_path)
    store = FileSnapshotCache(cfg.cache_path or default_cache_path())
    entries = store.get_many()

    if json_output:
        data = [e.model_dump(mode="json") for e in entries.values()]
        click.echo(json.dumps(data, indent=2))
        return

    if not entries:
        click.echo(f"No cached snapshots in {store.path}")
        return

    now = datetime.now(tz=UTC)
    width = max(len(name) for name in entries)
    for name, entry in entries.items():
        snapshot = entry.snapshot
        used = (
            format_bytes(snapshot.capacity.used_bytes)
            if snapshot.capacity is not None else "?"
        )
        click.echo(
            f"  {name:<{width}}  {entry.last_success.isoformat()[:19]}  "
            f"({format_age(now - entry.last_success)} ago)  "
            f"{snapshot.cluster_name or '-'}  {used} used"
        )
    click.echo(f"\n{len(entries)} cached cluster(s) in {store.path}")
