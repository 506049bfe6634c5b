"""CLI entrypoint for external-updates."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path

import click

from external_updates.config.models import AppSettings, TrackerSettings
from external_updates.config.store import SettingsStore
from external_updates.errors import SettingsError, StoreError
from external_updates.host import UpdateHost
from external_updates.persistence.options import SqliteOptionStore
from external_updates.remote.fetcher import MetadataFetcher
from external_updates.runtime_logging import (
    FILE_ENV,
    configure_runtime_logging,
    read_events,
    resolve_log_file,
)
from external_updates.scheduling import IntervalScheduler
from external_updates.version import __version__


@dataclass(slots=True)
class CliContext:
    store: SettingsStore
    state_db: Path | None

    def settings(self) -> AppSettings:
        return self.store.load()

    def host(self, scheduler: IntervalScheduler | None = None) -> UpdateHost:
        settings = self.settings()
        logger = configure_runtime_logging(
            level=settings.logging.level,
            log_file=settings.logging.file,
        )
        db_path = self.state_db or (Path(settings.state_db) if settings.state_db else None)
        return UpdateHost.from_settings(
            settings,
            options=SqliteOptionStore(db_path),
            fetcher=MetadataFetcher(),
            scheduler=scheduler,
            logger=logger,
        )


def _engine(ctx: CliContext, slug: str, scheduler: IntervalScheduler | None = None):
    try:
        return ctx.host(scheduler).engine(slug)
    except SettingsError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings file (defaults to the user config dir)",
)
@click.option(
    "--state-db",
    type=click.Path(dir_okay=False, path_type=Path),
    help="SQLite option store holding check state",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, state_db: Path | None) -> None:
    """Track remote metadata endpoints for newer component versions."""
    ctx.obj = CliContext(store=SettingsStore(config_path), state_db=state_db)


@main.command()
def about() -> None:
    """Show version and project summary."""
    payload = {
        "name": "external-updates",
        "version": __version__,
        "description": "Update availability checks against external metadata endpoints",
    }
    _echo_json(payload)


@main.command("settings-path")
@click.pass_obj
def settings_path_command(ctx: CliContext) -> None:
    """Print settings file path."""
    click.echo(str(ctx.store.path))


@main.command()
@click.argument("metadata_url")
@click.argument("component_id")
@click.option("--slug", default="", help="Defaults to the component file name")
@click.option(
    "--source",
    "version_source",
    type=click.Choice(["header", "distribution", "static"]),
    default="header",
    show_default=True,
)
@click.option("--root", "components_root", default=".", show_default=True)
@click.option("--installed-version", help="Installed version for the static source")
@click.option("--period", "check_period_hours", type=float, default=12, show_default=True)
@click.option("--option-name", help="Option key for check state")
@click.option("--timeout", type=float, default=10.0, show_default=True)
@click.option("--debug", "debug_mode", is_flag=True, help="Log check failures as warnings")
@click.pass_obj
def track(
    ctx: CliContext,
    metadata_url: str,
    component_id: str,
    slug: str,
    version_source: str,
    components_root: str,
    installed_version: str | None,
    check_period_hours: float,
    option_name: str | None,
    timeout: float,
    debug_mode: bool,
) -> None:
    """Add or replace a tracked component."""
    try:
        tracker = TrackerSettings(
            metadata_url=metadata_url,
            component_id=component_id,
            slug=slug,
            version_source=version_source,
            components_root=str(Path(components_root).expanduser().resolve()),
            installed_version=installed_version,
            check_period_hours=check_period_hours,
            option_name=option_name,
            timeout=timeout,
            debug_mode=debug_mode,
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.store.add_tracker(tracker)
    click.echo(tracker.slug)


@main.command("list")
@click.pass_obj
def list_command(ctx: CliContext) -> None:
    """List tracked components."""
    for tracker in ctx.settings().trackers:
        click.echo(f"{tracker.slug}\t{tracker.component_id}\t{tracker.metadata_url}")


@main.command()
@click.argument("slug")
@click.option("--force", is_flag=True, help="Check even if the interval has not elapsed")
@click.pass_obj
def check(ctx: CliContext, slug: str, force: bool) -> None:
    """Run an update check for SLUG."""
    engine = _engine(ctx, slug)
    report = engine.run_check() if force else engine.maybe_check()
    if report is None:
        _echo_json({"slug": slug, "outcome": "not_due", "status": engine.status()})
        return
    _echo_json(
        {
            "slug": slug,
            "outcome": report.outcome.value,
            "error": report.error,
            "update": report.state.update.model_dump() if report.state and report.state.update else None,
        }
    )


@main.command()
@click.argument("slug")
@click.pass_obj
def status(ctx: CliContext, slug: str) -> None:
    """Show cached update state for SLUG without touching the network."""
    engine = _engine(ctx, slug)
    state = engine.load_state()
    update = engine.query_update()
    _echo_json(
        {
            "slug": slug,
            "status": engine.status(),
            "last_check": state.last_check if state else None,
            "checked_version": state.checked_version if state else None,
            "update": update.model_dump() if update else None,
        }
    )


@main.command()
@click.argument("slug")
@click.pass_obj
def info(ctx: CliContext, slug: str) -> None:
    """Fetch and print detail-page metadata for SLUG."""
    view = _engine(ctx, slug).query_info()
    if view is None:
        raise click.ClickException(f"Information unavailable for {slug}")
    _echo_json(view.model_dump())


@main.command()
@click.argument("slug")
@click.option("--keep-tracker", is_flag=True, help="Only delete cached state")
@click.pass_obj
def forget(ctx: CliContext, slug: str, keep_tracker: bool) -> None:
    """Delete cached check state for SLUG and stop tracking it."""
    host = ctx.host()
    try:
        host.uninstall(slug)
        if not keep_tracker:
            ctx.store.remove_tracker(slug)
    except (SettingsError, StoreError, KeyError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"forgot {slug}")


@main.command("log")
@click.option("--limit", type=int, default=100, show_default=True)
@click.option("--slug", help="Only events for this tracked component")
@click.option("--level", help="Minimum level (debug, info, warning, error)")
@click.pass_obj
def log_command(ctx: CliContext, limit: int, slug: str | None, level: str | None) -> None:
    """Print recent runtime log events as JSON lines."""
    settings = ctx.settings()
    sink = resolve_log_file(settings.logging.file or os.getenv(FILE_ENV))
    if not sink.exists():
        raise click.ClickException(f"File not found: {sink}")

    match = {"slug": slug} if slug else {}
    for record in read_events(sink, limit=limit, level=level, **match):
        click.echo(json.dumps(record, sort_keys=True))


@main.command()
@click.option("--poll-seconds", type=float, default=60.0, show_default=True)
@click.option("--max-cycles", type=int, default=0, help="Stop after N polls (0 runs forever)")
@click.pass_obj
def watch(ctx: CliContext, poll_seconds: float, max_cycles: int) -> None:
    """Run periodic checks for every tracked component."""
    scheduler = IntervalScheduler()
    host = ctx.host(scheduler)
    cycles = 0
    try:
        while True:
            for hook in scheduler.run_pending():
                click.echo(hook)
            cycles += 1
            if max_cycles and cycles >= max_cycles:
                break
            time.sleep(poll_seconds)
    except KeyboardInterrupt:
        pass
    host.logger.info("cli.watch.stopped", cycles=cycles)


if __name__ == "__main__":
    main()
