from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from feederlink.config import (
    Settings,
    data_dir_from_settings,
    get_settings,
    resolve_config_path,
)
from feederlink.core import CommandOutcome, DeviceRegistry
from feederlink.models import Device
from feederlink.storage import Database


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_database(settings: Settings, data_dir: Path | None = None) -> Database:
    path = data_dir or data_dir_from_settings(settings)
    return Database(path)


def build_registry(settings: Settings) -> tuple[Database, DeviceRegistry]:
    db = build_database(settings)
    return db, DeviceRegistry(db)


def resolve_device_or_exit(registry: DeviceRegistry, ref: str) -> Device:
    device = registry.find(ref)
    if device is None:
        Console().print(f"[yellow]![/yellow] No feeder matches '{ref}'")
        raise typer.Exit(1)
    return device


def report_outcome(
    db: Database, console: Console, outcome: CommandOutcome, success: str
) -> None:
    """Print and remember the result of a command; exit 1 on failure."""
    if outcome.ok:
        db.update_preferences(last_status=success)
        console.print(f"[green]✓[/green] {success}")
        return
    message = outcome.describe()
    db.update_preferences(last_status=message)
    console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(1)
