from __future__ import annotations

from datetime import datetime

import typer
from rich.console import Console

from feederlink.cli.common import (
    build_registry,
    load_settings_or_exit,
    resolve_config_path_or_exit,
)


def register(app: typer.Typer) -> None:
    @app.command()
    def info() -> None:
        """Show data directory, configuration and client state."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        preferences = db.load_preferences()

        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)

        console = Console()

        console.print("[bold]feederlink Info[/bold]\n")
        console.print(f"Data directory: {db.path}")
        console.print(f"Device list: {db.devices_path}")
        console.print(f"Config file: {config_path if config_exists else 'defaults'}")

        console.print("\n[bold]Configuration[/bold]")
        console.print(f"Default prefix: {settings.scanning.default_prefix}")
        console.print(
            f"Scan range: {settings.scanning.range_start}-{settings.scanning.range_end}"
        )
        console.print(f"Probe timeout: {settings.scanning.timeout}s")
        console.print(f"Command timeout: {settings.client.command_timeout}s")

        console.print("\n[bold]State[/bold]")
        console.print(f"Known feeders: {len(registry)}")
        if preferences.last_subnet_prefix:
            console.print(f"Last scanned prefix: {preferences.last_subnet_prefix}")
        if preferences.last_feeding_time:
            scheduled = datetime.fromtimestamp(preferences.last_feeding_time)
            console.print(f"Scheduled feeding time: {scheduled:%H:%M}")
        if preferences.last_status:
            console.print(f"Last status: {preferences.last_status}")
