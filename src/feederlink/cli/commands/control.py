from __future__ import annotations

import asyncio
from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from feederlink.cli.common import (
    build_registry,
    load_settings_or_exit,
    report_outcome,
    resolve_device_or_exit,
)
from feederlink.core import CommandClient, CommandOutcome, FeederController, signal_bucket
from feederlink.models import Device, FeedLogEntry, TelemetrySnapshot


async def collect_status(
    controller: FeederController,
) -> tuple[
    tuple[CommandOutcome, Device | None],
    tuple[CommandOutcome, str | None],
    tuple[CommandOutcome, TelemetrySnapshot | None],
]:
    return await asyncio.gather(
        controller.identify(), controller.storage(), controller.status()
    )


def _parse_time(value: str) -> datetime:
    try:
        parsed = datetime.strptime(value.strip(), "%H:%M")
    except ValueError as exc:
        raise typer.BadParameter("expected HH:MM") from exc
    return datetime.now().replace(
        hour=parsed.hour, minute=parsed.minute, second=0, microsecond=0
    )


def register(app: typer.Typer) -> None:
    @app.command()
    def status(ref: str = typer.Argument(..., help="Feeder id, address or name")) -> None:
        """Show identity, storage and live telemetry of a feeder."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        device = resolve_device_or_exit(registry, ref)

        async def _collect():
            async with CommandClient(settings.client) as client:
                return await collect_status(FeederController(client, device.address))

        (id_outcome, identity), (_, storage), (tel_outcome, telemetry) = asyncio.run(
            _collect()
        )

        console = Console()
        console.print(f"[bold]{device.name}[/bold] ({device.address})")
        if not id_outcome.ok and not tel_outcome.ok:
            db.update_preferences(last_status="Disconnected")
            console.print(f"Status: [red]Disconnected[/red] ({id_outcome.describe()})")
            raise typer.Exit(1)

        console.print("Status: [green]Connected[/green]")
        if identity is not None and identity.name != device.name:
            console.print(f"Controller name: {identity.name}")
        console.print(f"Storage: {storage if storage is not None else '-'}")
        if telemetry is not None:
            console.print(f"Wi-Fi signal: {signal_bucket(telemetry.signal_dbm).value}")
            console.print(f"Fed weight: {telemetry.fed_weight:.2f}")
            console.print(f"Feeding: {'yes' if telemetry.feeding else 'no'}")
        db.update_preferences(last_status="Connected")

    @app.command("log")
    def feed_log(ref: str = typer.Argument(..., help="Feeder id, address or name")) -> None:
        """Show the controller's feed history."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        device = resolve_device_or_exit(registry, ref)

        async def _fetch() -> tuple[CommandOutcome, list[FeedLogEntry] | None]:
            async with CommandClient(settings.client) as client:
                return await FeederController(client, device.address).feed_log()

        outcome, entries = asyncio.run(_fetch())
        console = Console()
        if entries is None:
            report_outcome(db, console, outcome, "")
            return
        if not entries:
            console.print("No feed log entries.")
            return

        table = Table()
        table.add_column("Time", style="cyan")
        table.add_column("Target", justify="right")
        for entry in entries:
            table.add_row(entry.time, f"{entry.target_weight:.2f}")
        console.print(table)

    @app.command()
    def tare(ref: str = typer.Argument(..., help="Feeder id, address or name")) -> None:
        """Zero the feeder's scale."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        device = resolve_device_or_exit(registry, ref)

        async def _tare() -> CommandOutcome:
            async with CommandClient(settings.client) as client:
                return await FeederController(client, device.address).tare_scale()

        report_outcome(db, Console(), asyncio.run(_tare()), "Scale tared")

    @app.command()
    def schedule(
        ref: str = typer.Argument(..., help="Feeder id, address or name"),
        at: str = typer.Argument(..., help="Daily feeding time, HH:MM"),
    ) -> None:
        """Set the daily feeding time."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        device = resolve_device_or_exit(registry, ref)
        when = _parse_time(at)

        async def _schedule() -> CommandOutcome:
            async with CommandClient(settings.client) as client:
                return await FeederController(client, device.address).set_target_time(when)

        outcome = asyncio.run(_schedule())
        if outcome.ok:
            db.update_preferences(last_feeding_time=when.timestamp())
        report_outcome(db, Console(), outcome, f"Daily feeding set to {when:%H:%M}")

    @app.command()
    def stop(ref: str = typer.Argument(..., help="Feeder id, address or name")) -> None:
        """Send a stop command to a feeder."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        device = resolve_device_or_exit(registry, ref)

        async def _stop() -> CommandOutcome:
            async with CommandClient(settings.client) as client:
                return await FeederController(client, device.address).stop_feeding()

        report_outcome(db, Console(), asyncio.run(_stop()), f"Stopped '{device.name}'")
