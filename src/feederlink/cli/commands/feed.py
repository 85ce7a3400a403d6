from __future__ import annotations

import asyncio
from dataclasses import dataclass

import typer
from rich.console import Console

from feederlink.cli.common import (
    build_registry,
    load_settings_or_exit,
    resolve_device_or_exit,
)
from feederlink.config import Settings
from feederlink.core import (
    CommandClient,
    CommandOutcome,
    DevicePoller,
    FeederController,
    FeedingSessionController,
    SessionResult,
)
from feederlink.models import ConnectivityState, Device, DeviceStatus, TelemetrySnapshot


@dataclass
class FeedReport:
    start: SessionResult | None = None
    target: float = 0.0
    finish: SessionResult | None = None
    completed: bool = False
    fed_weight: float = 0.0


async def run_feed_session(
    client: CommandClient,
    device: Device,
    amount: float | None,
    settings: Settings,
    console: Console,
    report: FeedReport | None = None,
) -> FeedReport:
    """Start a session and poll the feeder until it ends.

    Losing the feeder mid-session counts as a transport failure and triggers
    the fail-safe stop. Cancellation (Ctrl+C) stops the feeder manually, or
    waits for a stop already in flight; pass `report` to read its outcome
    after cancellation.
    """
    sessions = FeedingSessionController(client, settings.feeding)
    report = report or FeedReport()
    report.target = sessions.target_for(device, amount)
    report.start = await sessions.start(device, amount)
    if not report.start.accepted:
        return report
    console.print(f"Feeding '{device.name}' {report.target:.1f} lbs. Press Ctrl+C to stop.")

    done = asyncio.Event()

    async def _on_update(
        status: DeviceStatus,
        snapshot: TelemetrySnapshot | None,
        outcome: CommandOutcome,
    ) -> None:
        if snapshot is not None:
            report.fed_weight = snapshot.fed_weight
            console.print(f"Fed {snapshot.fed_weight:.2f} lbs")
            if await sessions.on_telemetry(device.id, snapshot):
                report.completed = True
                done.set()
        elif status.connectivity is ConnectivityState.DISCONNECTED:
            if sessions.is_active(device.id):
                report.finish = await sessions.report_failure(device.id, outcome)
            done.set()

    poller = DevicePoller(
        FeederController(client, device.address),
        settings.polling.device_interval,
        on_update=_on_update,
        missed_ticks_tolerance=settings.polling.missed_ticks_tolerance,
        label=device.name,
    )
    poller.start()
    try:
        await done.wait()
    finally:
        await poller.stop()
        if sessions.is_active(device.id) or sessions.is_stopping(device.id):
            report.finish = await sessions.manual_stop(device.id)
    return report


def register(app: typer.Typer) -> None:
    @app.command()
    def feed(
        ref: str = typer.Argument(..., help="Feeder id, address or name"),
        amount: float | None = typer.Option(
            None,
            "--amount",
            "-a",
            min=0.1,
            help="Amount to feed in lbs (default: 2% of the animal's weight)",
        ),
    ) -> None:
        """Feed until the target weight is dispensed. Ctrl+C stops early."""
        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        device = resolve_device_or_exit(registry, ref)
        console = Console()
        report = FeedReport()

        async def _feed() -> FeedReport:
            async with CommandClient(settings.client) as client:
                return await run_feed_session(
                    client, device, amount, settings, console, report
                )

        try:
            asyncio.run(_feed())
        except KeyboardInterrupt:
            message = "Stopped feeding manually"
            stop = report.finish.outcome if report.finish is not None else None
            if stop is not None and not stop.ok:
                message = f"Stop not confirmed: {stop.describe()}"
            db.update_preferences(last_status=message)
            console.print(f"\n[yellow]{message}.[/yellow]")
            raise typer.Exit(1) from None

        if report.start is None or not report.start.accepted:
            failure = report.start.message if report.start is not None else "Not started"
            db.update_preferences(last_status=failure)
            console.print(f"[red]✗[/red] {failure}")
            raise typer.Exit(1)
        if report.finish is not None and report.finish.error:
            db.update_preferences(last_status=report.finish.message)
            console.print(
                f"[red]✗[/red] Feeding stopped due to error: {report.finish.message}"
            )
            raise typer.Exit(1)

        message = f"Fed {report.fed_weight:.2f} lbs (target {report.target:.1f})"
        db.update_preferences(last_status=message)
        console.print(f"[green]✓[/green] {message}")
