from __future__ import annotations

import asyncio
from collections.abc import Callable

import typer
from rich.console import Console

from feederlink.cli.common import build_registry, load_settings_or_exit
from feederlink.core import CommandClient, DeviceRegistry, TelemetryMonitor
from feederlink.models import ConnectivityState, Device, DeviceStatus


class ConsoleNotifier:
    def __init__(self, console: Console) -> None:
        self._console = console

    def notify(self, title: str, message: str) -> None:
        self._console.print(f"[bold magenta]{title}[/bold magenta] {message}")


def format_status(device: Device, status: DeviceStatus) -> str:
    if status.connectivity is ConnectivityState.CONNECTED:
        label = f"[green]Signal Strength: {status.signal.value}[/green]"
    else:
        label = f"[red]{status.connectivity.value}[/red]"
    fed = "-" if status.fed_weight is None else f"{status.fed_weight:.2f}"
    return f"{device.name} ({device.address}): {label}, fed {fed}"


async def watch_registry(
    client: CommandClient,
    registry: DeviceRegistry,
    monitor_factory: Callable[[CommandClient], TelemetryMonitor],
    duration: float | None,
) -> TelemetryMonitor:
    monitor = monitor_factory(client)
    unsubscribe = registry.subscribe(monitor.sync)
    monitor.sync(registry.list())
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        unsubscribe()
        await monitor.stop_all()
    return monitor


def register(app: typer.Typer) -> None:
    @app.command()
    def watch(
        duration: float | None = typer.Option(
            None, "--duration", help="Stop after this many seconds"
        ),
        interval: float | None = typer.Option(
            None, "--interval", help="Seconds between polls of each feeder"
        ),
    ) -> None:
        """Show live connectivity of every known feeder."""
        settings = load_settings_or_exit()
        _, registry = build_registry(settings)
        console = Console()

        if not len(registry):
            console.print("No feeders registered. Run 'feederlink scan' first.")
            raise typer.Exit(1)

        polling = settings.polling
        if interval is not None:
            polling = polling.model_copy(update={"list_interval": interval})

        last_seen: dict[object, tuple[ConnectivityState, str]] = {}

        def _on_update(device: Device, status: DeviceStatus) -> None:
            key = (status.connectivity, status.signal.value)
            if last_seen.get(device.id) != key:
                last_seen[device.id] = key
                console.print(format_status(device, status))

        def _monitor(client: CommandClient) -> TelemetryMonitor:
            return TelemetryMonitor(
                client, polling, notifier=ConsoleNotifier(console), on_update=_on_update
            )

        async def _watch() -> None:
            async with CommandClient(settings.client) as client:
                await watch_registry(client, registry, _monitor, duration)

        console.print(f"Watching {len(registry)} feeder(s). Press Ctrl+C to stop.")
        try:
            asyncio.run(_watch())
        except KeyboardInterrupt:
            console.print("\n[green]Stopped.[/green]")
