from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from feederlink.cli.common import build_registry, load_settings_or_exit
from feederlink.config import ScanningConfig
from feederlink.core import CommandClient, SubnetScanner, detect_local_prefix
from feederlink.models import ScanResult
from feederlink.utils.redaction import Redactor

logger = logging.getLogger(__name__)


async def run_scan(
    prefix: str,
    start: int,
    end: int,
    scanning: ScanningConfig,
    client: CommandClient,
) -> ScanResult | None:
    scanner = SubnetScanner(client, scanning)
    return await scanner.scan(prefix, start, end)


def _default_prefix(last_prefix: str | None, configured: str) -> str:
    try:
        return detect_local_prefix()
    except RuntimeError as exc:
        logger.debug("%s", exc)
    return last_prefix or configured


def register(app: typer.Typer) -> None:
    @app.command()
    def scan(
        prefix: str | None = typer.Argument(
            None,
            help=(
                "Address prefix to sweep (e.g. 192.168.1.). Detected from the "
                "local interface if omitted."
            ),
        ),
        start: int | None = typer.Option(None, help="First host number"),
        end: int | None = typer.Option(None, help="Last host number"),
        timeout: float | None = typer.Option(None, help="Probe timeout in seconds"),
        redact: bool = typer.Option(
            False,
            "--redact",
            help="Redact addresses and names in output",
        ),
    ) -> None:
        """Sweep the local subnet for feeders and remember new ones."""
        console = Console()

        settings = load_settings_or_exit()
        db, registry = build_registry(settings)
        preferences = db.load_preferences()

        if prefix is None:
            prefix = _default_prefix(
                preferences.last_subnet_prefix, settings.scanning.default_prefix
            )
            console.print(f"Using prefix: {prefix}")

        scanning = settings.scanning
        if timeout is not None:
            scanning = scanning.model_copy(update={"timeout": timeout})
        first = scanning.range_start if start is None else start
        last = scanning.range_end if end is None else end

        console.print(f"Scanning {prefix}{first}-{last} for feeders...")
        logger.info("Scan settings: timeout=%.2fs", scanning.timeout)

        async def _scan() -> ScanResult | None:
            async with CommandClient(settings.client) as client:
                return await run_scan(prefix, first, last, scanning, client)

        try:
            result = asyncio.run(_scan())
        except ValueError as exc:
            console.print(f"[red]✗[/red] {exc}")
            raise typer.Exit(1) from exc

        if result is None:
            console.print("[yellow]![/yellow] A scan is already running.")
            raise typer.Exit(1)

        db.update_preferences(last_subnet_prefix=result.prefix)

        if not result.devices:
            db.update_preferences(last_status="No feeder found")
            console.print("No feeders found.")
            return

        added = {device.address for device in registry.merge(result)}

        redactor = Redactor(enabled=redact)
        table = Table()
        table.add_column("Address", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Animal")
        table.add_column("Weight", justify="right")
        table.add_column("Species")
        table.add_column("Registry", style="yellow")

        for device in result.devices:
            table.add_row(
                redactor.redact_address(device.address),
                device.name,
                redactor.redact_name(device.animal_name),
                f"{device.animal_weight:.1f}",
                device.animal_species,
                "new" if device.address in added else "known",
            )

        console.print(table)
        console.print(f"\n[green]Found {len(result.devices)} feeder(s)[/green]")
        db.update_preferences(last_status=f"Found {len(result.devices)} feeder(s)")
