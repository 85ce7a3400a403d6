from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from feederlink.cli.common import (
    build_registry,
    load_settings_or_exit,
    report_outcome,
    resolve_device_or_exit,
)
from feederlink.core import CommandClient, CommandOutcome, FeederController
from feederlink.models import Device


def list_devices() -> None:
    """List known feeders."""
    settings = load_settings_or_exit()
    db, registry = build_registry(settings)
    devices = registry.list()

    console = Console()

    if not devices:
        console.print("No feeders registered.")
        console.print(f"Use 'feederlink scan' to find feeders or edit {db.devices_path}")
        return

    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Animal")
    table.add_column("Weight", justify="right")
    table.add_column("Daily Gain", justify="right")
    table.add_column("Gender")
    table.add_column("Species")

    for device in devices:
        table.add_row(
            device.short_id,
            device.name,
            device.address,
            device.animal_name,
            f"{device.animal_weight:.1f}",
            f"{device.animal_daily_gain:.1f}",
            device.animal_gender,
            device.animal_species,
        )

    console.print(table)


def forget_device(
    ref: str = typer.Argument(..., help="Feeder id, address or name"),
) -> None:
    """Remove a feeder from the registry."""
    settings = load_settings_or_exit()
    _, registry = build_registry(settings)
    device = resolve_device_or_exit(registry, ref)

    registry.remove(device.id)
    Console().print(f"[green]✓[/green] Forgot '{device.name}' ({device.address})")


def rename_device(
    ref: str = typer.Argument(..., help="Feeder id, address or name"),
    name: str = typer.Argument(..., help="New display name"),
) -> None:
    """Rename a feeder locally and on the controller."""
    settings = load_settings_or_exit()
    db, registry = build_registry(settings)
    device = resolve_device_or_exit(registry, ref)

    registry.update(device.id, name=name)

    async def _send() -> CommandOutcome:
        async with CommandClient(settings.client) as client:
            return await FeederController(client, device.address).set_name(name)

    outcome = asyncio.run(_send())
    report_outcome(db, Console(), outcome, f"Renamed '{device.name}' to '{name}'")


async def push_animal_profile(
    controller: FeederController, device: Device
) -> list[CommandOutcome]:
    return [
        await controller.set_animal_name(device.animal_name),
        await controller.set_animal_weight(device.animal_weight),
        await controller.set_daily_gain(device.animal_daily_gain),
        await controller.set_animal_gender(device.animal_gender),
        await controller.set_animal_species(device.animal_species),
    ]


def edit_animal(
    ref: str = typer.Argument(..., help="Feeder id, address or name"),
    name: str | None = typer.Option(None, "--name", help="Animal name"),
    weight: float | None = typer.Option(None, "--weight", min=0, help="Animal weight"),
    gain: float | None = typer.Option(None, "--gain", help="Daily weight gain"),
    gender: str | None = typer.Option(None, "--gender", help="Male or Female"),
    species: str | None = typer.Option(None, "--species", help="Cow, Pig, Sheep, ..."),
) -> None:
    """Edit the animal profile and push it to the controller."""
    settings = load_settings_or_exit()
    db, registry = build_registry(settings)
    device = resolve_device_or_exit(registry, ref)

    changes = {
        "animal_name": name,
        "animal_weight": weight,
        "animal_daily_gain": gain,
        "animal_gender": gender,
        "animal_species": species,
    }
    changes = {key: value for key, value in changes.items() if value is not None}
    updated = registry.update(device.id, **changes) if changes else device
    if updated is None:
        raise typer.Exit(1)

    async def _push() -> list[CommandOutcome]:
        async with CommandClient(settings.client) as client:
            controller = FeederController(client, updated.address)
            return await push_animal_profile(controller, updated)

    outcomes = asyncio.run(_push())
    failed = next((outcome for outcome in outcomes if not outcome.ok), outcomes[-1])
    report_outcome(db, Console(), failed, f"Saved animal data for '{updated.name}'")


def register(app: typer.Typer) -> None:
    app.command("list")(list_devices)
    app.command("forget")(forget_device)
    app.command("rename")(rename_device)
    app.command("animal")(edit_animal)
