from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from feederlink.core.mock_device import MockFeederState, serve


def register(app: typer.Typer) -> None:
    @app.command()
    def mock(
        host: str = typer.Option("127.0.0.1", help="Address to bind"),
        port: int = typer.Option(8080, help="Port to listen on"),
        name: str = typer.Option("Mock Feeder", help="Controller name"),
        step: float = typer.Option(0.5, help="Feed dispensed per status query"),
    ) -> None:
        """Run an emulated feeder controller."""
        console = Console()
        console.print(f"Mock feeder '{name}' on http://{host}:{port}")
        console.print("Press Ctrl+C to stop.\n")
        try:
            asyncio.run(serve(host, port, MockFeederState(name=name, step=step)))
        except KeyboardInterrupt:
            console.print("\n[green]Stopped.[/green]")
