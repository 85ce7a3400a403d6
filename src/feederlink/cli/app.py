from __future__ import annotations

from typing import Annotated

import typer

from feederlink.utils.logging import setup_logging

from .commands import config as config_cmd
from .commands.control import register as register_control
from .commands.devices import register as register_devices
from .commands.feed import register as register_feed
from .commands.info import register as register_info
from .commands.init import register as register_init
from .commands.mock import register as register_mock
from .commands.scan import register as register_scan
from .commands.watch import register as register_watch

app = typer.Typer(
    help="feederlink - network animal feeder controller", no_args_is_help=True
)

app.add_typer(config_cmd.app, name="config")

register_init(app)
register_scan(app)
register_devices(app)
register_info(app)
register_control(app)
register_watch(app)
register_feed(app)
register_mock(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
) -> None:
    """feederlink CLI."""
    setup_logging()

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"feederlink version {get_version('feederlink')}")
        raise typer.Exit()
