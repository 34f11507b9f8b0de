from __future__ import annotations

from typing import Annotated

import typer

from flashwrt.utils.logging import setup_logging

from . import config as config_cmd
from .commands.check import register as register_check
from .commands.connect import register as register_connect
from .commands.info import register as register_info
from .commands.install import register as register_install
from .commands.mock import register as register_mock
from .commands.releases import register as register_releases
from .commands.scan import register as register_scan

app = typer.Typer(
    help="flashwrt - find OpenWrt routers on the LAN and flash them over SSH",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")

register_scan(app)
register_check(app)
register_connect(app)
register_install(app)
register_releases(app)
register_info(app)
register_mock(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
) -> None:
    """flashwrt CLI."""
    setup_logging()

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"flashwrt version {get_version('flashwrt')}")
        raise typer.Exit()
