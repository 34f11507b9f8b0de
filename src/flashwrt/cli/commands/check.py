from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from flashwrt.cli.common import build_service, load_settings_or_exit
from flashwrt.models import DeviceProbe


def check(
    address: str = typer.Argument(..., help="Router IP address"),
) -> None:
    """Check a single address for an SSH-enabled OpenWrt router."""
    console = Console()
    settings = load_settings_or_exit()

    async def _check() -> DeviceProbe | None:
        async with build_service(settings) as service:
            return await service.check_device(address)

    device = asyncio.run(_check())
    if device is None:
        console.print(f"[red]No SSH service found at {address}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]{device.ip}[/green] accepts SSH connections")
    board = device.board
    if board is None:
        console.print("Could not log in with a blank password to read board info.")
        return

    console.print(f"Board: {board.board_name or 'unknown'}")
    console.print(f"Model: {board.model or 'unknown'}")
    console.print(f"Architecture: {board.architecture or 'unknown'}")
    distribution = f"{board.distribution} {board.os_version}".strip()
    console.print(f"Distribution: {distribution or 'unknown'}")
    if not device.is_openwrt:
        console.print("[yellow]Router does not report OpenWrt[/yellow]")


def register(app: typer.Typer) -> None:
    app.command()(check)
