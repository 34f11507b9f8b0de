from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from flashwrt.cli.common import build_service, load_settings_or_exit
from flashwrt.models import BoardInfo, LoginAttempt


def connect(
    address: str = typer.Argument(..., help="Router IP address"),
    password: str = typer.Option(
        "", "--password", "-p", help="Root password (blank by default)"
    ),
) -> None:
    """Log in to a router and show what it reports about itself."""
    console = Console()
    settings = load_settings_or_exit()

    async def _connect() -> tuple[LoginAttempt, BoardInfo | None]:
        async with build_service(settings) as service:
            attempt = await service.connect(address, password)
            if not attempt.success:
                return attempt, None
            return attempt, await service.connections.get_board_info(address)

    attempt, board = asyncio.run(_connect())
    if not attempt.success:
        console.print(f"[red]Login to {address} failed:[/red] {attempt.error}")
        raise typer.Exit(1)

    console.print(f"[green]Logged in to {address} as {settings.ssh.username}[/green]")
    if board is not None:
        console.print(f"Board: {board.board_name or 'unknown'} ({board.model})")
        console.print(f"OpenWrt: {board.os_version or 'unknown'}")


def register(app: typer.Typer) -> None:
    app.command()(connect)
