from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from flashwrt.commands.mock_device import DEFAULT_BOARD_NAME, run_mock_device


def register(app: typer.Typer) -> None:
    @app.command()
    def mock(
        port: int = typer.Option(2222, "--port", "-p", help="Port to listen on"),
        board: str = typer.Option(
            DEFAULT_BOARD_NAME, "--board", "-b", help="Board name to report"
        ),
        password: str = typer.Option(
            "", "--password", help="Root password before the first upgrade"
        ),
        firmware_version: str = typer.Option(
            "v0.0.4", "--firmware-version", help="Version reported after upgrade"
        ),
        reboot_delay: float = typer.Option(
            3.0, "--reboot-delay", help="Seconds the router stays down on reboot"
        ),
    ) -> None:
        """Run a mock OpenWrt router for development."""
        console = Console()
        console.print(f"Starting mock router '{board}' on port {port}...")
        console.print("Press Ctrl+C to stop.\n")

        try:
            asyncio.run(
                run_mock_device(
                    port=port,
                    board_name=board,
                    password=password,
                    firmware_version=firmware_version,
                    reboot_delay=reboot_delay,
                )
            )
        except KeyboardInterrupt:
            console.print("\n[green]Mock router stopped.[/green]")
