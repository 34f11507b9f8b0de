from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from flashwrt.cli.common import build_service, load_settings_or_exit
from flashwrt.errors import SubnetRangeError
from flashwrt.models import DeviceProbe, DeviceStatus
from flashwrt.utils.redaction import Redactor

logger = logging.getLogger(__name__)


def scan(
    redact: bool = typer.Option(
        False,
        "--redact",
        help="Redact sensitive values in output",
    ),
) -> None:
    """Find routers with SSH enabled on the local network."""
    console = Console()
    settings = load_settings_or_exit()

    console.print(
        "Scanning gateways and "
        f"{', '.join(settings.scanning.subnet_ranges) or 'no subnets'}..."
    )
    logger.info(
        "Scan settings: probe_timeout=%.2fs, parallel_probes=%d",
        settings.scanning.probe_timeout,
        settings.scanning.parallel_probes,
    )

    async def _scan() -> list[DeviceProbe]:
        async with build_service(settings) as service:
            return await service.scan_network()

    try:
        devices = asyncio.run(_scan())
    except SubnetRangeError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    if not devices:
        console.print("No routers found.")
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("IP", style="cyan")
    table.add_column("Found via")
    table.add_column("Status")
    table.add_column("Board", style="green")
    table.add_column("Model")
    table.add_column("Hostname")
    table.add_column("OpenWrt")

    for device in devices:
        board = device.board
        status = (
            "[green]ready[/green]"
            if device.status == DeviceStatus.READY
            else "[yellow]no ssh[/yellow]"
        )
        table.add_row(
            redactor.redact_ip(device.ip),
            str(device.origin),
            status,
            board.board_name if board else "",
            board.model if board else "",
            redactor.redact_hostname(board.hostname) if board else "",
            redactor.redact_version(board.os_version) if board else "",
        )

    console.print(table)
    ready = sum(1 for device in devices if device.ssh_reachable)
    console.print(f"\n[green]Found {len(devices)} device(s), {ready} with SSH[/green]")


def register(app: typer.Typer) -> None:
    app.command()(scan)
