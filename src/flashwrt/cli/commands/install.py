from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from flashwrt.cli.common import build_service, load_settings_or_exit
from flashwrt.config import Settings
from flashwrt.core.releases import fetch_releases, release_version, select_release
from flashwrt.errors import ReleaseFeedError
from flashwrt.models import FirmwareDescriptor, InstallResult, InstallStatus


def pick_release(
    releases: tuple[FirmwareDescriptor, ...],
    board_name: str | None,
    version: str | None,
) -> FirmwareDescriptor | None:
    if version:
        for release in releases:
            if release_version(release) == version:
                return release
        return None
    return select_release(releases, board_name)


async def resolve_descriptor(
    settings: Settings,
    address: str,
    release_file: Path | None,
    url: str | None,
    version: str | None,
    password: str | None,
) -> FirmwareDescriptor | None:
    if url:
        return FirmwareDescriptor(url=url, version=version or "")

    source = str(release_file) if release_file else settings.releases.feed_url
    if not source:
        raise ReleaseFeedError(
            "No release source: pass --release-file or --url, "
            "or set releases.feed_url in the config"
        )
    fallback = settings.releases.fallback_path or None
    feed = await fetch_releases(source, fallback=fallback)
    if not feed.is_live:
        typer.echo(f"Using fallback releases from {feed.source}", err=True)
    if version:
        return pick_release(feed.releases, None, version)

    async with build_service(settings) as service:
        if password is not None:
            await service.connect(address, password)
        board = await service.connections.get_board_info(address)
    return pick_release(feed.releases, board.board_name if board else None, None)


def install(
    address: str = typer.Argument(..., help="Router IP address"),
    release_file: Path | None = typer.Option(
        None,
        "--release-file",
        "-f",
        exists=True,
        dir_okay=False,
        help="JSON file with release descriptors",
    ),
    url: str | None = typer.Option(None, "--url", help="Firmware image URL"),
    version: str | None = typer.Option(
        None, "--version", help="Release version to install"
    ),
    password: str | None = typer.Option(
        None, "--password", "-p", help="Current root password of the router"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask to confirm"),
) -> None:
    """Flash firmware onto a router over SSH."""
    console = Console()
    settings = load_settings_or_exit()

    if release_file and url:
        typer.echo("Use either --release-file or --url, not both", err=True)
        raise typer.Exit(2)

    try:
        descriptor = asyncio.run(
            resolve_descriptor(settings, address, release_file, url, version, password)
        )
    except ReleaseFeedError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    if descriptor is None:
        console.print(f"[red]No compatible release found for {address}[/red]")
        raise typer.Exit(1)

    label = release_version(descriptor)
    console.print(f"Release: {label}")
    console.print(f"Image: {descriptor.url}")
    if not yes:
        typer.confirm(
            f"Flash {label} onto {address}? Router settings will be erased",
            abort=True,
        )

    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("preparing", total=100)

        def _update(status: InstallStatus) -> None:
            progress.update(
                task_id,
                completed=status.progress,
                description=f"{status.stage}: {status.message}",
            )

        async def _install() -> InstallResult:
            async with build_service(settings) as service:
                return await service.install_firmware(
                    address, descriptor, _update, password
                )

        result = asyncio.run(_install())

    if not result.success:
        console.print(
            f"[red]Installation failed at {result.stage}:[/red] {result.error}"
        )
        raise typer.Exit(1)
    console.print(f"[green]Installed {result.installed_version} on {address}[/green]")


def register(app: typer.Typer) -> None:
    app.command()(install)
