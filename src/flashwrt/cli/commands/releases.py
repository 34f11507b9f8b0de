from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from flashwrt.cli.common import load_settings_or_exit
from flashwrt.core.releases import fetch_releases, release_version
from flashwrt.errors import ReleaseFeedError


def releases(
    source: str | None = typer.Argument(
        None,
        help="Release feed URL or JSON file. Uses config feed_url if omitted.",
    ),
) -> None:
    """List firmware releases from a feed or file."""
    console = Console()
    settings = load_settings_or_exit()

    source = source or settings.releases.feed_url
    if not source:
        typer.echo("No release source given and releases.feed_url is empty", err=True)
        raise typer.Exit(1)

    fallback = settings.releases.fallback_path or None
    try:
        feed = asyncio.run(fetch_releases(source, fallback=fallback))
    except ReleaseFeedError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    if not feed.is_live:
        console.print(
            f"[yellow]Live source failed ({feed.error}); "
            f"showing fallback {feed.source}[/yellow]"
        )

    if not feed.releases:
        console.print("No releases found.")
        return

    table = Table()
    table.add_column("Version", style="cyan")
    table.add_column("Devices", style="green")
    table.add_column("Architecture")
    table.add_column("OpenWrt")
    table.add_column("URL")
    for release in feed.releases:
        table.add_row(
            release_version(release),
            ", ".join(release.supported_devices),
            release.architecture,
            release.openwrt_version,
            release.url,
        )
    console.print(table)


def register(app: typer.Typer) -> None:
    app.command()(releases)
