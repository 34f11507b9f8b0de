from __future__ import annotations

import typer
from rich.console import Console

from flashwrt.cli.common import load_settings_or_exit, resolve_config_path_or_exit
from flashwrt.config import download_dir_from_settings


def register(app: typer.Typer) -> None:
    @app.command()
    def info() -> None:
        """Show flashwrt configuration and directories."""
        settings = load_settings_or_exit()
        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)

        console = Console()

        console.print("[bold]flashwrt Info[/bold]\n")
        console.print(f"Config file: {config_path if config_exists else 'defaults'}")
        console.print(f"Download directory: {download_dir_from_settings(settings)}")

        console.print("\n[bold]SSH[/bold]")
        console.print(f"User: {settings.ssh.username}")
        console.print(f"Port: {settings.ssh.port}")
        console.print(f"Connect timeout: {settings.ssh.connect_timeout}s")

        console.print("\n[bold]Scanning[/bold]")
        console.print(f"Subnets: {', '.join(settings.scanning.subnet_ranges)}")
        console.print(f"Probe timeout: {settings.scanning.probe_timeout}s")
        console.print(f"Gateway detection: {settings.scanning.include_gateways}")

        console.print("\n[bold]Install[/bold]")
        console.print(f"Remote path: {settings.install.remote_path}")
        console.print(f"Transfer method: {settings.install.transfer_method}")
        console.print(
            f"Reboot wait: {settings.install.poll_attempts} x "
            f"{settings.install.poll_interval}s"
        )
        console.print(f"Release feed: {settings.releases.feed_url or 'not set'}")
