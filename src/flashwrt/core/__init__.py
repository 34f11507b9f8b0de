from __future__ import annotations

from .connection import AsyncSSHSessionFactory, CommandResult, ConnectionManager
from .download import download_firmware
from .installer import Installer
from .releases import (
    compare_versions,
    fetch_releases,
    is_release_compatible,
    latest_release,
    select_release,
)
from .scanner import NetworkDiscoverer, check_ssh_port
from .service import FlashService
from .subnet import expand_subnet, parse_range, validate_ranges
from .transfer import AsyncSSHTransporter, ScpCommandTransporter

__all__ = [
    "AsyncSSHSessionFactory",
    "AsyncSSHTransporter",
    "CommandResult",
    "ConnectionManager",
    "FlashService",
    "Installer",
    "NetworkDiscoverer",
    "ScpCommandTransporter",
    "check_ssh_port",
    "compare_versions",
    "download_firmware",
    "expand_subnet",
    "fetch_releases",
    "is_release_compatible",
    "latest_release",
    "parse_range",
    "select_release",
    "validate_ranges",
]
