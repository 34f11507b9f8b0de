"""Boundary operations used by the CLI (and any other frontend)."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from flashwrt.config import Settings
from flashwrt.models import (
    DeviceProbe,
    FirmwareDescriptor,
    InstallResult,
    InstallStatus,
    LoginAttempt,
)

from .connection import ConnectionManager
from .installer import Downloader, Installer, ProgressCallback
from .scanner import NetworkDiscoverer

logger = logging.getLogger(__name__)


class FlashService:
    """One connection manager shared by discovery and installation."""

    def __init__(
        self,
        connections: ConnectionManager,
        discoverer: NetworkDiscoverer,
        installer: Installer,
    ) -> None:
        self.connections = connections
        self.discoverer = discoverer
        self.installer = installer

    @classmethod
    def from_settings(
        cls, settings: Settings, *, downloader: Downloader | None = None
    ) -> FlashService:
        connections = ConnectionManager.from_settings(settings)
        return cls(
            connections,
            NetworkDiscoverer(
                connections, settings.scanning, ssh_port=settings.ssh.port
            ),
            Installer(connections, settings.install, downloader=downloader),
        )

    async def __aenter__(self) -> FlashService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def scan_network(self) -> list[DeviceProbe]:
        return await self.discoverer.scan()

    async def check_device(self, address: str) -> DeviceProbe | None:
        return await self.discoverer.check_device(address)

    async def connect(self, address: str, password: str = "") -> LoginAttempt:
        return await self.connections.connect(address, password)

    async def install_firmware(
        self,
        address: str,
        descriptor: FirmwareDescriptor,
        on_progress: ProgressCallback | None = None,
        password: str | None = None,
    ) -> InstallResult:
        return await self.installer.install(address, descriptor, on_progress, password)

    def stream_install(
        self,
        address: str,
        descriptor: FirmwareDescriptor,
        password: str | None = None,
    ) -> AsyncIterator[InstallStatus]:
        return self.installer.stream(address, descriptor, password)

    async def aclose(self) -> None:
        logger.debug("Closing %d SSH session(s)", self.connections.session_count())
        await self.connections.close_all()
