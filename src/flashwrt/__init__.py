"""flashwrt - discover OpenWrt routers on the LAN and flash firmware over SSH."""

from __future__ import annotations

from importlib.metadata import version

from .config import InstallConfig, ScanningConfig, Settings, SSHConfig, get_settings
from .core import ConnectionManager, FlashService, Installer, NetworkDiscoverer
from .models import (
    BoardInfo,
    DeviceProbe,
    FirmwareDescriptor,
    InstallResult,
    InstallStage,
    InstallStatus,
    LoginAttempt,
)

__all__ = [
    "BoardInfo",
    "ConnectionManager",
    "DeviceProbe",
    "FirmwareDescriptor",
    "FlashService",
    "InstallConfig",
    "InstallResult",
    "InstallStage",
    "InstallStatus",
    "Installer",
    "LoginAttempt",
    "NetworkDiscoverer",
    "SSHConfig",
    "ScanningConfig",
    "Settings",
    "__version__",
    "get_settings",
]

__version__ = version("flashwrt")
