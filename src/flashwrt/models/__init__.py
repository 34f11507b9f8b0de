"""Data models for flashwrt."""

from flashwrt.models.device import (
    BoardInfo,
    DeviceOrigin,
    DeviceProbe,
    DeviceStatus,
    LoginAttempt,
)
from flashwrt.models.firmware import (
    FirmwareDescriptor,
    ReleaseFeedResult,
    ReleaseOrigin,
)
from flashwrt.models.install import (
    FAILURE_PROGRESS,
    STAGE_PROGRESS,
    InstallResult,
    InstallStage,
    InstallStatus,
)

__all__ = [
    "FAILURE_PROGRESS",
    "STAGE_PROGRESS",
    "BoardInfo",
    "DeviceOrigin",
    "DeviceProbe",
    "DeviceStatus",
    "FirmwareDescriptor",
    "InstallResult",
    "InstallStage",
    "InstallStatus",
    "LoginAttempt",
    "ReleaseFeedResult",
    "ReleaseOrigin",
]
