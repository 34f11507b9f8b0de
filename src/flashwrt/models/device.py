from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

OPENWRT_DISTRIBUTION = "openwrt"


class DeviceOrigin(StrEnum):
    GATEWAY = "gateway"
    SUBNET = "subnet"
    MANUAL = "manual"


class DeviceStatus(StrEnum):
    READY = "ready"
    NO_SSH = "no-ssh"


class BoardInfo(BaseModel):
    """Identity reported by a reachable router."""

    model_config = {"frozen": True, "extra": "forbid"}

    board_name: str = ""
    model: str = ""
    hostname: str = ""
    distribution: str = ""
    os_version: str = ""
    revision: str = ""
    target: str = ""
    architecture: str = ""
    kernel: str = ""

    @property
    def is_openwrt(self) -> bool:
        return self.distribution.strip().lower() == OPENWRT_DISTRIBUTION


class DeviceProbe(BaseModel):
    """Result of testing one address for a flashable router."""

    model_config = {"extra": "forbid"}

    ip: str
    ssh_reachable: bool
    origin: DeviceOrigin
    status: DeviceStatus
    is_openwrt: bool = False
    board: BoardInfo | None = None

    @property
    def is_gateway(self) -> bool:
        return self.origin == DeviceOrigin.GATEWAY


class LoginAttempt(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    ip: str
    success: bool
    error: str | None = None
