from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class FirmwareDescriptor(BaseModel):
    """A firmware release as published by the release feed.

    Immutable input to the installer: the download URL, the architecture the
    image targets, the board tags it supports and a human readable version.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    url: str
    architecture: str = ""
    supported_devices: tuple[str, ...] = ()
    version: str = ""
    openwrt_version: str = ""
    model: str = ""
    created_at: datetime | None = None


class ReleaseOrigin(StrEnum):
    LIVE = "live"
    FALLBACK = "fallback"


class ReleaseFeedResult(BaseModel):
    """Descriptors plus where they came from.

    ``FALLBACK`` results come from a local file after the live source failed;
    ``error`` then holds the reason the live source was not used.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    origin: ReleaseOrigin
    source: str
    releases: tuple[FirmwareDescriptor, ...] = Field(default_factory=tuple)
    error: str | None = None

    @property
    def is_live(self) -> bool:
        return self.origin == ReleaseOrigin.LIVE
