from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class InstallStage(StrEnum):
    PREPARING = "preparing"
    COMPATIBILITY_CHECK = "compatibility-check"
    DOWNLOAD_PREPARATION = "download-preparation"
    DOWNLOADING = "downloading"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    INSTALLING = "installing"
    WAITING_FOR_REBOOT = "waiting-for-reboot"
    VERIFYING_INSTALLATION = "verifying-installation"
    COMPLETE = "complete"
    ERROR = "error"


# Progress reported when a stage starts, in pipeline order.
STAGE_PROGRESS: dict[InstallStage, int] = {
    InstallStage.PREPARING: 10,
    InstallStage.COMPATIBILITY_CHECK: 10,
    InstallStage.DOWNLOAD_PREPARATION: 15,
    InstallStage.DOWNLOADING: 20,
    InstallStage.TRANSFERRING: 40,
    InstallStage.VERIFYING: 60,
    InstallStage.INSTALLING: 70,
    InstallStage.WAITING_FOR_REBOOT: 80,
    InstallStage.VERIFYING_INSTALLATION: 90,
    InstallStage.COMPLETE: 100,
}

# Progress reported when a stage aborts the run.
FAILURE_PROGRESS: dict[InstallStage, int] = {
    InstallStage.COMPATIBILITY_CHECK: 0,
    InstallStage.DOWNLOAD_PREPARATION: 15,
    InstallStage.DOWNLOADING: 25,
    InstallStage.TRANSFERRING: 50,
    InstallStage.VERIFYING: 65,
    InstallStage.WAITING_FOR_REBOOT: 85,
    InstallStage.VERIFYING_INSTALLATION: 95,
    InstallStage.ERROR: 0,
}


class InstallStatus(BaseModel):
    """One update on the progress channel of an install run."""

    model_config = {"frozen": True, "extra": "forbid"}

    address: str
    stage: InstallStage
    progress: int = Field(ge=0, le=100)
    message: str = ""
    terminal: bool = False
    success: bool = False
    error: str | None = None


class InstallResult(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    success: bool
    stage: InstallStage
    progress: int = Field(ge=0, le=100)
    error: str | None = None
    installed_version: str | None = None
