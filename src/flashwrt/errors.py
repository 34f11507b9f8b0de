"""Error taxonomy for discovery, connections and the firmware upgrade pipeline.

Probe and connection failures stay inside the core: probes are swallowed and
logged, connection failures become ``LoginAttempt(success=False)``. The stage
errors carry the pipeline stage they abort so the installer can turn them into
a terminal ``InstallResult``.
"""

from __future__ import annotations


class FlashwrtError(Exception):
    """Base class for every error raised by flashwrt."""


class ProbeError(FlashwrtError):
    """A single address could not be probed or identified."""


class SSHConnectionError(FlashwrtError):
    """No SSH session could be established, or it closed mid-command."""

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"{address}: {reason}")
        self.address = address
        self.reason = reason


class SubnetRangeError(FlashwrtError, ValueError):
    """A configured CIDR range is malformed or its mask is outside /16-/30."""


class ReleaseFeedError(FlashwrtError):
    """Release descriptors could not be loaded from any source."""


class StageError(FlashwrtError):
    """A pipeline stage failed; ``stage`` names where the run stopped."""

    stage = "error"

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class CompatibilityError(StageError):
    stage = "compatibility-check"


class DownloadError(StageError):
    stage = "downloading"


class TransferError(StageError):
    stage = "transferring"


class VerificationError(StageError):
    stage = "verifying"


class RebootTimeoutError(StageError):
    stage = "waiting-for-reboot"


class PostInstallVerificationError(StageError):
    stage = "verifying-installation"
