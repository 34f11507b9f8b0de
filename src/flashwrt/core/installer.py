"""Firmware installation pipeline.

One ``Installer.install`` call drives a single router through:

  1. preparing               (optional login with the user's password)
  2. compatibility-check     (OpenWrt + board name, hard gate)
  3. download-preparation    (firmware URL from the release descriptor)
  4. downloading             (stream to the local download directory)
  5. transferring            (SCP to the router's scratch path)
  6. verifying               (the image is present on the router)
  7. installing              (sysupgrade; the connection drop is expected)
  8. waiting-for-reboot      (poll until SSH logins work again)
  9. verifying-installation  (read the new firmware's version marker)
 10. complete

Every stage failure ends the run with an ``InstallResult`` naming the stage;
nothing is retried and no exception escapes ``install``.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from flashwrt.config import InstallConfig, expand_path
from flashwrt.errors import (
    CompatibilityError,
    DownloadError,
    PostInstallVerificationError,
    RebootTimeoutError,
    SSHConnectionError,
    StageError,
    TransferError,
    VerificationError,
)
from flashwrt.models import (
    FAILURE_PROGRESS,
    STAGE_PROGRESS,
    FirmwareDescriptor,
    InstallResult,
    InstallStage,
    InstallStatus,
)

from .connection import ConnectionManager
from .download import download_firmware
from .releases import is_release_compatible

logger = logging.getLogger(__name__)

MARKER_MISSING = "Not TollGate OS"

ProgressCallback = Callable[[InstallStatus], None]
Downloader = Callable[[str, Path], Awaitable[Path]]


@dataclass
class UpgradeRun:
    """State of one in-flight install; discarded when ``install`` returns."""

    address: str
    on_progress: ProgressCallback | None = None
    stage: InstallStage = InstallStage.PREPARING
    progress: int = 0
    history: list[InstallStatus] = field(default_factory=list)

    def advance(self, stage: InstallStage, message: str = "") -> None:
        self.stage = stage
        self.progress = max(self.progress, STAGE_PROGRESS[stage])
        logger.info(
            "Install step for %s: %s (%d%%)", self.address, stage, self.progress
        )
        self._emit(
            InstallStatus(
                address=self.address,
                stage=stage,
                progress=self.progress,
                message=message,
            )
        )

    def fail(self, stage: InstallStage, error: str) -> InstallResult:
        progress = FAILURE_PROGRESS.get(stage, self.progress)
        logger.error("Install on %s failed at %s: %s", self.address, stage, error)
        self._emit(
            InstallStatus(
                address=self.address,
                stage=stage,
                progress=progress,
                message=error,
                terminal=True,
                error=error,
            )
        )
        return InstallResult(success=False, stage=stage, progress=progress, error=error)

    def complete(self, installed_version: str) -> InstallResult:
        self.stage = InstallStage.COMPLETE
        self.progress = STAGE_PROGRESS[InstallStage.COMPLETE]
        logger.info("Installation on %s completed: %s", self.address, installed_version)
        self._emit(
            InstallStatus(
                address=self.address,
                stage=InstallStage.COMPLETE,
                progress=self.progress,
                message=installed_version,
                terminal=True,
                success=True,
            )
        )
        return InstallResult(
            success=True,
            stage=InstallStage.COMPLETE,
            progress=self.progress,
            installed_version=installed_version,
        )

    def _emit(self, status: InstallStatus) -> None:
        self.history.append(status)
        if self.on_progress is None:
            return
        try:
            self.on_progress(status)
        except Exception:
            logger.exception("Error in install progress callback")


class Installer:
    """Flash firmware onto one router at a time through a ``ConnectionManager``."""

    def __init__(
        self,
        connections: ConnectionManager,
        config: InstallConfig | None = None,
        *,
        downloader: Downloader | None = None,
    ) -> None:
        self._connections = connections
        self._config = config or InstallConfig()
        self._downloader = downloader or download_firmware

    async def install(
        self,
        address: str,
        descriptor: FirmwareDescriptor,
        on_progress: ProgressCallback | None = None,
        password: str | None = None,
    ) -> InstallResult:
        run = UpgradeRun(address, on_progress)
        try:
            return await self._run(run, descriptor, password)
        except StageError as exc:
            return run.fail(InstallStage(exc.stage), str(exc))
        except Exception as exc:
            logger.exception("Installation error for %s", address)
            return run.fail(InstallStage.ERROR, str(exc) or type(exc).__name__)

    async def stream(
        self,
        address: str,
        descriptor: FirmwareDescriptor,
        password: str | None = None,
    ) -> AsyncIterator[InstallStatus]:
        """Yield every status of an install run, ending with the terminal one."""
        queue: asyncio.Queue[InstallStatus] = asyncio.Queue()
        task = asyncio.create_task(
            self.install(address, descriptor, queue.put_nowait, password)
        )
        try:
            while True:
                status = await queue.get()
                yield status
                if status.terminal:
                    break
        finally:
            await task

    async def _run(
        self,
        run: UpgradeRun,
        descriptor: FirmwareDescriptor,
        password: str | None,
    ) -> InstallResult:
        address = run.address
        config = self._config

        run.advance(InstallStage.PREPARING, f"Starting installation on {address}")
        if password is not None:
            attempt = await self._connections.connect(address, password)
            if not attempt.success:
                raise CompatibilityError(f"Unable to log in to router: {attempt.error}")

        run.advance(InstallStage.COMPATIBILITY_CHECK, "Reading router information")
        await self._check_compatibility(address, descriptor)

        run.advance(InstallStage.DOWNLOAD_PREPARATION, "Reading release information")
        url = descriptor.url.strip()
        if not url.startswith(("http://", "https://")):
            raise StageError(
                "Firmware URL not found in release information",
                stage=InstallStage.DOWNLOAD_PREPARATION,
            )

        run.advance(InstallStage.DOWNLOADING, url)
        try:
            local_path = await self._downloader(url, expand_path(config.download_dir))
        except DownloadError:
            raise
        except OSError as exc:
            raise DownloadError(f"Failed to download firmware: {exc}") from exc

        run.advance(InstallStage.TRANSFERRING, config.remote_path)
        if not await self._connections.transfer_file(
            address, local_path, config.remote_path, password
        ):
            raise TransferError("Failed to transfer firmware to router")

        run.advance(InstallStage.VERIFYING, config.remote_path)
        await self._verify_transfer(address, config.remote_path)

        run.advance(InstallStage.INSTALLING, "Applying firmware, router will reboot")
        await self._apply_firmware(address, config.remote_path)

        run.advance(InstallStage.WAITING_FOR_REBOOT, "Waiting for the router to return")
        if not await self._connections.poll_for_availability(
            address, config.poll_attempts, config.poll_interval
        ):
            raise RebootTimeoutError(
                "Router did not come back online after firmware upgrade"
            )

        run.advance(InstallStage.VERIFYING_INSTALLATION, "Checking installed firmware")
        installed = await self._verify_installation(address)
        return run.complete(installed)

    async def _check_compatibility(
        self, address: str, descriptor: FirmwareDescriptor
    ) -> None:
        board = await self._connections.get_board_info(address)
        if board is None:
            raise CompatibilityError("Unable to get router information")
        if not board.is_openwrt or not board.board_name:
            raise CompatibilityError(
                "Router is not running OpenWrt or missing board info: "
                f"{board.model or board.board_name or 'unknown'}"
            )
        logger.info("Router %s running OpenWrt: %s", address, board.board_name)

        if descriptor.supported_devices and not is_release_compatible(
            descriptor, board.board_name
        ):
            raise CompatibilityError(
                f"Release supports {', '.join(descriptor.supported_devices)}, "
                f"router board is {board.board_name}"
            )
        if (
            descriptor.architecture
            and board.architecture
            and not descriptor.architecture.startswith(board.architecture)
        ):
            logger.warning(
                "Release architecture %s may not match router architecture %s",
                descriptor.architecture,
                board.architecture,
            )

    async def _verify_transfer(self, address: str, remote_path: str) -> None:
        try:
            listing = await self._connections.execute(
                address, f"ls -l {shlex.quote(remote_path)}"
            )
        except SSHConnectionError as exc:
            raise VerificationError(
                f"Failed to verify firmware on router: {exc.reason}"
            ) from exc
        if not listing.strip():
            raise VerificationError(f"Firmware not found on router at {remote_path}")
        logger.debug("Verification result: %s", listing.strip())

    async def _apply_firmware(self, address: str, remote_path: str) -> None:
        command = self._config.upgrade_command.format(path=shlex.quote(remote_path))
        try:
            output = await self._connections.execute(address, command)
        except SSHConnectionError as exc:
            # sysupgrade kills the session when the router reboots.
            logger.info("SSH connection dropped during upgrade (expected): %s", exc)
        else:
            logger.debug("Upgrade command output: %s", output.strip())
        finally:
            await self._connections.close_connection(address)

    async def _verify_installation(self, address: str) -> str:
        marker = shlex.quote(self._config.version_marker)
        command = f"cat {marker} 2>/dev/null || echo {shlex.quote(MARKER_MISSING)}"
        try:
            output = await self._connections.execute(address, command)
        except SSHConnectionError as exc:
            raise PostInstallVerificationError(
                f"Failed to verify installation: {exc.reason}"
            ) from exc
        version = output.strip()
        if not version or MARKER_MISSING in version:
            raise PostInstallVerificationError(
                "Router did not boot into the new firmware after upgrade"
            )
        return version
