"""File delivery to routers.

Embedded SSH servers (dropbear) usually ship without an SFTP subsystem, so both
transporters speak the classic SCP protocol.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import asyncssh

if TYPE_CHECKING:
    from flashwrt.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TRANSFER_TIMEOUT = 10.0


class FileTransporter(Protocol):
    async def send(
        self,
        address: str,
        local_path: Path,
        remote_path: str,
        password: str | None = None,
    ) -> bool:
        """Copy *local_path* to *remote_path* on *address*; never raises."""
        ...


class ScpCommandTransporter:
    """Shell out to OpenSSH ``scp`` in legacy protocol mode.

    ``sshpass`` supplies the password through the environment when one is
    needed; blank-password routers are reached in batch mode.
    """

    def __init__(
        self,
        username: str = "root",
        port: int = 22,
        timeout: float = DEFAULT_TRANSFER_TIMEOUT,
        scp_binary: str = "scp",
        sshpass_binary: str = "sshpass",
    ) -> None:
        self.username = username
        self.port = port
        self.timeout = timeout
        self.scp_binary = scp_binary
        self.sshpass_binary = sshpass_binary

    def build_command(
        self, address: str, local_path: Path, remote_path: str, password: str | None
    ) -> list[str]:
        args = [
            self.scp_binary,
            "-O",
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            f"ConnectTimeout={max(int(self.timeout), 1)}",
            "-P",
            str(self.port),
        ]
        if password:
            args = [self.sshpass_binary, "-e", *args]
        else:
            args += ["-o", "BatchMode=yes"]
        args += [str(local_path), f"{self.username}@{address}:{remote_path}"]
        return args

    async def send(
        self,
        address: str,
        local_path: Path,
        remote_path: str,
        password: str | None = None,
    ) -> bool:
        args = self.build_command(address, local_path, remote_path, password)
        env = dict(os.environ)
        if password:
            env["SSHPASS"] = password

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError:
            logger.error("%s is not installed or not on PATH", args[0])
            return False

        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            logger.error(
                "scp to %s failed (exit %s): %s",
                address,
                proc.returncode,
                stderr.decode(errors="replace").strip(),
            )
            return False

        logger.debug("scp of %s to %s:%s complete", local_path, address, remote_path)
        return True


class AsyncSSHTransporter:
    """Copy with asyncssh's built-in SCP client; no external binaries."""

    def __init__(
        self,
        username: str = "root",
        port: int = 22,
        timeout: float = DEFAULT_TRANSFER_TIMEOUT,
    ) -> None:
        self.username = username
        self.port = port
        self.timeout = timeout

    async def send(
        self,
        address: str,
        local_path: Path,
        remote_path: str,
        password: str | None = None,
    ) -> bool:
        try:
            async with asyncssh.connect(
                address,
                port=self.port,
                username=self.username,
                password=password or "",
                known_hosts=None,
                connect_timeout=self.timeout,
            ) as conn:
                await asyncssh.scp(str(local_path), (conn, remote_path))
        except (asyncssh.Error, OSError, TimeoutError) as exc:
            logger.error("SCP to %s failed: %s", address, exc)
            return False

        logger.debug("SCP of %s to %s:%s complete", local_path, address, remote_path)
        return True


def transporter_from_settings(settings: Settings) -> FileTransporter:
    if settings.install.transfer_method == "asyncssh":
        return AsyncSSHTransporter(
            settings.ssh.username, settings.ssh.port, settings.ssh.connect_timeout
        )
    return ScpCommandTransporter(
        settings.ssh.username, settings.ssh.port, settings.ssh.connect_timeout
    )
