"""SSH session registry for routers being discovered and flashed.

One ``ConnectionManager`` owns at most one live session per address. Opening a
new session for an address always closes the previous one first, so two
sessions never race commands against the same router. The manager does not
lock: callers must not run concurrent operations against one address.

Host keys are never verified. Flashing a router regenerates its host key, so a
strict policy would reject every reconnect after an upgrade.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import asyncssh

from flashwrt.errors import SSHConnectionError
from flashwrt.models import BoardInfo, LoginAttempt

from .board import read_board_info
from .transfer import FileTransporter, ScpCommandTransporter, transporter_from_settings

if TYPE_CHECKING:
    from flashwrt.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "root"
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_QUICK_TIMEOUT = 1.0


@dataclass
class CommandResult:
    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0


class SSHSession(Protocol):
    """A live, authenticated channel to one router."""

    async def run(self, command: str) -> CommandResult: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[str, str, float], Awaitable[SSHSession]]


def describe_ssh_error(address: str, exc: BaseException) -> str:
    if isinstance(exc, TimeoutError):
        return f"Connection to {address} timed out"
    if isinstance(exc, asyncssh.PermissionDenied):
        return "Authentication failed"
    if isinstance(exc, asyncssh.Error):
        return exc.reason or type(exc).__name__
    return str(exc) or type(exc).__name__


class AsyncSSHSession:
    """``SSHSession`` backed by an asyncssh client connection."""

    def __init__(self, address: str, conn: asyncssh.SSHClientConnection) -> None:
        self._address = address
        self._conn = conn

    async def run(self, command: str) -> CommandResult:
        try:
            result = await self._conn.run(command, check=False)
        except (asyncssh.Error, OSError) as exc:
            raise SSHConnectionError(
                self._address, describe_ssh_error(self._address, exc)
            ) from exc
        if result.exit_status is None and result.exit_signal is None:
            raise SSHConnectionError(self._address, "Connection closed unexpectedly")
        return CommandResult(
            stdout=_as_text(result.stdout),
            stderr=_as_text(result.stderr),
            exit_status=result.exit_status or 0,
        )

    async def close(self) -> None:
        self._conn.close()
        try:
            await self._conn.wait_closed()
        except (asyncssh.Error, OSError) as exc:
            logger.debug("Error while closing session to %s: %s", self._address, exc)


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class AsyncSSHSessionFactory:
    """Open password-authenticated asyncssh sessions with host keys unchecked."""

    def __init__(self, username: str = DEFAULT_USERNAME, port: int = 22) -> None:
        self.username = username
        self.port = port

    async def __call__(
        self, address: str, password: str, timeout: float
    ) -> AsyncSSHSession:
        try:
            conn = await asyncio.wait_for(
                asyncssh.connect(
                    address,
                    port=self.port,
                    username=self.username,
                    password=password,
                    known_hosts=None,
                    connect_timeout=timeout,
                    login_timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncssh.Error, OSError, TimeoutError) as exc:
            raise SSHConnectionError(address, describe_ssh_error(address, exc)) from exc
        return AsyncSSHSession(address, conn)


class ConnectionManager:
    """Registry of SSH sessions keyed by router address.

    Usage:
        async with ConnectionManager() as connections:
            attempt = await connections.connect("192.168.1.1", password="secret")
            if attempt.success:
                print(await connections.execute("192.168.1.1", "uname -m"))
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        transporter: FileTransporter | None = None,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        quick_timeout: float = DEFAULT_QUICK_TIMEOUT,
    ) -> None:
        self._factory = session_factory or AsyncSSHSessionFactory()
        self._transporter = transporter or ScpCommandTransporter()
        self.connect_timeout = connect_timeout
        self.quick_timeout = quick_timeout
        self._sessions: dict[str, SSHSession] = {}
        self._passwords: dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ConnectionManager:
        return cls(
            AsyncSSHSessionFactory(settings.ssh.username, settings.ssh.port),
            transporter_from_settings(settings),
            connect_timeout=settings.ssh.connect_timeout,
            quick_timeout=settings.ssh.quick_timeout,
        )

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close_all()

    def has_session(self, address: str) -> bool:
        return address in self._sessions

    def session_count(self) -> int:
        return len(self._sessions)

    async def connect(self, address: str, password: str = "") -> LoginAttempt:
        """Replace any session for *address* with a freshly authenticated one."""
        await self.close_connection(address)
        try:
            session = await self._factory(address, password, self.connect_timeout)
        except SSHConnectionError as exc:
            logger.warning("SSH connection to %s failed: %s", address, exc.reason)
            return LoginAttempt(ip=address, success=False, error=exc.reason)

        self._sessions[address] = session
        self._passwords[address] = password
        logger.debug("SSH session to %s established", address)
        return LoginAttempt(ip=address, success=True)

    async def quick_connect(
        self, address: str, timeout: float | None = None, password: str = ""
    ) -> bool:
        """Check that *address* accepts a login, without keeping the session."""
        try:
            session = await self._factory(
                address, password, timeout or self.quick_timeout
            )
        except SSHConnectionError as exc:
            logger.debug("Quick connect to %s failed: %s", address, exc.reason)
            return False
        await session.close()
        return True

    async def execute(self, address: str, command: str) -> str:
        """Run *command* on *address* and return its standard output.

        Connects with the empty password first when no session exists. Output
        on standard error is logged and otherwise ignored.
        """
        session = await self._ensure_session(address)
        try:
            result = await session.run(command)
        except SSHConnectionError:
            await self._discard(address)
            raise

        if result.stderr.strip():
            logger.debug(
                "stderr from %s (%s): %s", address, command, result.stderr.strip()
            )
        return result.stdout

    async def transfer_file(
        self,
        address: str,
        local_path: Path | str,
        remote_path: str,
        password: str | None = None,
    ) -> bool:
        parent = posixpath.dirname(remote_path) or "/"
        try:
            await self.execute(address, f"mkdir -p {shlex.quote(parent)}")
        except SSHConnectionError as exc:
            logger.error("Cannot prepare %s on %s: %s", parent, address, exc.reason)
            return False

        if password is None:
            password = self._passwords.get(address, "")
        logger.info("Transferring %s to %s:%s", local_path, address, remote_path)
        try:
            return await self._transporter.send(
                address, Path(local_path), remote_path, password=password
            )
        except OSError as exc:
            logger.error("Transfer to %s failed: %s", address, exc)
            return False

    async def poll_for_availability(
        self,
        address: str,
        max_attempts: int = 30,
        interval: float = 5.0,
        password: str = "",
    ) -> bool:
        """Wait for *address* to accept logins again, e.g. after a reboot."""
        for attempt in range(1, max_attempts + 1):
            if await self.quick_connect(address, password=password):
                logger.info("%s is reachable again (attempt %d)", address, attempt)
                return True
            logger.debug(
                "%s not reachable yet (attempt %d/%d)", address, attempt, max_attempts
            )
            if attempt < max_attempts:
                await asyncio.sleep(interval)
        return False

    async def get_board_info(self, address: str) -> BoardInfo | None:
        return await read_board_info(self, address)

    async def close_connection(self, address: str) -> None:
        session = self._sessions.pop(address, None)
        if session is not None:
            await session.close()
            logger.debug("SSH session to %s closed", address)

    async def close_all(self) -> None:
        for address in list(self._sessions):
            await self.close_connection(address)

    async def _ensure_session(self, address: str) -> SSHSession:
        session = self._sessions.get(address)
        if session is not None:
            return session

        logger.debug("No SSH session to %s, reconnecting", address)
        attempt = await self.connect(address, "")
        remembered = self._passwords.get(address, "")
        if not attempt.success and remembered:
            attempt = await self.connect(address, remembered)
        if not attempt.success:
            raise SSHConnectionError(address, attempt.error or "Connection failed")
        return self._sessions[address]

    async def _discard(self, address: str) -> None:
        session = self._sessions.pop(address, None)
        if session is not None:
            try:
                await session.close()
            except (SSHConnectionError, OSError) as exc:
                logger.debug("Error discarding session to %s: %s", address, exc)
