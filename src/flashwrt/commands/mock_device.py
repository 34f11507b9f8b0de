from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import asyncssh

logger = logging.getLogger(__name__)

DEFAULT_BOARD_NAME = "glinet,gl-mt3000"
DEFAULT_MODEL = "GL.iNet GL-MT3000"
DEFAULT_ARCHITECTURE = "aarch64"
DEFAULT_MARKER = "/etc/tollgate-version"
OPENWRT_VERSION = "23.05.3"

HOST_KEY_ALGORITHM = "ssh-ed25519"
UPGRADE_BANNER = "Commencing upgrade. Closing all shell sessions.\n"


@dataclass
class CommandOutcome:
    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0


@dataclass
class MockRouter:
    """A stock OpenWrt router that understands just enough shell to be flashed.

    ``sysupgrade`` drops every connection, "reboots" for ``reboot_delay``
    seconds with a fresh host key and comes back with the version marker set
    and the password cleared.
    """

    root: Path
    board_name: str = DEFAULT_BOARD_NAME
    model: str = DEFAULT_MODEL
    hostname: str = "OpenWrt"
    architecture: str = DEFAULT_ARCHITECTURE
    password: str = ""
    firmware_version: str = "v0.0.4"
    marker_path: str = DEFAULT_MARKER
    reboot_delay: float = 3.0

    installed_version: str | None = None
    pending_reboot: bool = False
    host: str = "0.0.0.0"
    port: int = 2222

    _server: asyncssh.SSHAcceptor | None = field(default=None, repr=False)
    _connections: set[asyncssh.SSHServerConnection] = field(
        default_factory=set, repr=False
    )
    _reboot_task: asyncio.Task[None] | None = field(default=None, repr=False)

    def local_path(self, remote_path: str) -> Path:
        return self.root / remote_path.lstrip("/")

    def handle(self, command: str) -> CommandOutcome:
        """Run a shell line; ``a || b`` runs ``b`` only when ``a`` fails."""
        outcome = CommandOutcome(exit_status=127)
        for part in command.split("||"):
            outcome = self._run(part.strip())
            if outcome.exit_status == 0:
                break
        return outcome

    def _run(self, command: str) -> CommandOutcome:
        try:
            args = [arg for arg in shlex.split(command) if arg != "2>/dev/null"]
        except ValueError as exc:
            return CommandOutcome(stderr=f"sh: syntax error: {exc}\n", exit_status=2)
        if not args:
            return CommandOutcome()

        name, rest = args[0], args[1:]
        if name == "ubus" and rest == ["call", "system", "board"]:
            return CommandOutcome(stdout=self._board_json())
        if name == "uname" and rest == ["-m"]:
            return CommandOutcome(stdout=f"{self.architecture}\n")
        if name == "echo":
            return CommandOutcome(stdout=" ".join(rest) + "\n")
        if name == "cat" and len(rest) == 1:
            return self._cat(rest[0])
        if name == "mkdir":
            for path in (arg for arg in rest if not arg.startswith("-")):
                self.local_path(path).mkdir(parents=True, exist_ok=True)
            return CommandOutcome()
        if name == "ls" and rest:
            return self._ls(rest[-1])
        if name == "sysupgrade" and rest:
            return self._sysupgrade(rest[-1])
        return CommandOutcome(stderr=f"sh: {name}: not found\n", exit_status=127)

    def _board_json(self) -> str:
        board = {
            "kernel": "5.15.150",
            "hostname": self.hostname,
            "system": "ARMv8 Processor rev 4",
            "model": self.model,
            "board_name": self.board_name,
            "release": {
                "distribution": "OpenWrt",
                "version": OPENWRT_VERSION,
                "revision": "r23809-234f1a2efa",
                "target": "mediatek/filogic",
                "description": f"OpenWrt {OPENWRT_VERSION}",
            },
        }
        return json.dumps(board, indent=1) + "\n"

    def _cat(self, path: str) -> CommandOutcome:
        if path == "/tmp/sysinfo/board_name":
            return CommandOutcome(stdout=f"{self.board_name}\n")
        if path == "/etc/openwrt_release":
            return CommandOutcome(
                stdout=(
                    "DISTRIB_ID='OpenWrt'\n"
                    f"DISTRIB_RELEASE='{OPENWRT_VERSION}'\n"
                    "DISTRIB_TARGET='mediatek/filogic'\n"
                )
            )
        if path == self.marker_path and self.installed_version:
            return CommandOutcome(stdout=f"{self.installed_version}\n")
        local = self.local_path(path)
        if local.is_file():
            return CommandOutcome(stdout=local.read_text(errors="replace"))
        return CommandOutcome(
            stderr=f"cat: can't open '{path}': No such file or directory\n",
            exit_status=1,
        )

    def _ls(self, path: str) -> CommandOutcome:
        local = self.local_path(path)
        if not local.exists():
            return CommandOutcome(
                stderr=f"ls: {path}: No such file or directory\n", exit_status=1
            )
        size = local.stat().st_size
        return CommandOutcome(
            stdout=f"-rw-r--r--    1 root     root     {size:>9} Jan  1 00:00 {path}\n"
        )

    def _sysupgrade(self, path: str) -> CommandOutcome:
        local = self.local_path(path)
        if not local.is_file() or local.stat().st_size == 0:
            return CommandOutcome(stderr=f"Image not found: {path}\n", exit_status=1)
        local.unlink()
        self.pending_reboot = True
        return CommandOutcome(stdout=UPGRADE_BANNER)

    async def start(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._server = await asyncssh.listen(
            self.host,
            self.port,
            server_factory=lambda: _MockSSHServer(self),
            server_host_keys=[asyncssh.generate_private_key(HOST_KEY_ALGORITHM)],
            process_factory=self._handle_process,
            sftp_factory=functools.partial(
                asyncssh.SFTPServer, chroot=os.fsencode(self.root)
            ),
            allow_scp=True,
        )
        logger.info(
            "Mock router '%s' listening on %s:%d", self.board_name, self.host, self.port
        )

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Mock router '%s' stopped", self.board_name)

    async def run_forever(self) -> None:
        await self.start()
        while True:
            await asyncio.sleep(3600)

    async def _handle_process(self, process: asyncssh.SSHServerProcess) -> None:
        command = process.command
        if not command:
            process.stderr.write("Interactive shells are not supported\n")
            process.exit(1)
            return

        logger.debug("Mock router command: %s", command)
        outcome = self.handle(command)
        process.stdout.write(outcome.stdout)
        process.stderr.write(outcome.stderr)
        if self.pending_reboot:
            self.pending_reboot = False
            self._reboot_task = asyncio.create_task(self._reboot())
            return
        process.exit(outcome.exit_status)

    async def _reboot(self) -> None:
        logger.info("Mock router rebooting into %s", self.firmware_version)
        await self.stop()
        for conn in list(self._connections):
            conn.abort()
        await asyncio.sleep(self.reboot_delay)
        self.installed_version = self.firmware_version
        self.password = ""
        await self.start()


class _MockSSHServer(asyncssh.SSHServer):
    def __init__(self, router: MockRouter) -> None:
        self._router = router
        self._conn: asyncssh.SSHServerConnection | None = None

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        self._conn = conn
        self._router._connections.add(conn)

    def connection_lost(self, exc: Exception | None) -> None:
        if self._conn is not None:
            self._router._connections.discard(self._conn)

    def begin_auth(self, username: str) -> bool:
        # Blank-password routers accept any login.
        return bool(self._router.password)

    def password_auth_supported(self) -> bool:
        return True

    def validate_password(self, username: str, password: str) -> bool:
        return password == self._router.password


async def run_mock_device(
    port: int = 2222,
    host: str = "0.0.0.0",
    board_name: str = DEFAULT_BOARD_NAME,
    password: str = "",
    firmware_version: str = "v0.0.4",
    reboot_delay: float = 3.0,
    root: Path | None = None,
) -> None:
    with tempfile.TemporaryDirectory(prefix="flashwrt-mock-") as scratch:
        router = MockRouter(
            root=root or Path(scratch),
            board_name=board_name,
            password=password,
            firmware_version=firmware_version,
            reboot_delay=reboot_delay,
            host=host,
            port=port,
        )
        await router.run_forever()
