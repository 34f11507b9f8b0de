from __future__ import annotations

from pathlib import Path

import pytest

from flashwrt.commands.mock_device import MockRouter
from flashwrt.config import get_settings
from flashwrt.core.connection import CommandResult, ConnectionManager
from flashwrt.errors import SSHConnectionError


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("FLASHWRT_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeSession:
    def __init__(self, network: FakeNetwork, address: str) -> None:
        self._network = network
        self._address = address
        self.closed = False

    async def run(self, command: str) -> CommandResult:
        if self.closed:
            raise SSHConnectionError(self._address, "Session closed")
        self._network.commands.append((self._address, command))
        router = self._network.routers[self._address]
        outcome = router.handle(command)
        if router.pending_reboot:
            router.pending_reboot = False
            self._network.reboot(self._address)
            raise SSHConnectionError(self._address, "Connection closed unexpectedly")
        return CommandResult(outcome.stdout, outcome.stderr, outcome.exit_status)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._network.open_sessions -= 1


class FakeNetwork:
    """Session factory and file transporter backed by in-process mock routers."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.routers: dict[str, MockRouter] = {}
        self.down: dict[str, int] = {}
        self.reboot_polls = 2
        self.logins: list[tuple[str, str]] = []
        self.commands: list[tuple[str, str]] = []
        self.transfers: list[tuple[str, str, str | None]] = []
        self.fail_transfer = False
        self.open_sessions = 0

    def add_router(self, address: str, **kwargs: object) -> MockRouter:
        router = MockRouter(
            root=self.root / address, **kwargs  # type: ignore[arg-type]
        )
        router.root.mkdir(parents=True, exist_ok=True)
        self.routers[address] = router
        return router

    def reboot(self, address: str) -> None:
        router = self.routers[address]
        router.installed_version = router.firmware_version
        router.password = ""
        self.down[address] = self.reboot_polls

    async def __call__(
        self, address: str, password: str, timeout: float
    ) -> FakeSession:
        self.logins.append((address, password))
        router = self.routers.get(address)
        if router is None:
            raise SSHConnectionError(address, "Connection refused")
        if self.down.get(address, 0) > 0:
            self.down[address] -= 1
            raise SSHConnectionError(address, f"Connection to {address} timed out")
        if router.password and password != router.password:
            raise SSHConnectionError(address, "Authentication failed")
        self.open_sessions += 1
        return FakeSession(self, address)

    async def send(
        self,
        address: str,
        local_path: Path,
        remote_path: str,
        password: str | None = None,
    ) -> bool:
        self.transfers.append((address, remote_path, password))
        if self.fail_transfer or address not in self.routers:
            return False
        target = self.routers[address].local_path(remote_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(local_path.read_bytes())
        return True


@pytest.fixture
def network(tmp_path: Path) -> FakeNetwork:
    return FakeNetwork(tmp_path / "routers")


@pytest.fixture
def connections(network: FakeNetwork) -> ConnectionManager:
    return ConnectionManager(network, network, connect_timeout=1.0, quick_timeout=0.1)


async def write_fake_firmware(url: str, download_dir: Path) -> Path:
    download_dir.mkdir(parents=True, exist_ok=True)
    path = download_dir / "firmware.bin"
    path.write_bytes(b"\x27\x05\x19\x56firmware")
    return path


@pytest.fixture
def downloader():
    return write_fake_firmware
