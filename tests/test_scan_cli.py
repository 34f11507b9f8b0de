from __future__ import annotations

from typer.testing import CliRunner

import flashwrt.cli.commands.check as check_cmd
import flashwrt.cli.commands.scan as scan_cmd
from flashwrt.cli.app import app
from flashwrt.config import CONFIG_ENV_VAR, ScanningConfig, Settings, write_settings
from flashwrt.models import BoardInfo, DeviceOrigin, DeviceProbe, DeviceStatus

runner = CliRunner(env={"COLUMNS": "200"})


class FakeService:
    def __init__(self, devices: list[DeviceProbe]) -> None:
        self.devices = devices
        self.closed = False

    async def __aenter__(self) -> FakeService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.closed = True

    async def scan_network(self) -> list[DeviceProbe]:
        return self.devices

    async def check_device(self, address: str) -> DeviceProbe | None:
        for device in self.devices:
            if device.ip == address:
                return device
        return None


DEVICES = [
    DeviceProbe(
        ip="192.168.8.1",
        ssh_reachable=True,
        origin=DeviceOrigin.GATEWAY,
        status=DeviceStatus.READY,
        is_openwrt=True,
        board=BoardInfo(
            board_name="glinet,gl-mt3000",
            model="GL.iNet GL-MT3000",
            hostname="kitchen-ap",
            distribution="OpenWrt",
            os_version="23.05.3",
        ),
    ),
    DeviceProbe(
        ip="192.168.8.20",
        ssh_reachable=False,
        origin=DeviceOrigin.GATEWAY,
        status=DeviceStatus.NO_SSH,
    ),
]


def test_scan_lists_devices(monkeypatch):
    service = FakeService(DEVICES)
    monkeypatch.setattr(scan_cmd, "build_service", lambda settings: service)

    result = runner.invoke(app, ["scan"])

    assert result.exit_code == 0
    assert "192.168.8.1" in result.stdout
    assert "glinet,gl-mt3000" in result.stdout
    assert "kitchen-ap" in result.stdout
    assert "Found 2 device(s), 1 with SSH" in result.stdout
    assert service.closed


def test_scan_redacts_output(monkeypatch):
    monkeypatch.setattr(
        scan_cmd, "build_service", lambda settings: FakeService(DEVICES)
    )

    result = runner.invoke(app, ["scan", "--redact"])

    assert result.exit_code == 0
    assert "192.168.8.1" not in result.stdout
    assert "x.x.x.1" in result.stdout
    assert "kitchen-ap" not in result.stdout


def test_scan_without_devices(monkeypatch):
    monkeypatch.setattr(scan_cmd, "build_service", lambda settings: FakeService([]))

    result = runner.invoke(app, ["scan"])

    assert result.exit_code == 0
    assert "No routers found." in result.stdout


def test_scan_rejects_bad_config(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text('[scanning]\nsubnet_ranges = ["10.0.0.0/8"]\n')
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    result = runner.invoke(app, ["scan"])

    assert result.exit_code == 1


def test_scan_uses_configured_ranges(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    write_settings(
        Settings(scanning=ScanningConfig(subnet_ranges=("172.16.0.0/24",))), path
    )
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    seen: list[Settings] = []

    def _build(settings: Settings) -> FakeService:
        seen.append(settings)
        return FakeService([])

    monkeypatch.setattr(scan_cmd, "build_service", _build)

    result = runner.invoke(app, ["scan"])

    assert result.exit_code == 0
    assert "172.16.0.0/24" in result.stdout
    assert seen[0].scanning.subnet_ranges == ("172.16.0.0/24",)


def test_check_reports_board(monkeypatch):
    monkeypatch.setattr(
        check_cmd, "build_service", lambda settings: FakeService(DEVICES)
    )

    found = runner.invoke(app, ["check", "192.168.8.1"])
    missing = runner.invoke(app, ["check", "192.168.8.99"])

    assert found.exit_code == 0
    assert "glinet,gl-mt3000" in found.stdout
    assert missing.exit_code == 1
    assert "No SSH service" in missing.stdout


def test_config_init_and_show(tmp_path, monkeypatch):
    path = tmp_path / "flashwrt" / "config.toml"
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    init = runner.invoke(app, ["config", "init"])
    again = runner.invoke(app, ["config", "init"])
    show = runner.invoke(app, ["config", "show"])

    assert init.exit_code == 0
    assert path.exists()
    assert "already exists" in again.stdout
    assert show.exit_code == 0
    assert f"Config source: {path}" in show.stdout
    assert "[scanning]" in show.stdout
