from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from flashwrt.config import InstallConfig
from flashwrt.core.installer import Installer
from flashwrt.errors import DownloadError
from flashwrt.models import FirmwareDescriptor, InstallStage, InstallStatus

ADDRESS = "192.168.1.1"

DESCRIPTOR = FirmwareDescriptor(
    url="https://releases.example.com/tollgate-os-glinet_gl-mt3000-v0.0.4.bin",
    architecture="aarch64_cortex-a53",
    supported_devices=("glinet_gl-mt3000",),
    version="v0.0.4",
)

STAGE_ORDER = [
    InstallStage.PREPARING,
    InstallStage.COMPATIBILITY_CHECK,
    InstallStage.DOWNLOAD_PREPARATION,
    InstallStage.DOWNLOADING,
    InstallStage.TRANSFERRING,
    InstallStage.VERIFYING,
    InstallStage.INSTALLING,
    InstallStage.WAITING_FOR_REBOOT,
    InstallStage.VERIFYING_INSTALLATION,
    InstallStage.COMPLETE,
]


@pytest.fixture
def install_config(tmp_path) -> InstallConfig:
    return InstallConfig(
        download_dir=str(tmp_path / "downloads"), poll_attempts=5, poll_interval=0
    )


@pytest.fixture
def installer(connections, install_config, downloader) -> Installer:
    return Installer(connections, install_config, downloader=downloader)


def _collect() -> tuple[list[InstallStatus], object]:
    statuses: list[InstallStatus] = []
    return statuses, statuses.append


def test_install_end_to_end(network, installer):
    router = network.add_router(ADDRESS, firmware_version="v0.0.4")
    statuses, on_progress = _collect()

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR, on_progress))

    assert result.success is True
    assert result.stage == InstallStage.COMPLETE
    assert result.progress == 100
    assert result.installed_version == "v0.0.4"
    assert [status.stage for status in statuses] == STAGE_ORDER
    assert [status.progress for status in statuses] == [
        10, 10, 15, 20, 40, 60, 70, 80, 90, 100
    ]
    assert statuses[-1].terminal and statuses[-1].success
    assert router.installed_version == "v0.0.4"
    assert (ADDRESS, "sysupgrade -n /tmp/firmware-update.bin") in network.commands


def test_install_with_password(network, installer):
    network.add_router(ADDRESS, password="p")

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR, password="p"))

    assert result.success is True
    assert network.logins[0] == (ADDRESS, "p")
    assert network.transfers == [(ADDRESS, "/tmp/firmware-update.bin", "p")]
    # The upgrade wipes the password; reconnects use the blank one.
    assert network.logins[-1] == (ADDRESS, "")


def test_wrong_password_fails_compatibility_check(network, installer):
    network.add_router(ADDRESS, password="p")

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR, password="nope"))

    assert result.success is False
    assert result.stage == InstallStage.COMPATIBILITY_CHECK
    assert result.progress == 0
    assert "Authentication failed" in result.error


def test_unreachable_router_fails_compatibility_check(installer):
    statuses, on_progress = _collect()

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR, on_progress))

    assert result.stage == InstallStage.COMPATIBILITY_CHECK
    assert result.progress == 0
    assert result.error == "Unable to get router information"
    assert statuses[-1].terminal
    assert statuses[-1].progress == 0


def test_unsupported_board_fails_before_download(
    network, connections, install_config, downloader
):
    network.add_router(ADDRESS, board_name="tplink,archer-c7-v2")
    downloads: list[str] = []

    async def _downloader(url: str, download_dir: Path) -> Path:
        downloads.append(url)
        return await downloader(url, download_dir)

    installer = Installer(connections, install_config, downloader=_downloader)
    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.COMPATIBILITY_CHECK
    assert result.progress == 0
    assert downloads == []
    assert network.transfers == []


def test_non_openwrt_router_is_rejected(network, installer, monkeypatch):
    router = network.add_router(ADDRESS)
    monkeypatch.setattr(router, "_board_json", lambda: "{}")
    monkeypatch.setattr(router, "board_name", "")

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.COMPATIBILITY_CHECK
    assert "not running OpenWrt" in result.error


def test_descriptor_without_device_tags_skips_board_match(network, installer):
    network.add_router(ADDRESS, board_name="tplink,archer-c7-v2")
    descriptor = DESCRIPTOR.model_copy(update={"supported_devices": ()})

    result = asyncio.run(installer.install(ADDRESS, descriptor))

    assert result.success is True


def test_missing_url_fails_download_preparation(network, installer):
    network.add_router(ADDRESS)
    descriptor = DESCRIPTOR.model_copy(update={"url": ""})

    result = asyncio.run(installer.install(ADDRESS, descriptor))

    assert result.stage == InstallStage.DOWNLOAD_PREPARATION
    assert result.progress == 15


def test_download_failure(network, connections, install_config):
    network.add_router(ADDRESS)

    async def _broken(url: str, download_dir: Path) -> Path:
        raise DownloadError("Failed to download firmware: 404 Not Found")

    installer = Installer(connections, install_config, downloader=_broken)
    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.DOWNLOADING
    assert result.progress == 25
    assert "404" in result.error


def test_transfer_failure(network, installer):
    network.add_router(ADDRESS)
    network.fail_transfer = True

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.TRANSFERRING
    assert result.progress == 50


def test_missing_image_fails_verification(network, installer, monkeypatch):
    network.add_router(ADDRESS)

    async def _lost(address, local_path, remote_path, password=None):
        return True

    monkeypatch.setattr(network, "send", _lost)

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.VERIFYING
    assert result.progress == 65


def test_router_that_never_returns(network, installer):
    network.add_router(ADDRESS)
    network.reboot_polls = 100

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.WAITING_FOR_REBOOT
    assert result.progress == 85


def test_missing_version_marker_fails_post_install_check(network, installer):
    router = network.add_router(ADDRESS)
    router.firmware_version = ""

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.stage == InstallStage.VERIFYING_INSTALLATION
    assert result.progress == 95
    assert result.installed_version is None


def test_unexpected_exception_becomes_error_result(network, connections):
    network.add_router(ADDRESS)

    async def _crash(url: str, download_dir: Path) -> Path:
        raise RuntimeError("disk on fire")

    installer = Installer(connections, downloader=_crash)
    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR))

    assert result.success is False
    assert result.stage == InstallStage.ERROR
    assert result.progress == 0
    assert result.error == "disk on fire"


def test_progress_callback_errors_are_ignored(network, installer):
    network.add_router(ADDRESS)

    def _explode(status: InstallStatus) -> None:
        raise ValueError("ui went away")

    result = asyncio.run(installer.install(ADDRESS, DESCRIPTOR, _explode))

    assert result.success is True


def test_stream_yields_statuses_in_order(network, installer):
    network.add_router(ADDRESS)

    async def _run() -> list[InstallStatus]:
        return [status async for status in installer.stream(ADDRESS, DESCRIPTOR)]

    statuses = asyncio.run(_run())

    assert [status.stage for status in statuses] == STAGE_ORDER
    assert statuses[-1].terminal
    assert sum(1 for status in statuses if status.terminal) == 1


def test_stream_ends_with_failure_status(installer):
    async def _run() -> list[InstallStatus]:
        return [status async for status in installer.stream(ADDRESS, DESCRIPTOR)]

    statuses = asyncio.run(_run())

    assert statuses[-1].terminal
    assert statuses[-1].success is False
    assert statuses[-1].stage == InstallStage.COMPATIBILITY_CHECK
