from __future__ import annotations

import asyncio

import pytest

from flashwrt.core.connection import ConnectionManager
from flashwrt.errors import SSHConnectionError


def test_connect_twice_keeps_one_session(network, connections):
    network.add_router("192.168.1.1")

    async def _run():
        first = await connections.connect("192.168.1.1")
        second = await connections.connect("192.168.1.1")
        return first, second

    first, second = asyncio.run(_run())

    assert first.success and second.success
    assert connections.session_count() == 1
    assert network.open_sessions == 1


def test_connect_failure_is_reported_not_raised(network, connections):
    network.add_router("192.168.1.1", password="secret")

    attempt = asyncio.run(connections.connect("192.168.1.1", "wrong"))

    assert attempt.success is False
    assert attempt.ip == "192.168.1.1"
    assert attempt.error == "Authentication failed"
    assert not connections.has_session("192.168.1.1")


def test_execute_returns_stdout(network, connections):
    network.add_router("192.168.1.1", architecture="mipsel")

    output = asyncio.run(connections.execute("192.168.1.1", "uname -m"))

    assert output.strip() == "mipsel"
    assert network.logins == [("192.168.1.1", "")]


def test_execute_reconnects_with_remembered_password(network, connections):
    network.add_router("192.168.1.1", password="secret")

    async def _run():
        await connections.connect("192.168.1.1", "secret")
        await connections.close_connection("192.168.1.1")
        return await connections.execute("192.168.1.1", "echo hello")

    assert asyncio.run(_run()).strip() == "hello"
    assert network.logins[-2:] == [("192.168.1.1", ""), ("192.168.1.1", "secret")]


def test_execute_without_login_raises(network, connections):
    network.add_router("192.168.1.1", password="secret")

    with pytest.raises(SSHConnectionError) as excinfo:
        asyncio.run(connections.execute("192.168.1.1", "uname -m"))

    assert excinfo.value.address == "192.168.1.1"
    assert not connections.has_session("192.168.1.1")


def test_dropped_session_is_discarded(network, connections):
    router = network.add_router("192.168.1.1")
    image = router.local_path("/tmp/firmware-update.bin")
    image.parent.mkdir(parents=True)
    image.write_bytes(b"image")

    async def _run():
        await connections.connect("192.168.1.1")
        await connections.execute(
            "192.168.1.1", "sysupgrade -n /tmp/firmware-update.bin"
        )

    with pytest.raises(SSHConnectionError):
        asyncio.run(_run())
    assert connections.session_count() == 0


def test_transfer_file_creates_remote_directory(network, connections, tmp_path):
    router = network.add_router("192.168.1.1")
    local = tmp_path / "firmware.bin"
    local.write_bytes(b"firmware")

    ok = asyncio.run(
        connections.transfer_file("192.168.1.1", local, "/tmp/upload/firmware.bin")
    )

    assert ok is True
    assert ("192.168.1.1", "mkdir -p /tmp/upload") in network.commands
    assert router.local_path("/tmp/upload/firmware.bin").read_bytes() == b"firmware"


def test_transfer_file_reports_failure(network, connections, tmp_path):
    network.add_router("192.168.1.1")
    network.fail_transfer = True
    local = tmp_path / "firmware.bin"
    local.write_bytes(b"firmware")

    ok = asyncio.run(
        connections.transfer_file("192.168.1.1", local, "/tmp/firmware.bin")
    )

    assert ok is False


def test_poll_for_availability_waits_for_router(network, connections):
    network.add_router("192.168.1.1")
    network.down["192.168.1.1"] = 2

    available = asyncio.run(
        connections.poll_for_availability("192.168.1.1", max_attempts=5, interval=0)
    )

    assert available is True
    assert len(network.logins) == 3
    assert connections.session_count() == 0


def test_poll_for_availability_gives_up(network, connections):
    network.add_router("192.168.1.1")
    network.down["192.168.1.1"] = 10

    available = asyncio.run(
        connections.poll_for_availability("192.168.1.1", max_attempts=3, interval=0)
    )

    assert available is False
    assert len(network.logins) == 3


def test_quick_connect_does_not_keep_session(network, connections):
    network.add_router("192.168.1.1")

    assert asyncio.run(connections.quick_connect("192.168.1.1")) is True
    assert asyncio.run(connections.quick_connect("192.168.1.2")) is False
    assert connections.session_count() == 0
    assert network.open_sessions == 0


def test_close_all(network):
    network.add_router("192.168.1.1")
    network.add_router("192.168.1.2")

    async def _run():
        async with ConnectionManager(network, network) as manager:
            await manager.connect("192.168.1.1")
            await manager.connect("192.168.1.2")
            assert manager.session_count() == 2
        return manager

    manager = asyncio.run(_run())

    assert manager.session_count() == 0
    assert network.open_sessions == 0


def test_get_board_info_from_ubus(network, connections):
    network.add_router("192.168.1.1", board_name="glinet,gl-mt3000")

    board = asyncio.run(connections.get_board_info("192.168.1.1"))

    assert board is not None
    assert board.board_name == "glinet,gl-mt3000"
    assert board.is_openwrt
    assert board.architecture == "aarch64"
