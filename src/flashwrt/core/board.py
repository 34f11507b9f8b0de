"""Board identification for OpenWrt routers.

``ubus call system board`` is the primary source. Routers without ubus (or
that refuse it) are identified from ``/etc/openwrt_release``, with the board
name and CPU architecture read separately.
"""

from __future__ import annotations

import json
import logging
import shlex
from typing import Protocol

from flashwrt.errors import SSHConnectionError
from flashwrt.models import BoardInfo

logger = logging.getLogger(__name__)

BOARD_COMMAND = "ubus call system board"
RELEASE_FILE_COMMAND = "cat /etc/openwrt_release 2>/dev/null"
BOARD_NAME_COMMAND = "cat /tmp/sysinfo/board_name 2>/dev/null"
ARCHITECTURE_COMMAND = "uname -m"


class CommandRunner(Protocol):
    async def execute(self, address: str, command: str) -> str: ...


def parse_board_json(text: str) -> BoardInfo | None:
    """Parse ``ubus call system board`` output; ``None`` if it is not JSON."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    release = data.get("release")
    if not isinstance(release, dict):
        release = {}

    return BoardInfo(
        board_name=str(data.get("board_name") or ""),
        model=str(data.get("model") or ""),
        hostname=str(data.get("hostname") or ""),
        distribution=str(release.get("distribution") or ""),
        os_version=str(release.get("version") or ""),
        revision=str(release.get("revision") or ""),
        target=str(release.get("target") or ""),
        kernel=str(data.get("kernel") or ""),
    )


def parse_openwrt_release(text: str) -> dict[str, str]:
    """Parse the ``KEY='value'`` lines of ``/etc/openwrt_release``."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, raw = line.strip().partition("=")
        if not sep or not key:
            continue
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("'\"")]
        values[key] = parts[0] if parts else ""
    return values


def board_from_release(values: dict[str, str]) -> BoardInfo | None:
    if not values.get("DISTRIB_ID"):
        return None
    return BoardInfo(
        distribution=values.get("DISTRIB_ID", ""),
        os_version=values.get("DISTRIB_RELEASE", ""),
        revision=values.get("DISTRIB_REVISION", ""),
        target=values.get("DISTRIB_TARGET", ""),
    )


async def read_board_info(runner: CommandRunner, address: str) -> BoardInfo | None:
    """Identify the router at *address*; ``None`` when it refuses commands."""
    try:
        board = parse_board_json(await runner.execute(address, BOARD_COMMAND))
        if board is None:
            logger.debug("%s: no ubus board info, reading release file", address)
            release = await runner.execute(address, RELEASE_FILE_COMMAND)
            board = board_from_release(parse_openwrt_release(release))

        updates: dict[str, str] = {}
        if board is None or not board.board_name:
            board_name = (await runner.execute(address, BOARD_NAME_COMMAND)).strip()
            if board_name:
                updates["board_name"] = board_name
        architecture = (await runner.execute(address, ARCHITECTURE_COMMAND)).strip()
        if architecture:
            updates["architecture"] = architecture
    except SSHConnectionError as exc:
        logger.warning("Cannot read board info from %s: %s", address, exc.reason)
        return None

    if board is None:
        if not updates:
            return None
        return BoardInfo(**updates)
    return board.model_copy(update=updates)
