"""Firmware release descriptors.

The release feed itself lives outside flashwrt. Releases arrive as JSON: a
list of records (or ``{"releases": [...]}``), each either flat

    {"url": "...", "architecture": "aarch64_cortex-a53",
     "supported_devices": "glinet_gl-mt3000", "version": "v0.0.4"}

or shaped like a file-metadata event with a ``tags`` list of ``[name, value]``
pairs. When the live source fails and a fallback file is configured the
result is tagged ``FALLBACK`` so callers can tell the two apart.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from flashwrt.errors import ReleaseFeedError
from flashwrt.models import FirmwareDescriptor, ReleaseFeedResult, ReleaseOrigin

from .download import filename_from_url

logger = logging.getLogger(__name__)

FEED_TIMEOUT = 10.0

_TAG_ALIASES = {
    "tollgate_os_version": "version",
    "supported_device": "supported_devices",
}


def _split_devices(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    else:
        items = value
    return tuple(str(item).strip() for item in items if str(item).strip())


def parse_release(record: dict[str, Any]) -> FirmwareDescriptor:
    fields: dict[str, Any] = {}
    for tag in record.get("tags") or ():
        if isinstance(tag, (list, tuple)) and len(tag) >= 2:
            name = _TAG_ALIASES.get(str(tag[0]), str(tag[0]))
            fields.setdefault(name, tag[1])
    for key, value in record.items():
        if key == "tags":
            continue
        fields[_TAG_ALIASES.get(key, key)] = value

    fields["supported_devices"] = _split_devices(fields.get("supported_devices"))
    created_at = fields.get("created_at")
    if isinstance(created_at, (int, float)):
        fields["created_at"] = datetime.fromtimestamp(created_at, tz=timezone.utc)

    try:
        return FirmwareDescriptor.model_validate(fields)
    except ValidationError as exc:
        raise ReleaseFeedError(f"Invalid release record: {exc}") from exc


def parse_releases(data: Any) -> list[FirmwareDescriptor]:
    if isinstance(data, dict):
        data = data.get("releases", [data])
    if not isinstance(data, list):
        raise ReleaseFeedError("Release feed must be a JSON list of records")

    releases: list[FirmwareDescriptor] = []
    for record in data:
        if not isinstance(record, dict):
            logger.warning("Skipping malformed release record: %r", record)
            continue
        try:
            releases.append(parse_release(record))
        except ReleaseFeedError as exc:
            logger.warning("%s", exc)
    return releases


async def _read_source(source: str, client: httpx.AsyncClient | None) -> Any:
    if source.startswith(("http://", "https://")):
        if client is None:
            async with httpx.AsyncClient(timeout=FEED_TIMEOUT) as own_client:
                response = await own_client.get(source)
        else:
            response = await client.get(source)
        response.raise_for_status()
        return response.json()
    return json.loads(Path(source).expanduser().read_text())


async def fetch_releases(
    source: str,
    fallback: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> ReleaseFeedResult:
    """Load releases from *source*, falling back to *fallback* on failure."""
    try:
        data = await _read_source(source, client)
        return ReleaseFeedResult(
            origin=ReleaseOrigin.LIVE,
            source=source,
            releases=tuple(parse_releases(data)),
        )
    except (httpx.HTTPError, OSError, ValueError, ReleaseFeedError) as exc:
        if not fallback:
            raise ReleaseFeedError(
                f"Cannot load releases from {source}: {exc}"
            ) from exc
        logger.warning(
            "Release source %s failed (%s), using %s", source, exc, fallback
        )
        live_error = str(exc)

    try:
        data = await _read_source(fallback, client)
    except (httpx.HTTPError, OSError, ValueError) as exc:
        raise ReleaseFeedError(
            f"Cannot load releases from {source} or fallback {fallback}: {exc}"
        ) from exc
    return ReleaseFeedResult(
        origin=ReleaseOrigin.FALLBACK,
        source=fallback,
        releases=tuple(parse_releases(data)),
        error=live_error,
    )


def normalize_board_name(value: str) -> str:
    return value.strip().lower().replace(",", "_")


def is_release_compatible(release: FirmwareDescriptor, board_name: str | None) -> bool:
    """Substring match of the board name against the supported-device tags."""
    if not board_name or not release.supported_devices:
        return False
    board = normalize_board_name(board_name)
    tags = release.supported_devices
    return any(board in normalize_board_name(tag) for tag in tags)


def release_version(release: FirmwareDescriptor) -> str:
    return release.version or filename_from_url(release.url)


def _version_parts(version: str) -> list[int]:
    cleaned = version.strip()
    if cleaned[:1] in ("v", "V"):
        cleaned = cleaned[1:]
    parts = []
    for component in cleaned.split("."):
        digits = "".join(ch for ch in component if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return parts


def compare_versions(left: str, right: str) -> int:
    """Positive if *left* is newer, negative if older, ``0`` if equal."""
    a, b = _version_parts(left), _version_parts(right)
    for index in range(max(len(a), len(b))):
        x = a[index] if index < len(a) else 0
        y = b[index] if index < len(b) else 0
        if x != y:
            return x - y
    return 0


def latest_release(
    releases: Iterable[FirmwareDescriptor],
) -> FirmwareDescriptor | None:
    newest: FirmwareDescriptor | None = None
    for release in releases:
        if newest is None or _is_newer(release, newest):
            newest = release
    return newest


def _is_newer(candidate: FirmwareDescriptor, current: FirmwareDescriptor) -> bool:
    if candidate.created_at and current.created_at:
        if candidate.created_at != current.created_at:
            return candidate.created_at > current.created_at
    return compare_versions(candidate.version, current.version) > 0


def select_release(
    releases: Iterable[FirmwareDescriptor], board_name: str | None
) -> FirmwareDescriptor | None:
    """Newest release whose supported-device tags match *board_name*."""
    return latest_release(
        release for release in releases if is_release_compatible(release, board_name)
    )
