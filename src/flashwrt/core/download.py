from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from flashwrt.errors import DownloadError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "firmware.bin"
CHUNK_SIZE = 64 * 1024


def filename_from_url(url: str) -> str:
    name = posixpath.basename(unquote(urlparse(url).path))
    return name or DEFAULT_FILENAME


async def download_firmware(
    url: str,
    download_dir: Path,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Stream *url* into *download_dir* and return the local file.

    There is no overall timeout; a download is only bounded by the transport.
    Any HTTP or filesystem problem is raised as ``DownloadError``.
    """
    target = download_dir / filename_from_url(url)
    partial = target.with_name(target.name + ".part")
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True, timeout=None)

    logger.info("Downloading firmware from %s", url)
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            size = 0
            with partial.open("wb") as handle:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    handle.write(chunk)
                    size += len(chunk)
        partial.replace(target)
    except (httpx.HTTPError, OSError) as exc:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Failed to download firmware: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    if size == 0:
        target.unlink(missing_ok=True)
        raise DownloadError(f"Downloaded firmware from {url} is empty")

    logger.info("Firmware downloaded to %s (%d bytes)", target, size)
    return target
