from __future__ import annotations

import os
from pathlib import Path

import platformdirs

APP_NAME = "flashwrt"
CONFIG_FILENAME = "config.toml"


def default_config_path() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILENAME


def default_download_dir() -> Path:
    return Path(platformdirs.user_cache_dir(APP_NAME)) / "firmware"


def expand_path(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))
