from __future__ import annotations

from .paths import (
    APP_NAME,
    CONFIG_FILENAME,
    default_config_path,
    default_download_dir,
    expand_path,
)
from .settings import (
    CONFIG_ENV_VAR,
    InstallConfig,
    ReleasesConfig,
    ScanningConfig,
    Settings,
    SSHConfig,
    download_dir_from_settings,
    get_settings,
    load_settings,
    render_settings_toml,
    resolve_config_path,
    write_settings,
)

__all__ = [
    "APP_NAME",
    "CONFIG_ENV_VAR",
    "CONFIG_FILENAME",
    "InstallConfig",
    "ReleasesConfig",
    "SSHConfig",
    "ScanningConfig",
    "Settings",
    "default_config_path",
    "default_download_dir",
    "download_dir_from_settings",
    "expand_path",
    "get_settings",
    "load_settings",
    "render_settings_toml",
    "resolve_config_path",
    "write_settings",
]
