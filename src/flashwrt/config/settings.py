from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from .paths import default_config_path, default_download_dir, expand_path

CONFIG_ENV_VAR = "FLASHWRT_CONFIG"

DEFAULT_SUBNET_RANGES = (
    "192.168.0.0/24",
    "192.168.8.0/24",
    "192.168.1.0/24",
    "10.0.0.0/24",
)


class SSHConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    username: str = "root"
    port: int = Field(default=22, ge=1, le=65535)
    connect_timeout: float = Field(default=10.0, gt=0)
    quick_timeout: float = Field(default=1.0, gt=0)


class ScanningConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    subnet_ranges: tuple[str, ...] = DEFAULT_SUBNET_RANGES
    probe_timeout: float = Field(default=0.5, gt=0)
    parallel_probes: int = Field(default=64, ge=1, le=1024)
    include_gateways: bool = True

    @field_validator("subnet_ranges")
    @classmethod
    def _check_ranges(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        from flashwrt.core.subnet import validate_ranges

        validate_ranges(value)
        return value


class InstallConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    remote_path: str = "/tmp/firmware-update.bin"
    upgrade_command: str = "sysupgrade -n {path}"
    poll_attempts: int = Field(default=30, ge=1)
    poll_interval: float = Field(default=5.0, ge=0)
    version_marker: str = "/etc/tollgate-version"
    download_dir: str = Field(default_factory=lambda: str(default_download_dir()))
    transfer_method: Literal["scp", "asyncssh"] = "scp"


class ReleasesConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    feed_url: str = ""
    fallback_path: str = ""


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    ssh: SSHConfig = Field(default_factory=SSHConfig)
    scanning: ScanningConfig = Field(default_factory=ScanningConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    releases: ReleasesConfig = Field(default_factory=ReleasesConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def download_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.install.download_dir)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def _toml_list(values: tuple[str, ...]) -> str:
    return "[" + ", ".join(_toml_string(value) for value in values) + "]"


def render_settings_toml(settings: Settings) -> str:
    ssh = settings.ssh
    scanning = settings.scanning
    install = settings.install
    releases = settings.releases
    lines = [
        "# flashwrt configuration",
        "",
        "[ssh]",
        f"username = {_toml_string(ssh.username)}",
        f"port = {ssh.port}",
        f"connect_timeout = {ssh.connect_timeout}",
        f"quick_timeout = {ssh.quick_timeout}",
        "",
        "[scanning]",
        f"subnet_ranges = {_toml_list(scanning.subnet_ranges)}",
        f"probe_timeout = {scanning.probe_timeout}",
        f"parallel_probes = {scanning.parallel_probes}",
        f"include_gateways = {str(scanning.include_gateways).lower()}",
        "",
        "[install]",
        f"remote_path = {_toml_string(install.remote_path)}",
        f"upgrade_command = {_toml_string(install.upgrade_command)}",
        f"poll_attempts = {install.poll_attempts}",
        f"poll_interval = {install.poll_interval}",
        f"version_marker = {_toml_string(install.version_marker)}",
        f"download_dir = {_toml_string(install.download_dir)}",
        f"transfer_method = {_toml_string(install.transfer_method)}",
        "",
        "[releases]",
        f"feed_url = {_toml_string(releases.feed_url)}",
        f"fallback_path = {_toml_string(releases.fallback_path)}",
        "",
    ]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
