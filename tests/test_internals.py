"""Tests for internal modules."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from flashwrt.config import (
    CONFIG_ENV_VAR,
    InstallConfig,
    ScanningConfig,
    Settings,
    get_settings,
    load_settings,
    write_settings,
)
from flashwrt.utils.redaction import Redactor


def test_config_roundtrip(tmp_path):
    path = tmp_path / "config.toml"
    settings = Settings(
        scanning=ScanningConfig(subnet_ranges=("10.0.0.0/24", "172.16.4.0/22")),
        install=InstallConfig(poll_attempts=12, transfer_method="asyncssh"),
    )
    write_settings(settings, path)

    loaded = load_settings(path)
    assert loaded == settings


def test_defaults():
    settings = Settings()

    assert settings.ssh.username == "root"
    assert settings.scanning.subnet_ranges == (
        "192.168.0.0/24",
        "192.168.8.0/24",
        "192.168.1.0/24",
        "10.0.0.0/24",
    )
    assert settings.install.remote_path == "/tmp/firmware-update.bin"
    assert settings.install.poll_attempts == 30
    assert settings.install.poll_interval == 5.0


def test_invalid_subnet_mask_is_rejected():
    with pytest.raises(ValidationError, match="outside"):
        ScanningConfig(subnet_ranges=("10.0.0.0/8",))


def test_unknown_keys_are_rejected(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[ssh]\nusername = "root"\nshell = "ash"\n')

    with pytest.raises(ValueError, match="Invalid config file"):
        load_settings(path)


def test_get_settings_reads_env_path(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text("[ssh]\nport = 2222\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    assert get_settings().ssh.port == 2222


def test_get_settings_missing_env_path(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "missing.toml"))

    with pytest.raises(FileNotFoundError):
        get_settings()


def test_redactor():
    redactor = Redactor()

    assert redactor.redact_ip("192.168.1.1") == "x.x.x.1"
    assert redactor.redact_hostname("kitchen-ap") == "router-01"
    assert redactor.redact_hostname("garage-ap") == "router-02"
    assert redactor.redact_hostname("kitchen-ap") == "router-01"
    assert redactor.redact_version("23.05.3") == "23.x"
    assert redactor.redact_version(None) == ""


def test_redactor_disabled():
    redactor = Redactor(enabled=False)

    assert redactor.redact_ip("192.168.1.1") == "192.168.1.1"
    assert redactor.redact_hostname("kitchen-ap") == "kitchen-ap"
    assert redactor.redact_version("23.05.3") == "23.05.3"
