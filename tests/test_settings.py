"""Tests for settings resolution (env > YAML > defaults)."""

import pytest

from utils.constants import DEFAULT_MAX_BUFFER_BYTES, DEFAULT_TIMEOUT_MS
from utils.settings import GatewaySettings, resolve_settings


def test_defaults_with_empty_env():
    settings = resolve_settings({}, env={})
    assert settings == GatewaySettings()
    assert settings.choco_bin == "choco"
    assert settings.timeout_ms == 900000 == DEFAULT_TIMEOUT_MS
    assert settings.max_concurrency == 1
    assert settings.max_buffer_bytes == 10 * 1024 * 1024 == DEFAULT_MAX_BUFFER_BYTES
    assert settings.http_port == 11435


def test_yaml_values_used_without_env():
    config = {
        "choco": {"bin": "C:/ProgramData/chocolatey/bin/choco.exe", "timeout_ms": 60000, "max_concurrency": 3},
        "http": {"host": "0.0.0.0", "port": 8080},
    }
    settings = resolve_settings(config, env={})
    assert settings.choco_bin == "C:/ProgramData/chocolatey/bin/choco.exe"
    assert settings.timeout_ms == 60000
    assert settings.max_concurrency == 3
    assert settings.http_host == "0.0.0.0"
    assert settings.http_port == 8080


def test_env_overrides_yaml():
    config = {"choco": {"bin": "choco-yaml", "timeout_ms": 60000, "max_concurrency": 3}, "http": {"port": 8080}}
    env = {
        "CHOCO_BIN": "choco-env",
        "MCP_CHOCOLATEY_TIMEOUT_MS": "120000",
        "MCP_CHOCOLATEY_MAX_CONCURRENCY": "2",
        "MCP_CHOCOLATEY_MAX_BUFFER_BYTES": "2048",
        "PORT": "9000",
    }
    settings = resolve_settings(config, env=env)
    assert settings.choco_bin == "choco-env"
    assert settings.timeout_ms == 120000
    assert settings.max_concurrency == 2
    assert settings.max_buffer_bytes == 2048
    assert settings.http_port == 9000


@pytest.mark.parametrize("raw, expected", [("0", 1), ("-4", 1), ("5", 5), ("abc", 1), ("", 1)])
def test_max_concurrency_floor(raw, expected):
    assert resolve_settings({}, env={"MCP_CHOCOLATEY_MAX_CONCURRENCY": raw}).max_concurrency == expected


@pytest.mark.parametrize("raw", ["abc", "0", "-10"])
def test_invalid_timeout_falls_back_to_default(raw):
    assert resolve_settings({}, env={"MCP_CHOCOLATEY_TIMEOUT_MS": raw}).timeout_ms == DEFAULT_TIMEOUT_MS


def test_blank_bin_falls_back_to_default():
    assert resolve_settings({"choco": {"bin": "  "}}, env={"CHOCO_BIN": ""}).choco_bin == "choco"


def test_non_mapping_sections_are_ignored():
    settings = resolve_settings({"choco": "oops", "http": ["x"]}, env={})
    assert settings == GatewaySettings()


def test_reads_process_environment_by_default(monkeypatch):
    monkeypatch.setenv("MCP_CHOCOLATEY_MAX_CONCURRENCY", "4")
    assert resolve_settings({}).max_concurrency == 4


@pytest.mark.parametrize("raw", [float("inf"), "inf", "1e999", "-inf", "nan"])
def test_non_finite_yaml_numbers_fall_back_to_defaults(raw):
    config = {"choco": {"timeout_ms": raw, "max_buffer_bytes": raw, "kill_grace_seconds": raw}, "http": {"port": raw}}
    assert resolve_settings(config, env={}) == GatewaySettings()


@pytest.mark.parametrize("raw", ["inf", "1e999", "nan"])
def test_non_finite_env_numbers_fall_back_to_defaults(raw):
    env = {"MCP_CHOCOLATEY_MAX_CONCURRENCY": raw, "MCP_CHOCOLATEY_TIMEOUT_MS": raw, "PORT": raw}
    settings = resolve_settings({}, env=env)
    assert settings.max_concurrency == 1
    assert settings.timeout_ms == DEFAULT_TIMEOUT_MS
    assert settings.http_port == 11435
