"""Unit tests for engine configuration."""

from __future__ import annotations

import pytest

from chunkdm.core.config import EngineConfig, parse_size
from chunkdm.core.errors import ConfigError


def test_default_config_is_valid() -> None:
    """Defaults should construct without errors."""
    config = EngineConfig()

    assert config.chunk_row_count == 100_000
    assert config.compression == "zstd"


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment variables should override defaults."""
    monkeypatch.setenv("CHUNKDM_CHUNK_ROWS", "500")
    monkeypatch.setenv("CHUNKDM_JOIN_MEMORY_BUDGET", "64M")
    monkeypatch.setenv("CHUNKDM_RESULT_MEMORY_BUDGET", "1GiB")
    monkeypatch.setenv("CHUNKDM_VERIFY_CHUNKS", "no")
    monkeypatch.setenv("CHUNKDM_LOG_LEVEL", "debug")

    config = EngineConfig.from_env()

    assert config.chunk_row_count == 500
    assert config.join_memory_budget == 64 * 1024**2
    assert config.result_memory_budget == 1024**3
    assert config.verify_chunks is False
    assert config.log_level == "DEBUG"


def test_from_env_rejects_non_integer_chunk_rows(monkeypatch: pytest.MonkeyPatch) -> None:
    """A non-numeric chunk size should raise ConfigError."""
    monkeypatch.setenv("CHUNKDM_CHUNK_ROWS", "many")

    with pytest.raises(ConfigError):
        EngineConfig.from_env()


def test_from_env_rejects_invalid_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    """An unrecognised boolean should raise ConfigError."""
    monkeypatch.setenv("CHUNKDM_VERIFY_CHUNKS", "maybe")

    with pytest.raises(ConfigError):
        EngineConfig.from_env()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1024", 1024), ("2K", 2048), ("3mb", 3 * 1024**2), ("1G", 1024**3)],
)
def test_parse_size_accepts_units(raw: str, expected: int) -> None:
    """Byte sizes should accept K/M/G suffixes case-insensitively."""
    assert parse_size(raw) == expected


def test_parse_size_rejects_garbage() -> None:
    """Unparseable sizes should raise ConfigError."""
    with pytest.raises(ConfigError):
        parse_size("twelve bytes")


@pytest.mark.parametrize(
    "overrides",
    [
        {"chunk_row_count": 0},
        {"join_memory_budget": -1},
        {"compression": "rar"},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_raise_config_error(overrides: dict[str, object]) -> None:
    """Out-of-range values should fail at construction."""
    with pytest.raises(ConfigError):
        EngineConfig(**overrides)
