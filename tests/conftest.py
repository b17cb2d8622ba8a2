"""Pytest configuration and shared fixtures for repository test runs."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from chunkdm.core.config import EngineConfig
from chunkdm.repositories.chunk_store import ChunkStore


def pytest_sessionstart() -> None:
    """Add the project root to sys.path for test imports."""
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


@pytest.fixture
def config() -> EngineConfig:
    """Engine config with small chunks so tests span several chunk files."""
    return EngineConfig(chunk_row_count=4, log_level="WARNING")


@pytest.fixture
def store(config: EngineConfig) -> ChunkStore:
    """Chunk store bound to the test config."""
    return ChunkStore(config)


@pytest.fixture
def write_text(tmp_path: Path) -> Callable[[str, str], Path]:
    """Factory writing a text file under tmp_path and returning its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def people_csv(write_text: Callable[[str, str], Path]) -> Path:
    """Ten-row delimited file covering every inferred column type."""
    rows = [
        "id,name,age,score,joined",
        "1,alice,34,88.5,2020-01-15",
        "2,bob,28,72.0,2021-03-02",
        "3,carol,45,,2019-07-30",
        "4,dave,NA,91.25,2022-11-11",
        "5,erin,39,65.5,2018-05-05",
        "6,frank,23,79.0,2023-02-28",
        "7,grace,51,84.75,2017-09-09",
        "8,heidi,31,70.0,2020-12-31",
        "9,ivan,27,93.5,2021-06-15",
        "10,judy,42,68.25,2016-04-01",
    ]
    return write_text("people.csv", "\n".join(rows) + "\n")
