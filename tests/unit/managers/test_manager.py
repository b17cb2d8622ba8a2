"""Unit tests for the workspace data manager."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from chunkdm.core.config import EngineConfig
from chunkdm.core.errors import (
    DatasetExistsError,
    DatasetNotFoundError,
    ParseError,
    ValidationError,
)
from chunkdm.managers.manager import DataManager
from chunkdm.query.expressions import col


@pytest.fixture
def dm(tmp_path: Path, config: EngineConfig) -> DataManager:
    """Data manager over a fresh workspace."""
    return DataManager(tmp_path / "repo", config=config)


def test_manager_uses_env_repo_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, config: EngineConfig
) -> None:
    """CHUNKDM_REPO should select the workspace when no path is given."""
    monkeypatch.setenv("CHUNKDM_REPO", str(tmp_path / "env-repo"))

    manager = DataManager(config=config)

    assert manager.repo_path == (tmp_path / "env-repo").resolve()
    assert (tmp_path / "env-repo" / "catalog.db").exists()


def test_ingest_registers_dataset(dm: DataManager, people_csv: Path) -> None:
    """Ingested datasets should be listed and reopenable by name."""
    dataset = dm.ingest("people", people_csv, description="staff list")

    entries = dm.list_datasets()

    assert [entry.name for entry in entries] == ["people"]
    assert entries[0].row_count == 10
    assert entries[0].schema["joined"] == "date"
    assert dm.open("people").schema == dataset.schema


def test_ingest_rejects_duplicate_name(dm: DataManager, people_csv: Path) -> None:
    """A name can only be registered once."""
    dm.ingest("people", people_csv)

    with pytest.raises(DatasetExistsError):
        dm.ingest("people", people_csv)


def test_ingest_rejects_invalid_name(dm: DataManager, people_csv: Path) -> None:
    """Dataset names must follow the allowed pattern."""
    with pytest.raises(ValidationError):
        dm.ingest("bad name!", people_csv)


def test_failed_ingest_leaves_nothing_behind(
    dm: DataManager, write_text: Callable[[str, str], Path]
) -> None:
    """A parse failure should discard partial chunks and register nothing."""
    bad = write_text("bad.csv", "k\n1\n2\n3\n4\n5\n6\nseven\n")
    manager = DataManager(
        dm.repo_path, config=EngineConfig(chunk_row_count=2, infer_schema_rows=2)
    )

    with pytest.raises(ParseError):
        manager.ingest("bad", bad)

    assert manager.list_datasets() == []
    assert list((dm.repo_path / "datasets").iterdir()) == []


def test_undecodable_ingest_leaves_nothing_behind(dm: DataManager, tmp_path: Path) -> None:
    """An encoding failure after some chunks were written should discard them."""
    bad = tmp_path / "bad.csv"
    bad.write_bytes(b"k\n" + b"1\n" * 6000 + b"\xff\xfe\n")
    manager = DataManager(
        dm.repo_path, config=EngineConfig(chunk_row_count=2, infer_schema_rows=2)
    )

    with pytest.raises(ParseError):
        manager.ingest("bad", bad)

    assert manager.list_datasets() == []
    assert list((dm.repo_path / "datasets").iterdir()) == []


def test_open_unknown_name_raises(dm: DataManager) -> None:
    """Opening an unregistered name should raise DatasetNotFoundError."""
    with pytest.raises(DatasetNotFoundError):
        dm.open("ghost")


def test_query_and_collect(dm: DataManager, people_csv: Path) -> None:
    """query() should start a plan that collect() evaluates."""
    dm.ingest("people", people_csv)

    result = dm.collect(dm.query("people").filter(col("id") <= 2).select("name"))

    assert result["name"].to_list() == ["alice", "bob"]


def test_list_datasets_filters_by_name(dm: DataManager, people_csv: Path) -> None:
    """name_filter should match name substrings."""
    dm.ingest("people", people_csv)
    dm.ingest("people_copy", people_csv)
    dm.ingest("other", people_csv)

    names = sorted(entry.name for entry in dm.list_datasets(name_filter="people"))

    assert names == ["people", "people_copy"]


def test_materialize_records_lineage(dm: DataManager, people_csv: Path) -> None:
    """Materialized datasets should list the datasets they were derived from."""
    dm.ingest("people", people_csv)
    parent = dm.list_datasets()[0]

    derived = dm.materialize("seniors", dm.query("people").filter(col("age") > 40))

    entry = next(e for e in dm.list_datasets() if e.name == "seniors")
    assert entry.parent_ids == [parent.id]
    assert derived.row_count == 3


def test_export_csv_accepts_dataset_or_plan(
    dm: DataManager, people_csv: Path, tmp_path: Path
) -> None:
    """Datasets and plans should both export to CSV."""
    dataset = dm.ingest("people", people_csv)

    whole = dm.export_csv(dataset, tmp_path / "all.csv")
    part = dm.export_csv(dataset.select("id"), tmp_path / "ids.csv", separator="\t")

    assert whole == 10
    assert part == 10
    assert (tmp_path / "ids.csv").read_text(encoding="utf-8").splitlines()[:2] == ["id", "1"]


def test_delete_refuses_when_children_exist(
    dm: DataManager, people_csv: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Deleting a parent should warn and keep it unless forced."""
    dm.ingest("people", people_csv)
    dm.materialize("ids", dm.query("people").select("id"))

    dm.delete("people")

    assert "derived dataset" in capsys.readouterr().out
    assert dm.open("people").row_count == 10


def test_delete_force_removes_files_and_entry(dm: DataManager, people_csv: Path) -> None:
    """Forced deletion should remove the directory and the catalog entry."""
    dataset = dm.ingest("people", people_csv)
    dm.materialize("ids", dm.query("people").select("id"))

    dm.delete("people", force=True)

    assert not dataset.path.exists()
    with pytest.raises(DatasetNotFoundError):
        dm.open("people")
    assert dm.open("ids").row_count == 10


def test_display_operations_render(
    dm: DataManager, people_csv: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """show, show_all and explain should print without errors."""
    dm.ingest("people", people_csv, description="staff list")
    dm.materialize("ids", dm.query("people").select("id"))

    dm.show("ids")
    dm.show_all()
    dm.explain(dm.query("people").filter(col("age") > 30).select("name"))

    output = capsys.readouterr().out
    assert "Derived from" in output
    assert "Datasets" in output
    assert "SCAN" in output
