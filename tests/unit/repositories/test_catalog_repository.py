"""Unit tests for the sqlite workspace catalog."""

from __future__ import annotations

from pathlib import Path

import pytest

from chunkdm.core.errors import DatasetExistsError, DatasetNotFoundError
from chunkdm.core.models import CatalogEntry
from chunkdm.repositories.catalog_repository import CatalogRepository


def _entry(repo: CatalogRepository, name: str, parents: list[str] | None = None) -> CatalogEntry:
    return CatalogEntry(
        id=repo.generate_id(),
        name=name,
        path=f"/data/{name}",
        created_at=f"2024-01-0{len(name) % 9 + 1}T00:00:00+00:00",
        row_count=3,
        column_count=1,
        schema={"k": "integer"},
        description=None,
        parent_ids=parents or [],
    )


@pytest.fixture
def repo(tmp_path: Path) -> CatalogRepository:
    """Initialized catalog in a temp directory."""
    catalog = CatalogRepository(tmp_path / "catalog.db")
    catalog.init_database()
    return catalog


def test_save_and_find_by_name(repo: CatalogRepository) -> None:
    """Saved entries should load back unchanged."""
    entry = _entry(repo, "alpha")
    repo.save(entry)

    assert repo.find_by_name("alpha") == entry
    assert repo.find_by_path("/data/alpha") == entry
    assert repo.find_by_path("/data/none") is None


def test_duplicate_name_raises(repo: CatalogRepository) -> None:
    """Names are unique across the catalog."""
    repo.save(_entry(repo, "alpha"))

    with pytest.raises(DatasetExistsError):
        repo.save(_entry(repo, "alpha"))


def test_missing_name_raises(repo: CatalogRepository) -> None:
    """Unknown names should raise DatasetNotFoundError."""
    with pytest.raises(DatasetNotFoundError):
        repo.find_by_name("ghost")


def test_children_and_cascading_delete(repo: CatalogRepository) -> None:
    """Deleting a parent should drop its lineage rows."""
    parent = _entry(repo, "parent")
    repo.save(parent)
    child = _entry(repo, "child", parents=[parent.id])
    repo.save(child)

    assert [c.name for c in repo.get_children(parent.id)] == ["child"]

    repo.delete(parent.id)

    assert repo.find_by_name("child").parent_ids == []
    assert not repo.name_exists("parent")
