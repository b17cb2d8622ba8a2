"""Unit tests for column types and schemas."""

from __future__ import annotations

import polars as pl
import pytest

from chunkdm.core.errors import CorruptMetadataError, DuplicateNameError, UnknownColumnError
from chunkdm.core.models import ColumnSpec, ColumnType, Schema, join_key_dtype


def _schema() -> Schema:
    return Schema.from_types({"id": "integer", "name": "string", "region": "categorical"})


def test_column_type_parse_is_case_insensitive() -> None:
    """Type names should parse regardless of case."""
    assert ColumnType.parse("Float") is ColumnType.FLOAT


def test_column_type_parse_rejects_unknown_name() -> None:
    """Unsupported type names should raise ValueError."""
    with pytest.raises(ValueError, match="Unsupported column type"):
        ColumnType.parse("boolean")


def test_categorical_is_stored_as_string() -> None:
    """Categoricals should be strings on disk and categorical in memory."""
    assert ColumnType.CATEGORICAL.storage_dtype == pl.String()
    assert ColumnType.CATEGORICAL.polars_dtype == pl.Categorical()


def test_schema_rejects_duplicate_names() -> None:
    """A schema cannot hold the same column name twice."""
    with pytest.raises(DuplicateNameError):
        Schema(
            (
                ColumnSpec("a", ColumnType.INTEGER, "a"),
                ColumnSpec("a", ColumnType.STRING, "a"),
            )
        )


def test_rename_keeps_physical_source() -> None:
    """Renamed columns should still point at the same chunk column."""
    renamed = _schema().rename("name", "full_name")

    assert renamed.names == ("id", "full_name", "region")
    assert renamed.spec("full_name").source == "name"
    assert "name" not in renamed


def test_rename_to_existing_name_raises() -> None:
    """Renaming onto an existing column should raise DuplicateNameError."""
    with pytest.raises(DuplicateNameError):
        _schema().rename("name", "id")


def test_unknown_column_lists_available_columns() -> None:
    """Lookup errors should name the available columns."""
    with pytest.raises(UnknownColumnError, match="Available columns: id, name, region"):
        _schema().type_of("missing")


def test_select_reorders_columns() -> None:
    """Selecting should follow the requested order."""
    assert _schema().select(["region", "id"]).names == ("region", "id")


def test_schema_dict_roundtrip_preserves_sources() -> None:
    """Serialized schemas should rebuild identically, sources included."""
    schema = _schema().rename("name", "label")

    assert Schema.from_dict(schema.to_dict()) == schema


def test_schema_from_dict_rejects_malformed_payload() -> None:
    """Malformed schema payloads should raise CorruptMetadataError."""
    with pytest.raises(CorruptMetadataError):
        Schema.from_dict([{"name": "a", "type": "complex"}])


@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [
        (ColumnType.INTEGER, ColumnType.INTEGER, pl.Int64()),
        (ColumnType.INTEGER, ColumnType.FLOAT, pl.Float64()),
        (ColumnType.STRING, ColumnType.CATEGORICAL, pl.String()),
        (ColumnType.DATE, ColumnType.STRING, None),
    ],
)
def test_join_key_dtype(
    left: ColumnType, right: ColumnType, expected: pl.DataType | None
) -> None:
    """Join keys should share a dtype only for compatible types."""
    assert join_key_dtype(left, right) == expected
