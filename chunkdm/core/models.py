# Standard library
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TypedDict

# Third-party
import polars as pl

# Local imports
from chunkdm.core.errors import (
    CorruptMetadataError,
    DuplicateNameError,
    UnknownColumnError,
)

# -----------------------------
# Column Types
# -----------------------------


class ColumnType(str, Enum):
    """Enumerated column types supported by the engine."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    CATEGORICAL = "categorical"
    DATE = "date"

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.INTEGER, ColumnType.FLOAT)

    @property
    def is_textual(self) -> bool:
        return self in (ColumnType.STRING, ColumnType.CATEGORICAL)

    @property
    def storage_dtype(self) -> pl.DataType:
        """Polars dtype used inside chunk files."""
        return _STORAGE_DTYPES[self]

    @property
    def polars_dtype(self) -> pl.DataType:
        """Polars dtype of a materialized in-memory column."""
        if self is ColumnType.CATEGORICAL:
            return pl.Categorical()
        return _STORAGE_DTYPES[self]

    @classmethod
    def parse(cls, value: "str | ColumnType") -> "ColumnType":
        """Coerce a type name into a ColumnType.

        Raises:
            ValueError: If the name is not a supported type
        """
        if isinstance(value, ColumnType):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            supported = ", ".join(t.value for t in cls)
            msg = f"Unsupported column type '{value}'. Expected one of: {supported}"
            raise ValueError(msg) from None


_STORAGE_DTYPES: dict[ColumnType, pl.DataType] = {
    ColumnType.INTEGER: pl.Int64(),
    ColumnType.FLOAT: pl.Float64(),
    ColumnType.STRING: pl.String(),
    ColumnType.CATEGORICAL: pl.String(),
    ColumnType.DATE: pl.Date(),
}


def join_key_dtype(left: ColumnType, right: ColumnType) -> pl.DataType | None:
    """Common dtype two join key columns are compared in, or None if incompatible."""
    if left == right:
        return left.storage_dtype
    if left.is_numeric and right.is_numeric:
        return pl.Float64()
    if left.is_textual and right.is_textual:
        return pl.String()
    return None


# -----------------------------
# TypedDict Definitions
# -----------------------------


class DatasetDescription(TypedDict):
    """Summary returned by MetadataIndex.describe()."""

    column_count: int
    row_count: int
    column_types: dict[str, str]


# -----------------------------
# Schema
# -----------------------------


@dataclass(frozen=True)
class ColumnSpec:
    """One schema column.

    Attributes:
        name: Logical column name
        type: Declared column type
        source: Physical column name inside chunk files
    """

    name: str
    type: ColumnType
    source: str


@dataclass(frozen=True)
class Schema:
    """Ordered, immutable mapping of unique column names to types."""

    columns: tuple[ColumnSpec, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for spec in self.columns:
            if spec.name in seen:
                msg = f"Duplicate column name '{spec.name}'"
                raise DuplicateNameError(msg)
            seen.add(spec.name)

    @classmethod
    def from_types(cls, types: Mapping[str, "ColumnType | str"]) -> "Schema":
        """Build a schema whose physical names equal the logical names."""
        return cls(
            tuple(
                ColumnSpec(name, ColumnType.parse(col_type), name)
                for name, col_type in types.items()
            )
        )

    # -----------------------------
    # Lookup
    # -----------------------------

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.columns)

    def __contains__(self, name: object) -> bool:
        return any(spec.name == name for spec in self.columns)

    def __iter__(self) -> Iterator[ColumnSpec]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def spec(self, name: str) -> ColumnSpec:
        """Get the column spec for a name.

        Raises:
            UnknownColumnError: If the column is not in the schema
        """
        for spec in self.columns:
            if spec.name == name:
                return spec
        available = ", ".join(self.names) or "<none>"
        msg = f"Unknown column '{name}'. Available columns: {available}"
        raise UnknownColumnError(msg)

    def type_of(self, name: str) -> ColumnType:
        return self.spec(name).type

    def types(self) -> dict[str, ColumnType]:
        return {spec.name: spec.type for spec in self.columns}

    # -----------------------------
    # Derivation
    # -----------------------------

    def rename(self, old_name: str, new_name: str) -> "Schema":
        """Return a schema with one column renamed; physical sources are kept.

        Raises:
            UnknownColumnError: If old_name is absent
            DuplicateNameError: If new_name is already present
        """
        target: ColumnSpec = self.spec(old_name)
        if new_name != old_name and new_name in self:
            msg = f"Cannot rename '{old_name}' to '{new_name}': column already exists"
            raise DuplicateNameError(msg)
        return Schema(
            tuple(
                ColumnSpec(new_name, spec.type, spec.source) if spec is target else spec
                for spec in self.columns
            )
        )

    def select(self, names: Iterable[str]) -> "Schema":
        """Return the sub-schema for names, in the given order.

        Raises:
            UnknownColumnError: If a name is absent
            DuplicateNameError: If a name is repeated
        """
        return Schema(tuple(self.spec(name) for name in names))

    def with_fresh_sources(self) -> "Schema":
        """Return a schema whose physical names equal its logical names."""
        return Schema(
            tuple(ColumnSpec(spec.name, spec.type, spec.name) for spec in self.columns)
        )

    def polars_schema(self, *, materialized: bool = False) -> dict[str, pl.DataType]:
        """Map logical names to polars dtypes.

        Args:
            materialized: Use in-memory dtypes (categoricals) instead of storage dtypes
        """
        return {
            spec.name: spec.type.polars_dtype if materialized else spec.type.storage_dtype
            for spec in self.columns
        }

    # -----------------------------
    # Serialization
    # -----------------------------

    def to_dict(self) -> list[dict[str, str]]:
        return [
            {"name": spec.name, "type": spec.type.value, "source": spec.source}
            for spec in self.columns
        ]

    @classmethod
    def from_dict(cls, payload: object) -> "Schema":
        """Rebuild a schema from its metadata-file form.

        Raises:
            CorruptMetadataError: If the payload is malformed
        """
        if not isinstance(payload, list):
            msg = "Schema must be a list of column entries"
            raise CorruptMetadataError(msg)
        columns: list[ColumnSpec] = []
        for entry in payload:
            try:
                columns.append(
                    ColumnSpec(
                        name=str(entry["name"]),
                        type=ColumnType.parse(entry["type"]),
                        source=str(entry.get("source", entry["name"])),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as error:
                msg = f"Invalid schema entry {entry!r}: {error}"
                raise CorruptMetadataError(msg) from error
        try:
            return cls(tuple(columns))
        except DuplicateNameError as error:
            raise CorruptMetadataError(str(error)) from error

    def __repr__(self) -> str:
        cols = ", ".join(f"{spec.name}: {spec.type.value}" for spec in self.columns)
        return f"Schema({cols})"


# -----------------------------
# Chunks
# -----------------------------


@dataclass(frozen=True)
class ChunkInfo:
    """Location and size of one chunk file."""

    chunk_id: int
    file_name: str
    row_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "chunk_id": self.chunk_id,
            "file": self.file_name,
            "row_count": self.row_count,
        }


# -----------------------------
# Catalog
# -----------------------------


@dataclass(frozen=True)
class CatalogEntry:
    """Immutable workspace catalog record for a dataset."""

    id: str
    name: str
    path: str
    created_at: str
    row_count: int
    column_count: int
    schema: dict[str, str]
    description: str | None
    parent_ids: list[str]

    def __repr__(self) -> str:
        return (
            f"CatalogEntry({self.name}, id={self.id}, "
            f"rows={self.row_count}, cols={self.column_count})"
        )
