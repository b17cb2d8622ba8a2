# Standard library
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

# Local imports
from chunkdm.core.metadata import MetadataIndex
from chunkdm.core.models import ChunkInfo, DatasetDescription, Schema
from chunkdm.query.plan import QueryPlan

if TYPE_CHECKING:
    from chunkdm.query.expressions import Predicate
    from chunkdm.repositories.chunk_store import ChunkRows, ChunkStore

# -----------------------------
# Dataset
# -----------------------------


@dataclass(frozen=True)
class Dataset:
    """Immutable handle on a chunked dataset directory.

    Only the metadata index is held in memory; rows stay in the chunk files.
    """

    path: Path
    index: MetadataIndex
    store: "ChunkStore" = field(repr=False, compare=False)

    @property
    def schema(self) -> Schema:
        return self.index.schema

    @property
    def chunks(self) -> tuple[ChunkInfo, ...]:
        return self.index.chunks

    @property
    def row_count(self) -> int:
        return self.index.row_count

    @property
    def columns(self) -> tuple[str, ...]:
        return self.index.schema.names

    def describe(self) -> DatasetDescription:
        """Column count, row count and column types, from the index only."""
        return self.index.describe()

    def rename(self, old_name: str, new_name: str) -> "Dataset":
        """Get a dataset with one column renamed over the same chunk files.

        The rename lives in memory only; the metadata file is not rewritten.

        Raises:
            UnknownColumnError: If old_name is absent
            DuplicateNameError: If new_name is already present
        """
        schema: Schema = self.index.rename(old_name, new_name)
        return Dataset(path=self.path, index=self.index.with_schema(schema), store=self.store)

    def read_chunk(self, chunk_id: int, columns: Sequence[str] | None = None) -> "ChunkRows":
        """Lazy, restartable rows of one chunk."""
        return self.store.read_chunk(self, chunk_id, columns)

    # -----------------------------
    # Lazy queries
    # -----------------------------

    def lazy(self) -> QueryPlan:
        """Start a query plan over this dataset; nothing is read yet."""
        return QueryPlan.scan(self)

    def filter(self, predicate: "Predicate") -> QueryPlan:
        return self.lazy().filter(predicate)

    def select(self, *columns: str | Iterable[str]) -> QueryPlan:
        return self.lazy().select(*columns)

    def join(self, other: "Dataset | QueryPlan", on: str) -> QueryPlan:
        return self.lazy().join(other, on)

    # -----------------------------
    # Display
    # -----------------------------

    def info(self) -> None:
        """Display dataset information using rich formatting."""
        from rich.console import Console
        from rich.table import Table

        console: Console = Console()

        info_table: Table = Table(title=f"Dataset: {self.path.name}", show_header=False)
        info_table.add_column("Property", style="cyan", width=20)
        info_table.add_column("Value", style="white")

        info_table.add_row("Path", str(self.path))
        info_table.add_row("Created", self.index.created_at)
        info_table.add_row("Rows", f"{self.row_count:,}")
        info_table.add_row("Columns", str(len(self.schema)))
        info_table.add_row("Chunks", str(len(self.chunks)))
        info_table.add_row("Chunk size", f"{self.index.chunk_row_count:,}")
        if self.index.source:
            info_table.add_row("Source", self.index.source)

        console.print(info_table)

        schema_table: Table = Table(title="Schema", show_header=True)
        schema_table.add_column("Column", style="green")
        schema_table.add_column("Type", style="yellow")

        for spec in self.schema.columns:
            schema_table.add_row(spec.name, spec.type.value)

        console.print(schema_table)

    def __repr__(self) -> str:
        return (
            f"Dataset({self.path.name}, rows={self.row_count}, "
            f"cols={len(self.schema)}, chunks={len(self.chunks)})"
        )
