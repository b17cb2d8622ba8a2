# Standard library
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

# Local imports
from chunkdm.core.errors import CorruptMetadataError
from chunkdm.core.models import ChunkInfo, DatasetDescription, Schema

# -----------------------------
# Constants
# -----------------------------

METADATA_FORMAT_VERSION = 1

# -----------------------------
# Metadata Index
# -----------------------------


@dataclass(frozen=True)
class MetadataIndex:
    """In-memory schema and chunk location table of a dataset.

    This is the only part of a dataset that is loaded eagerly. Row data stays
    in the chunk files until a chunk is read.
    """

    schema: Schema
    chunks: tuple[ChunkInfo, ...]
    row_count: int
    chunk_row_count: int
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    parents: tuple[str, ...] = ()
    source: str | None = None

    def __post_init__(self) -> None:
        total = sum(chunk.row_count for chunk in self.chunks)
        if total != self.row_count:
            msg = (
                f"Row count {self.row_count} does not match the sum of "
                f"chunk row counts ({total})"
            )
            raise CorruptMetadataError(msg)

    # -----------------------------
    # Operations
    # -----------------------------

    def rename(self, old_name: str, new_name: str) -> Schema:
        """Rename a column, producing a new schema over the same chunks.

        Args:
            old_name: Existing column name
            new_name: Replacement name

        Returns:
            New Schema; this index is left unchanged

        Raises:
            UnknownColumnError: If old_name is absent
            DuplicateNameError: If new_name is already present
        """
        return self.schema.rename(old_name, new_name)

    def describe(self) -> DatasetDescription:
        """Summarize the dataset without touching any chunk."""
        return {
            "column_count": len(self.schema),
            "row_count": self.row_count,
            "column_types": {
                spec.name: spec.type.value for spec in self.schema.columns
            },
        }

    def with_schema(self, schema: Schema) -> "MetadataIndex":
        return replace(self, schema=schema)

    def chunk(self, chunk_id: int) -> ChunkInfo:
        """Look up a chunk by id.

        Raises:
            IndexError: If no chunk has that id
        """
        if 0 <= chunk_id < len(self.chunks):
            info = self.chunks[chunk_id]
            if info.chunk_id == chunk_id:
                return info
        for info in self.chunks:
            if info.chunk_id == chunk_id:
                return info
        msg = f"Chunk {chunk_id} does not exist ({len(self.chunks)} chunks)"
        raise IndexError(msg)

    # -----------------------------
    # Serialization
    # -----------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": METADATA_FORMAT_VERSION,
            "created_at": self.created_at,
            "schema": self.schema.to_dict(),
            "row_count": self.row_count,
            "chunk_row_count": self.chunk_row_count,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "parents": list(self.parents),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, payload: object) -> "MetadataIndex":
        """Rebuild an index from the metadata-file payload.

        Raises:
            CorruptMetadataError: If the payload is malformed or inconsistent
        """
        if not isinstance(payload, dict):
            msg = "Metadata must be a JSON object"
            raise CorruptMetadataError(msg)
        version = payload.get("format_version")
        if version != METADATA_FORMAT_VERSION:
            msg = f"Unsupported metadata format version: {version!r}"
            raise CorruptMetadataError(msg)
        try:
            chunks = tuple(
                ChunkInfo(
                    chunk_id=int(entry["chunk_id"]),
                    file_name=str(entry["file"]),
                    row_count=int(entry["row_count"]),
                )
                for entry in payload["chunks"]
            )
            return cls(
                schema=Schema.from_dict(payload["schema"]),
                chunks=chunks,
                row_count=int(payload["row_count"]),
                chunk_row_count=int(payload["chunk_row_count"]),
                created_at=str(payload.get("created_at", "")),
                parents=tuple(payload.get("parents") or ()),
                source=payload.get("source"),
            )
        except (KeyError, TypeError, ValueError) as error:
            msg = f"Invalid metadata payload: {error}"
            raise CorruptMetadataError(msg) from error
