# -----------------------------
# Base
# -----------------------------


class ChunkdmError(Exception):
    """Base class for all chunkdm errors."""


class ConfigError(ChunkdmError):
    """Raised for invalid engine configuration."""


class ValidationError(ChunkdmError, ValueError):
    """Raised when a name or argument fails validation."""


# -----------------------------
# Ingestion / storage
# -----------------------------


class ParseError(ChunkdmError):
    """Raised for a malformed input record.

    Attributes:
        line_number: 1-based line in the source file where the record ends
        column: Offending column name, if the failure is value-specific
        value: Offending raw value, if the failure is value-specific
    """

    def __init__(
        self,
        message: str,
        line_number: int,
        column: str | None = None,
        value: str | None = None,
    ) -> None:
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number
        self.column = column
        self.value = value


class ChunkIOError(ChunkdmError, OSError):
    """Raised when a chunk or metadata file cannot be read or written."""


class CorruptMetadataError(ChunkdmError):
    """Raised when a dataset index is missing or disagrees with its chunks."""


class ConcurrentWriteError(ChunkdmError):
    """Raised when a second writer targets a destination already being written."""


class DatasetExistsError(ChunkdmError):
    """Raised when a destination already holds a dataset."""


class DatasetNotFoundError(ChunkdmError, KeyError):
    """Raised when a catalog name does not resolve to a dataset."""


# -----------------------------
# Schema misuse
# -----------------------------


class SchemaError(ChunkdmError):
    """Base class for schema validation failures."""


class UnknownColumnError(SchemaError, KeyError):
    """Raised when a column name is not part of the schema."""

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""


class DuplicateNameError(SchemaError):
    """Raised when a column name would appear twice in a schema."""


class TypeMismatchError(SchemaError):
    """Raised when column types are incompatible for an operation."""


# -----------------------------
# Resource limits
# -----------------------------


class MemoryBudgetExceededError(ChunkdmError):
    """Raised when materialized data would exceed a configured memory budget.

    Attributes:
        budget: Configured ceiling in bytes
        observed: Estimated size in bytes at the point of failure
    """

    def __init__(self, message: str, budget: int, observed: int) -> None:
        super().__init__(message)
        self.budget = budget
        self.observed = observed
