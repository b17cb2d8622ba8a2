# Standard library
import re
from collections.abc import Iterable

# Local imports
from chunkdm.core.errors import DuplicateNameError, ValidationError

# -----------------------------
# Validation Constants
# -----------------------------

VALID_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
RESERVED_COLUMN_PREFIX = "__"
MAX_DESCRIPTION_LENGTH = 10_000
MAX_NAME_LENGTH = 100
MAX_COLUMN_NAME_LENGTH = 255

# -----------------------------
# Validation Functions
# -----------------------------


def validate_dataset_name(name: str) -> None:
    """Validate catalog dataset name format.

    Args:
        name: Dataset name to validate

    Raises:
        ValidationError: If name is invalid
    """
    if not name:
        msg = "Dataset name cannot be empty"
        raise ValidationError(msg)

    if not VALID_NAME_PATTERN.match(name):
        msg = (
            f"Invalid dataset name '{name}'. "
            "Only alphanumeric, underscore, and dash allowed."
        )
        raise ValidationError(msg)

    if len(name) > MAX_NAME_LENGTH:
        msg = f"Dataset name too long ({len(name)} chars, max {MAX_NAME_LENGTH})"
        raise ValidationError(msg)


def validate_column_name(name: str) -> None:
    """Validate a column name.

    Column names may hold any characters, but cannot be empty and cannot use
    the prefix reserved for engine-internal columns.

    Raises:
        ValidationError: If name is invalid
    """
    if not name or not name.strip():
        msg = "Column name cannot be empty"
        raise ValidationError(msg)

    if name.startswith(RESERVED_COLUMN_PREFIX):
        msg = (
            f"Invalid column name '{name}'. "
            f"The '{RESERVED_COLUMN_PREFIX}' prefix is reserved."
        )
        raise ValidationError(msg)

    if len(name) > MAX_COLUMN_NAME_LENGTH:
        msg = f"Column name too long ({len(name)} chars, max {MAX_COLUMN_NAME_LENGTH})"
        raise ValidationError(msg)


def validate_column_names(names: Iterable[str]) -> None:
    """Validate every column name and their uniqueness.

    Raises:
        ValidationError: If a name is invalid
        DuplicateNameError: If a name is repeated
    """
    seen: set[str] = set()
    for name in names:
        validate_column_name(name)
        if name in seen:
            msg = f"Duplicate column name '{name}'"
            raise DuplicateNameError(msg)
        seen.add(name)


def validate_chunk_row_count(chunk_row_count: int) -> None:
    """Validate a chunk size.

    Raises:
        ValidationError: If the chunk size is not a positive integer
    """
    if isinstance(chunk_row_count, bool) or not isinstance(chunk_row_count, int):
        msg = f"Chunk row count must be an integer, got {chunk_row_count!r}"
        raise ValidationError(msg)
    if chunk_row_count <= 0:
        msg = f"Chunk row count must be positive, got {chunk_row_count}"
        raise ValidationError(msg)


def validate_description(description: str | None) -> None:
    """Validate description length.

    Args:
        description: Description text to validate

    Raises:
        ValidationError: If description is too long
    """
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        msg = (
            f"Description too long "
            f"({len(description)} chars, max {MAX_DESCRIPTION_LENGTH})"
        )
        raise ValidationError(msg)
