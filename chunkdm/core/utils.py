# Standard library
import re
from collections.abc import Collection, Iterable, Sequence
from datetime import date

# Third-party
import polars as pl

# Local imports
from chunkdm.core.models import ColumnType

# -----------------------------
# Constants
# -----------------------------

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_FLOAT_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_FLOAT_SPECIALS = {"nan", "+nan", "-nan", "inf", "+inf", "-inf", "infinity", "+infinity", "-infinity"}

# -----------------------------
# Type inference
# -----------------------------


def infer_value_type(raw: str) -> ColumnType:
    """Narrowest type a single raw value parses as."""
    if _INTEGER_PATTERN.match(raw):
        return ColumnType.INTEGER if INT64_MIN <= int(raw) <= INT64_MAX else ColumnType.FLOAT
    if _FLOAT_PATTERN.match(raw) or raw.lower() in _FLOAT_SPECIALS:
        return ColumnType.FLOAT
    if _DATE_PATTERN.match(raw):
        try:
            date.fromisoformat(raw)
        except ValueError:
            return ColumnType.STRING
        return ColumnType.DATE
    return ColumnType.STRING


def widen_type(current: ColumnType | None, observed: ColumnType) -> ColumnType:
    """Combine two inferred types: integer widens to float, anything else to string."""
    if current is None or current == observed:
        return observed
    if current.is_numeric and observed.is_numeric:
        return ColumnType.FLOAT
    return ColumnType.STRING


def infer_column_types(
    records: Iterable[Sequence[str]],
    width: int,
    null_values: Collection[str],
) -> list[ColumnType]:
    """Infer one type per column from sample records.

    Null markers are ignored; a column holding only nulls is a string column.
    Categorical is never inferred and must be declared.

    Args:
        records: Raw field lists, each of length width
        width: Number of columns
        null_values: Raw values treated as null

    Returns:
        Inferred type per column position
    """
    inferred: list[ColumnType | None] = [None] * width
    for fields in records:
        for position, raw in enumerate(fields):
            if raw in null_values or inferred[position] is ColumnType.STRING:
                continue
            inferred[position] = widen_type(inferred[position], infer_value_type(raw))
    return [col_type or ColumnType.STRING for col_type in inferred]


# -----------------------------
# Value coercion
# -----------------------------


def coerce_value(
    raw: str, col_type: ColumnType, null_values: Collection[str]
) -> int | float | str | date | None:
    """Convert a raw field into a value of the declared type.

    Raises:
        ValueError: If the value does not parse as col_type
    """
    if raw in null_values:
        return None
    if col_type is ColumnType.INTEGER:
        if not _INTEGER_PATTERN.match(raw):
            msg = f"'{raw}' is not an integer"
            raise ValueError(msg)
        value = int(raw)
        if not INT64_MIN <= value <= INT64_MAX:
            msg = f"'{raw}' is outside the 64-bit integer range"
            raise ValueError(msg)
        return value
    if col_type is ColumnType.FLOAT:
        if not (_FLOAT_PATTERN.match(raw) or raw.lower() in _FLOAT_SPECIALS):
            msg = f"'{raw}' is not a number"
            raise ValueError(msg)
        return float(raw)
    if col_type is ColumnType.DATE:
        if not _DATE_PATTERN.match(raw):
            msg = f"'{raw}' is not an ISO date (YYYY-MM-DD)"
            raise ValueError(msg)
        return date.fromisoformat(raw)
    return raw


# -----------------------------
# Frame utilities
# -----------------------------


def frame_size(frame: pl.DataFrame) -> int:
    """Estimated in-memory size of a frame in bytes."""
    return int(frame.estimated_size())
