"""Unit tests for name validation."""

from __future__ import annotations

import pytest

from chunkdm.core.errors import DuplicateNameError, ValidationError
from chunkdm.core.validation import (
    validate_chunk_row_count,
    validate_column_names,
    validate_dataset_name,
)


@pytest.mark.parametrize("name", ["", "has space", "semi;colon", "x" * 101])
def test_invalid_dataset_names(name: str) -> None:
    """Dataset names must be short and alphanumeric with _ or -."""
    with pytest.raises(ValidationError):
        validate_dataset_name(name)


def test_column_names_allow_free_text() -> None:
    """Column names may contain spaces and punctuation."""
    validate_column_names(["first name", "amount ($)"])


@pytest.mark.parametrize("names", [["", "a"], ["__hidden"], ["  "]])
def test_invalid_column_names(names: list[str]) -> None:
    """Empty and reserved column names should be rejected."""
    with pytest.raises(ValidationError):
        validate_column_names(names)


def test_duplicate_column_names() -> None:
    """Repeated column names should raise DuplicateNameError."""
    with pytest.raises(DuplicateNameError):
        validate_column_names(["a", "b", "a"])


@pytest.mark.parametrize("value", [0, -5, True, 2.5])
def test_invalid_chunk_row_counts(value: object) -> None:
    """Chunk sizes must be positive integers."""
    with pytest.raises(ValidationError):
        validate_chunk_row_count(value)  # type: ignore[arg-type]
