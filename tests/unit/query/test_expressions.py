"""Unit tests for predicate expressions."""

from __future__ import annotations

from datetime import date, datetime

import polars as pl
import pytest

from chunkdm.core.errors import TypeMismatchError, UnknownColumnError
from chunkdm.core.models import Schema
from chunkdm.query.expressions import all_of, col, lit

SCHEMA = Schema.from_types(
    {"id": "integer", "score": "float", "name": "string", "kind": "categorical", "day": "date"}
)

FRAME = pl.DataFrame(
    {
        "id": [1, 2, 3, None],
        "score": [1.5, None, 3.0, 4.0],
        "name": ["a", "b", None, "d"],
    }
)


def test_comparison_collects_columns() -> None:
    """Predicates should report every referenced column."""
    predicate = (col("id") > 1) & (col("name") == "b")

    assert predicate.columns() == frozenset({"id", "name"})


def test_numeric_columns_compare_with_int_and_float() -> None:
    """Integer and float operands should be comparable."""
    (col("score") > 1).validate(SCHEMA)
    (col("id") <= 2.5).validate(SCHEMA)


def test_string_and_categorical_are_comparable() -> None:
    """Categorical columns should compare with strings and each other."""
    (col("kind") == "x").validate(SCHEMA)
    (col("kind") == col("name")).validate(SCHEMA)


def test_date_literal_compares_with_date_column() -> None:
    """Date columns should accept date literals."""
    (col("day") >= date(2024, 1, 1)).validate(SCHEMA)


def test_mismatched_types_raise() -> None:
    """Comparing text with numbers should fail validation."""
    with pytest.raises(TypeMismatchError):
        (col("name") > 5).validate(SCHEMA)


def test_unknown_column_raises() -> None:
    """Referencing an absent column should fail validation."""
    with pytest.raises(UnknownColumnError):
        (col("missing") == 1).validate(SCHEMA)


@pytest.mark.parametrize("value", [True, datetime(2024, 1, 1), object()])
def test_unsupported_literals_raise(value: object) -> None:
    """Literals without a column type should be rejected at construction."""
    with pytest.raises(TypeMismatchError):
        lit(value)


def test_predicate_has_no_truth_value() -> None:
    """Using a predicate in a boolean context should raise TypeError."""
    with pytest.raises(TypeError):
        bool(col("id") == 1)


def test_null_comparisons_never_match() -> None:
    """Rows with a null operand should be dropped by comparisons."""
    result = FRAME.filter((col("id") > 0).to_polars())

    assert result["id"].to_list() == [1, 2, 3]


def test_negation_keeps_null_rows_out() -> None:
    """Negating a comparison should not select rows with null operands."""
    result = FRAME.filter((~(col("score") > 2)).to_polars())

    assert result["id"].to_list() == [1]


def test_or_matches_when_either_side_holds() -> None:
    """Disjunction should keep rows where one side is true and the other null."""
    result = FRAME.filter(((col("id") == 1) | (col("score") == 4.0)).to_polars())

    assert result["score"].to_list() == [1.5, 4.0]


def test_null_checks_and_membership() -> None:
    """is_null, is_not_null and is_in should select the expected rows."""
    assert FRAME.filter(col("name").is_null().to_polars()).height == 1
    assert FRAME.filter(col("name").is_not_null().to_polars()).height == 3
    assert FRAME.filter(col("id").is_in([2, 3]).to_polars())["id"].to_list() == [2, 3]


def test_membership_mixes_integer_and_float_values() -> None:
    """is_in should compare numeric members by value across int and float."""
    assert FRAME.filter(col("id").is_in([2, 2.5]).to_polars())["id"].to_list() == [2]
    assert FRAME.filter(col("score").is_in([3]).to_polars())["score"].to_list() == [3.0]


def test_membership_with_no_values_matches_nothing() -> None:
    """An empty or all-null member list should select no rows."""
    assert FRAME.filter(col("id").is_in([None]).to_polars()).height == 0


def test_rename_columns_rewrites_references() -> None:
    """Renaming should rewrite column references throughout the tree."""
    predicate = ~((col("a") == 1) | col("b").is_null())

    renamed = predicate.rename_columns({"a": "x"})

    assert renamed.columns() == frozenset({"x", "b"})


def test_all_of_combines_predicates() -> None:
    """all_of should return None, the predicate itself, or a conjunction."""
    first = col("id") == 1
    second = col("name") == "a"

    assert all_of([]) is None
    assert all_of([first]) is first
    assert all_of([first, second]).columns() == frozenset({"id", "name"})
