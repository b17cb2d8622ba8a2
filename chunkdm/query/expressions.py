# Standard library
import functools
import operator
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

# Third-party
import polars as pl

# Local imports
from chunkdm.core.errors import TypeMismatchError
from chunkdm.core.models import ColumnType, Schema

# -----------------------------
# Constants
# -----------------------------

COMPARISON_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")

# -----------------------------
# Helpers
# -----------------------------


def literal_type(value: object) -> ColumnType | None:
    """Column type a Python literal compares as; None for a null literal.

    Raises:
        TypeMismatchError: If the value has no supported column type
    """
    if value is None:
        return None
    if isinstance(value, bool):
        msg = "Boolean literals are not supported; there is no boolean column type"
        raise TypeMismatchError(msg)
    if isinstance(value, int):
        return ColumnType.INTEGER
    if isinstance(value, float):
        return ColumnType.FLOAT
    if isinstance(value, str):
        return ColumnType.STRING
    if isinstance(value, datetime):
        msg = f"Datetime literal {value!r} is not supported; use a date"
        raise TypeMismatchError(msg)
    if isinstance(value, date):
        return ColumnType.DATE
    msg = f"Unsupported literal {value!r} of type {type(value).__name__}"
    raise TypeMismatchError(msg)


def comparable(left: ColumnType | None, right: ColumnType | None) -> bool:
    """Whether two operand types may be compared; null compares with anything."""
    if left is None or right is None or left == right:
        return True
    return (left.is_numeric and right.is_numeric) or (
        left.is_textual and right.is_textual
    )


def _wrap(value: "ValueExpr | object") -> "ValueExpr":
    if isinstance(value, ValueExpr):
        return value
    if isinstance(value, Predicate):
        msg = "A predicate cannot be used as a comparison operand"
        raise TypeMismatchError(msg)
    literal_type(value)
    return Literal(value)


# -----------------------------
# Value expressions
# -----------------------------


class ValueExpr:
    """Expression producing a column-typed value per row."""

    def value_type(self, schema: Schema) -> ColumnType | None:
        raise NotImplementedError

    def columns(self) -> frozenset[str]:
        raise NotImplementedError

    def rename_columns(self, mapping: Mapping[str, str]) -> "ValueExpr":
        raise NotImplementedError

    def to_polars(self) -> pl.Expr:
        raise NotImplementedError

    def __bool__(self) -> bool:
        msg = "Expressions have no truth value; combine predicates with & | ~"
        raise TypeError(msg)

    # Comparisons build predicates instead of comparing expressions
    def __eq__(self, other: object) -> "Comparison":  # type: ignore[override]
        return Comparison("==", self, _wrap(other))

    def __ne__(self, other: object) -> "Comparison":  # type: ignore[override]
        return Comparison("!=", self, _wrap(other))

    def __lt__(self, other: object) -> "Comparison":
        return Comparison("<", self, _wrap(other))

    def __le__(self, other: object) -> "Comparison":
        return Comparison("<=", self, _wrap(other))

    def __gt__(self, other: object) -> "Comparison":
        return Comparison(">", self, _wrap(other))

    def __ge__(self, other: object) -> "Comparison":
        return Comparison(">=", self, _wrap(other))

    __hash__ = None  # type: ignore[assignment]

    def is_null(self) -> "NullCheck":
        return NullCheck(self, negate=False)

    def is_not_null(self) -> "NullCheck":
        return NullCheck(self, negate=True)

    def is_in(self, values: Iterable[object]) -> "IsIn":
        literals = tuple(values)
        for value in literals:
            literal_type(value)
        return IsIn(self, literals)


@dataclass(frozen=True, eq=False, repr=False)
class Column(ValueExpr):
    """Reference to a column by name."""

    name: str

    def value_type(self, schema: Schema) -> ColumnType | None:
        return schema.type_of(self.name)

    def columns(self) -> frozenset[str]:
        return frozenset((self.name,))

    def rename_columns(self, mapping: Mapping[str, str]) -> ValueExpr:
        return Column(mapping.get(self.name, self.name))

    def to_polars(self) -> pl.Expr:
        return pl.col(self.name)

    def __repr__(self) -> str:
        return f"col({self.name!r})"


@dataclass(frozen=True, eq=False, repr=False)
class Literal(ValueExpr):
    """Constant value."""

    value: Any

    def value_type(self, schema: Schema) -> ColumnType | None:
        return literal_type(self.value)

    def columns(self) -> frozenset[str]:
        return frozenset()

    def rename_columns(self, mapping: Mapping[str, str]) -> ValueExpr:
        return self

    def to_polars(self) -> pl.Expr:
        return pl.lit(self.value)

    def __repr__(self) -> str:
        return repr(self.value)


# -----------------------------
# Predicates
# -----------------------------


class Predicate:
    """Boolean expression over columns, evaluated per row at execution time."""

    def validate(self, schema: Schema) -> None:
        """Check column names and operand types against a schema.

        Raises:
            UnknownColumnError: If a referenced column is absent
            TypeMismatchError: If operand types cannot be compared
        """
        raise NotImplementedError

    def columns(self) -> frozenset[str]:
        raise NotImplementedError

    def rename_columns(self, mapping: Mapping[str, str]) -> "Predicate":
        raise NotImplementedError

    def to_polars(self) -> pl.Expr:
        raise NotImplementedError

    def __bool__(self) -> bool:
        msg = "Predicates have no truth value; combine them with & | ~"
        raise TypeError(msg)

    def __and__(self, other: "Predicate") -> "BooleanOp":
        return BooleanOp("&", (self, _require_predicate(other)))

    def __or__(self, other: "Predicate") -> "BooleanOp":
        return BooleanOp("|", (self, _require_predicate(other)))

    def __invert__(self) -> "Not":
        return Not(self)


def _require_predicate(value: object) -> Predicate:
    if not isinstance(value, Predicate):
        msg = f"Expected a predicate, got {value!r}"
        raise TypeMismatchError(msg)
    return value


@dataclass(frozen=True, eq=False, repr=False)
class Comparison(Predicate):
    """Binary comparison of two values."""

    op: str
    left: ValueExpr
    right: ValueExpr

    def validate(self, schema: Schema) -> None:
        left_type = self.left.value_type(schema)
        right_type = self.right.value_type(schema)
        if not comparable(left_type, right_type):
            msg = (
                f"Cannot compare {self.left!r} ({left_type.value if left_type else 'null'}) "
                f"with {self.right!r} ({right_type.value if right_type else 'null'})"
            )
            raise TypeMismatchError(msg)

    def columns(self) -> frozenset[str]:
        return self.left.columns() | self.right.columns()

    def rename_columns(self, mapping: Mapping[str, str]) -> Predicate:
        return Comparison(
            self.op,
            self.left.rename_columns(mapping),
            self.right.rename_columns(mapping),
        )

    def to_polars(self) -> pl.Expr:
        left = self.left.to_polars()
        right = self.right.to_polars()
        if self.op == "==":
            return left == right
        if self.op == "!=":
            return left != right
        if self.op == "<":
            return left < right
        if self.op == "<=":
            return left <= right
        if self.op == ">":
            return left > right
        if self.op == ">=":
            return left >= right
        msg = f"Unknown comparison operator '{self.op}'"
        raise ValueError(msg)

    def __repr__(self) -> str:
        return f"({self.left!r} {self.op} {self.right!r})"


@dataclass(frozen=True, eq=False, repr=False)
class BooleanOp(Predicate):
    """Conjunction (&) or disjunction (|) of predicates."""

    op: str
    operands: tuple[Predicate, ...]

    def validate(self, schema: Schema) -> None:
        for operand in self.operands:
            operand.validate(schema)

    def columns(self) -> frozenset[str]:
        names: frozenset[str] = frozenset()
        for operand in self.operands:
            names |= operand.columns()
        return names

    def rename_columns(self, mapping: Mapping[str, str]) -> Predicate:
        return BooleanOp(
            self.op, tuple(operand.rename_columns(mapping) for operand in self.operands)
        )

    def to_polars(self) -> pl.Expr:
        combine = operator.and_ if self.op == "&" else operator.or_
        return functools.reduce(combine, (o.to_polars() for o in self.operands))

    def __repr__(self) -> str:
        return "(" + f" {self.op} ".join(repr(o) for o in self.operands) + ")"


@dataclass(frozen=True, eq=False, repr=False)
class Not(Predicate):
    """Negated predicate."""

    operand: Predicate

    def validate(self, schema: Schema) -> None:
        self.operand.validate(schema)

    def columns(self) -> frozenset[str]:
        return self.operand.columns()

    def rename_columns(self, mapping: Mapping[str, str]) -> Predicate:
        return Not(self.operand.rename_columns(mapping))

    def to_polars(self) -> pl.Expr:
        return ~self.operand.to_polars()

    def __repr__(self) -> str:
        return f"~{self.operand!r}"


@dataclass(frozen=True, eq=False, repr=False)
class NullCheck(Predicate):
    """is_null / is_not_null test."""

    operand: ValueExpr
    negate: bool

    def validate(self, schema: Schema) -> None:
        self.operand.value_type(schema)

    def columns(self) -> frozenset[str]:
        return self.operand.columns()

    def rename_columns(self, mapping: Mapping[str, str]) -> Predicate:
        return NullCheck(self.operand.rename_columns(mapping), self.negate)

    def to_polars(self) -> pl.Expr:
        compiled = self.operand.to_polars()
        return compiled.is_not_null() if self.negate else compiled.is_null()

    def __repr__(self) -> str:
        method = "is_not_null" if self.negate else "is_null"
        return f"{self.operand!r}.{method}()"


@dataclass(frozen=True, eq=False, repr=False)
class IsIn(Predicate):
    """Membership test against a literal set."""

    operand: ValueExpr
    values: tuple[Any, ...]

    def validate(self, schema: Schema) -> None:
        operand_type = self.operand.value_type(schema)
        for value in self.values:
            value_type = literal_type(value)
            if not comparable(operand_type, value_type):
                msg = (
                    f"Cannot test {self.operand!r} "
                    f"({operand_type.value if operand_type else 'null'}) "
                    f"for membership of {value!r}"
                )
                raise TypeMismatchError(msg)

    def columns(self) -> frozenset[str]:
        return self.operand.columns()

    def rename_columns(self, mapping: Mapping[str, str]) -> Predicate:
        return IsIn(self.operand.rename_columns(mapping), self.values)

    def to_polars(self) -> pl.Expr:
        # Both sides share one dtype; numeric membership compares as float
        operand = self.operand.to_polars()
        values = [value for value in self.values if value is not None]
        if not values:
            return pl.lit(False)
        kinds = {literal_type(value) for value in values}
        if all(kind.is_numeric for kind in kinds):
            dtype: pl.DataType = pl.Float64()
            values = [float(value) for value in values]
        elif kinds == {ColumnType.DATE}:
            dtype = pl.Date()
        elif kinds == {ColumnType.STRING}:
            dtype = pl.String()
        else:
            return operand.is_in(pl.Series(values, strict=False))
        return operand.cast(dtype).is_in(pl.Series(values, dtype=dtype))

    def __repr__(self) -> str:
        return f"{self.operand!r}.is_in({list(self.values)!r})"


# -----------------------------
# Constructors
# -----------------------------


def col(name: str) -> Column:
    """Reference a column by name."""
    return Column(name)


def lit(value: object) -> Literal:
    """Wrap a Python value as a literal expression."""
    literal_type(value)
    return Literal(value)


def all_of(predicates: Iterable[Predicate]) -> Predicate | None:
    """Conjunction of predicates, or None when there are none."""
    collected = tuple(predicates)
    if not collected:
        return None
    if len(collected) == 1:
        return collected[0]
    return BooleanOp("&", collected)
