# Standard library
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

# Third-party
import polars as pl

# Local imports
from chunkdm.core.errors import (
    DuplicateNameError,
    TypeMismatchError,
    ValidationError,
)
from chunkdm.core.models import ColumnSpec, Schema, join_key_dtype
from chunkdm.query.expressions import Predicate

if TYPE_CHECKING:
    from chunkdm.datasets.dataset import Dataset

# -----------------------------
# Constants
# -----------------------------

JOIN_SUFFIX = "_right"

# -----------------------------
# Plan Operations
# -----------------------------


@dataclass(frozen=True, eq=False)
class FilterOp:
    """Keep rows for which the predicate holds."""

    predicate: Predicate

    def describe(self) -> str:
        return f"FILTER {self.predicate!r}"


@dataclass(frozen=True, eq=False)
class SelectOp:
    """Project and reorder columns."""

    columns: tuple[str, ...]

    def describe(self) -> str:
        return f"SELECT [{', '.join(self.columns)}]"


@dataclass(frozen=True, eq=False)
class JoinOp:
    """Inner equi-join with another plan.

    Attributes:
        other: Right-hand plan
        on: Key column present on both sides
        right_names: (right column, output column) pairs, key excluded
        key_dtype: Polars dtype both keys are compared in
    """

    other: "QueryPlan"
    on: str
    right_names: tuple[tuple[str, str], ...]
    key_dtype: pl.DataType

    def describe(self) -> str:
        return f"JOIN ON {self.on!r}"


PlanOp = Union[FilterOp, SelectOp, JoinOp]


# -----------------------------
# Query Plan
# -----------------------------


@dataclass(frozen=True, eq=False)
class QueryPlan:
    """Immutable, unevaluated pipeline of operations over a dataset.

    Builder methods validate names and types against the projected schema
    immediately and return a new plan; no chunk is read until an
    ExecutionEngine evaluates the plan.

    Attributes:
        source: Base dataset whose chunks are scanned
        ops: Operations in declared order
        schema: Schema of the plan's output
    """

    source: "Dataset"
    ops: tuple[PlanOp, ...]
    schema: Schema

    @classmethod
    def scan(cls, dataset: "Dataset") -> "QueryPlan":
        """Start a plan reading every column of a dataset."""
        return cls(source=dataset, ops=(), schema=dataset.schema)

    # -----------------------------
    # Builders
    # -----------------------------

    def filter(self, predicate: Predicate) -> "QueryPlan":
        """Add a row filter.

        Args:
            predicate: Boolean expression over column names

        Returns:
            New plan with the filter appended

        Raises:
            UnknownColumnError: If the predicate references an absent column
            TypeMismatchError: If the predicate compares incompatible types
        """
        if not isinstance(predicate, Predicate):
            msg = f"filter() expects a predicate expression, got {predicate!r}"
            raise TypeMismatchError(msg)
        predicate.validate(self.schema)
        return self._append(FilterOp(predicate), self.schema)

    def select(self, *columns: str | Iterable[str]) -> "QueryPlan":
        """Project the plan onto columns, in the given order.

        Accepts names as separate arguments or a single iterable.

        Raises:
            UnknownColumnError: If a name is absent
            DuplicateNameError: If a name is repeated
            ValidationError: If no column is given
        """
        names = _flatten_names(columns)
        if not names:
            msg = "select() needs at least one column"
            raise ValidationError(msg)
        projected: Schema = self.schema.select(names)
        return self._append(SelectOp(names), projected)

    def join(self, other: "Dataset | QueryPlan", on: str) -> "QueryPlan":
        """Inner-join with another dataset or plan on a shared key column.

        Output columns are this plan's columns followed by the other side's
        columns without the key. Colliding right-hand names get a ``_right``
        suffix.

        Raises:
            UnknownColumnError: If on is absent from either side
            TypeMismatchError: If the key types are incompatible
            DuplicateNameError: If a suffixed name still collides
        """
        right: QueryPlan = other if isinstance(other, QueryPlan) else QueryPlan.scan(other)
        left_type = self.schema.type_of(on)
        right_type = right.schema.type_of(on)
        key_dtype = join_key_dtype(left_type, right_type)
        if key_dtype is None:
            msg = (
                f"Join key '{on}' has incompatible types: "
                f"{left_type.value} (left) vs {right_type.value} (right)"
            )
            raise TypeMismatchError(msg)

        left_names: set[str] = set(self.schema.names)
        used: set[str] = set(left_names)
        right_names: list[tuple[str, str]] = []
        joined: list[ColumnSpec] = list(self.schema.columns)
        for spec in right.schema.columns:
            if spec.name == on:
                continue
            output_name = spec.name
            if output_name in used:
                output_name = f"{spec.name}{JOIN_SUFFIX}"
            if output_name in used:
                msg = f"Join output column '{output_name}' is ambiguous"
                raise DuplicateNameError(msg)
            used.add(output_name)
            right_names.append((spec.name, output_name))
            joined.append(ColumnSpec(output_name, spec.type, output_name))

        op = JoinOp(
            other=right,
            on=on,
            right_names=tuple(right_names),
            key_dtype=key_dtype,
        )
        return self._append(op, Schema(tuple(joined)))

    def _append(self, op: PlanOp, schema: Schema) -> "QueryPlan":
        return QueryPlan(source=self.source, ops=(*self.ops, op), schema=schema)

    # -----------------------------
    # Introspection
    # -----------------------------

    @property
    def datasets(self) -> tuple["Dataset", ...]:
        """Every base dataset the plan reads, left to right."""
        found: list[Dataset] = [self.source]
        for op in self.ops:
            if isinstance(op, JoinOp):
                found.extend(op.other.datasets)
        return tuple(found)

    def row_upper_bound(self) -> int | None:
        """Largest row count the plan can produce, from metadata only.

        Filters and selects never add rows; any join makes the bound unknown.
        """
        if any(isinstance(op, JoinOp) for op in self.ops):
            return None
        return self.source.row_count

    def optimized(self) -> "QueryPlan":
        """Equivalent plan with filters pushed towards the scans."""
        from chunkdm.query.optimizer import push_down_filters

        return push_down_filters(self)

    def explain(self) -> str:
        """Render the optimized physical plan as indented text."""
        from chunkdm.query.optimizer import compile_plan

        return "\n".join(compile_plan(self).describe())

    def __repr__(self) -> str:
        steps = " -> ".join(op.describe() for op in self.ops) or "SCAN"
        return f"QueryPlan({self.source.path.name}: {steps}; {self.schema!r})"


def _flatten_names(columns: tuple[str | Iterable[str], ...]) -> tuple[str, ...]:
    names: list[str] = []
    for entry in columns:
        if isinstance(entry, str):
            names.append(entry)
        else:
            names.extend(entry)
    return tuple(names)


def schema_after(source_schema: Schema, ops: Iterable[PlanOp]) -> list[Schema]:
    """Schemas in effect before each op, plus the final output schema."""
    schemas: list[Schema] = [source_schema]
    current = source_schema
    for op in ops:
        if isinstance(op, SelectOp):
            current = current.select(op.columns)
        elif isinstance(op, JoinOp):
            current = Schema(
                (
                    *current.columns,
                    *(
                        ColumnSpec(output, op.other.schema.type_of(name), output)
                        for name, output in op.right_names
                    ),
                )
            )
        schemas.append(current)
    return schemas
