# Standard library
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Literal, Union

# Third-party
import polars as pl

# Local imports
from chunkdm.core.models import Schema
from chunkdm.query.expressions import BooleanOp, Predicate, all_of
from chunkdm.query.plan import (
    FilterOp,
    JoinOp,
    PlanOp,
    QueryPlan,
    SelectOp,
    schema_after,
)

if TYPE_CHECKING:
    from chunkdm.datasets.dataset import Dataset

BuildSide = Literal["left", "right"]

# -----------------------------
# Physical plan
# -----------------------------


@dataclass(frozen=True, eq=False)
class JoinStep:
    """Hash join against a compiled right-hand plan.

    Attributes:
        right: Compiled right-hand plan, already projected to needed columns
        on: Key column
        right_names: (right column, output column) pairs, key excluded
        key_dtype: Dtype both keys are cast to for matching
        build_side: Side held in memory as the hash table
    """

    right: "PhysicalPlan"
    on: str
    right_names: tuple[tuple[str, str], ...]
    key_dtype: pl.DataType
    build_side: BuildSide


PhysicalStep = Union[FilterOp, SelectOp, JoinStep]


@dataclass(frozen=True, eq=False)
class PhysicalPlan:
    """Plan ready for chunk-at-a-time execution.

    Attributes:
        source: Dataset whose chunks are scanned
        scan_columns: Columns read from each chunk file
        scan_predicate: Filter applied while reading each chunk
        steps: Remaining per-chunk operations
        schema: Output schema
    """

    source: "Dataset"
    scan_columns: tuple[str, ...]
    scan_predicate: Predicate | None
    steps: tuple[PhysicalStep, ...]
    schema: Schema

    def describe(self, indent: int = 0) -> list[str]:
        pad = "  " * indent
        scan = (
            f"{pad}SCAN {self.source.path.name} "
            f"({len(self.source.chunks)} chunks, {self.source.row_count:,} rows) "
            f"COLUMNS [{', '.join(self.scan_columns)}]"
        )
        if self.scan_predicate is not None:
            scan += f" WHERE {self.scan_predicate!r}"
        lines = [scan]
        for step in self.steps:
            if isinstance(step, JoinStep):
                lines.append(
                    f"{pad}  HASH JOIN ON {step.on!r} (build side: {step.build_side})"
                )
                lines.extend(step.right.describe(indent + 2))
            else:
                lines.append(f"{pad}  {step.describe()}")
        lines.append(f"{pad}OUTPUT [{', '.join(self.schema.names)}]")
        return lines


# -----------------------------
# Predicate pushdown
# -----------------------------


def split_conjuncts(predicate: Predicate) -> list[Predicate]:
    """Flatten nested ``&`` predicates into their conjuncts."""
    if isinstance(predicate, BooleanOp) and predicate.op == "&":
        parts: list[Predicate] = []
        for operand in predicate.operands:
            parts.extend(split_conjuncts(operand))
        return parts
    return [predicate]


def _bubble_filter(
    source_schema: Schema, ops: list[PlanOp], predicate: Predicate
) -> list[PlanOp]:
    """Insert a filter as early as its columns allow.

    A filter passes earlier filters and selects freely. It passes a join when
    it only references left-hand columns, and is absorbed into the join's
    right-hand plan when it only references right-hand columns.
    """
    names = predicate.columns()
    for position in range(len(ops) - 1, -1, -1):
        op = ops[position]
        if not isinstance(op, JoinOp):
            continue
        left_schema = schema_after(source_schema, ops[:position])[-1]
        if names <= set(left_schema.names):
            continue
        to_right = {output: name for name, output in op.right_names}
        if names <= to_right.keys():
            pushed = op.other.filter(predicate.rename_columns(to_right))
            return [*ops[:position], replace(op, other=pushed), *ops[position + 1 :]]
        return [*ops[: position + 1], FilterOp(predicate), *ops[position + 1 :]]
    return [FilterOp(predicate), *ops]


def push_down_filters(plan: QueryPlan) -> QueryPlan:
    """Rewrite a plan so every filter runs as early as possible.

    The rewrite keeps the output rows and their order unchanged.
    """
    ops: list[PlanOp] = []
    for op in plan.ops:
        if isinstance(op, FilterOp):
            for conjunct in split_conjuncts(op.predicate):
                ops = _bubble_filter(plan.source.schema, ops, conjunct)
        else:
            ops.append(op)
    return QueryPlan(source=plan.source, ops=tuple(ops), schema=plan.schema)


# -----------------------------
# Compilation
# -----------------------------


def choose_build_side(left_bound: int | None, right_bound: int | None) -> BuildSide:
    """Pick the join side to hold in memory: the one with the smaller bound.

    An unknown bound counts as larger than any known one; ties build the right.
    """
    if left_bound is None:
        return "right"
    if right_bound is None:
        return "left"
    return "left" if left_bound < right_bound else "right"


def compile_plan(plan: QueryPlan, required: Iterable[str] | None = None) -> PhysicalPlan:
    """Compile a logical plan into a physical one.

    Applies filter pushdown, then a backward liveness pass that narrows
    selects and the chunk scan to the columns actually used.

    Args:
        plan: Logical plan
        required: Output columns the caller needs; all when omitted

    Returns:
        PhysicalPlan
    """
    logical = push_down_filters(plan)
    ops: list[PlanOp] = list(logical.ops)
    output: Schema = plan.schema
    if required is not None:
        wanted = set(required)
        if wanted != set(output.names):
            output = output.select(name for name in output.names if name in wanted)
            ops.append(SelectOp(output.names))

    schemas = schema_after(plan.source.schema, ops)
    live: set[str] = set(output.names)
    steps: list[PhysicalStep] = []
    for position in range(len(ops) - 1, -1, -1):
        op = ops[position]
        if isinstance(op, FilterOp):
            live |= op.predicate.columns()
            steps.append(op)
        elif isinstance(op, SelectOp):
            kept = tuple(name for name in op.columns if name in live)
            steps.append(op if kept == op.columns else SelectOp(kept))
            live = set(kept)
        else:
            needed_right = {name for name, output_name in op.right_names if output_name in live}
            right = compile_plan(op.other, required={*needed_right, op.on})
            left_bound = (
                plan.source.row_count
                if not any(isinstance(prior, JoinOp) for prior in ops[:position])
                else None
            )
            steps.append(
                JoinStep(
                    right=right,
                    on=op.on,
                    right_names=tuple(
                        (name, output_name)
                        for name, output_name in op.right_names
                        if name in needed_right
                    ),
                    key_dtype=op.key_dtype,
                    build_side=choose_build_side(left_bound, op.other.row_upper_bound()),
                )
            )
            live = (live & set(schemas[position].names)) | {op.on}
    steps.reverse()

    leading: list[Predicate] = []
    while steps and isinstance(steps[0], FilterOp):
        leading.append(steps.pop(0).predicate)

    scan_columns = tuple(name for name in plan.source.schema.names if name in live)
    return PhysicalPlan(
        source=plan.source,
        scan_columns=scan_columns,
        scan_predicate=all_of(leading),
        steps=tuple(steps),
        schema=output,
    )
