# Standard library
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

# Third-party
import polars as pl

# Local imports
from chunkdm.core.config import EngineConfig
from chunkdm.core.errors import ChunkIOError, MemoryBudgetExceededError
from chunkdm.core.logging_config import get_logger
from chunkdm.core.models import Schema
from chunkdm.core.utils import frame_size
from chunkdm.datasets.dataset import Dataset
from chunkdm.query.expressions import Predicate
from chunkdm.query.optimizer import JoinStep, PhysicalPlan, compile_plan
from chunkdm.query.plan import FilterOp, QueryPlan, SelectOp
from chunkdm.repositories.chunk_store import ChunkStore

_LOGGER = get_logger(__name__)

# -----------------------------
# Constants
# -----------------------------

# Internal columns; the reserved "__" prefix keeps them clear of user columns
JOIN_KEY_COLUMN = "__join_key"
PROBE_INDEX_COLUMN = "__probe_row"
BUILD_INDEX_COLUMN = "__build_row"

# -----------------------------
# Execution Engine
# -----------------------------


class ExecutionEngine:
    """Evaluates query plans one chunk at a time.

    Evaluation is a single-threaded pull pipeline: each output frame is
    produced by reading one chunk and pushing it through the plan's steps.
    Only a join's build side and an explicit collect() hold more than one
    chunk in memory, and both are bounded by configured budgets.
    """

    def __init__(self, config: EngineConfig | None = None, store: ChunkStore | None = None) -> None:
        self.config: EngineConfig = config or (store.config if store else EngineConfig())
        self.store = store

    # -----------------------------
    # Streaming
    # -----------------------------

    def iter_frames(self, plan: QueryPlan) -> Iterator[pl.DataFrame]:
        """Stream a plan's result as non-empty frames, at most one chunk's worth each.

        Nothing is read until the iterator is advanced.
        """
        return self._run(compile_plan(plan))

    def _run(self, physical: PhysicalPlan) -> Iterator[pl.DataFrame]:
        frames: Iterator[pl.DataFrame] = self._scan(physical)
        for step in physical.steps:
            if isinstance(step, FilterOp):
                frames = _filter_frames(frames, step.predicate)
            elif isinstance(step, SelectOp):
                frames = _select_frames(frames, step.columns)
            else:
                frames = self._join_frames(frames, step)
        yield from _select_frames(frames, physical.schema.names)

    def _scan(self, physical: PhysicalPlan) -> Iterator[pl.DataFrame]:
        source: Dataset = physical.source
        store: ChunkStore = self.store or source.store
        for chunk in source.chunks:
            frame = store.scan_chunk(
                source, chunk.chunk_id, physical.scan_columns, physical.scan_predicate
            )
            if frame.height:
                yield frame

    # -----------------------------
    # Hash join
    # -----------------------------

    def _join_frames(
        self, left_frames: Iterator[pl.DataFrame], step: JoinStep
    ) -> Iterator[pl.DataFrame]:
        if step.build_side == "right":
            right_table = self._build_table(
                self._run(step.right), step.right.schema, step, "right"
            )
            for frame in left_frames:
                joined = _hash_join(_prepare_left(frame, step), right_table, probe="left")
                if joined.height:
                    yield joined
        else:
            left_table = self._build_table(left_frames, None, step, "left")
            if left_table is None:
                return
            for frame in self._run(step.right):
                joined = _hash_join(left_table, _prepare_right(frame, step), probe="right")
                if joined.height:
                    yield joined

    def _build_table(
        self,
        frames: Iterator[pl.DataFrame],
        schema: Schema | None,
        step: JoinStep,
        side: str,
    ) -> pl.DataFrame | None:
        """Materialize a join's build side, key included, within the join memory budget.

        Returns None for an empty build side whose schema is not known.

        Raises:
            MemoryBudgetExceededError: If the build side outgrows the budget
        """
        prepare = _prepare_right if side == "right" else _prepare_left
        budget = self.config.join_memory_budget
        parts = _accumulate(
            frames,
            budget,
            f"Join build side ({side}) on '{step.on}'",
            prepare=lambda frame: prepare(frame, step),
        )
        if parts:
            table = pl.concat(parts, how="vertical")
        elif schema is not None:
            table = prepare(pl.DataFrame(schema=schema.polars_schema()), step)
        else:
            return None
        _LOGGER.debug(
            "join_build_completed",
            on=step.on,
            side=side,
            rows=table.height,
            bytes=frame_size(table),
        )
        return table

    # -----------------------------
    # Materialization
    # -----------------------------

    def collect(self, plan: QueryPlan) -> pl.DataFrame:
        """Evaluate a plan into a single in-memory table.

        Args:
            plan: Plan to evaluate

        Returns:
            Result table; categorical columns use pl.Categorical

        Raises:
            MemoryBudgetExceededError: If the result outgrows the result budget;
                no partial table is returned
            ChunkIOError: If a chunk cannot be read
        """
        parts = _accumulate(
            self.iter_frames(plan), self.config.result_memory_budget, "Collected result"
        )
        if parts:
            result = pl.concat(parts, how="vertical")
        else:
            result = pl.DataFrame(schema=plan.schema.polars_schema())
        result = result.cast(plan.schema.polars_schema(materialized=True))
        _LOGGER.info(
            "plan_collected",
            source=str(plan.source.path),
            rows=result.height,
            bytes=frame_size(result),
        )
        return result

    def compute_to_chunk_store(
        self,
        plan: QueryPlan,
        destination: str | Path,
        chunk_row_count: int | None = None,
    ) -> Dataset:
        """Evaluate a plan into a new chunked dataset without materializing it.

        Args:
            plan: Plan to evaluate
            destination: Directory of the new dataset
            chunk_row_count: Rows per output chunk (config default if omitted)

        Returns:
            The written Dataset; its metadata records the base datasets as parents

        Raises:
            ConcurrentWriteError: If another writer holds the destination
            DatasetExistsError: If the destination already holds a dataset
            ChunkIOError: On read or write failure
        """
        store: ChunkStore = self.store or plan.source.store
        parents: list[str] = []
        for dataset in plan.datasets:
            if str(dataset.path) not in parents:
                parents.append(str(dataset.path))

        with store.writer(
            destination,
            schema=plan.schema,
            chunk_row_count=chunk_row_count,
            parents=parents,
        ) as writer:
            for frame in self.iter_frames(plan):
                writer.write(frame)
            index = writer.finish()
        return Dataset(path=writer.destination, index=index, store=store)

    def write_csv(
        self,
        plan: QueryPlan,
        path: str | Path,
        separator: str = ",",
    ) -> int:
        """Stream a plan's result into a delimited file with one header row.

        A failed evaluation removes the partial file.

        Returns:
            Number of data rows written

        Raises:
            ChunkIOError: If the file cannot be written or a chunk cannot be read
        """
        output_path = Path(path)
        rows = 0
        try:
            with output_path.open("wb") as handle:
                for frame in self.iter_frames(plan):
                    frame.write_csv(handle, separator=separator, include_header=rows == 0)
                    rows += frame.height
                if rows == 0:
                    pl.DataFrame(schema=plan.schema.polars_schema()).write_csv(
                        handle, separator=separator, include_header=True
                    )
        except OSError as error:
            output_path.unlink(missing_ok=True)
            msg = f"Failed to write '{output_path}': {error}"
            raise ChunkIOError(msg) from error
        except BaseException:
            output_path.unlink(missing_ok=True)
            raise
        _LOGGER.info("csv_written", path=str(output_path), rows=rows)
        return rows


# -----------------------------
# Frame helpers
# -----------------------------


def _filter_frames(
    frames: Iterable[pl.DataFrame], predicate: Predicate
) -> Iterator[pl.DataFrame]:
    expr = predicate.to_polars()
    for frame in frames:
        filtered = frame.filter(expr)
        if filtered.height:
            yield filtered


def _select_frames(
    frames: Iterable[pl.DataFrame], columns: tuple[str, ...]
) -> Iterator[pl.DataFrame]:
    for frame in frames:
        yield frame.select(columns)


def _accumulate(
    frames: Iterator[pl.DataFrame],
    budget: int,
    what: str,
    prepare: Callable[[pl.DataFrame], pl.DataFrame] | None = None,
) -> list[pl.DataFrame]:
    """Pull every frame, failing as soon as their total size exceeds budget.

    Frames are measured after prepare, as they are held.
    """
    parts: list[pl.DataFrame] = []
    size = 0
    try:
        for frame in frames:
            if prepare is not None:
                frame = prepare(frame)
            size += frame_size(frame)
            if size > budget:
                msg = (
                    f"{what} exceeds the memory budget "
                    f"({size:,} > {budget:,} bytes)"
                )
                raise MemoryBudgetExceededError(msg, budget=budget, observed=size)
            parts.append(frame)
    finally:
        close = getattr(frames, "close", None)
        if close is not None:
            close()
    return parts


def _prepare_left(frame: pl.DataFrame, step: JoinStep) -> pl.DataFrame:
    return frame.with_columns(
        pl.col(step.on).cast(step.key_dtype).alias(JOIN_KEY_COLUMN)
    )


def _prepare_right(frame: pl.DataFrame, step: JoinStep) -> pl.DataFrame:
    return frame.select(
        pl.col(step.on).cast(step.key_dtype).alias(JOIN_KEY_COLUMN),
        *(pl.col(name).alias(output) for name, output in step.right_names),
    )


def _hash_join(left: pl.DataFrame, right: pl.DataFrame, probe: str) -> pl.DataFrame:
    """Inner-join on the prepared key, ordered by probe row then build row."""
    left_index, right_index = (
        (PROBE_INDEX_COLUMN, BUILD_INDEX_COLUMN)
        if probe == "left"
        else (BUILD_INDEX_COLUMN, PROBE_INDEX_COLUMN)
    )
    joined = left.with_row_index(left_index).join(
        right.with_row_index(right_index), on=JOIN_KEY_COLUMN, how="inner"
    )
    return joined.sort([PROBE_INDEX_COLUMN, BUILD_INDEX_COLUMN]).drop(
        JOIN_KEY_COLUMN, PROBE_INDEX_COLUMN, BUILD_INDEX_COLUMN
    )
