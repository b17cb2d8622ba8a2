# Standard library
import json
import os
import shutil
import threading
from collections.abc import Iterator, Sequence
from itertools import chain, islice
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any, TextIO

# Third-party
import polars as pl
import portalocker

# Local imports
from chunkdm.core.config import EngineConfig
from chunkdm.core.delimited import (
    CsvOptions,
    DelimitedReader,
    describe_source,
    open_source,
)
from chunkdm.core.errors import (
    ChunkIOError,
    ConcurrentWriteError,
    CorruptMetadataError,
    DatasetExistsError,
    ParseError,
    UnknownColumnError,
    ValidationError,
)
from chunkdm.core.logging_config import get_logger
from chunkdm.core.metadata import MetadataIndex
from chunkdm.core.models import ChunkInfo, ColumnSpec, ColumnType, Schema
from chunkdm.core.storage import chunk_file_name, get_lock_path, get_metadata_path
from chunkdm.core.utils import coerce_value, infer_column_types
from chunkdm.core.validation import validate_chunk_row_count, validate_column_names
from chunkdm.datasets.dataset import Dataset

if TYPE_CHECKING:
    from chunkdm.query.expressions import Predicate

_LOGGER = get_logger(__name__)

# Destinations with an active writer in this process; the lock file covers
# other processes.
_ACTIVE_WRITERS: set[Path] = set()
_ACTIVE_WRITERS_LOCK = threading.Lock()

# -----------------------------
# Chunk Writer
# -----------------------------


class ChunkWriter:
    """Exclusive writer that re-chunks appended frames into chunk files.

    Used as a context manager: entering takes the destination's writer lock,
    leaving releases it. ``finish()`` writes the metadata file, which is the
    commit point; a writer left without finishing leaves chunk files but no
    metadata.
    """

    def __init__(
        self,
        destination: Path,
        config: EngineConfig,
        chunk_row_count: int,
        schema: Schema | None = None,
        parents: Sequence[str] = (),
        source: str | None = None,
    ) -> None:
        validate_chunk_row_count(chunk_row_count)
        self.destination = destination.expanduser().resolve()
        self.chunk_row_count = chunk_row_count
        self._config = config
        self._parents = tuple(parents)
        self._source = source
        self._schema: Schema | None = None
        self._pending: list[pl.DataFrame] = []
        self._pending_rows = 0
        self._chunks: list[ChunkInfo] = []
        self._lock: portalocker.Lock | None = None
        self._registered = False
        self._finished = False
        if schema is not None:
            self.start(schema)

    # -----------------------------
    # Locking
    # -----------------------------

    def __enter__(self) -> "ChunkWriter":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is not None:
            _LOGGER.warning(
                "chunk_write_aborted",
                destination=str(self.destination),
                chunks_written=len(self._chunks),
                error=str(exc),
            )
        self.release()

    def acquire(self) -> None:
        """Take exclusive ownership of the destination.

        Raises:
            ConcurrentWriteError: If another writer is active on the destination
            DatasetExistsError: If the destination already holds a dataset
            ChunkIOError: If the destination cannot be created
        """
        with _ACTIVE_WRITERS_LOCK:
            if self.destination in _ACTIVE_WRITERS:
                msg = f"Another writer is active on '{self.destination}'"
                raise ConcurrentWriteError(msg)
            _ACTIVE_WRITERS.add(self.destination)
            self._registered = True

        try:
            self.destination.mkdir(parents=True, exist_ok=True)
            lock = portalocker.Lock(
                str(get_lock_path(self.destination)),
                mode="a",
                timeout=0,
                fail_when_locked=True,
                flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
            )
            lock.acquire()
            self._lock = lock
        except portalocker.exceptions.LockException as error:
            self.release()
            msg = f"Another process is writing to '{self.destination}'"
            raise ConcurrentWriteError(msg) from error
        except OSError as error:
            self.release()
            msg = f"Cannot prepare destination '{self.destination}': {error}"
            raise ChunkIOError(msg) from error

        if get_metadata_path(self.destination).exists():
            self.release()
            msg = f"Destination '{self.destination}' already contains a dataset"
            raise DatasetExistsError(msg)

    def release(self) -> None:
        """Release the destination; safe to call more than once."""
        if self._lock is not None:
            self._lock.release()
            self._lock = None
        if self._registered:
            with _ACTIVE_WRITERS_LOCK:
                _ACTIVE_WRITERS.discard(self.destination)
            self._registered = False

    # -----------------------------
    # Writing
    # -----------------------------

    def start(self, schema: Schema) -> None:
        """Fix the schema of written chunks; physical names become logical names."""
        validate_column_names(schema.names)
        self._schema = schema.with_fresh_sources()

    @property
    def rows_written(self) -> int:
        return sum(chunk.row_count for chunk in self._chunks)

    def write(self, frame: pl.DataFrame) -> None:
        """Append rows, flushing a chunk file each time chunk_row_count rows are buffered.

        Raises:
            ChunkIOError: If a chunk file cannot be written
        """
        if self._schema is None:
            msg = "ChunkWriter.start() must be called before write()"
            raise RuntimeError(msg)
        if self._lock is None:
            msg = "ChunkWriter must be acquired before write()"
            raise RuntimeError(msg)
        if frame.height == 0:
            return
        storage = self._schema.polars_schema()
        self._pending.append(
            frame.select([pl.col(name).cast(dtype) for name, dtype in storage.items()])
        )
        self._pending_rows += frame.height
        while self._pending_rows >= self.chunk_row_count:
            combined = pl.concat(self._pending, how="vertical")
            self._write_chunk(combined.slice(0, self.chunk_row_count))
            rest = combined.slice(self.chunk_row_count)
            self._pending = [rest] if rest.height else []
            self._pending_rows = rest.height

    def finish(self) -> MetadataIndex:
        """Flush the last partial chunk and commit the metadata file.

        Returns:
            Index of the written dataset

        Raises:
            ChunkIOError: If the metadata or a chunk file cannot be written
        """
        if self._schema is None:
            msg = "ChunkWriter.start() must be called before finish()"
            raise RuntimeError(msg)
        if self._finished:
            msg = "ChunkWriter.finish() was already called"
            raise RuntimeError(msg)
        if self._pending_rows:
            self._write_chunk(pl.concat(self._pending, how="vertical"))
            self._pending = []
            self._pending_rows = 0

        index = MetadataIndex(
            schema=self._schema,
            chunks=tuple(self._chunks),
            row_count=self.rows_written,
            chunk_row_count=self.chunk_row_count,
            parents=self._parents,
            source=self._source,
        )
        metadata_path = get_metadata_path(self.destination)
        staging_path = metadata_path.with_suffix(".json.tmp")
        try:
            staging_path.write_text(json.dumps(index.to_dict(), indent=2), encoding="utf-8")
            os.replace(staging_path, metadata_path)
        except OSError as error:
            msg = f"Failed to write metadata '{metadata_path}': {error}"
            raise ChunkIOError(msg) from error
        self._finished = True
        _LOGGER.info(
            "dataset_created",
            path=str(self.destination),
            rows=index.row_count,
            chunks=len(index.chunks),
            columns=len(index.schema),
        )
        return index

    def _write_chunk(self, frame: pl.DataFrame) -> None:
        chunk_id = len(self._chunks)
        file_name = chunk_file_name(chunk_id)
        path = self.destination / file_name
        try:
            frame.write_parquet(path, compression=self._config.compression)
        except (OSError, pl.exceptions.PolarsError) as error:
            msg = f"Failed to write chunk {chunk_id} to '{path}': {error}"
            raise ChunkIOError(msg) from error
        self._chunks.append(ChunkInfo(chunk_id, file_name, frame.height))
        _LOGGER.debug("chunk_written", path=str(path), rows=frame.height)


# -----------------------------
# Chunk rows
# -----------------------------


class ChunkRows:
    """Lazy, restartable sequence of rows of one chunk.

    Nothing is read until iteration starts; every iteration re-reads the
    chunk file and yields identical rows as dicts keyed by column name.
    """

    def __init__(
        self, store: "ChunkStore", dataset: Dataset, chunk_id: int, columns: tuple[str, ...]
    ) -> None:
        self._store = store
        self._dataset = dataset
        self._info = dataset.index.chunk(chunk_id)
        self.columns = columns

    def __iter__(self) -> Iterator[dict[str, Any]]:
        frame = self._store.scan_chunk(self._dataset, self._info.chunk_id, self.columns)
        yield from frame.iter_rows(named=True)

    def __len__(self) -> int:
        return self._info.row_count

    def __repr__(self) -> str:
        return f"ChunkRows(chunk={self._info.chunk_id}, rows={self._info.row_count})"


# -----------------------------
# Chunk Store
# -----------------------------


class ChunkStore:
    """Partitioned on-disk persistence of datasets as parquet chunk files."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config: EngineConfig = config or EngineConfig()

    # -----------------------------
    # Creation
    # -----------------------------

    def writer(
        self,
        destination: str | Path,
        schema: Schema | None = None,
        chunk_row_count: int | None = None,
        parents: Sequence[str] = (),
        source: str | None = None,
    ) -> ChunkWriter:
        """Create an exclusive chunk writer for a new dataset directory."""
        return ChunkWriter(
            Path(destination),
            self.config,
            self.config.chunk_row_count if chunk_row_count is None else chunk_row_count,
            schema=schema,
            parents=parents,
            source=source,
        )

    def create(
        self,
        source: str | Path | TextIO,
        destination: str | Path,
        chunk_row_count: int | None = None,
        options: CsvOptions | None = None,
    ) -> Dataset:
        """Ingest a delimited file into a new chunked dataset.

        Args:
            source: Path of the input file, or an open text stream
            destination: Dataset directory to create
            chunk_row_count: Maximum rows per chunk (config default if omitted)
            options: Parsing options

        Returns:
            The written Dataset

        Raises:
            ParseError: On a malformed record, with its source line number
            ChunkIOError: On read or write failure; partial chunks are left
                for the caller to discard()
            ConcurrentWriteError: If another writer holds the destination
            DatasetExistsError: If the destination already holds a dataset
        """
        options = options or CsvOptions()
        with self.writer(
            destination, chunk_row_count=chunk_row_count, source=describe_source(source)
        ) as writer, open_source(source, options.encoding) as stream:
            reader = DelimitedReader(stream, options)
            records = iter(reader)
            sample = list(islice(records, self.config.infer_schema_rows))
            schema = self._resolve_schema(reader.columns, sample, options)
            writer.start(schema)

            buffer = _ColumnBuffer(schema, options.null_values)
            for line_number, fields in chain(sample, records):
                buffer.append(line_number, fields)
                if len(buffer) >= writer.chunk_row_count:
                    writer.write(buffer.drain())
            writer.write(buffer.drain())
            index = writer.finish()
        return Dataset(path=writer.destination, index=index, store=self)

    def _resolve_schema(
        self,
        columns: tuple[str, ...],
        sample: list[tuple[int, list[str]]],
        options: CsvOptions,
    ) -> Schema:
        validate_column_names(columns)
        explicit: dict[str, ColumnType] = {}
        for name, col_type in (options.column_types or {}).items():
            if name not in columns:
                msg = f"Type given for unknown column '{name}'"
                raise UnknownColumnError(msg)
            try:
                explicit[name] = ColumnType.parse(col_type)
            except ValueError as error:
                raise ValidationError(str(error)) from error
        inferred = infer_column_types(
            (fields for _, fields in sample), len(columns), options.null_values
        )
        return Schema(
            tuple(
                ColumnSpec(name, explicit.get(name, inferred[position]), name)
                for position, name in enumerate(columns)
            )
        )

    # -----------------------------
    # Reopening
    # -----------------------------

    def open_existing(self, path: str | Path) -> Dataset:
        """Reload a dataset's index without reading row data.

        Args:
            path: Dataset directory

        Returns:
            Dataset backed by the existing chunk files

        Raises:
            CorruptMetadataError: If the metadata file is missing, invalid, or
                inconsistent with the chunk files on disk
        """
        dataset_path = Path(path).expanduser().resolve()
        metadata_path = get_metadata_path(dataset_path)
        if not metadata_path.is_file():
            msg = f"No metadata file at '{metadata_path}'"
            raise CorruptMetadataError(msg)
        try:
            payload = json.loads(metadata_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as error:
            msg = f"Metadata file '{metadata_path}' is not valid JSON: {error}"
            raise CorruptMetadataError(msg) from error
        except OSError as error:
            msg = f"Failed to read metadata '{metadata_path}': {error}"
            raise ChunkIOError(msg) from error

        index = MetadataIndex.from_dict(payload)
        if self.config.verify_chunks:
            self._verify_chunks(dataset_path, index)
        _LOGGER.info(
            "dataset_opened",
            path=str(dataset_path),
            rows=index.row_count,
            chunks=len(index.chunks),
        )
        return Dataset(path=dataset_path, index=index, store=self)

    def _verify_chunks(self, dataset_path: Path, index: MetadataIndex) -> None:
        sources = {spec.source for spec in index.schema.columns}
        chunk_ids = [chunk.chunk_id for chunk in index.chunks]
        if len(set(chunk_ids)) != len(chunk_ids):
            msg = f"Duplicate chunk ids in '{dataset_path}'"
            raise CorruptMetadataError(msg)
        for chunk in index.chunks:
            chunk_path = dataset_path / chunk.file_name
            if not chunk_path.is_file():
                msg = f"Chunk {chunk.chunk_id} file '{chunk.file_name}' is missing"
                raise CorruptMetadataError(msg)
            try:
                scan = pl.scan_parquet(chunk_path)
                actual_rows = scan.select(pl.len()).collect().item()
                physical = set(scan.collect_schema().names())
            except (OSError, pl.exceptions.PolarsError) as error:
                msg = f"Chunk {chunk.chunk_id} file '{chunk.file_name}' is unreadable: {error}"
                raise CorruptMetadataError(msg) from error
            if actual_rows != chunk.row_count:
                msg = (
                    f"Chunk {chunk.chunk_id} holds {actual_rows} rows but the "
                    f"index records {chunk.row_count}"
                )
                raise CorruptMetadataError(msg)
            missing = sources - physical
            if missing:
                msg = (
                    f"Chunk {chunk.chunk_id} lacks columns: "
                    f"{', '.join(sorted(missing))}"
                )
                raise CorruptMetadataError(msg)

    # -----------------------------
    # Reading
    # -----------------------------

    def read_chunk(
        self, dataset: Dataset, chunk_id: int, columns: Sequence[str] | None = None
    ) -> ChunkRows:
        """Lazy rows of one chunk restricted to the requested columns.

        Raises:
            IndexError: If the chunk does not exist
            UnknownColumnError: If a column is not in the dataset schema
        """
        names = tuple(columns) if columns is not None else dataset.schema.names
        dataset.schema.select(names)
        return ChunkRows(self, dataset, chunk_id, names)

    def scan_chunk(
        self,
        dataset: Dataset,
        chunk_id: int,
        columns: Sequence[str] | None = None,
        predicate: "Predicate | None" = None,
    ) -> pl.DataFrame:
        """Read one chunk as a frame with projection and filter pushed into the scan.

        Raises:
            ChunkIOError: If the chunk file cannot be read
        """
        info = dataset.index.chunk(chunk_id)
        names = tuple(columns) if columns is not None else dataset.schema.names
        needed = list(names)
        if predicate is not None:
            needed.extend(
                name for name in dataset.schema.names
                if name in predicate.columns() and name not in names
            )
        specs = [dataset.schema.spec(name) for name in needed]
        try:
            lazy = pl.scan_parquet(dataset.path / info.file_name).select(
                [pl.col(spec.source).alias(spec.name) for spec in specs]
            )
            if predicate is not None:
                lazy = lazy.filter(predicate.to_polars()).select(names)
            return lazy.collect()
        except (OSError, pl.exceptions.ComputeError) as error:
            msg = f"Failed to read chunk {chunk_id} of '{dataset.path}': {error}"
            raise ChunkIOError(msg) from error

    # -----------------------------
    # Removal
    # -----------------------------

    def discard(self, path: str | Path) -> None:
        """Delete a dataset directory, complete or partially written.

        Raises:
            ConcurrentWriteError: If a writer in this process is still active
            ChunkIOError: If removal fails
        """
        dataset_path = Path(path).expanduser().resolve()
        with _ACTIVE_WRITERS_LOCK:
            if dataset_path in _ACTIVE_WRITERS:
                msg = f"Cannot discard '{dataset_path}' while it is being written"
                raise ConcurrentWriteError(msg)
        if not dataset_path.exists():
            return
        try:
            shutil.rmtree(dataset_path)
        except OSError as error:
            msg = f"Failed to discard '{dataset_path}': {error}"
            raise ChunkIOError(msg) from error
        _LOGGER.info("dataset_discarded", path=str(dataset_path))


# -----------------------------
# Ingestion buffer
# -----------------------------


class _ColumnBuffer:
    """Column-wise buffer of coerced values for one pending chunk."""

    def __init__(self, schema: Schema, null_values: Sequence[str]) -> None:
        self._schema = schema
        self._null_values = frozenset(null_values)
        self._values: list[list[Any]] = [[] for _ in schema.columns]

    def __len__(self) -> int:
        return len(self._values[0]) if self._values else 0

    def append(self, line_number: int, fields: list[str]) -> None:
        """Coerce and buffer one record.

        Raises:
            ParseError: If a value does not match its column type
        """
        for position, (spec, raw) in enumerate(zip(self._schema.columns, fields)):
            try:
                value = coerce_value(raw, spec.type, self._null_values)
            except ValueError as error:
                # Roll back values already appended for this record
                for earlier in self._values[:position]:
                    earlier.pop()
                msg = f"Column '{spec.name}' ({spec.type.value}): {error}"
                raise ParseError(
                    msg, line_number=line_number, column=spec.name, value=raw
                ) from error
            self._values[position].append(value)

    def drain(self) -> pl.DataFrame:
        """Return buffered rows as a typed frame and reset the buffer."""
        frame = pl.DataFrame(
            {spec.name: values for spec, values in zip(self._schema.columns, self._values)},
            schema=self._schema.polars_schema(),
        )
        self._values = [[] for _ in self._schema.columns]
        return frame
