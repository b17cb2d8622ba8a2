# Standard library
import csv
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

# Local imports
from chunkdm.core.errors import ChunkIOError, ParseError, ValidationError
from chunkdm.core.models import ColumnType

# -----------------------------
# Options
# -----------------------------

DEFAULT_NULL_VALUES = ("", "NA")


@dataclass(frozen=True)
class CsvOptions:
    """Delimited-file ingestion options.

    Attributes:
        delimiter: Single-character field separator
        has_header: Whether the first record holds column names
        column_names: Explicit column names (override the header if present)
        column_types: Explicit types by column name; other columns are inferred
        null_values: Raw values read as null
        quote_char: Quote character
        encoding: Text encoding used when the source is a path
    """

    delimiter: str = ","
    has_header: bool = True
    column_names: tuple[str, ...] | None = None
    column_types: Mapping[str, ColumnType | str] | None = None
    null_values: tuple[str, ...] = DEFAULT_NULL_VALUES
    quote_char: str = '"'
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        if len(self.delimiter) != 1:
            msg = f"Delimiter must be a single character, got {self.delimiter!r}"
            raise ValidationError(msg)
        if len(self.quote_char) != 1:
            msg = f"Quote character must be a single character, got {self.quote_char!r}"
            raise ValidationError(msg)


# -----------------------------
# Source handling
# -----------------------------


@contextmanager
def open_source(source: str | Path | TextIO, encoding: str) -> Iterator[TextIO]:
    """Yield a text stream for a path or pass an open stream through.

    Streams passed in are not closed.

    Raises:
        ChunkIOError: If the path cannot be opened
    """
    if isinstance(source, (str, Path)):
        try:
            handle = Path(source).open(encoding=encoding, newline="")
        except OSError as error:
            msg = f"Cannot open input file '{source}': {error}"
            raise ChunkIOError(msg) from error
        with handle:
            yield handle
    else:
        yield source


def describe_source(source: str | Path | TextIO) -> str | None:
    """Short name recorded in metadata for an ingestion source."""
    if isinstance(source, (str, Path)):
        return Path(source).name
    return getattr(source, "name", None)


# -----------------------------
# Delimited Reader
# -----------------------------


class DelimitedReader:
    """Record iterator over a delimited text stream.

    Yields ``(line_number, fields)`` pairs, where line_number is the 1-based
    physical line on which the record ends. Blank lines are skipped; records
    with the wrong field count raise ParseError.
    """

    def __init__(self, stream: TextIO, options: CsvOptions) -> None:
        self._options = options
        self._reader = csv.reader(
            stream,
            delimiter=options.delimiter,
            quotechar=options.quote_char,
            strict=True,
        )
        self._pending: tuple[int, list[str]] | None = None
        self.columns: tuple[str, ...] = self._read_columns()

    @property
    def width(self) -> int:
        return len(self.columns)

    def _next_record(self) -> tuple[int, list[str]] | None:
        try:
            for fields in self._reader:
                if fields:
                    return self._reader.line_num, fields
        except csv.Error as error:
            msg = f"Malformed record: {error}"
            raise ParseError(msg, line_number=self._reader.line_num + 1) from error
        except UnicodeDecodeError as error:
            msg = f"Undecodable input ({error.encoding}): {error.reason}"
            raise ParseError(msg, line_number=self._reader.line_num + 1) from error
        return None

    def _read_columns(self) -> tuple[str, ...]:
        explicit = self._options.column_names
        if self._options.has_header:
            header = self._next_record()
            if header is None:
                if explicit is not None:
                    return tuple(explicit)
                msg = "Input is empty; expected a header row"
                raise ParseError(msg, line_number=1)
            line_number, names = header
            if explicit is not None:
                if len(explicit) != len(names):
                    msg = (
                        f"Header has {len(names)} fields but "
                        f"{len(explicit)} column names were given"
                    )
                    raise ParseError(msg, line_number=line_number)
                return tuple(explicit)
            return tuple(name.strip() for name in names)

        if explicit is not None:
            return tuple(explicit)
        # No header and no names: width comes from the first record
        self._pending = self._next_record()
        if self._pending is None:
            return ()
        return tuple(f"column_{i + 1}" for i in range(len(self._pending[1])))

    def __iter__(self) -> Iterator[tuple[int, list[str]]]:
        if self._pending is not None:
            record, self._pending = self._pending, None
            yield self._checked(record)
        while True:
            next_record = self._next_record()
            if next_record is None:
                return
            yield self._checked(next_record)

    def _checked(self, record: tuple[int, list[str]]) -> tuple[int, list[str]]:
        line_number, fields = record
        if len(fields) != self.width:
            msg = f"Expected {self.width} fields, found {len(fields)}"
            raise ParseError(msg, line_number=line_number)
        return record
