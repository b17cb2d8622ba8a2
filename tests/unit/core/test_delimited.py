"""Unit tests for the delimited record reader."""

from __future__ import annotations

import io

import pytest

from chunkdm.core.delimited import CsvOptions, DelimitedReader
from chunkdm.core.errors import ParseError, ValidationError


def _read(text: str, options: CsvOptions | None = None) -> tuple[tuple[str, ...], list]:
    reader = DelimitedReader(io.StringIO(text), options or CsvOptions())
    return reader.columns, list(reader)


def test_reader_reports_header_and_line_numbers() -> None:
    """Records should carry the physical line they end on."""
    columns, records = _read("a,b\n1,2\n\n3,4\n")

    assert columns == ("a", "b")
    assert records == [(2, ["1", "2"]), (4, ["3", "4"])]


def test_reader_handles_quoted_multiline_field() -> None:
    """Quoted fields may span lines; the record ends on the later line."""
    _, records = _read('a,b\n"x\ny",2\n3,4\n')

    assert records[0] == (3, ["x\ny", "2"])
    assert records[1][0] == 4


def test_reader_without_header_names_columns() -> None:
    """Headerless input should get positional column names."""
    columns, records = _read("1,2\n3,4\n", CsvOptions(has_header=False))

    assert columns == ("column_1", "column_2")
    assert len(records) == 2


def test_reader_uses_custom_delimiter() -> None:
    """The configured delimiter should split fields."""
    columns, records = _read("a;b\n1;2\n", CsvOptions(delimiter=";"))

    assert columns == ("a", "b")
    assert records == [(2, ["1", "2"])]


def test_wrong_field_count_raises_parse_error_with_line() -> None:
    """A short record should fail with its line number."""
    with pytest.raises(ParseError) as excinfo:
        _read("a,b\n1,2\n3\n")

    assert excinfo.value.line_number == 3


def test_empty_input_with_header_raises_parse_error() -> None:
    """An input without a header row cannot be ingested."""
    with pytest.raises(ParseError):
        _read("")


def test_multi_character_delimiter_is_rejected() -> None:
    """Delimiters must be exactly one character."""
    with pytest.raises(ValidationError):
        CsvOptions(delimiter="||")
