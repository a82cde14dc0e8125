"""Row formatters for table data blocks.

Rows arrive as sequences of server-rendered text values (``col::text``) or
``None`` for NULL. A formatter turns them into a bulk ``COPY ... FROM stdin``
block or into ``INSERT`` statements and writes the result straight to its
output, so nothing beyond the current batch is held in memory.
"""

import csv
import io
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol
from xml.sax.saxutils import escape, quoteattr

Row = Sequence[str | None]

COPY_ESCAPES = str.maketrans(
    {
        "\\": "\\\\",
        "\n": "\\n",
        "\r": "\\r",
        "\t": "\\t",
        "\b": "\\b",
        "\f": "\\f",
        "\v": "\\v",
    }
)


class TextOutput(Protocol):
    def write(self, text: str) -> object:
        ...


class RowFormatter(Protocol):
    """Renders one table's rows. ``write_row`` returns the characters written."""

    def write_header(self, metadata: dict) -> None:
        ...

    def write_row(self, row: Row) -> int:
        ...

    def write_footer(self) -> None:
        ...


def copy_escape(value: str | None) -> str:
    """Render one value in COPY text format."""
    if value is None:
        return "\\N"
    return value.translate(COPY_ESCAPES)


def sql_literal(value: str | None) -> str:
    if value is None:
        return "NULL"
    return "'" + value.replace("'", "''") + "'"


def _column_list(columns: list[str]) -> str:
    return ", ".join('"' + c.replace('"', '""') + '"' for c in columns)


class CopyFormatter:
    """``COPY table (cols) FROM stdin;`` followed by tab-separated rows and ``\\.``."""

    def __init__(self, out: TextOutput):
        self._out = out

    def write_header(self, metadata: dict) -> None:
        cols = _column_list(metadata["columns"])
        self._out.write(f"COPY {metadata['table']} ({cols}) FROM stdin;\n")

    def write_row(self, row: Row) -> int:
        line = "\t".join(copy_escape(v) for v in row) + "\n"
        self._out.write(line)
        return len(line)

    def write_footer(self) -> None:
        self._out.write("\\.\n\n")


class InsertFormatter:
    """``INSERT`` statements, either one per row or batched multi-row.

    Args:
        out: Text destination.
        batch_size: Rows per multi-row ``INSERT``.
        mode: ``"multi"`` or ``"single"``.
    """

    def __init__(self, out: TextOutput, batch_size: int = 100, mode: str = "multi"):
        self._out = out
        self._batch_size = max(1, batch_size)
        self._mode = mode
        self._prefix = ""
        self._pending: list[str] = []

    def write_header(self, metadata: dict) -> None:
        cols = _column_list(metadata["columns"])
        self._prefix = f"INSERT INTO {metadata['table']} ({cols}) VALUES"
        self._pending = []

    def write_row(self, row: Row) -> int:
        values = "(" + ", ".join(sql_literal(v) for v in row) + ")"
        if self._mode == "single":
            self._out.write(f"{self._prefix} {values};\n")
        else:
            self._pending.append(values)
            if len(self._pending) >= self._batch_size:
                self._flush()
        return len(values)

    def write_footer(self) -> None:
        self._flush()
        self._out.write("\n")

    def _flush(self) -> None:
        if not self._pending:
            return
        self._out.write(f"{self._prefix}\n" + ",\n".join(self._pending) + ";\n\n")
        self._pending = []


# ============================================================================
# Data-only formats (re-importable through the chunked importer)
# ============================================================================

JSON_INTEGER_TYPES = frozenset({"smallint", "integer", "bigint", "int2", "int4", "int8"})
JSON_FLOAT_TYPES = frozenset({"real", "double precision", "float4", "float8"})
JSON_RAW_TYPES = frozenset({"json", "jsonb"})
NON_FINITE = frozenset({"NaN", "Infinity", "-Infinity"})
# Carriage returns would be normalized away by XML parsers.
XML_TEXT_ENTITIES = {"\r": "&#13;"}


@dataclass(frozen=True)
class DataFormat:
    content_type: str
    extension: str


DATA_FORMATS = {
    "sql": DataFormat("application/sql", "sql"),
    "csv": DataFormat("text/csv; charset=utf-8", "csv"),
    "tsv": DataFormat("text/tab-separated-values; charset=utf-8", "tsv"),
    "json": DataFormat("application/json; charset=utf-8", "json"),
    "xml": DataFormat("text/xml; charset=utf-8", "xml"),
}


def _base_type(data_type: str) -> str:
    """``numeric(10,2)`` -> ``numeric``, ``character varying(20)`` -> ``character varying``."""
    return data_type.split("(", 1)[0].strip().lower()


class CsvFormatter:
    """Delimited text with a header line of column names.

    NULL is written as ``null_text`` (empty by default); values containing
    the delimiter, a quote or a line break are double-quoted.
    """

    def __init__(
        self,
        out: TextOutput,
        delimiter: str = ",",
        null_text: str = "",
        header: bool = True,
        line_ending: str = "\r\n",
    ):
        self._out = out
        self._header = header
        self._null_text = null_text
        self._buffer = io.StringIO()
        self._writer = csv.writer(self._buffer, delimiter=delimiter, lineterminator=line_ending)

    def write_header(self, metadata: dict) -> None:
        if self._header:
            self._writer.writerow(metadata["columns"])
            self._flush()

    def write_row(self, row: Row) -> int:
        self._writer.writerow(self._null_text if v is None else v for v in row)
        return self._flush()

    def _flush(self) -> int:
        text = self._buffer.getvalue()
        self._buffer.seek(0)
        self._buffer.truncate()
        self._out.write(text)
        return len(text)

    def write_footer(self) -> None:
        pass


class JsonFormatter:
    """A JSON array with one object per row, keyed by column name.

    Integer, float and boolean columns become JSON numbers and booleans
    (``NaN`` and ``Infinity`` stay strings). ``json`` and ``jsonb`` values are
    embedded as-is. Everything else, ``numeric`` included, is a string so
    that no digits are lost on re-import.
    """

    def __init__(self, out: TextOutput):
        self._out = out
        self._keys: list[str] = []
        self._types: list[str] = []
        self._separator = ""

    def write_header(self, metadata: dict) -> None:
        self._keys = [json.dumps(name, ensure_ascii=False) for name in metadata["columns"]]
        self._types = [_base_type(t) for t in metadata.get("types") or []]
        self._types += [""] * (len(self._keys) - len(self._types))
        self._separator = ""
        self._out.write("[\n")

    def write_row(self, row: Row) -> int:
        fields = ", ".join(
            f"{key}: {self._value(value, data_type)}"
            for key, value, data_type in zip(self._keys, row, self._types)
        )
        text = f"{self._separator}  {{{fields}}}"
        self._out.write(text)
        self._separator = ",\n"
        return len(text)

    def write_footer(self) -> None:
        self._out.write("\n]\n" if self._separator else "]\n")

    @staticmethod
    def _value(value: str | None, data_type: str) -> str:
        if value is None:
            return "null"
        if data_type in JSON_INTEGER_TYPES:
            return value
        if data_type in JSON_FLOAT_TYPES and value not in NON_FINITE:
            return value
        if data_type in ("boolean", "bool"):
            return "true" if value in ("t", "true") else "false"
        if data_type in JSON_RAW_TYPES:
            return value
        return json.dumps(value, ensure_ascii=False)


class XmlFormatter:
    """``<data><header/><records><row/></records></data>``.

    Each row holds one ``<col name="..">`` per column; NULL is
    ``<col name=".." isNull="true" />``.
    """

    def __init__(self, out: TextOutput):
        self._out = out
        self._names: list[str] = []

    def write_header(self, metadata: dict) -> None:
        columns = metadata["columns"]
        types = list(metadata.get("types") or [])
        types += [""] * (len(columns) - len(types))
        self._names = [quoteattr(name) for name in columns]

        self._out.write('<?xml version="1.0" encoding="UTF-8"?>\n<data>\n<header>\n')
        for name, data_type in zip(self._names, types):
            self._out.write(f"\t<col name={name} type={quoteattr(data_type)} />\n")
        self._out.write("</header>\n<records>\n")

    def write_row(self, row: Row) -> int:
        parts = ["\t<row>\n"]
        for name, value in zip(self._names, row):
            if value is None:
                parts.append(f'\t\t<col name={name} isNull="true" />\n')
            else:
                parts.append(f"\t\t<col name={name}>{escape(value, XML_TEXT_ENTITIES)}</col>\n")
        parts.append("\t</row>\n")
        text = "".join(parts)
        self._out.write(text)
        return len(text)

    def write_footer(self) -> None:
        self._out.write("</records>\n</data>\n")


def make_formatter(
    out: TextOutput,
    style: str,
    batch_size: int = 100,
    insert_mode: str = "multi",
    null_text: str = "",
) -> RowFormatter:
    """Formatter for ``style``: ``copy`` / ``insert`` inside a SQL dump, or a data format.

    Raises:
        ValueError: If ``style`` is unknown.
    """
    if style == "copy":
        return CopyFormatter(out)
    if style == "insert":
        return InsertFormatter(out, batch_size=batch_size, mode=insert_mode)
    if style == "csv":
        return CsvFormatter(out, ",", null_text)
    if style == "tsv":
        return CsvFormatter(out, "\t", null_text)
    if style == "json":
        return JsonFormatter(out)
    if style == "xml":
        return XmlFormatter(out)
    raise ValueError(f"Unknown row format: {style}")
