"""Streaming record parsers for CSV/TSV, JSON and XML uploads.

A parser gets the decoded buffer (previous remainder plus the new chunk)
and reports how many characters form complete records.  Everything past
``consumed`` is the remainder the client sends again with the next chunk.
Header rows and the JSON array wrapper are tracked on the ``ImportSession``
so they survive between requests.

Usage:
    parser = make_parser(ImportFormat.CSV, use_header=True)
    result = parser.parse(text, session, final=False)
    remainder = text[result.consumed:]
"""

import csv
import io
import json
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Protocol

from pg_porter.importer.models import ImportFormat, ImportSession


@dataclass
class ParseResult:
    """Complete records found in one buffer.

    Attributes:
        rows: Records as value lists, in header order when a header is known.
        consumed: Characters of the buffer covered by ``rows`` (and skipped
            records).
        errors: Malformed records that were skipped.
        warnings: Non-fatal notes about accepted records.
    """

    rows: list[list[Any]] = field(default_factory=list)
    consumed: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class RowParser(Protocol):
    def parse(self, text: str, session: ImportSession, final: bool) -> ParseResult:
        ...


# ============================================================================
# CSV / TSV
# ============================================================================

_QUOTE_OR_NEWLINE = re.compile(r'["\n]')


def csv_record_boundary(text: str, final: bool = False) -> int:
    """Return the index just past the last complete record in ``text``.

    A newline inside double quotes belongs to the field, not the record.
    With ``final`` a quote-balanced unterminated last line counts as a record.
    """
    in_quotes = False
    end = 0
    for match in _QUOTE_OR_NEWLINE.finditer(text):
        if match.group() == '"':
            in_quotes = not in_quotes
        elif not in_quotes:
            end = match.end()
    if final and not in_quotes:
        end = len(text)
    return end


class CsvRowParser:
    def __init__(self, delimiter: str = ",", use_header: bool = False):
        self.delimiter = delimiter
        self.use_header = use_header

    def parse(self, text: str, session: ImportSession, final: bool) -> ParseResult:
        result = ParseResult(consumed=csv_record_boundary(text, final))
        block = text[: result.consumed]
        if not block:
            return result

        reader = csv.reader(io.StringIO(block, newline=""), delimiter=self.delimiter)
        try:
            for fields in reader:
                if not fields:
                    continue
                if self.use_header and not session.header_seen:
                    session.header = [name.strip() for name in fields]
                    session.header_seen = True
                    continue
                result.rows.append(fields)
        except csv.Error as e:
            result.errors.append(f"Malformed CSV near line {reader.line_num}: {e}")
        return result


# ============================================================================
# JSON (array of records or newline-delimited)
# ============================================================================


def _skip(text: str, pos: int, chars: str) -> int:
    while pos < len(text) and text[pos] in chars:
        pos += 1
    return pos


def json_value_end(text: str, start: int) -> int | None:
    """Return the index past the object/array starting at ``start``, or None if incomplete."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


class JsonRowParser:
    """Objects map by key (the first object's keys become the header); arrays map by position."""

    WHITESPACE = " \t\r\n"

    def __init__(self, use_header: bool = False):
        self.use_header = use_header

    def parse(self, text: str, session: ImportSession, final: bool) -> ParseResult:
        result = ParseResult()
        pos = _skip(text, 0, self.WHITESPACE)

        if session.json_wrapped is None:
            if pos >= len(text):
                result.consumed = pos
                return result
            if text[pos] == "[":
                after = _skip(text, pos + 1, self.WHITESPACE)
                if after >= len(text) and not final:
                    return result
                # [[1,2],[3,4]] and [{..}] are wrapped; [1,2] on its own line is an NDJSON record
                session.json_wrapped = after < len(text) and text[after] in "{[]"
            else:
                session.json_wrapped = False
            if session.json_wrapped:
                pos += 1

        separators = self.WHITESPACE + ("," if session.json_wrapped else "")
        while True:
            pos = _skip(text, pos, separators)
            if pos >= len(text):
                break
            ch = text[pos]
            if session.json_wrapped and ch == "]" and not session.json_closed:
                session.json_closed = True
                pos += 1
                continue
            if session.json_closed or ch not in "{[":
                skip_to = self._skip_invalid(text, pos, final)
                if skip_to is None:
                    break
                result.errors.append(f"Unexpected JSON content: {text[pos:skip_to].strip()[:80]}")
                pos = skip_to
                continue

            end = json_value_end(text, pos)
            if end is None:
                break
            try:
                value = json.loads(text[pos:end])
            except json.JSONDecodeError as e:
                result.errors.append(f"Invalid JSON record: {e.msg}")
            else:
                self._add(value, session, result)
            pos = end

        result.consumed = pos
        return result

    @staticmethod
    def _skip_invalid(text: str, pos: int, final: bool) -> int | None:
        newline = text.find("\n", pos)
        if newline >= 0:
            return newline + 1
        return len(text) if final else None

    def _add(self, value: Any, session: ImportSession, result: ParseResult) -> None:
        if isinstance(value, dict):
            if session.header is None:
                session.header = list(value.keys())
                session.header_seen = True
            extra = [key for key in value if key not in session.header]
            if extra:
                result.warnings.append(f"Ignoring keys not in header: {', '.join(extra)}")
            result.rows.append([value.get(name) for name in session.header])
        elif self.use_header and not session.header_seen:
            session.header = [str(name) for name in value]
            session.header_seen = True
        else:
            result.rows.append(list(value))


# ============================================================================
# XML (<data><header/><records><row/></records></data>)
# ============================================================================

_ROW_START = re.compile(r"<row[\s>/]")


class XmlRowParser:
    """Rows are ``<row><col name=".." isNull="true"/></row>`` elements.

    Column names come from the ``<header>`` block, or from the first row's
    ``name`` attributes when there is no header.
    """

    def parse(self, text: str, session: ImportSession, final: bool) -> ParseResult:
        result = ParseResult()
        pos = 0

        if not session.header_seen:
            header_start = text.find("<header")
            row = _ROW_START.search(text)
            if header_start >= 0 and (row is None or header_start < row.start()):
                header_end = text.find("</header>", header_start)
                if header_end < 0 and not final:
                    return result
                if header_end < 0:
                    result.errors.append("Unterminated <header> element")
                    result.consumed = len(text)
                    return result
                header_end += len("</header>")
                self._read_header(text[header_start:header_end], session, result)
                pos = header_end
            elif row is not None:
                session.header_seen = True

        incomplete = False
        while True:
            match = _ROW_START.search(text, pos)
            if match is None:
                break
            start = match.start()
            tag_end = text.find(">", start)
            if tag_end < 0:
                pos = start
                incomplete = True
                break
            if text[tag_end - 1] == "/":
                pos = tag_end + 1
                continue
            close = text.find("</row>", tag_end)
            if close < 0:
                pos = start
                incomplete = True
                break
            end = close + len("</row>")
            try:
                element = ET.fromstring(text[start:end])
            except ET.ParseError as e:
                result.errors.append(f"Invalid XML row: {e}")
            else:
                self._add(element, session, result)
            pos = end

        result.consumed = pos if incomplete else self._trailing_markup_end(text, pos, final)
        return result

    @staticmethod
    def _trailing_markup_end(text: str, pos: int, final: bool) -> int:
        if final:
            return len(text)
        # Keep a tag cut off by the chunk boundary, e.g. "<ro".
        lt = text.rfind("<", pos)
        if lt >= 0 and text.find(">", lt) < 0:
            return lt
        return len(text)

    @staticmethod
    def _read_header(fragment: str, session: ImportSession, result: ParseResult) -> None:
        session.header_seen = True
        try:
            element = ET.fromstring(fragment)
        except ET.ParseError as e:
            result.errors.append(f"Invalid XML header: {e}")
            return
        names = [col.get("name", "") for col in element.iter("col")]
        if names and all(names):
            session.header = names

    @staticmethod
    def _add(element: ET.Element, session: ImportSession, result: ParseResult) -> None:
        cols = element.findall("col")
        names = [col.get("name") for col in cols]
        values = [None if col.get("isNull") == "true" else (col.text or "") for col in cols]

        if all(names):
            if session.header is None:
                session.header = list(names)
            if set(names) <= set(session.header):
                by_name = dict(zip(names, values))
                result.rows.append([by_name.get(name) for name in session.header])
                return
            result.warnings.append(
                f"Row columns do not match header, mapping by position: {', '.join(names)}"
            )
        result.rows.append(values)


def make_parser(fmt: ImportFormat, use_header: bool = False) -> RowParser:
    if fmt == ImportFormat.CSV:
        return CsvRowParser(",", use_header)
    if fmt == ImportFormat.TSV:
        return CsvRowParser("\t", use_header)
    if fmt == ImportFormat.JSON:
        return JsonRowParser(use_header)
    if fmt == ImportFormat.XML:
        return XmlRowParser()
    raise ValueError(f"No parser for format: {fmt}")
