"""Convert parsed record values into COPY-ready values.

Values come out as ``str``, ``bytes`` (bytea columns) or ``None`` (NULL),
which is what ``psycopg``'s ``Copy.write_row`` expects.
"""

import base64
import binascii
import json
import re
from typing import Any

from pg_porter.adapters.base import TargetColumn
from pg_porter.errors import ValidationError
from pg_porter.importer.models import ByteaEncoding

_OCTAL_OR_BACKSLASH = re.compile(rb"\\([0-7]{3}|\\)")


def _unescape_bytea(value: str) -> bytes:
    """Decode PostgreSQL's escape format: ``\\ooo`` octal groups and ``\\\\``."""

    def replace(match: re.Match) -> bytes:
        group = match.group(1)
        if group == b"\\":
            return b"\\"
        return bytes([int(group, 8)])

    return _OCTAL_OR_BACKSLASH.sub(replace, value.encode("utf-8", "surrogateescape"))


def decode_bytea(value: str, encoding: ByteaEncoding) -> bytes:
    """Decode a bytea field; undecodable hex or base64 falls back to the literal text."""
    if encoding == ByteaEncoding.HEX:
        digits = value
        if digits[:2].lower() in ("\\x", "0x"):
            digits = digits[2:]
        try:
            return bytes.fromhex(digits)
        except ValueError:
            return value.encode("utf-8", "surrogateescape")
    if encoding == ByteaEncoding.BASE64:
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            return value.encode("utf-8", "surrogateescape")
    # escape and octal share the \ooo notation
    return _unescape_bytea(value)


class RowConverter:
    """Apply null tokens, bytea decoding and JSON serialization to one record.

    Args:
        columns: Mapped target columns, in record field order.
        allowed_nulls: Tokens treated as NULL (``NULL``, ``\\N``, ``""``).
        bytea_encoding: How bytea fields are encoded in the upload.
    """

    def __init__(
        self,
        columns: list[TargetColumn],
        allowed_nulls: list[str] | None = None,
        bytea_encoding: ByteaEncoding = ByteaEncoding.HEX,
    ):
        self.columns = columns
        tokens = set(allowed_nulls or [])
        self.empty_is_null = '""' in tokens
        self.null_tokens = tokens - {'""'}
        self.bytea_encoding = bytea_encoding

    def is_null(self, value: Any) -> bool:
        if value is None:
            return True
        if not isinstance(value, str):
            return False
        if value == "":
            return self.empty_is_null
        return value in self.null_tokens

    def convert(self, row: list[Any]) -> list[str | bytes | None]:
        if len(row) != len(self.columns):
            raise ValidationError(
                f"Row has {len(row)} fields, expected {len(self.columns)}"
            )
        return [self.convert_value(v, c) for v, c in zip(row, self.columns)]

    def convert_value(self, value: Any, column: TargetColumn) -> str | bytes | None:
        if self.is_null(value):
            return None
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, bool):
            return "true" if value else "false"
        if not isinstance(value, str):
            return json.dumps(value) if column.is_json else str(value)
        if column.is_bytea:
            return decode_bytea(value, self.bytea_encoding)
        return value
