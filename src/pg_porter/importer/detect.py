"""Chunk decompression and input format detection."""

import bz2
import gzip
import zlib

from pg_porter.errors import FormatDetectionFailure, ValidationError
from pg_porter.importer.models import ImportFormat

GZIP_MAGIC = b"\x1f\x8b"
BZIP2_MAGIC = b"BZh"
UTF8_BOM = b"\xef\xbb\xbf"


def decompress(body: bytes) -> bytes:
    """Inflate a gzip or bzip2 chunk; anything else is returned unchanged."""
    try:
        if body.startswith(GZIP_MAGIC):
            return gzip.decompress(body)
        if body.startswith(BZIP2_MAGIC) and body[3:4].isdigit():
            return bz2.decompress(body)
    except (OSError, EOFError, zlib.error) as e:
        raise ValidationError(f"Could not decompress chunk: {e}") from e
    return body


def detect_format(payload: bytes, final: bool = False) -> ImportFormat | None:
    """Guess the upload format from its first bytes.

    ``{`` or ``[`` means JSON and ``<`` means XML.  Otherwise the first
    non-blank line decides: a tab means TSV, a comma means CSV.

    Returns:
        The detected format, or ``None`` while the first line is still
        incomplete (the caller keeps the bytes and waits for more).

    Raises:
        FormatDetectionFailure: If the complete first line has no delimiter.
    """
    text = payload.removeprefix(UTF8_BOM).lstrip()
    if not text:
        return None

    first = text[:1]
    if first in (b"{", b"["):
        return ImportFormat.JSON
    if first == b"<":
        return ImportFormat.XML

    newline = text.find(b"\n")
    if newline < 0 and not final:
        return None
    line = text if newline < 0 else text[:newline]
    if b"\t" in line:
        return ImportFormat.TSV
    if b"," in line:
        return ImportFormat.CSV
    raise FormatDetectionFailure(
        "Unable to detect import format: first line has neither tab nor comma "
        "delimiters; specify the format explicitly"
    )
