"""Chunked, resumable data import.

Usage:
    >>> from pg_porter.importer import ChunkProcessor, ChunkRequest, MemorySessionStore
"""

from pg_porter.importer.checksum import fnv1a64, verify_chunk
from pg_porter.importer.converter import RowConverter, decode_bytea
from pg_porter.importer.detect import decompress, detect_format
from pg_porter.importer.log import LogCollector
from pg_porter.importer.mapping import ColumnMapping, build_column_mapping
from pg_porter.importer.models import (
    ByteaEncoding,
    ChunkRequest,
    ChunkResult,
    ImportFormat,
    ImportSession,
    ImportState,
    LogEntry,
)
from pg_porter.importer.parsers import (
    CsvRowParser,
    JsonRowParser,
    ParseResult,
    XmlRowParser,
    make_parser,
)
from pg_porter.importer.processor import ChunkProcessor
from pg_porter.importer.sessions import (
    ImportSessionStore,
    MemorySessionStore,
    SqlSessionStore,
)

__all__ = [
    "fnv1a64",
    "verify_chunk",
    "RowConverter",
    "decode_bytea",
    "decompress",
    "detect_format",
    "LogCollector",
    "ColumnMapping",
    "build_column_mapping",
    "ByteaEncoding",
    "ChunkRequest",
    "ChunkResult",
    "ImportFormat",
    "ImportSession",
    "ImportState",
    "LogEntry",
    "CsvRowParser",
    "JsonRowParser",
    "ParseResult",
    "XmlRowParser",
    "make_parser",
    "ChunkProcessor",
    "ImportSessionStore",
    "MemorySessionStore",
    "SqlSessionStore",
]
