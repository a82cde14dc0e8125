"""Streaming data export: server-side cursors, row formatters, output sinks.

Usage:
    >>> from pg_porter.stream import ExportCursor, CopyFormatter, open_sink
"""

from pg_porter.stream.chunking import ChunkCalculator, row_width_from_samples
from pg_porter.stream.cursor import ExportCursor
from pg_porter.stream.formatters import (
    DATA_FORMATS,
    CopyFormatter,
    CsvFormatter,
    InsertFormatter,
    JsonFormatter,
    RowFormatter,
    XmlFormatter,
    copy_escape,
    make_formatter,
)
from pg_porter.stream.sinks import (
    Bzip2Sink,
    GzipSink,
    OutputSink,
    SinkFraming,
    ZipSink,
    open_sink,
)

__all__ = [
    "ChunkCalculator",
    "row_width_from_samples",
    "ExportCursor",
    "DATA_FORMATS",
    "CopyFormatter",
    "CsvFormatter",
    "InsertFormatter",
    "JsonFormatter",
    "RowFormatter",
    "XmlFormatter",
    "copy_escape",
    "make_formatter",
    "OutputSink",
    "GzipSink",
    "Bzip2Sink",
    "ZipSink",
    "SinkFraming",
    "open_sink",
]
