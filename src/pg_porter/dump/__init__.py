"""Schema and data export.

Usage:
    >>> from pg_porter.dump import DatabaseExporter, ExportOptions, SqlWriter
"""

from pg_porter.dump.context import DumpContext
from pg_porter.dump.deferred import DeferredQueue
from pg_porter.dump.exporter import DatabaseExporter, SchemaExporter, ServerExporter
from pg_porter.dump.models import (
    DRAIN_ORDER,
    DeferredKind,
    DeferredStatement,
    ExportOptions,
    ExportResult,
)
from pg_porter.dump.writer import SqlWriter, qualified, quote_ident, quote_literal

__all__ = [
    "DumpContext",
    "DeferredQueue",
    "DatabaseExporter",
    "SchemaExporter",
    "ServerExporter",
    "DRAIN_ORDER",
    "DeferredKind",
    "DeferredStatement",
    "ExportOptions",
    "ExportResult",
    "SqlWriter",
    "qualified",
    "quote_ident",
    "quote_literal",
]
