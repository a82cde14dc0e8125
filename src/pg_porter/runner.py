"""High-level export and import runs shared by the CLI and the HTTP API.

Usage:
    with open("dump.sql.gz", "wb") as fh:
        result, framing = run_export(profile, options, open_sink("gzip", fh), database="appdb")

    summary = await import_file(processor, fh, schema="public", table="accounts")
"""

import logging
import uuid
from typing import Any, BinaryIO

from pydantic import BaseModel, Field

from pg_porter.config.models import DatabaseProfile
from pg_porter.dump.data import export_table_rows
from pg_porter.dump.exporter import DatabaseExporter, ServerExporter
from pg_porter.dump.models import ExportOptions, ExportResult
from pg_porter.dump.writer import SqlWriter
from pg_porter.errors import PgPorterError, ValidationError
from pg_porter.factory import catalog_factory, open_catalog
from pg_porter.importer.checksum import fnv1a64
from pg_porter.importer.models import ChunkRequest, ImportState, LogEntry
from pg_porter.importer.processor import ChunkProcessor
from pg_porter.stream.formatters import DATA_FORMATS
from pg_porter.stream.sinks import OutputSink, SinkFraming

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


# ============================================================================
# Export
# ============================================================================


def export_filename(
    database: str | None, schema: str | None, table: str | None = None, fmt: str = "sql"
) -> str:
    stem = "_".join(part for part in ("dump", database, schema, table) if part)
    return f"{stem}.{DATA_FORMATS[fmt].extension}"


def data_export_table(options: ExportOptions, schema: str | None) -> str:
    """The one table a csv, tsv, json or xml export reads."""
    if schema is None or not options.objects or len(options.objects) != 1:
        raise ValidationError(
            f"format {options.format} exports one table: give a schema and exactly one object"
        )
    return options.objects[0]


def run_export(
    profile: DatabaseProfile,
    options: ExportOptions,
    sink: OutputSink,
    database: str | None = None,
    schema: str | None = None,
) -> tuple[ExportResult, SinkFraming]:
    """Dump a server, a database or one schema into ``sink``.

    Scope:
    - ``schema`` given: that schema of ``database`` (or the profile's database);
      ``options.objects`` selects relations.
    - only ``database`` given: the whole database; ``options.objects`` selects schemas.
    - neither: every database on the server plus roles and tablespaces;
      ``options.objects`` selects databases.

    A non-SQL ``options.format`` exports the rows of the single table named
    in ``options.objects`` (``schema`` is required).

    The sink is finished on every exit path.

    Returns:
        Tuple of (ExportResult, SinkFraming)
    """
    if options.format != "sql":
        return _run_table_export(profile, options, sink, database, schema)

    framing = sink.begin(export_filename(database, schema))
    writer = SqlWriter(sink)
    try:
        if database is None and schema is None:
            result = ServerExporter(catalog_factory(profile), options, writer).export()
        else:
            with open_catalog(profile, database) as catalog:
                exporter = DatabaseExporter(
                    catalog, options, writer, schemas=[schema] if schema else None
                )
                result = exporter.export()
    finally:
        sink.finish()
    return result, framing


def _run_table_export(
    profile: DatabaseProfile,
    options: ExportOptions,
    sink: OutputSink,
    database: str | None,
    schema: str | None,
) -> tuple[ExportResult, SinkFraming]:
    table = data_export_table(options, schema)
    data_format = DATA_FORMATS[options.format]
    framing = sink.begin(
        export_filename(database, schema, table, options.format), data_format.content_type
    )
    try:
        with open_catalog(profile, database) as catalog:
            rows = export_table_rows(catalog, schema, table, options, sink)
    finally:
        sink.finish()
    return ExportResult(success=True, objects_emitted=1, rows_exported=rows), framing


# ============================================================================
# Import
# ============================================================================


class ImportSummary(BaseModel):
    """Result of feeding a whole file through the chunk protocol."""

    success: bool
    session_id: str
    state: ImportState | None = None
    offset: int = 0
    errors: int = 0
    chunks: int = 0
    log_entries: list[LogEntry] = Field(default_factory=list)
    error: str | None = None


async def import_file(
    processor: ChunkProcessor,
    fileobj: BinaryIO,
    schema: str,
    table: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    **options: Any,
) -> ImportSummary:
    """Upload ``fileobj`` chunk by chunk, the way an HTTP client would.

    Each body is the previous remainder followed by the next ``chunk_size``
    bytes of the file, with its FNV-1a checksum attached.

    Args:
        processor: Processor bound to a session store and target.
        fileobj: Binary file positioned at the start of the data.
        schema: Target schema.
        table: Target table.
        chunk_size: New bytes per chunk.
        **options: Further ``ChunkRequest`` fields (format, use_header, ...).

    Returns:
        ImportSummary; ``success`` is False when the session ended in an
        error state or a chunk was rejected.
    """
    summary = ImportSummary(success=False, session_id=uuid.uuid4().hex)
    remainder = b""
    block = fileobj.read(chunk_size)

    while True:
        following = fileobj.read(chunk_size)
        eof = not following
        body = remainder + block
        request = ChunkRequest(
            import_session_id=summary.session_id,
            schema=schema,
            table=table,
            offset=summary.offset,
            remainder_len=len(remainder),
            eof=eof,
            chunk_hash=fnv1a64(body),
            **options,
        )
        try:
            result = await processor.process(request, body)
        except PgPorterError as e:
            logger.warning("Chunk %d rejected: %s", summary.chunks + 1, e)
            summary.error = str(e)
            return summary

        summary.chunks += 1
        summary.offset = result.offset
        summary.errors = result.errors
        summary.state = result.state
        summary.log_entries.extend(result.log_entries)
        remainder = result.remainder.encode("utf-8")
        if eof:
            break
        block = following

    summary.success = summary.state == ImportState.COMPLETE and summary.errors == 0
    return summary
