"""Table data blocks, streamed through a server-side cursor."""

import logging

from pg_porter.catalog.base import CatalogSource
from pg_porter.catalog.models import TableInfo
from pg_porter.dump.context import DumpContext
from pg_porter.dump.models import ExportOptions
from pg_porter.dump.writer import qualified
from pg_porter.errors import ValidationError
from pg_porter.stream.chunking import ChunkCalculator
from pg_porter.stream.formatters import TextOutput, make_formatter

logger = logging.getLogger(__name__)

MAX_INSERT_ROWS = 1000


def dump_table_data(ctx: DumpContext, table: TableInfo) -> int:
    """Write ``table``'s rows as a COPY block or INSERT statements.

    The batch size is the explicit ``batch_size`` option, or is derived from
    the estimated row width and the memory ceiling.

    Returns:
        Number of rows written.
    """
    if ctx.catalog is None or not table.kind.has_data:
        return 0
    columns = table.data_columns
    if not columns:
        return 0

    options = ctx.options
    if options.batch_size:
        batch_size = options.batch_size
        calculator = None
    else:
        batch_size = ctx.calculator.rows_per_batch(ctx.catalog.estimate_row_width(table))
        calculator = ctx.calculator

    target = qualified(table.schema_name, table.name)
    ctx.writer.line()
    ctx.writer.comment(f"Data for table {table.qualified_name}")
    ctx.writer.line()

    formatter = make_formatter(
        ctx.writer,
        options.insert_format,
        batch_size=min(batch_size, MAX_INSERT_ROWS),
        insert_mode=options.insert_mode,
    )
    with ctx.catalog.open_cursor(table, batch_size) as cursor:
        cursor.calculator = calculator
        rows = cursor.process_rows(formatter, {"table": target, "columns": columns})

    logger.debug("Exported %d rows from %s", rows, table.qualified_name)
    ctx.rows_exported += rows
    return rows


def export_table_rows(
    catalog: CatalogSource,
    schema: str,
    name: str,
    options: ExportOptions,
    out: TextOutput,
) -> int:
    """Write one table's rows to ``out`` in ``options.format`` (csv, tsv, json or xml).

    Generated columns are left out, as in SQL data blocks.

    Raises:
        ValidationError: If ``schema.name`` is not a table with data.
    """
    with catalog.snapshot():
        found = next(
            (
                obj
                for obj in catalog.list_objects(schema)
                if obj.name == name and obj.kind.has_data
            ),
            None,
        )
        if found is None:
            raise ValidationError(f"Table not found: {schema}.{name}")
        table = catalog.get_table(found.oid)

        columns = [c for c in table.columns if c.generated is None]
        if options.batch_size:
            batch_size, calculator = options.batch_size, None
        else:
            calculator = ChunkCalculator(options.memory_ceiling_bytes)
            batch_size = calculator.rows_per_batch(catalog.estimate_row_width(table))

        formatter = make_formatter(out, options.format, null_text=options.null_text)
        metadata = {
            "table": qualified(table.schema_name, table.name),
            "columns": [c.name for c in columns],
            "types": [c.data_type for c in columns],
        }
        with catalog.open_cursor(table, batch_size) as cursor:
            cursor.calculator = calculator
            rows = cursor.process_rows(formatter, metadata)

    logger.info("Exported %d rows from %s as %s", rows, table.qualified_name, options.format)
    return rows
