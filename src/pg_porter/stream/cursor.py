"""Server-side cursor reader for bounded-memory data export.

Usage:
    with ExportCursor(conn, query, batch_size=1000) as cursor:
        rows = cursor.process_rows(CopyFormatter(sink), {
            "table": '"public"."orders"',
            "columns": ["id", "total"],
        })
"""

import itertools
import logging
from typing import Any

from pg_porter.stream.chunking import ChunkCalculator
from pg_porter.stream.formatters import RowFormatter

logger = logging.getLogger(__name__)

_cursor_ids = itertools.count(1)


class ExportCursor:
    """One open server-side cursor over a relation's rows.

    Rows are fetched ``batch_size`` at a time, rendered through a formatter
    and dropped before the next fetch, so peak memory is one batch
    regardless of table size. With a ``calculator``, the batch size is
    adapted after each batch from the rendered size.

    Args:
        conn: psycopg connection (inside a transaction, as server-side
            cursors require).
        query: SELECT statement (``str`` or ``psycopg.sql.Composed``).
        batch_size: Rows per fetch.
        relation_kind: Kind of the relation being read, for logging.
        params: Optional query parameters.
        calculator: Optional adaptive batch sizing policy.
    """

    def __init__(
        self,
        conn: Any,
        query: Any,
        batch_size: int,
        relation_kind: str = "table",
        params: Any = None,
        calculator: ChunkCalculator | None = None,
    ):
        self.conn = conn
        self.query = query
        self.batch_size = batch_size
        self.relation_kind = relation_kind
        self.params = params
        self.calculator = calculator
        self.name = f"pg_porter_export_{next(_cursor_ids)}"
        self._cursor: Any = None
        self._closed = False

    def __enter__(self) -> "ExportCursor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        if self._closed:
            raise RuntimeError(f"Cursor {self.name} is closed")
        if self._cursor is None:
            self._cursor = self.conn.cursor(name=self.name)
            self._cursor.execute(self.query, self.params)

    def process_rows(self, formatter: RowFormatter, metadata: dict) -> int:
        """Fetch every row in batches and render it through ``formatter``.

        Returns:
            Number of rows written.
        """
        self.open()
        formatter.write_header(metadata)

        total = 0
        while True:
            batch = self._cursor.fetchmany(self.batch_size)
            if not batch:
                break
            batch_bytes = 0
            for row in batch:
                batch_bytes += formatter.write_row(row)
            total += len(batch)
            if self.calculator is not None:
                self.batch_size = self.calculator.adapt(self.batch_size, batch_bytes)
            del batch

        formatter.write_footer()
        logger.debug("Cursor %s exported %d rows from %s", self.name, total, self.relation_kind)
        return total

    def close(self) -> None:
        """Release the server-side cursor. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            cursor.close()
