"""Import target protocol definition.

Defines the ``ImportTarget`` Protocol the chunk processor writes records
through. All methods are ``async def`` -- the import side is async-first.

Usage:
    from pg_porter.adapters.base import ImportTarget

    async def load(target: ImportTarget) -> None:
        columns = await target.columns("public", "accounts")
        await target.truncate("public", "accounts")
        await target.copy_rows("public", "accounts", ["id", "name"], [[1, "a"]])
        await target.close()
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

INTEGER_TYPES = frozenset({"integer", "bigint", "smallint"})
JSON_TYPES = frozenset({"json", "jsonb"})


@dataclass(frozen=True)
class TargetColumn:
    """One column of the import target table, in attribute order."""

    name: str
    data_type: str
    default: str | None = None

    @property
    def is_bytea(self) -> bool:
        return self.data_type == "bytea"

    @property
    def is_json(self) -> bool:
        return self.data_type in JSON_TYPES

    @property
    def is_serial(self) -> bool:
        """Integer column fed by a sequence (``serial``/``bigserial``)."""
        return (
            self.data_type in INTEGER_TYPES
            and self.default is not None
            and "nextval(" in self.default
        )


class ImportTarget(Protocol):
    """Destination table interface used by ``ChunkProcessor``.

    All methods are async -- callers must ``await`` every operation.
    """

    async def columns(self, schema: str, table: str) -> list[TargetColumn]:
        """Return the table's columns in attribute order.

        Args:
            schema: Schema name.
            table: Table name.

        Returns:
            List of ``TargetColumn``.  Empty list if the table does not exist.
        """
        ...

    async def truncate(self, schema: str, table: str) -> None:
        """Remove every row from the table."""
        ...

    async def copy_rows(
        self,
        schema: str,
        table: str,
        columns: list[str],
        rows: Sequence[Sequence[Any]],
    ) -> int:
        """Bulk-load rows with COPY inside one transaction.

        Values are ``str``, ``bytes`` (bytea) or ``None`` (NULL).  A failure
        rolls the whole batch back.

        Args:
            schema: Schema name.
            table: Table name.
            columns: Target column names, in row value order.
            rows: Converted rows.

        Returns:
            Number of rows written.

        Raises:
            RecordApplyError: If the COPY fails.
        """
        ...

    async def close(self) -> None:
        """Release the underlying connection."""
        ...
