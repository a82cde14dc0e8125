"""Catalog source protocol definition.

Defines the ``CatalogSource`` Protocol that the exporter consumes. The
exporter never issues catalog SQL itself: it asks a catalog source what an
object looks like and renders DDL from the answer.

Usage:
    from pg_porter.catalog.base import CatalogSource

    def list_tables(catalog: CatalogSource, schema: str) -> list[str]:
        return [
            obj.name
            for obj in catalog.list_objects(schema)
            if obj.kind.is_table_like
        ]
"""

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Protocol

from pg_porter.catalog.models import (
    AggregateInfo,
    CatalogObject,
    DatabaseInfo,
    DomainInfo,
    FunctionInfo,
    OperatorInfo,
    RoleInfo,
    SchemaInfo,
    SequenceInfo,
    TableInfo,
    TablespaceInfo,
    TypeInfo,
    TypeLink,
    ViewInfo,
)

if TYPE_CHECKING:
    from pg_porter.stream.cursor import ExportCursor


class CatalogSource(Protocol):
    """Metadata and row access for one connected database.

    Listing methods return objects in catalog scan order: grouped by kind,
    then ordered by name. Per-object getters raise ``CatalogQueryError``
    when the lookup fails, so the caller can degrade that one object
    without abandoning the dump.
    """

    # ------------------------------------------------------------------
    # Server scope
    # ------------------------------------------------------------------

    def list_roles(self) -> list[RoleInfo]:
        """Return all non-system roles."""
        ...

    def list_tablespaces(self) -> list[TablespaceInfo]:
        """Return user tablespaces (``pg_default`` and ``pg_global`` excluded)."""
        ...

    def list_databases(self) -> list[DatabaseInfo]:
        """Return connectable, non-template databases."""
        ...

    # ------------------------------------------------------------------
    # Database scope
    # ------------------------------------------------------------------

    def get_database(self) -> DatabaseInfo:
        """Return the database this source is connected to."""
        ...

    def list_schemas(self) -> list[SchemaInfo]:
        """Return user schemas (system and toast schemas excluded)."""
        ...

    def list_objects(self, schema: str) -> list[CatalogObject]:
        """Return every dumpable object in ``schema`` in catalog scan order."""
        ...

    def list_type_links(self) -> list[TypeLink]:
        """Return type oid -> relation / element links for composite and array types."""
        ...

    def snapshot(self) -> AbstractContextManager[None]:
        """Open a consistent read snapshot for the duration of the block.

        Raising inside the block rolls the snapshot transaction back.
        """
        ...

    # ------------------------------------------------------------------
    # Per-object lookups
    # ------------------------------------------------------------------

    def get_table(self, oid: int) -> TableInfo:
        ...

    def get_view(self, oid: int) -> ViewInfo:
        ...

    def get_sequence(self, oid: int) -> SequenceInfo:
        ...

    def get_function(self, oid: int) -> FunctionInfo:
        ...

    def get_aggregate(self, oid: int) -> AggregateInfo:
        ...

    def get_domain(self, oid: int) -> DomainInfo:
        ...

    def get_type(self, oid: int) -> TypeInfo:
        ...

    def get_operator(self, oid: int) -> OperatorInfo:
        ...

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def estimate_row_width(self, table: TableInfo) -> int | None:
        """Return an estimated maximum row width in bytes, or None if unknown."""
        ...

    def open_cursor(self, table: TableInfo, batch_size: int) -> "ExportCursor":
        """Open a server-side cursor over ``table``'s data columns."""
        ...
