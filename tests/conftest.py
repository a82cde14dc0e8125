"""Shared fakes: an in-memory catalog source and an in-memory import target."""

import io
from collections import Counter
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import pytest

from pg_porter.adapters.base import TargetColumn
from pg_porter.catalog.models import (
    CatalogObject,
    ColumnInfo,
    ConstraintInfo,
    DatabaseInfo,
    ObjectKind,
    SchemaInfo,
    TableInfo,
)
from pg_porter.errors import CatalogQueryError, RecordApplyError
from pg_porter.stream.cursor import ExportCursor


# ------------------------------------------------------------------
# Catalog
# ------------------------------------------------------------------


class FakeServerCursor:
    def __init__(self, rows: list[tuple]):
        self.rows = list(rows)
        self.query = None
        self.fetch_sizes: list[int] = []
        self.closed = False

    def execute(self, query, params=None) -> None:
        self.query = query

    def fetchmany(self, size: int) -> list[tuple]:
        self.fetch_sizes.append(size)
        batch, self.rows = self.rows[:size], self.rows[size:]
        return batch

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, rows: list[tuple]):
        self.rows = rows
        self.cursors: list[FakeServerCursor] = []

    def cursor(self, name: str | None = None) -> FakeServerCursor:
        cursor = FakeServerCursor(self.rows)
        self.cursors.append(cursor)
        return cursor


class FakeCatalog:
    """In-memory ``CatalogSource``.

    ``add()`` registers a detail model (``TableInfo``, ``FunctionInfo``, ...)
    under its schema; lookups for oids in ``failing`` raise
    ``CatalogQueryError``.
    """

    def __init__(self, database: str = "appdb", schemas: Sequence[str] = ("public",)):
        self.database = DatabaseInfo(name=database, owner="postgres")
        self.schemas = [
            SchemaInfo(oid=2200 + i, name=name, owner="postgres")
            for i, name in enumerate(schemas)
        ]
        self.objects: dict[str, list[CatalogObject]] = {name: [] for name in schemas}
        self.details: dict[int, Any] = {}
        self.rows: dict[int, list[tuple]] = {}
        self.type_links: list = []
        self.roles: list = []
        self.tablespaces: list = []
        self.databases = [self.database]
        self.failing: set[int] = set()
        self.lookups: Counter[int] = Counter()
        self.snapshots = 0
        self.connections: list[FakeConnection] = []

    def __enter__(self) -> "FakeCatalog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    def add(self, detail: Any, kind: ObjectKind | None = None) -> Any:
        kind = kind or detail.kind
        self.objects[detail.schema_name].append(
            CatalogObject(
                oid=detail.oid,
                name=detail.name,
                schema_name=detail.schema_name,
                kind=kind,
                parent_oid=getattr(detail, "parent_oid", None),
            )
        )
        self.details[detail.oid] = detail
        return detail

    # CatalogSource

    def list_roles(self):
        return list(self.roles)

    def list_tablespaces(self):
        return list(self.tablespaces)

    def list_databases(self):
        return list(self.databases)

    def get_database(self):
        return self.database

    def list_schemas(self):
        return list(self.schemas)

    def list_objects(self, schema: str) -> list[CatalogObject]:
        order = list(ObjectKind)
        return sorted(self.objects.get(schema, []), key=lambda o: (order.index(o.kind), o.name))

    def list_type_links(self):
        return list(self.type_links)

    @contextmanager
    def snapshot(self) -> Iterator[None]:
        self.snapshots += 1
        yield

    def _get(self, oid: int) -> Any:
        self.lookups[oid] += 1
        if oid in self.failing:
            raise CatalogQueryError("object", str(oid), "permission denied")
        return self.details[oid]

    get_table = get_view = get_sequence = get_function = _get
    get_aggregate = get_domain = get_type = get_operator = _get

    def estimate_row_width(self, table: TableInfo) -> int | None:
        return 100

    def open_cursor(self, table: TableInfo, batch_size: int) -> ExportCursor:
        conn = FakeConnection(self.rows.get(table.oid, []))
        self.connections.append(conn)
        return ExportCursor(conn, "SELECT", batch_size, relation_kind=table.kind.value)


def make_table(oid: int, name: str, columns: list[str], schema: str = "public", **kwargs) -> TableInfo:
    return TableInfo(
        oid=oid,
        name=name,
        schema_name=schema,
        columns=[ColumnInfo(name=c, data_type="integer" if c.endswith("id") else "text") for c in columns],
        **kwargs,
    )


def accounts_and_orders(catalog: FakeCatalog) -> tuple[TableInfo, TableInfo]:
    """``accounts`` and ``orders`` (FK orders.account_id -> accounts.id)."""
    accounts = catalog.add(
        make_table(
            100,
            "accounts",
            ["id", "name"],
            constraints=[ConstraintInfo(name="accounts_pkey", contype="p", definition="PRIMARY KEY (id)")],
        )
    )
    orders = catalog.add(
        make_table(
            101,
            "orders",
            ["id", "account_id"],
            constraints=[
                ConstraintInfo(name="orders_pkey", contype="p", definition="PRIMARY KEY (id)"),
                ConstraintInfo(
                    name="orders_account_id_fkey",
                    contype="f",
                    definition="FOREIGN KEY (account_id) REFERENCES public.accounts(id)",
                    referenced_table_oid=100,
                    referenced_table="public.accounts",
                ),
            ],
        )
    )
    return accounts, orders


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def out() -> io.StringIO:
    return io.StringIO()


# ------------------------------------------------------------------
# Import target
# ------------------------------------------------------------------


class FakeImportTarget:
    """In-memory ``ImportTarget`` keyed by ``schema.table``."""

    def __init__(self, tables: dict[str, list[TargetColumn]] | None = None):
        self.tables = tables or {}
        self.rows: dict[str, list[list]] = {}
        self.copies: list[tuple[str, list[str], int]] = []
        self.truncations: list[str] = []
        self.fail_copy: str | None = None
        self.closed = 0

    async def columns(self, schema: str, table: str) -> list[TargetColumn]:
        return list(self.tables.get(f"{schema}.{table}", []))

    async def truncate(self, schema: str, table: str) -> None:
        key = f"{schema}.{table}"
        self.truncations.append(key)
        self.rows[key] = []

    async def copy_rows(self, schema, table, columns, rows) -> int:
        key = f"{schema}.{table}"
        if self.fail_copy:
            raise RecordApplyError(key, self.fail_copy)
        self.rows.setdefault(key, []).extend([list(r) for r in rows])
        self.copies.append((key, list(columns), len(rows)))
        return len(rows)

    async def close(self) -> None:
        self.closed += 1


def accounts_columns() -> list[TargetColumn]:
    return [
        TargetColumn("id", "integer", "nextval('accounts_id_seq'::regclass)"),
        TargetColumn("name", "text"),
        TargetColumn("email", "text"),
    ]


@pytest.fixture
def target() -> FakeImportTarget:
    return FakeImportTarget({"public.accounts": accounts_columns()})
