"""PostgreSQL catalog introspection via pg_catalog.

This module answers the exporter's "what does object X look like" questions:
- Roles, tablespaces, databases, schemas
- Tables (all partitioning kinds), columns, constraints, indexes, triggers, rules
- Views and materialized views
- Sequences, functions, aggregates, domains, types, operators
- Row width sampling and server-side cursors for data export

Expressions and definitions come straight from the server's deparsers
(``pg_get_expr``, ``pg_get_constraintdef``, ``pg_get_functiondef``, ...).

Uses psycopg (v3) for PostgreSQL connections.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg import Connection, sql

from pg_porter.catalog.models import (
    AggregateInfo,
    CatalogObject,
    ColumnInfo,
    ConstraintInfo,
    DatabaseInfo,
    DomainInfo,
    FunctionInfo,
    IndexInfo,
    ObjectKind,
    OperatorInfo,
    Privilege,
    RoleInfo,
    RuleInfo,
    SchemaInfo,
    SequenceInfo,
    TableInfo,
    TablespaceInfo,
    TriggerInfo,
    TypeAttribute,
    TypeInfo,
    TypeLink,
    ViewInfo,
)
from pg_porter.errors import CatalogQueryError
from pg_porter.stream.chunking import ERROR_ROW_BYTES, row_width_from_samples
from pg_porter.stream.cursor import ExportCursor

logger = logging.getLogger(__name__)

# aclitem privilege letters
ACL_PRIVILEGES = {
    "r": "SELECT",
    "a": "INSERT",
    "w": "UPDATE",
    "d": "DELETE",
    "D": "TRUNCATE",
    "x": "REFERENCES",
    "t": "TRIGGER",
    "X": "EXECUTE",
    "U": "USAGE",
    "C": "CREATE",
    "c": "CONNECT",
    "T": "TEMPORARY",
    "m": "MAINTAIN",
}

SYSTEM_SCHEMA_FILTER = """
    n.nspname !~ '^pg_'
    AND n.nspname <> 'information_schema'
"""

NOT_EXTENSION_MEMBER = """
    NOT EXISTS (
        SELECT 1 FROM pg_depend dep
        WHERE dep.objid = {oid} AND dep.deptype = 'e'
    )
"""


def _proc_name(column: str) -> str:
    """SQL expression rendering a pg_proc oid column as ``schema.name``."""
    return f"""(
        SELECT quote_ident(pn.nspname) || '.' || quote_ident(pp.proname)
        FROM pg_proc pp JOIN pg_namespace pn ON pn.oid = pp.pronamespace
        WHERE pp.oid = {column}
    )"""


def _operator_name(column: str) -> str:
    return f"""(
        SELECT 'OPERATOR(' || quote_ident(opn.nspname) || '.' || op.oprname || ')'
        FROM pg_operator op JOIN pg_namespace opn ON opn.oid = op.oprnamespace
        WHERE op.oid = {column}
    )"""


def decode_acl(
    acl: list[str] | None, owner: str | None = None, column: str | None = None
) -> list[Privilege]:
    """Decode ``aclitem`` text entries (``grantee=arw*/grantor``).

    Entries granted to the owner are left out; ownership already implies
    them.

    Example:
        >>> decode_acl(["=r/alice", "bob=r*w/alice"], owner="alice")
        [Privilege(grantee='PUBLIC', privileges=['SELECT'], ...),
         Privilege(grantee='bob', privileges=['UPDATE'], ...),
         Privilege(grantee='bob', privileges=['SELECT'], grantable=True, ...)]
    """
    privileges: list[Privilege] = []
    for item in acl or []:
        grantee, _, rest = item.partition("=")
        letters = rest.split("/", 1)[0]
        grantee = grantee.strip('"') or "PUBLIC"
        if owner is not None and grantee == owner:
            continue

        plain: list[str] = []
        grantable: list[str] = []
        i = 0
        while i < len(letters):
            name = ACL_PRIVILEGES.get(letters[i])
            with_option = i + 1 < len(letters) and letters[i + 1] == "*"
            if name:
                (grantable if with_option else plain).append(name)
            i += 2 if with_option else 1

        if plain:
            privileges.append(Privilege(grantee=grantee, privileges=plain, column=column))
        if grantable:
            privileges.append(
                Privilege(grantee=grantee, privileges=grantable, grantable=True, column=column)
            )
    return privileges


class PgCatalog:
    """Catalog source backed by a live PostgreSQL connection.

    The connection runs in autocommit mode; ``snapshot()`` opens the one
    explicit transaction, and every per-object lookup runs inside its own
    savepoint so a failed lookup does not poison the snapshot.

    Usage:
        with PgCatalog(database_url) as catalog:
            for obj in catalog.list_objects("public"):
                print(obj.kind, obj.qualified_name)

            with catalog.snapshot():
                table = catalog.get_table(oid)
                with catalog.open_cursor(table, batch_size=1000) as cursor:
                    ...
    """

    def __init__(self, database_url: str):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL
        """
        self._database_url = database_url
        self._conn: Connection | None = None

    def __enter__(self) -> "PgCatalog":
        """Context manager entry - opens connection."""
        url = self._database_url
        if "connect_timeout" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}connect_timeout=10"

        self._conn = psycopg.connect(url, autocommit=True)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> Connection:
        if not self._conn:
            raise RuntimeError("Catalog not connected. Use with statement.")
        return self._conn

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _fetch(self, query: Any, params: Any = None) -> list[tuple]:
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def _fetch_one(self, query: Any, params: Any = None) -> tuple | None:
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()

    @contextmanager
    def _lookup(self, kind: str, name: Any) -> Iterator[None]:
        """Run one object's queries in a savepoint; wrap failures."""
        try:
            with self.conn.transaction():
                yield
        except (psycopg.Error, LookupError) as e:
            raise CatalogQueryError(kind, str(name), str(e).strip()) from e

    @contextmanager
    def snapshot(self) -> Iterator[None]:
        """REPEATABLE READ, READ ONLY transaction for a consistent dump."""
        with self.conn.transaction():
            self.conn.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY")
            yield

    # ------------------------------------------------------------------
    # Server scope
    # ------------------------------------------------------------------

    def list_roles(self) -> list[RoleInfo]:
        query = """
            SELECT
                r.rolname, r.rolsuper, r.rolinherit, r.rolcreaterole, r.rolcreatedb,
                r.rolcanlogin, r.rolreplication, r.rolbypassrls, r.rolconnlimit,
                r.rolvaliduntil::text,
                ARRAY(
                    SELECT g.rolname
                    FROM pg_auth_members m JOIN pg_roles g ON g.oid = m.roleid
                    WHERE m.member = r.oid
                    ORDER BY g.rolname
                ),
                shobj_description(r.oid, 'pg_authid')
            FROM pg_roles r
            WHERE r.rolname !~ '^pg_'
            ORDER BY r.rolname
        """
        roles = []
        for row in self._fetch(query):
            (name, superuser, inherit, createrole, createdb, login, replication,
             bypassrls, connlimit, valid_until, member_of, comment) = row
            roles.append(
                RoleInfo(
                    name=name,
                    superuser=superuser,
                    inherit=inherit,
                    createrole=createrole,
                    createdb=createdb,
                    login=login,
                    replication=replication,
                    bypassrls=bypassrls,
                    connection_limit=connlimit,
                    valid_until=valid_until,
                    member_of=list(member_of),
                    comment=comment,
                )
            )
        return roles

    def list_tablespaces(self) -> list[TablespaceInfo]:
        query = """
            SELECT
                t.spcname, pg_get_userbyid(t.spcowner), pg_tablespace_location(t.oid),
                t.spcoptions, shobj_description(t.oid, 'pg_tablespace'), t.spcacl::text[]
            FROM pg_tablespace t
            WHERE t.spcname NOT IN ('pg_default', 'pg_global')
            ORDER BY t.spcname
        """
        return [
            TablespaceInfo(
                name=name,
                owner=owner,
                location=location,
                options=list(options or []),
                comment=comment,
                privileges=decode_acl(acl, owner),
            )
            for name, owner, location, options, comment, acl in self._fetch(query)
        ]

    _DATABASE_QUERY = """
        SELECT
            d.datname, pg_get_userbyid(d.datdba), pg_encoding_to_char(d.encoding),
            d.datcollate, d.datctype, t.spcname,
            shobj_description(d.oid, 'pg_database'), d.datacl::text[]
        FROM pg_database d
        LEFT JOIN pg_tablespace t ON t.oid = d.dattablespace
    """

    def _database(self, row: tuple) -> DatabaseInfo:
        name, owner, encoding, collate, ctype, tablespace, comment, acl = row
        return DatabaseInfo(
            name=name,
            owner=owner,
            encoding=encoding,
            collate=collate,
            ctype=ctype,
            tablespace=tablespace,
            comment=comment,
            privileges=decode_acl(acl, owner),
        )

    def list_databases(self) -> list[DatabaseInfo]:
        query = self._DATABASE_QUERY + """
            WHERE d.datallowconn AND NOT d.datistemplate
            ORDER BY d.datname
        """
        return [self._database(row) for row in self._fetch(query)]

    # ------------------------------------------------------------------
    # Database scope
    # ------------------------------------------------------------------

    def get_database(self) -> DatabaseInfo:
        row = self._fetch_one(self._DATABASE_QUERY + " WHERE d.datname = current_database()")
        if row is None:
            raise RuntimeError("current_database() not found in pg_database")
        return self._database(row)

    def list_schemas(self) -> list[SchemaInfo]:
        query = f"""
            SELECT
                n.oid, n.nspname, pg_get_userbyid(n.nspowner),
                obj_description(n.oid, 'pg_namespace'), n.nspacl::text[]
            FROM pg_namespace n
            WHERE {SYSTEM_SCHEMA_FILTER}
              AND {NOT_EXTENSION_MEMBER.format(oid="n.oid")}
            ORDER BY n.nspname
        """
        return [
            SchemaInfo(
                oid=oid, name=name, owner=owner, comment=comment,
                privileges=decode_acl(acl, owner),
            )
            for oid, name, owner, comment, acl in self._fetch(query)
        ]

    def list_objects(self, schema: str) -> list[CatalogObject]:
        """Every dumpable object in ``schema``, grouped by kind then by name."""
        relations = f"""
            SELECT c.oid, c.relname, c.relkind, c.relispartition, i.inhparent
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_inherits i ON i.inhrelid = c.oid AND c.relispartition
            WHERE n.nspname = %s
              AND c.relkind IN ('r', 'p', 'v', 'm', 'S')
              AND {NOT_EXTENSION_MEMBER.format(oid="c.oid")}
              -- identity sequences are created with their column
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = c.oid AND d.classid = 'pg_class'::regclass
                    AND d.deptype = 'i' AND c.relkind = 'S'
              )
            ORDER BY c.relname
        """
        routines = f"""
            SELECT p.oid, p.proname, p.prokind
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE n.nspname = %s
              AND p.prokind IN ('f', 'p', 'a')
              AND {NOT_EXTENSION_MEMBER.format(oid="p.oid")}
            ORDER BY p.proname, p.oid
        """
        types = f"""
            SELECT t.oid, t.typname, t.typtype
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            LEFT JOIN pg_class c ON c.oid = t.typrelid
            WHERE n.nspname = %s
              AND (
                  t.typtype IN ('d', 'e', 'r')
                  OR (t.typtype = 'c' AND c.relkind = 'c')
              )
              AND {NOT_EXTENSION_MEMBER.format(oid="t.oid")}
            ORDER BY t.typname
        """
        operators = f"""
            SELECT o.oid, o.oprname
            FROM pg_operator o
            JOIN pg_namespace n ON n.oid = o.oprnamespace
            WHERE n.nspname = %s
              AND {NOT_EXTENSION_MEMBER.format(oid="o.oid")}
            ORDER BY o.oprname, o.oid
        """

        relkinds = {
            ("r", False): ObjectKind.TABLE,
            ("r", True): ObjectKind.PARTITION,
            ("p", False): ObjectKind.PARTITIONED_TABLE,
            ("p", True): ObjectKind.SUB_PARTITIONED_TABLE,
            ("v", False): ObjectKind.VIEW,
            ("m", False): ObjectKind.MATERIALIZED_VIEW,
            ("S", False): ObjectKind.SEQUENCE,
        }

        by_kind: dict[ObjectKind, list[CatalogObject]] = {kind: [] for kind in ObjectKind}

        for oid, name, typtype in self._fetch(types, (schema,)):
            kind = ObjectKind.DOMAIN if typtype == "d" else ObjectKind.TYPE
            by_kind[kind].append(CatalogObject(oid=oid, name=name, schema_name=schema, kind=kind))

        for oid, name, relkind, is_partition, parent in self._fetch(relations, (schema,)):
            kind = relkinds[(relkind, bool(is_partition) and relkind in ("r", "p"))]
            by_kind[kind].append(
                CatalogObject(oid=oid, name=name, schema_name=schema, kind=kind, parent_oid=parent)
            )

        for oid, name, prokind in self._fetch(routines, (schema,)):
            kind = ObjectKind.AGGREGATE if prokind == "a" else ObjectKind.FUNCTION
            by_kind[kind].append(CatalogObject(oid=oid, name=name, schema_name=schema, kind=kind))

        for oid, name in self._fetch(operators, (schema,)):
            by_kind[ObjectKind.OPERATOR].append(
                CatalogObject(oid=oid, name=name, schema_name=schema, kind=ObjectKind.OPERATOR)
            )

        return [obj for kind in ObjectKind for obj in by_kind[kind]]

    def list_type_links(self) -> list[TypeLink]:
        query = f"""
            SELECT t.oid, t.typrelid, t.typelem
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            WHERE (t.typrelid <> 0 OR t.typelem <> 0)
              AND {SYSTEM_SCHEMA_FILTER}
        """
        return [
            TypeLink(oid=oid, relid=relid, elem=elem)
            for oid, relid, elem in self._fetch(query)
        ]

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def get_table(self, oid: int) -> TableInfo:
        with self._lookup("table", oid):
            row = self._fetch_one(
                """
                SELECT
                    c.relname, n.nspname, c.relkind, c.relispartition,
                    pg_get_userbyid(c.relowner),
                    CASE WHEN c.relkind = 'p' THEN pg_get_partkeydef(c.oid) END,
                    pg_get_expr(c.relpartbound, c.oid),
                    i.inhparent, pn.nspname, pc.relname,
                    c.reloptions, ts.spcname,
                    obj_description(c.oid, 'pg_class'), c.relacl::text[]
                FROM pg_class c
                JOIN pg_namespace n ON n.oid = c.relnamespace
                LEFT JOIN pg_inherits i ON i.inhrelid = c.oid AND c.relispartition
                LEFT JOIN pg_class pc ON pc.oid = i.inhparent
                LEFT JOIN pg_namespace pn ON pn.oid = pc.relnamespace
                LEFT JOIN pg_tablespace ts ON ts.oid = c.reltablespace
                WHERE c.oid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"relation {oid} does not exist")
            (name, schema, relkind, is_partition, owner, partkey, bound, parent_oid,
             parent_schema, parent_table, reloptions, tablespace, comment, acl) = row

            if relkind == "p":
                kind = ObjectKind.SUB_PARTITIONED_TABLE if is_partition else ObjectKind.PARTITIONED_TABLE
            else:
                kind = ObjectKind.PARTITION if is_partition else ObjectKind.TABLE

            columns, column_privileges = self._columns(oid, owner)
            return TableInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                kind=kind,
                owner=owner,
                columns=columns,
                constraints=self._constraints(oid),
                indexes=self._indexes(oid),
                triggers=self._triggers(oid),
                rules=self._rules(oid),
                partition_key=partkey,
                partition_bound=bound,
                parent_oid=parent_oid,
                parent_schema=parent_schema,
                parent_table=parent_table,
                reloptions=list(reloptions or []),
                tablespace=tablespace,
                comment=comment,
                privileges=decode_acl(acl, owner) + column_privileges,
            )

    def _columns(self, oid: int, owner: str | None) -> tuple[list[ColumnInfo], list[Privilege]]:
        query = """
            SELECT
                a.attname,
                format_type(a.atttypid, a.atttypmod),
                a.atttypid,
                a.attnotnull,
                pg_get_expr(d.adbin, d.adrelid),
                a.attgenerated,
                a.attidentity,
                NULLIF(a.attstattarget, -1),
                CASE WHEN a.attstorage <> t.typstorage THEN a.attstorage END,
                col_description(a.attrelid, a.attnum),
                a.attislocal,
                a.attacl::text[]
            FROM pg_attribute a
            JOIN pg_type t ON t.oid = a.atttypid
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE a.attrelid = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        storage_names = {"p": "plain", "e": "external", "m": "main", "x": "extended"}
        columns: list[ColumnInfo] = []
        privileges: list[Privilege] = []
        for row in self._fetch(query, (oid,)):
            (name, data_type, type_oid, not_null, expr, generated, identity,
             statistics, storage, comment, is_local, acl) = row
            is_generated = generated == "s"
            columns.append(
                ColumnInfo(
                    name=name,
                    data_type=data_type,
                    type_oid=type_oid,
                    not_null=not_null,
                    default=None if is_generated else expr,
                    generated=expr if is_generated else None,
                    identity=identity or None,
                    statistics=statistics,
                    storage=storage_names.get(storage) if storage else None,
                    comment=comment,
                    is_local=is_local,
                )
            )
            privileges.extend(decode_acl(acl, owner, column=name))
        return columns, privileges

    def _constraints(self, oid: int) -> list[ConstraintInfo]:
        query = """
            SELECT
                c.conname, c.contype, pg_get_constraintdef(c.oid, true), c.conislocal,
                NULLIF(c.confrelid, 0), rn.nspname, rc.relname,
                obj_description(c.oid, 'pg_constraint')
            FROM pg_constraint c
            LEFT JOIN pg_class rc ON rc.oid = c.confrelid
            LEFT JOIN pg_namespace rn ON rn.oid = rc.relnamespace
            WHERE c.conrelid = %s
              AND c.contype IN ('p', 'u', 'c', 'f', 'x')
            ORDER BY
                CASE c.contype WHEN 'p' THEN 0 WHEN 'u' THEN 1 WHEN 'x' THEN 2
                               WHEN 'c' THEN 3 ELSE 4 END,
                c.conname
        """
        constraints = []
        for row in self._fetch(query, (oid,)):
            name, contype, definition, is_local, ref_oid, ref_schema, ref_table, comment = row
            constraints.append(
                ConstraintInfo(
                    name=name,
                    contype=contype,
                    definition=definition,
                    is_local=is_local,
                    referenced_table_oid=ref_oid,
                    referenced_table=f"{ref_schema}.{ref_table}" if ref_oid else None,
                    comment=comment,
                )
            )
        return constraints

    def _indexes(self, oid: int) -> list[IndexInfo]:
        query = """
            SELECT
                i.relname,
                pg_get_indexdef(x.indexrelid),
                EXISTS (
                    SELECT 1 FROM pg_constraint c
                    WHERE c.conindid = x.indexrelid AND c.contype IN ('p', 'u', 'x')
                ),
                NOT EXISTS (SELECT 1 FROM pg_inherits h WHERE h.inhrelid = x.indexrelid),
                obj_description(x.indexrelid, 'pg_class')
            FROM pg_index x
            JOIN pg_class i ON i.oid = x.indexrelid
            WHERE x.indrelid = %s
            ORDER BY i.relname
        """
        return [
            IndexInfo(
                name=name, definition=definition, is_constraint=is_constraint,
                is_local=is_local, comment=comment,
            )
            for name, definition, is_constraint, is_local, comment in self._fetch(query, (oid,))
        ]

    def _triggers(self, oid: int) -> list[TriggerInfo]:
        query = """
            SELECT
                t.tgname, pg_get_triggerdef(t.oid, true), t.tgparentid = 0,
                obj_description(t.oid, 'pg_trigger')
            FROM pg_trigger t
            WHERE t.tgrelid = %s
              AND NOT t.tgisinternal
            ORDER BY t.tgname
        """
        return [
            TriggerInfo(name=name, definition=definition, is_local=is_local, comment=comment)
            for name, definition, is_local, comment in self._fetch(query, (oid,))
        ]

    def _rules(self, oid: int) -> list[RuleInfo]:
        query = """
            SELECT r.rulename, pg_get_ruledef(r.oid, true), obj_description(r.oid, 'pg_rewrite')
            FROM pg_rewrite r
            WHERE r.ev_class = %s
              AND r.rulename <> '_RETURN'
            ORDER BY r.rulename
        """
        return [
            RuleInfo(name=name, definition=definition, comment=comment)
            for name, definition, comment in self._fetch(query, (oid,))
        ]

    def get_view(self, oid: int) -> ViewInfo:
        with self._lookup("view", oid):
            row = self._fetch_one(
                """
                SELECT
                    c.relname, n.nspname, c.relkind = 'm', pg_get_viewdef(c.oid, true),
                    pg_get_userbyid(c.relowner), ts.spcname,
                    obj_description(c.oid, 'pg_class'), c.relacl::text[]
                FROM pg_class c
                JOIN pg_namespace n ON n.oid = c.relnamespace
                LEFT JOIN pg_tablespace ts ON ts.oid = c.reltablespace
                WHERE c.oid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"view {oid} does not exist")
            name, schema, materialized, definition, owner, tablespace, comment, acl = row

            depends_on = [
                dep
                for (dep,) in self._fetch(
                    """
                    SELECT DISTINCT d.refobjid
                    FROM pg_rewrite r
                    JOIN pg_depend d
                        ON d.objid = r.oid AND d.classid = 'pg_rewrite'::regclass
                    JOIN pg_class rc ON rc.oid = d.refobjid
                    WHERE r.ev_class = %s
                      AND d.refobjid <> %s
                      AND rc.relkind IN ('v', 'm')
                    ORDER BY d.refobjid
                    """,
                    (oid, oid),
                )
            ]
            columns, column_privileges = self._columns(oid, owner)
            return ViewInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                materialized=materialized,
                definition=definition,
                depends_on_views=depends_on,
                columns=columns,
                indexes=self._indexes(oid) if materialized else [],
                triggers=self._triggers(oid),
                rules=self._rules(oid),
                owner=owner,
                tablespace=tablespace,
                comment=comment,
                privileges=decode_acl(acl, owner) + column_privileges,
            )

    def get_sequence(self, oid: int) -> SequenceInfo:
        with self._lookup("sequence", oid):
            row = self._fetch_one(
                """
                SELECT
                    c.relname, n.nspname, format_type(s.seqtypid, NULL),
                    s.seqstart, s.seqincrement, s.seqmin, s.seqmax, s.seqcache, s.seqcycle,
                    tn.nspname, tc.relname, ta.attname,
                    pg_get_userbyid(c.relowner), obj_description(c.oid, 'pg_class'),
                    c.relacl::text[]
                FROM pg_sequence s
                JOIN pg_class c ON c.oid = s.seqrelid
                JOIN pg_namespace n ON n.oid = c.relnamespace
                LEFT JOIN pg_depend d
                    ON d.objid = c.oid AND d.classid = 'pg_class'::regclass
                    AND d.refclassid = 'pg_class'::regclass AND d.deptype = 'a'
                    AND d.refobjsubid > 0
                LEFT JOIN pg_class tc ON tc.oid = d.refobjid
                LEFT JOIN pg_namespace tn ON tn.oid = tc.relnamespace
                LEFT JOIN pg_attribute ta ON ta.attrelid = d.refobjid AND ta.attnum = d.refobjsubid
                WHERE s.seqrelid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"sequence {oid} does not exist")
            (name, schema, data_type, start, increment, min_value, max_value, cache, cycle,
             owned_schema, owned_table, owned_column, owner, comment, acl) = row

            state = self._fetch_one(
                sql.SQL("SELECT last_value, is_called FROM {}").format(
                    sql.Identifier(schema, name)
                )
            )
            last_value, is_called = state if state else (None, False)

            return SequenceInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                data_type=data_type,
                start=start,
                increment=increment,
                min_value=min_value,
                max_value=max_value,
                cache=cache,
                cycle=cycle,
                last_value=last_value,
                is_called=is_called,
                owned_by_schema=owned_schema,
                owned_by_table=owned_table,
                owned_by_column=owned_column,
                owner=owner,
                comment=comment,
                privileges=decode_acl(acl, owner),
            )

    # ------------------------------------------------------------------
    # Routines, types, operators
    # ------------------------------------------------------------------

    def get_function(self, oid: int) -> FunctionInfo:
        with self._lookup("function", oid):
            row = self._fetch_one(
                """
                SELECT
                    p.proname, n.nspname, pg_get_function_identity_arguments(p.oid),
                    pg_get_functiondef(p.oid), p.proargtypes::oid[], p.prorettype,
                    p.prokind = 'p', pg_get_userbyid(p.proowner),
                    obj_description(p.oid, 'pg_proc'), p.proacl::text[]
                FROM pg_proc p
                JOIN pg_namespace n ON n.oid = p.pronamespace
                WHERE p.oid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"function {oid} does not exist")
            (name, schema, args, definition, arg_types, return_type, is_procedure,
             owner, comment, acl) = row

            # Only SQL-standard bodies record the functions they call.
            depends_on = [
                dep
                for (dep,) in self._fetch(
                    """
                    SELECT DISTINCT refobjid FROM pg_depend
                    WHERE classid = 'pg_proc'::regclass AND objid = %s
                      AND refclassid = 'pg_proc'::regclass AND refobjid <> %s
                    ORDER BY refobjid
                    """,
                    (oid, oid),
                )
            ]
            return FunctionInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                identity_arguments=args,
                definition=definition,
                arg_type_oids=list(arg_types or []),
                return_type_oid=return_type,
                depends_on=depends_on,
                is_procedure=is_procedure,
                owner=owner,
                comment=comment,
                privileges=decode_acl(acl, owner),
            )

    def get_aggregate(self, oid: int) -> AggregateInfo:
        with self._lookup("aggregate", oid):
            row = self._fetch_one(
                f"""
                SELECT
                    p.proname, n.nspname, pg_get_function_identity_arguments(p.oid),
                    {_proc_name("a.aggtransfn")},
                    format_type(a.aggtranstype, NULL),
                    {_proc_name("a.aggfinalfn")},
                    {_proc_name("a.aggcombinefn")},
                    {_proc_name("a.aggserialfn")},
                    {_proc_name("a.aggdeserialfn")},
                    {_proc_name("a.aggmtransfn")},
                    {_proc_name("a.aggminvtransfn")},
                    CASE WHEN a.aggmtranstype <> 0 THEN format_type(a.aggmtranstype, NULL) END,
                    {_proc_name("a.aggmfinalfn")},
                    a.agginitval,
                    {_operator_name("a.aggsortop")},
                    ARRAY[a.aggtransfn, a.aggfinalfn, a.aggcombinefn, a.aggserialfn,
                          a.aggdeserialfn, a.aggmtransfn, a.aggminvtransfn,
                          a.aggmfinalfn]::oid[],
                    pg_get_userbyid(p.proowner), obj_description(p.oid, 'pg_proc'),
                    p.proacl::text[]
                FROM pg_aggregate a
                JOIN pg_proc p ON p.oid = a.aggfnoid
                JOIN pg_namespace n ON n.oid = p.pronamespace
                WHERE a.aggfnoid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"aggregate {oid} does not exist")
            (name, schema, args, sfunc, stype, finalfunc, combinefunc, serialfunc,
             deserialfunc, msfunc, minvfunc, mstype, mfinalfunc, initcond, sortop,
             support, owner, comment, acl) = row

            return AggregateInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                identity_arguments=args,
                sfunc=sfunc,
                stype=stype,
                finalfunc=finalfunc,
                combinefunc=combinefunc,
                serialfunc=serialfunc,
                deserialfunc=deserialfunc,
                msfunc=msfunc,
                minvfunc=minvfunc,
                mstype=mstype,
                mfinalfunc=mfinalfunc,
                initcond=initcond,
                sortop=sortop,
                support_function_oids=[f for f in support if f],
                owner=owner,
                comment=comment,
                privileges=decode_acl(acl, owner),
            )

    def get_domain(self, oid: int) -> DomainInfo:
        with self._lookup("domain", oid):
            row = self._fetch_one(
                """
                SELECT
                    t.typname, n.nspname, format_type(t.typbasetype, t.typtypmod),
                    t.typdefault, t.typnotnull,
                    CASE WHEN t.typcollation <> bt.typcollation
                         THEN quote_ident(cn.nspname) || '.' || quote_ident(co.collname) END,
                    t.typbasetype, pg_get_userbyid(t.typowner),
                    obj_description(t.oid, 'pg_type')
                FROM pg_type t
                JOIN pg_namespace n ON n.oid = t.typnamespace
                JOIN pg_type bt ON bt.oid = t.typbasetype
                LEFT JOIN pg_collation co ON co.oid = t.typcollation
                LEFT JOIN pg_namespace cn ON cn.oid = co.collnamespace
                WHERE t.oid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"domain {oid} does not exist")
            name, schema, base_type, default, not_null, collation, base_oid, owner, comment = row

            constraints = [
                ConstraintInfo(name=con_name, contype="c", definition=definition)
                for con_name, definition in self._fetch(
                    """
                    SELECT conname, pg_get_constraintdef(oid, true)
                    FROM pg_constraint
                    WHERE contypid = %s AND contype = 'c'
                    ORDER BY conname
                    """,
                    (oid,),
                )
            ]
            return DomainInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                base_type=base_type,
                default=default,
                not_null=not_null,
                collation=collation,
                constraints=constraints,
                depends_on_types=[base_oid],
                owner=owner,
                comment=comment,
            )

    def get_type(self, oid: int) -> TypeInfo:
        with self._lookup("type", oid):
            row = self._fetch_one(
                """
                SELECT
                    t.typname, n.nspname, t.typtype, t.typrelid,
                    pg_get_userbyid(t.typowner), obj_description(t.oid, 'pg_type')
                FROM pg_type t
                JOIN pg_namespace n ON n.oid = t.typnamespace
                WHERE t.oid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"type {oid} does not exist")
            name, schema, typtype, relid, owner, comment = row

            info = TypeInfo(
                oid=oid, name=name, schema_name=schema, category="composite",
                owner=owner, comment=comment,
            )
            if typtype == "c":
                rows = self._fetch(
                    """
                    SELECT attname, format_type(atttypid, atttypmod), atttypid
                    FROM pg_attribute
                    WHERE attrelid = %s AND attnum > 0 AND NOT attisdropped
                    ORDER BY attnum
                    """,
                    (relid,),
                )
                info.attributes = [TypeAttribute(name=n, data_type=t) for n, t, _ in rows]
                info.depends_on_types = [type_oid for _, _, type_oid in rows]
            elif typtype == "e":
                info.category = "enum"
                info.labels = [
                    label
                    for (label,) in self._fetch(
                        "SELECT enumlabel FROM pg_enum WHERE enumtypid = %s ORDER BY enumsortorder",
                        (oid,),
                    )
                ]
            elif typtype == "r":
                info.category = "range"
                subtype = self._fetch_one(
                    "SELECT format_type(rngsubtype, NULL), rngsubtype FROM pg_range WHERE rngtypid = %s",
                    (oid,),
                )
                if subtype:
                    info.subtype, sub_oid = subtype
                    info.depends_on_types = [sub_oid]
            else:
                info.category = typtype
            return info

    def get_operator(self, oid: int) -> OperatorInfo:
        with self._lookup("operator", oid):
            row = self._fetch_one(
                f"""
                SELECT
                    o.oprname, n.nspname, {_proc_name("o.oprcode")},
                    CASE WHEN o.oprleft <> 0 THEN format_type(o.oprleft, NULL) END,
                    CASE WHEN o.oprright <> 0 THEN format_type(o.oprright, NULL) END,
                    {_operator_name("o.oprcom")},
                    {_operator_name("o.oprnegate")},
                    {_proc_name("o.oprrest")},
                    {_proc_name("o.oprjoin")},
                    o.oprcanhash, o.oprcanmerge,
                    pg_get_userbyid(o.oprowner), obj_description(o.oid, 'pg_operator')
                FROM pg_operator o
                JOIN pg_namespace n ON n.oid = o.oprnamespace
                WHERE o.oid = %s
                """,
                (oid,),
            )
            if row is None:
                raise LookupError(f"operator {oid} does not exist")
            (name, schema, procedure, left, right, commutator, negator, restrict, join,
             hashes, merges, owner, comment) = row
            return OperatorInfo(
                oid=oid,
                name=name,
                schema_name=schema,
                procedure=procedure,
                left_type=left,
                right_type=right,
                commutator=commutator,
                negator=negator,
                restrict=restrict,
                join=join,
                hashes=hashes,
                merges=merges,
                owner=owner,
                comment=comment,
            )

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def estimate_row_width(self, table: TableInfo) -> int | None:
        """Sample ``pg_column_size`` over ~10% of the table's pages."""
        query = sql.SQL(
            "SELECT pg_column_size(t.*) FROM {} AS t TABLESAMPLE SYSTEM (10) LIMIT 1000"
        ).format(sql.Identifier(table.schema_name, table.name))
        try:
            with self.conn.transaction():
                samples = [size for (size,) in self._fetch(query)]
        except psycopg.Error as e:
            logger.warning("Row width sampling failed for %s: %s", table.qualified_name, e)
            return ERROR_ROW_BYTES
        return row_width_from_samples(samples, len(table.columns))

    def open_cursor(self, table: TableInfo, batch_size: int) -> ExportCursor:
        columns = table.data_columns
        query = sql.SQL("SELECT {} FROM ONLY {}").format(
            sql.SQL(", ").join(
                sql.SQL("{}::text").format(sql.Identifier(col)) for col in columns
            ),
            sql.Identifier(table.schema_name, table.name),
        )
        return ExportCursor(self.conn, query, batch_size, relation_kind=table.kind.value)
