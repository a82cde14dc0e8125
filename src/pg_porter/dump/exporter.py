"""Scope orchestration: server -> database -> schema.

Each exporter walks its scope in a fixed order, hands every object to the
emitter for its kind, and drains the deferred-statement queue once the whole
scope has been written. The queue belongs to the outermost exporter that
runs (a ``DatabaseExporter`` when dumping a database), so statements that
reference objects in another schema are only emitted after every schema
exists.

Usage:
    from pg_porter.dump import DatabaseExporter, ExportOptions, SqlWriter

    with PgCatalog(url) as catalog:
        result = DatabaseExporter(
            catalog, ExportOptions(clean=True), SqlWriter(sink), schemas=["public"]
        ).export()
"""

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from typing import Any

from pg_porter.catalog.base import CatalogSource
from pg_porter.catalog.cache import CatalogCache
from pg_porter.catalog.models import (
    CatalogObject,
    DomainInfo,
    ObjectKind,
    SchemaInfo,
    SequenceInfo,
    TypeInfo,
    ViewInfo,
)
from pg_porter.dump.context import DumpContext
from pg_porter.dump.deferred import DeferredQueue
from pg_porter.dump.emitters import RoleEmitter, TablespaceEmitter, emitter_for
from pg_porter.dump.models import ExportOptions, ExportResult
from pg_porter.dump.writer import SqlWriter, quote_ident, quote_literal
from pg_porter.errors import CatalogQueryError
from pg_porter.graph.analyzer import DependencyAnalyzer
from pg_porter.graph.dependency_graph import DependencyGraph
from pg_porter.graph.models import DependencyRelation, ObjectNode
from pg_porter.stream.chunking import ChunkCalculator

logger = logging.getLogger(__name__)

CONNECT_HEADER = [
    "SET client_encoding = 'UTF8'",
    "SET statement_timeout = 0",
    "SET lock_timeout = 0",
    "SET idle_in_transaction_session_timeout = 0",
    "SET standard_conforming_strings = on",
    "SELECT pg_catalog.set_config('search_path', '', false)",
    "SET check_function_bodies = false",
    "SET client_min_messages = warning",
    "SET row_security = off",
    "SET session_replication_role = replica",
]

CONNECT_FOOTER = ["SET session_replication_role = origin"]

TYPE_PASS_KINDS = frozenset({ObjectKind.DOMAIN, ObjectKind.TYPE})
VIEW_KINDS = (ObjectKind.VIEW, ObjectKind.MATERIALIZED_VIEW)
DEPENDENCY_KINDS = frozenset({ObjectKind.FUNCTION, ObjectKind.AGGREGATE, ObjectKind.DOMAIN})


def _merge(total: ExportResult, part: ExportResult) -> None:
    total.objects_emitted += part.objects_emitted
    total.rows_exported += part.rows_exported
    total.deferred_emitted += part.deferred_emitted
    total.deferred_skipped += part.deferred_skipped
    total.circular_objects.extend(part.circular_objects)
    total.failed_objects.extend(part.failed_objects)


# ============================================================================
# Schema scope
# ============================================================================


class SchemaExporter:
    """Exports one schema in dependency order.

    Args:
        catalog: Catalog source connected to the schema's database.
        schema: Schema name.
        options: Export options. ``objects`` selects relation names.
        writer: Destination for the SQL text.
        cache: Shared per-run catalog cache. A new one is created if omitted.
        deferred: Queue owned by an enclosing exporter. If omitted, this
            exporter owns a queue and drains it at the end of ``export``.
        search_schemas: Schemas used to resolve function names in
            expressions. Defaults to this schema only.
        calculator: Batch sizing policy for data dumps.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        schema: str,
        options: ExportOptions,
        writer: SqlWriter,
        cache: CatalogCache | None = None,
        deferred: DeferredQueue | None = None,
        search_schemas: list[str] | None = None,
        calculator: ChunkCalculator | None = None,
    ):
        self.catalog = catalog
        self.schema = schema
        self.options = options
        self.writer = writer
        self.cache = cache or CatalogCache(catalog)
        self.owns_queue = deferred is None
        self.deferred = deferred if deferred is not None else DeferredQueue()
        self.search_schemas = search_schemas or [schema]
        self.calculator = calculator or ChunkCalculator(options.memory_ceiling_bytes)
        self.result = ExportResult(success=True)

    def export(self) -> ExportResult:
        # Standalone data dumps need their own snapshot for the cursors.
        snapshot: AbstractContextManager = (
            self.catalog.snapshot()
            if self.owns_queue and self.options.with_data
            else nullcontext()
        )
        with snapshot:
            return self._export()

    def _export(self) -> ExportResult:
        analyzer = DependencyAnalyzer(self.cache, [self.schema], self.search_schemas)
        graph = analyzer.build()
        ctx = DumpContext(
            writer=self.writer,
            options=self.options,
            deferred=self.deferred,
            catalog=self.catalog,
            graph=graph,
            analyzer=analyzer,
            calculator=self.calculator,
        )
        self.ctx = ctx
        objects = self.cache.objects(self.schema)
        selected = self._select(objects, graph)

        if self.options.add_create_schema and self.options.with_structure:
            self._emit_schema()

        self._type_pass([o for o in objects if o.kind in TYPE_PASS_KINDS and o.oid in selected])
        for obj in objects:
            if obj.kind == ObjectKind.SEQUENCE:
                self._emit_sequence(obj, selected)
        for obj in objects:
            if obj.kind == ObjectKind.OPERATOR and obj.oid in selected:
                self._emit(obj)

        self._unified_pass(graph, selected)
        self._view_pass([o for o in objects if o.kind in VIEW_KINDS and o.oid in selected])

        self.result.rows_exported = ctx.rows_exported
        if self.owns_queue:
            written, skipped = self.deferred.drain(self.writer, ctx.emitted)
            self.result.deferred_emitted = written
            self.result.deferred_skipped = skipped
        return self.result

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _select(self, objects: list[CatalogObject], graph: DependencyGraph) -> set[int]:
        """Return the oids to dump.

        Without an explicit selection everything is dumped. Otherwise
        relations are picked by name, partitions follow their parent, and
        functions / aggregates / domains come along only as dependencies of
        the selected relations when ``include_dependencies`` is set.
        """
        if self.options.objects is None:
            return {obj.oid for obj in objects}

        names = set(self.options.objects)
        selected = {
            obj.oid
            for obj in objects
            if (obj.kind.is_table_like or obj.kind in VIEW_KINDS or obj.kind == ObjectKind.SEQUENCE)
            and (obj.name in names or obj.qualified_name in names)
        }

        # Partitions of a selected partitioned table, at any depth.
        changed = True
        while changed:
            changed = False
            for obj in objects:
                if obj.parent_oid in selected and obj.oid not in selected:
                    selected.add(obj.oid)
                    changed = True

        if self.options.include_dependencies:
            closure = graph.dependency_closure(selected)
            for obj in objects:
                if obj.kind in DEPENDENCY_KINDS and obj.oid in closure:
                    selected.add(obj.oid)
                elif obj.kind in (ObjectKind.TYPE, ObjectKind.OPERATOR):
                    selected.add(obj.oid)
        return selected

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _emit_schema(self) -> None:
        info = next((s for s in self.catalog.list_schemas() if s.name == self.schema), None)
        if info is None:
            info = SchemaInfo(oid=0, name=self.schema)
        target = quote_ident(self.schema)
        self.writer.banner("Schema", self.schema)
        if self.options.clean:
            self.writer.drop("SCHEMA", target)
        head = "CREATE SCHEMA IF NOT EXISTS" if self.options.if_not_exists else "CREATE SCHEMA"
        self.writer.statement(f"{head} {target}")
        self.writer.owner("SCHEMA", target, info.owner)
        if self.options.include_comments:
            self.writer.comment_on("SCHEMA", target, info.comment)
        if self.options.include_privileges and info.privileges:
            self.writer.privileges("SCHEMA", target, info.privileges)

    def _type_pass(self, objects: list[CatalogObject]) -> None:
        """Domains and types in their own topological pass over type usage.

        Domains and composite types lead the scan order; enum and range
        types only move ahead of them when something depends on them.
        """
        details: dict[int, Any] = {}
        for obj in objects:
            try:
                details[obj.oid] = self.cache.get(obj)
            except CatalogQueryError:
                continue

        def rank(obj: CatalogObject) -> int:
            detail = details.get(obj.oid)
            return 1 if isinstance(detail, TypeInfo) and detail.category != "composite" else 0

        graph = DependencyGraph()
        for obj in sorted(objects, key=rank):
            graph.add_node(ObjectNode.from_catalog(obj))
        for oid, detail in details.items():
            if isinstance(detail, (DomainInfo, TypeInfo)):
                for dep in detail.depends_on_types:
                    graph.add_edge(oid, dep, DependencyRelation.TYPE_USAGE)

        by_oid = {obj.oid: obj for obj in objects}
        for node in graph.get_sorted_nodes():
            self._emit(by_oid[node.oid])

    def _emit_sequence(self, obj: CatalogObject, selected: set[int]) -> None:
        try:
            seq: SequenceInfo = self.cache.get(obj)
        except CatalogQueryError as e:
            if obj.oid in selected:
                self._failed(obj, e)
            return
        # Sequences owned by a selected table come along with it.
        owner_selected = seq.owned_by is not None and self.options.objects is not None and (
            seq.owned_by_table in self.options.objects or seq.owned_by in self.options.objects
        )
        if obj.oid not in selected and not owner_selected:
            return
        emitter_for(obj.kind, self.ctx).emit(seq)
        self.result.objects_emitted += 1

    def _unified_pass(self, graph: DependencyGraph, selected: set[int]) -> None:
        if graph.has_circular_dependencies():
            circular = graph.get_circular_nodes()
            self.writer.line()
            self.writer.comment(
                "WARNING: circular dependencies detected among the following objects.\n"
                "They are emitted in alphabetical order; expressions that reference\n"
                "an object emitted later are added by the deferred statements below."
            )
            for node in circular:
                self.writer.comment(f"  {node.kind.value} {node.qualified_name}")
            self.result.circular_objects.extend(n.qualified_name for n in circular)

        by_oid = {obj.oid: obj for obj in self.cache.objects(self.schema)}
        for node in graph.get_sorted_nodes():
            if node.kind == ObjectKind.DOMAIN or node.oid not in selected:
                continue
            self._emit(by_oid[node.oid])

    def _view_pass(self, objects: list[CatalogObject]) -> None:
        """Views and materialized views ordered by view-on-view usage."""
        ordered = [o for o in objects if o.kind == ObjectKind.VIEW] + [
            o for o in objects if o.kind == ObjectKind.MATERIALIZED_VIEW
        ]
        graph = DependencyGraph()
        for obj in ordered:
            graph.add_node(ObjectNode.from_catalog(obj))
        for obj in ordered:
            try:
                view: ViewInfo = self.cache.get(obj)
            except CatalogQueryError:
                continue
            for dep in view.depends_on_views:
                graph.add_edge(obj.oid, dep, DependencyRelation.VIEW_USAGE)

        by_oid = {obj.oid: obj for obj in ordered}
        for node in graph.get_sorted_nodes():
            self._emit(by_oid[node.oid])

    # ------------------------------------------------------------------
    # One object
    # ------------------------------------------------------------------

    def _emit(self, obj: CatalogObject) -> None:
        try:
            detail = self.cache.get(obj)
        except CatalogQueryError as e:
            self._failed(obj, e)
            return
        emitter_for(obj.kind, self.ctx).emit(detail)
        self.result.objects_emitted += 1

    def _failed(self, obj: CatalogObject, error: CatalogQueryError) -> None:
        logger.warning("Error dumping %s %s: %s", obj.kind.value, obj.qualified_name, error.message)
        self.writer.line()
        self.writer.comment(f"Error dumping {obj.kind.value} {obj.qualified_name}: {error.message}")
        self.result.failed_objects.append(obj.qualified_name)


# ============================================================================
# Database scope
# ============================================================================


class DatabaseExporter:
    """Exports one database: preliminaries, schemas, grants, deferred statements.

    Args:
        catalog: Catalog source connected to the database.
        options: Export options. ``objects`` selects schema names unless
            ``schemas`` is given, in which case it selects relation names
            within those schemas.
        writer: Destination for the SQL text.
        schemas: Restrict the dump to these schemas.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        options: ExportOptions,
        writer: SqlWriter,
        schemas: list[str] | None = None,
    ):
        self.catalog = catalog
        self.options = options
        self.writer = writer
        self.schemas = schemas
        self.deferred = DeferredQueue()
        self.cache = CatalogCache(catalog)
        self.calculator = ChunkCalculator(options.memory_ceiling_bytes)

    def export(self) -> ExportResult:
        options = self.options
        database = self.catalog.get_database()
        result = ExportResult(success=True)

        if options.add_create_database:
            self._create_database(database)
        if not options.suppress_preliminaries:
            for sql in CONNECT_HEADER:
                self.writer.statement(sql)

        all_schemas = [s.name for s in self.catalog.list_schemas()]
        if self.schemas is not None:
            targets = [s for s in self.schemas if s in all_schemas]
            schema_options = options
        else:
            targets = [s for s in all_schemas if options.selects(s)]
            schema_options = options.scoped(objects=None)

        emitted: set[str] = set()
        snapshot: AbstractContextManager = (
            self.catalog.snapshot() if options.with_data else nullcontext()
        )
        with snapshot:
            for schema in targets:
                logger.debug("Exporting schema %s.%s", database.name, schema)
                exporter = SchemaExporter(
                    self.catalog,
                    schema,
                    schema_options,
                    self.writer,
                    cache=self.cache,
                    deferred=self.deferred,
                    search_schemas=all_schemas,
                    calculator=self.calculator,
                )
                _merge(result, exporter.export())
                emitted |= exporter.ctx.emitted

        target = quote_ident(database.name)
        if options.with_structure:
            if options.include_comments and database.comment:
                self.writer.comment_on("DATABASE", target, database.comment)
            if options.include_privileges and database.privileges:
                self.writer.privileges("DATABASE", target, database.privileges)

        written, skipped = self.deferred.drain(self.writer, emitted)
        result.deferred_emitted += written
        result.deferred_skipped += skipped

        if not options.suppress_preliminaries:
            for sql in CONNECT_FOOTER:
                self.writer.statement(sql)

        logger.info(
            "Exported database %s: %d objects, %d rows, %d deferred (%d skipped)",
            database.name, result.objects_emitted, result.rows_exported,
            result.deferred_emitted, result.deferred_skipped,
        )
        return result

    def _create_database(self, database) -> None:
        target = quote_ident(database.name)
        self.writer.banner("Database", database.name)
        if self.options.clean:
            self.writer.statement(f"DROP DATABASE IF EXISTS {target}")
        parts = [f"CREATE DATABASE {target} WITH TEMPLATE = template0"]
        parts.append(f"ENCODING = {quote_literal(database.encoding)}")
        if database.collate:
            parts.append(f"LC_COLLATE = {quote_literal(database.collate)}")
        if database.ctype:
            parts.append(f"LC_CTYPE = {quote_literal(database.ctype)}")
        if database.tablespace and database.tablespace != "pg_default":
            parts.append(f"TABLESPACE = {quote_ident(database.tablespace)}")
        self.writer.statement(" ".join(parts))
        self.writer.owner("DATABASE", target, database.owner)
        self.writer.line()
        self.writer.line(f"\\connect {target}")
        self.writer.line()


# ============================================================================
# Server scope
# ============================================================================


CatalogFactory = Callable[[str | None], AbstractContextManager[CatalogSource]]


class ServerExporter:
    """Exports roles, tablespaces and every selected database, one at a time.

    Args:
        connect: Opens a catalog source for a database name; ``None`` means
            the maintenance database used for cluster-wide objects.
        options: Export options. ``objects`` selects database names.
        writer: Destination for the SQL text.
    """

    def __init__(self, connect: CatalogFactory, options: ExportOptions, writer: SqlWriter):
        self.connect = connect
        self.options = options
        self.writer = writer

    def export(self) -> ExportResult:
        options = self.options
        result = ExportResult(success=True)

        self.writer.comment("PostgreSQL database cluster dump")
        self.writer.line()
        self.writer.line("\\set ON_ERROR_STOP on")
        self.writer.statement("SET client_encoding = 'UTF8'")

        with self.connect(None) as catalog:
            databases = [d for d in catalog.list_databases() if options.selects(d.name)]
            if options.with_structure:
                self._emit_globals(catalog)

        db_options = options.scoped(
            objects=None, add_create_database=True, suppress_preliminaries=True
        )
        for database in databases:
            logger.info("Exporting database %s", database.name)
            with self.connect(database.name) as catalog:
                _merge(result, DatabaseExporter(catalog, db_options, self.writer).export())
        return result

    def _emit_globals(self, catalog: CatalogSource) -> None:
        roles = catalog.list_roles()
        if roles:
            self.writer.banner("Roles", "cluster")
            role_emitter = RoleEmitter(self.writer, self.options.clean, self.options.include_comments)
            for role in roles:
                role_emitter.emit(role)
            for role in roles:
                role_emitter.emit_memberships(role)

        tablespaces = catalog.list_tablespaces()
        if tablespaces:
            self.writer.banner("Tablespaces", "cluster")
            ts_emitter = TablespaceEmitter(self.writer, self.options.clean, self.options.include_comments)
            for tablespace in tablespaces:
                ts_emitter.emit(tablespace)
