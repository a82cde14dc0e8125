"""Build the dependency graph for the unified export pass.

Scans the catalog for the requested schemas and records which objects must
exist before which. Nodes are added in catalog scan order (functions,
tables of every kind, domains, aggregates; by name within each group), which
is the tie-break the graph uses when ordering leaves a choice.

Usage:
    from pg_porter.catalog.cache import CatalogCache
    from pg_porter.graph.analyzer import DependencyAnalyzer

    analyzer = DependencyAnalyzer(CatalogCache(catalog), ["public"])
    graph = analyzer.build()
    for node in graph.get_sorted_nodes():
        ...
"""

import logging
import re

from pg_porter.catalog.cache import CatalogCache
from pg_porter.catalog.models import (
    TABLE_KINDS,
    AggregateInfo,
    CatalogObject,
    DomainInfo,
    FunctionInfo,
    ObjectKind,
    TableInfo,
    TypeLink,
)
from pg_porter.errors import CatalogQueryError
from pg_porter.graph.dependency_graph import DependencyGraph
from pg_porter.graph.models import DependencyRelation, ObjectNode

logger = logging.getLogger(__name__)

# (schema.)?name(
FUNCTION_CALL_PATTERN = re.compile(r"(?:(\w+)\.)?(\w+)\s*\(")

BUILTIN_FUNCTIONS = frozenset(
    {
        "abs", "age", "array_agg", "array_length", "avg", "btrim", "cast",
        "ceil", "char_length", "coalesce", "concat", "count", "current_date",
        "current_setting", "date_part", "date_trunc", "exists", "extract",
        "floor", "format", "gen_random_uuid", "greatest", "jsonb_build_object",
        "least", "left", "length", "lower", "ltrim", "max", "md5", "min",
        "now", "nextval", "nullif", "position", "random", "regexp_replace",
        "replace", "right", "round", "row", "rtrim", "setval", "currval",
        "split_part", "sqrt", "statement_timestamp", "string_agg", "substr",
        "substring", "sum", "timezone", "to_char", "to_date", "to_number",
        "to_timestamp", "transaction_timestamp", "trim", "trunc", "upper",
        "uuid_generate_v4",
    }
)

SCAN_GROUPS: list[frozenset[ObjectKind]] = [
    frozenset({ObjectKind.FUNCTION}),
    TABLE_KINDS,
    frozenset({ObjectKind.DOMAIN}),
    frozenset({ObjectKind.AGGREGATE}),
]

GRAPH_KINDS = frozenset().union(*SCAN_GROUPS)


class TypeCache:
    """Maps type oids to the relation backing them, following array elements.

    Built once per analyzer run from ``CatalogSource.list_type_links`` and
    discarded with it.
    """

    MAX_DEPTH = 8

    def __init__(self, links: list[TypeLink]):
        self._links = {link.oid: link for link in links}

    def relation_for(self, type_oid: int) -> int | None:
        """Return the table oid whose row type is ``type_oid`` (or its element)."""
        current = type_oid
        for _ in range(self.MAX_DEPTH):
            link = self._links.get(current)
            if link is None:
                return None
            if link.relid:
                return link.relid
            if not link.elem:
                return None
            current = link.elem
        return None


class DependencyAnalyzer:
    """Scans catalog metadata and builds a ``DependencyGraph``.

    Args:
        cache: Per-run catalog cache.
        schemas: Schemas whose objects become graph nodes.
        search_schemas: Schemas searched when resolving function names in
            expressions. Defaults to ``schemas``. Functions found here but
            outside the graph make ``should_defer`` answer True.
    """

    def __init__(
        self,
        cache: CatalogCache,
        schemas: list[str],
        search_schemas: list[str] | None = None,
    ):
        self._cache = cache
        self._schemas = list(schemas)
        self._search_schemas = list(search_schemas or schemas)
        self._type_cache: TypeCache | None = None
        self._functions_by_name: dict[str, list[tuple[str, int]]] | None = None

    # ------------------------------------------------------------------
    # Graph build
    # ------------------------------------------------------------------

    def build(self) -> DependencyGraph:
        graph = DependencyGraph()
        objects: list[CatalogObject] = []

        for group in SCAN_GROUPS:
            for schema in self._schemas:
                for obj in self._cache.objects(schema):
                    if obj.kind in group:
                        graph.add_node(ObjectNode.from_catalog(obj))
                        objects.append(obj)

        domain_oids = {obj.oid for obj in objects if obj.kind == ObjectKind.DOMAIN}

        for obj in objects:
            try:
                detail = self._cache.get(obj)
            except CatalogQueryError as e:
                logger.warning("Skipping dependencies of %s: %s", obj.qualified_name, e)
                continue

            if isinstance(detail, FunctionInfo):
                self._add_function_edges(graph, detail)
            elif isinstance(detail, TableInfo):
                self._add_table_edges(graph, detail, domain_oids)
            elif isinstance(detail, DomainInfo):
                for con in detail.constraints:
                    self._add_expression_edges(
                        graph, detail.oid, con.definition, detail.schema_name,
                        DependencyRelation.CHECK_EXPR,
                    )
            elif isinstance(detail, AggregateInfo):
                for func_oid in detail.support_function_oids:
                    graph.add_edge(detail.oid, func_oid, DependencyRelation.AGGREGATE_SUPPORT)

        logger.debug(
            "Dependency graph for %s: %d nodes, %d edges",
            ", ".join(self._schemas), len(graph), len(graph.edges),
        )
        return graph

    def _add_function_edges(self, graph: DependencyGraph, func: FunctionInfo) -> None:
        for dep in func.depends_on:
            graph.add_edge(func.oid, dep, DependencyRelation.FUNCTION_CALL)

        types = self.type_cache
        for type_oid in [*func.arg_type_oids, func.return_type_oid]:
            if not type_oid:
                continue
            relid = types.relation_for(type_oid)
            if relid:
                graph.add_edge(func.oid, relid, DependencyRelation.FUNCTION_TYPE)

    def _add_table_edges(
        self, graph: DependencyGraph, table: TableInfo, domain_oids: set[int]
    ) -> None:
        if table.parent_oid:
            graph.add_edge(table.oid, table.parent_oid, DependencyRelation.PARTITION_OF)

        for col in table.columns:
            for expr in (col.default, col.generated):
                if expr:
                    self._add_expression_edges(
                        graph, table.oid, expr, table.schema_name,
                        DependencyRelation.DEFAULT_EXPR,
                    )
            if col.type_oid in domain_oids:
                graph.add_edge(table.oid, col.type_oid, DependencyRelation.DOMAIN_USAGE)

        for con in table.constraints:
            if con.contype == "c":
                self._add_expression_edges(
                    graph, table.oid, con.definition, table.schema_name,
                    DependencyRelation.CHECK_EXPR,
                )
            elif con.contype == "f" and con.referenced_table_oid:
                graph.add_edge(table.oid, con.referenced_table_oid, DependencyRelation.FOREIGN_KEY)

    def _add_expression_edges(
        self,
        graph: DependencyGraph,
        source_oid: int,
        expr: str,
        schema: str,
        relation: DependencyRelation,
    ) -> None:
        for func_oid in self.function_references(expr, schema):
            graph.add_edge(source_oid, func_oid, relation)

    # ------------------------------------------------------------------
    # Lookups (shared with the emitters)
    # ------------------------------------------------------------------

    @property
    def type_cache(self) -> TypeCache:
        if self._type_cache is None:
            self._type_cache = TypeCache(self._cache.catalog.list_type_links())
        return self._type_cache

    def function_references(self, expr: str, schema: str) -> list[int]:
        """Return oids of user functions called from ``expr``.

        Unqualified names resolve against ``schema`` first, then the other
        search schemas in order. Builtins and unknown names are skipped.
        """
        index = self._function_index()
        found: list[int] = []
        for qualifier, name in FUNCTION_CALL_PATTERN.findall(expr):
            if name.lower() in BUILTIN_FUNCTIONS:
                continue
            candidates = index.get(name, [])
            if qualifier:
                matches = [oid for s, oid in candidates if s == qualifier]
            else:
                matches = [oid for s, oid in candidates if s == schema] or [
                    oid for _, oid in candidates
                ]
            if matches and matches[0] not in found:
                found.append(matches[0])
        return found

    def _function_index(self) -> dict[str, list[tuple[str, int]]]:
        if self._functions_by_name is None:
            index: dict[str, list[tuple[str, int]]] = {}
            for schema in self._search_schemas:
                for obj in self._cache.objects(schema):
                    if obj.kind == ObjectKind.FUNCTION:
                        index.setdefault(obj.name, []).append((schema, obj.oid))
            self._functions_by_name = index
        return self._functions_by_name
