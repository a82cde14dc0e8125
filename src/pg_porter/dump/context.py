"""State shared by the emitters during one export scope."""

from dataclasses import dataclass, field

from pg_porter.catalog.base import CatalogSource
from pg_porter.dump.deferred import DeferredQueue
from pg_porter.dump.models import DeferredStatement, ExportOptions
from pg_porter.dump.writer import SqlWriter
from pg_porter.graph.analyzer import DependencyAnalyzer
from pg_porter.graph.dependency_graph import DependencyGraph
from pg_porter.stream.chunking import ChunkCalculator


@dataclass
class DumpContext:
    """Writer, options, deferred queue and ordering oracle for the emitters.

    ``emitted`` collects the qualified names of relations created so far;
    the post-pass uses it to guard deferred statements.
    """

    writer: SqlWriter
    options: ExportOptions
    deferred: DeferredQueue
    catalog: CatalogSource | None = None
    graph: DependencyGraph | None = None
    analyzer: DependencyAnalyzer | None = None
    calculator: ChunkCalculator = field(default_factory=ChunkCalculator)
    emitted: set[str] = field(default_factory=set)
    rows_exported: int = 0

    def defer(self, statement: DeferredStatement) -> None:
        self.deferred.push(statement)

    def references(self, expr: str, schema: str) -> list[int]:
        """User functions called from ``expr``."""
        if self.analyzer is None:
            return []
        return self.analyzer.function_references(expr, schema)

    def must_defer(self, owner_oid: int, expr: str, schema: str) -> bool:
        """True if ``expr`` inside ``owner_oid`` calls a function emitted later."""
        if self.graph is None:
            return False
        return any(
            self.graph.should_defer(owner_oid, func_oid)
            for func_oid in self.references(expr, schema)
        )
