"""Object dependency graph: nodes, edges, analyzer, ordering.

Usage:
    >>> from pg_porter.graph import DependencyAnalyzer, DependencyGraph, ObjectNode
"""

from pg_porter.graph.analyzer import DependencyAnalyzer, TypeCache
from pg_porter.graph.dependency_graph import DependencyGraph
from pg_porter.graph.models import DependencyEdge, DependencyRelation, ObjectNode

__all__ = [
    "DependencyAnalyzer",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyRelation",
    "ObjectNode",
    "TypeCache",
]
