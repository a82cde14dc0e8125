"""Directed dependency graph with deterministic topological ordering.

Edges point from the dependent object to its dependency. Sorting uses
Kahn's algorithm; among nodes that become eligible at the same time the one
added to the graph first wins, so output follows catalog scan order wherever
dependencies leave a choice. Nodes caught in a cycle never reach zero
remaining dependencies; they are appended after the acyclic part in
alphabetical order instead of being dropped.

Usage:
    graph = DependencyGraph()
    graph.add_node(ObjectNode(1, "accounts", "public", ObjectKind.TABLE))
    graph.add_node(ObjectNode(2, "orders", "public", ObjectKind.TABLE))
    graph.add_edge(2, 1, DependencyRelation.FOREIGN_KEY)

    [n.name for n in graph.get_sorted_nodes()]  # ["accounts", "orders"]
"""

import heapq
import logging
from collections import defaultdict

from pg_porter.graph.models import DependencyEdge, DependencyRelation, ObjectNode

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Node/edge set plus the derived order, built once per export run."""

    def __init__(self) -> None:
        self._nodes: dict[int, ObjectNode] = {}
        self._scan_index: dict[int, int] = {}
        self._edges: list[DependencyEdge] = []
        self._edge_keys: set[tuple[int, int]] = set()
        # dependency -> dependents
        self._dependents: dict[int, list[int]] = defaultdict(list)
        # dependent -> dependencies
        self._dependencies: dict[int, list[int]] = defaultdict(list)

        self._sorted: list[ObjectNode] | None = None
        self._positions: dict[int, int] = {}
        self._circular: list[ObjectNode] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node: ObjectNode) -> None:
        """Add a node; re-adding a known oid is ignored."""
        if node.oid in self._nodes:
            return
        self._scan_index[node.oid] = len(self._nodes)
        self._nodes[node.oid] = node
        self._sorted = None

    def add_edge(
        self,
        from_oid: int,
        to_oid: int,
        relation: DependencyRelation = DependencyRelation.FUNCTION_CALL,
    ) -> bool:
        """Record that ``from_oid`` depends on ``to_oid``.

        Self-references, duplicates and edges touching an unknown node are
        ignored.

        Returns:
            True if a new edge was recorded.
        """
        if from_oid == to_oid:
            return False
        if from_oid not in self._nodes or to_oid not in self._nodes:
            return False
        key = (from_oid, to_oid)
        if key in self._edge_keys:
            return False

        self._edge_keys.add(key)
        self._edges.append(DependencyEdge(from_oid, to_oid, relation))
        self._dependents[to_oid].append(from_oid)
        self._dependencies[from_oid].append(to_oid)
        self._sorted = None
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, oid: object) -> bool:
        return oid in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get_node(self, oid: int) -> ObjectNode | None:
        return self._nodes.get(oid)

    @property
    def nodes(self) -> list[ObjectNode]:
        """Nodes in insertion (scan) order."""
        return list(self._nodes.values())

    @property
    def edges(self) -> list[DependencyEdge]:
        return list(self._edges)

    def has_dependency(self, from_oid: int, to_oid: int) -> bool:
        """True if ``from_oid`` directly depends on ``to_oid``."""
        return (from_oid, to_oid) in self._edge_keys

    def dependencies_of(self, oid: int) -> list[int]:
        return list(self._dependencies.get(oid, []))

    def dependency_closure(self, oids: set[int] | list[int]) -> set[int]:
        """Return every node reachable from ``oids`` along dependency edges.

        The starting nodes themselves are not included unless reachable
        through a cycle.
        """
        seen: set[int] = set()
        stack = [dep for oid in oids for dep in self._dependencies.get(oid, [])]
        while stack:
            oid = stack.pop()
            if oid in seen:
                continue
            seen.add(oid)
            stack.extend(self._dependencies.get(oid, []))
        return seen

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def get_sorted_nodes(self) -> list[ObjectNode]:
        """Return all nodes, dependencies before dependents.

        Acyclic nodes come first in Kahn order with scan-order tie-break;
        circular nodes follow, sorted by name.
        """
        if self._sorted is None:
            self._sort()
        assert self._sorted is not None
        return list(self._sorted)

    def get_position(self, oid: int) -> int | None:
        if self._sorted is None:
            self._sort()
        return self._positions.get(oid)

    def has_circular_dependencies(self) -> bool:
        if self._sorted is None:
            self._sort()
        return bool(self._circular)

    def get_circular_nodes(self) -> list[ObjectNode]:
        if self._sorted is None:
            self._sort()
        return list(self._circular)

    def get_circular_edges(self) -> list[DependencyEdge]:
        """Edges whose endpoints both sit in the circular residue."""
        circular = {n.oid for n in self.get_circular_nodes()}
        return [e for e in self._edges if e.from_oid in circular and e.to_oid in circular]

    def should_defer(self, source_oid: int, target_oid: int) -> bool:
        """True if ``source`` is emitted before ``target``.

        An expression inside ``source`` that references ``target`` must
        then be postponed. Unknown nodes cannot be proven safe, so they
        defer as well.
        """
        source_pos = self.get_position(source_oid)
        target_pos = self.get_position(target_oid)
        if source_pos is None or target_pos is None:
            return True
        return target_pos > source_pos

    def _sort(self) -> None:
        remaining = {oid: len(self._dependencies.get(oid, [])) for oid in self._nodes}

        ready = [(self._scan_index[oid], oid) for oid, count in remaining.items() if count == 0]
        heapq.heapify(ready)

        ordered: list[ObjectNode] = []
        while ready:
            _, oid = heapq.heappop(ready)
            ordered.append(self._nodes[oid])
            for dependent in self._dependents.get(oid, []):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (self._scan_index[dependent], dependent))

        emitted = {n.oid for n in ordered}
        circular = [n for oid, n in self._nodes.items() if oid not in emitted]
        circular.sort(key=lambda n: (n.name, n.schema, n.kind.value, n.oid))

        if circular:
            logger.warning(
                "Circular dependencies among %d objects: %s",
                len(circular),
                ", ".join(n.qualified_name for n in circular),
            )

        self._circular = circular
        self._sorted = ordered + circular
        self._positions = {n.oid: i for i, n in enumerate(self._sorted)}
