"""Tests for DependencyGraph ordering and cycle fallback."""

import logging

from pg_porter.catalog.models import ObjectKind
from pg_porter.graph.dependency_graph import DependencyGraph
from pg_porter.graph.models import DependencyRelation, ObjectNode


def _graph(*names: str, kind: ObjectKind = ObjectKind.TABLE) -> DependencyGraph:
    graph = DependencyGraph()
    for i, name in enumerate(names, start=1):
        graph.add_node(ObjectNode(i, name, "public", kind))
    return graph


def _names(graph: DependencyGraph) -> list[str]:
    return [n.name for n in graph.get_sorted_nodes()]


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


class TestConstruction:
    def test_duplicate_node_ignored(self):
        graph = _graph("a")
        graph.add_node(ObjectNode(1, "renamed", "public", ObjectKind.TABLE))
        assert len(graph) == 1
        assert graph.get_node(1).name == "a"

    def test_self_duplicate_and_dangling_edges_ignored(self):
        graph = _graph("a", "b")
        assert graph.add_edge(2, 1) is True
        assert graph.add_edge(2, 1) is False
        assert graph.add_edge(1, 1) is False
        assert graph.add_edge(1, 99) is False
        assert len(graph.edges) == 1

    def test_has_dependency_is_directional(self):
        graph = _graph("a", "b")
        graph.add_edge(2, 1, DependencyRelation.FOREIGN_KEY)
        assert graph.has_dependency(2, 1)
        assert not graph.has_dependency(1, 2)
        assert graph.edges[0].relation == DependencyRelation.FOREIGN_KEY


# ------------------------------------------------------------------
# Ordering
# ------------------------------------------------------------------


class TestOrdering:
    def test_dependencies_before_dependents(self):
        graph = _graph("orders", "accounts")
        graph.add_edge(1, 2)
        assert _names(graph) == ["accounts", "orders"]

    def test_independent_nodes_keep_scan_order(self):
        graph = _graph("zeta", "alpha", "mid")
        assert _names(graph) == ["zeta", "alpha", "mid"]

    def test_tie_break_uses_scan_order_not_name(self):
        # c depends on a; b is free. b was scanned before c, so it comes first.
        graph = _graph("a", "b", "c")
        graph.add_edge(3, 1)
        assert _names(graph) == ["a", "b", "c"]

    def test_every_edge_respected_in_chain(self):
        graph = _graph("d", "c", "b", "a")
        graph.add_edge(1, 2)
        graph.add_edge(2, 3)
        graph.add_edge(3, 4)
        assert _names(graph) == ["a", "b", "c", "d"]

    def test_sort_is_stable_across_calls(self):
        graph = _graph("x", "y", "z")
        graph.add_edge(1, 3)
        assert _names(graph) == _names(graph)

    def test_adding_edge_invalidates_order(self):
        graph = _graph("a", "b")
        assert _names(graph) == ["a", "b"]
        graph.add_edge(1, 2)
        assert _names(graph) == ["b", "a"]


# ------------------------------------------------------------------
# Cycles
# ------------------------------------------------------------------


class TestCycles:
    def test_cycle_members_follow_acyclic_part_alphabetically(self, caplog):
        graph = _graph("standalone", "zebra", "apple", "mango")
        graph.add_edge(2, 3)
        graph.add_edge(3, 4)
        graph.add_edge(4, 2)

        with caplog.at_level(logging.WARNING):
            order = _names(graph)

        assert order == ["standalone", "apple", "mango", "zebra"]
        assert graph.has_circular_dependencies()
        assert [n.name for n in graph.get_circular_nodes()] == ["apple", "mango", "zebra"]
        assert "Circular dependencies" in caplog.text

    def test_nodes_depending_on_cycle_are_circular_too(self):
        graph = _graph("a", "b", "c")
        graph.add_edge(1, 2)
        graph.add_edge(2, 1)
        graph.add_edge(3, 1)
        assert {n.name for n in graph.get_circular_nodes()} == {"a", "b", "c"}
        assert len(graph.get_sorted_nodes()) == 3

    def test_circular_edges(self):
        graph = _graph("a", "b", "c")
        graph.add_edge(1, 2)
        graph.add_edge(2, 1)
        graph.add_edge(3, 1)
        assert {(e.from_oid, e.to_oid) for e in graph.get_circular_edges()} == {
            (1, 2), (2, 1), (3, 1)
        }

    def test_acyclic_graph_has_no_circular_nodes(self):
        graph = _graph("a", "b")
        graph.add_edge(2, 1)
        assert not graph.has_circular_dependencies()
        assert graph.get_circular_nodes() == []


# ------------------------------------------------------------------
# Queries used by the emitters
# ------------------------------------------------------------------


class TestShouldDefer:
    def test_target_emitted_later_defers(self):
        graph = _graph("a", "b")
        assert graph.should_defer(1, 2) is True

    def test_target_emitted_earlier_does_not_defer(self):
        graph = _graph("a", "b")
        assert graph.should_defer(2, 1) is False

    def test_unknown_node_defers(self):
        graph = _graph("a")
        assert graph.should_defer(1, 42) is True
        assert graph.should_defer(42, 1) is True


class TestDependencyClosure:
    def test_transitive_closure_excludes_start(self):
        graph = _graph("a", "b", "c", "d")
        graph.add_edge(1, 2)
        graph.add_edge(2, 3)
        assert graph.dependency_closure({1}) == {2, 3}

    def test_closure_of_leaf_is_empty(self):
        graph = _graph("a", "b")
        graph.add_edge(1, 2)
        assert graph.dependency_closure([2]) == set()
