"""Tests for DependencyGraph and graph algorithms."""

import pytest

from livecompute._graph import DependencyGraph, topological_sort


class TestTopologicalSort:
    """Tests for the topological_sort algorithm."""

    def test_empty_graph(self) -> None:
        result = topological_sort({})
        assert result == []

    def test_single_node(self) -> None:
        result = topological_sort({"a": []})
        assert result == ["a"]

    def test_linear_chain(self) -> None:
        # a -> b -> c (c depends on b, b depends on a)
        result = topological_sort({"a": ["b"], "b": ["c"], "c": []})
        assert result == ["a", "b", "c"]

    def test_diamond_dependency(self) -> None:
        # a -> b, a -> c, b -> d, c -> d
        result = topological_sort({"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []})
        assert result[0] == "a"
        assert result[-1] == "d"
        assert result.index("b") < result.index("d")
        assert result.index("c") < result.index("d")

    def test_ties_keep_mapping_order(self) -> None:
        result = topological_sort({"b": [], "a": [], "c": []})
        assert result == ["b", "a", "c"]

    def test_cycle_detection(self) -> None:
        with pytest.raises(ValueError, match="Cycle"):
            topological_sort({"a": ["b"], "b": ["a"]})

    def test_self_loop_detection(self) -> None:
        with pytest.raises(ValueError, match="Cycle"):
            topological_sort({"a": ["a"]})

    def test_non_strict_appends_cycle_members(self) -> None:
        result = topological_sort({"a": ["b"], "b": ["a"], "c": []}, strict=False)
        assert result == ["c", "a", "b"]

    def test_non_strict_places_dependents_of_cycle_last(self) -> None:
        result = topological_sort({"a": ["b"], "b": ["a", "d"], "c": [], "d": []}, strict=False)
        assert result[0] == "c"
        assert set(result[1:]) == {"a", "b", "d"}

    def test_works_with_integers(self) -> None:
        result = topological_sort({1: [2], 2: [3], 3: []})
        assert result == [1, 2, 3]


class TestDependencyGraphConstruction:
    """Tests for DependencyGraph construction."""

    def test_empty_graph(self) -> None:
        graph = DependencyGraph.from_edges([])
        assert graph.nodes == frozenset()
        assert len(graph) == 0

    def test_single_edge(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert graph.nodes == frozenset({"a", "b"})
        assert len(graph) == 2

    def test_isolated_nodes(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")], nodes=["c"])
        assert graph.nodes == frozenset({"a", "b", "c"})
        assert graph.predecessors("c") == frozenset()

    def test_contains(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert "a" in graph
        assert "b" in graph
        assert "c" not in graph


class TestDependencyGraphQueries:
    """Tests for DependencyGraph query methods."""

    def test_predecessors_simple(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert graph.predecessors("b") == frozenset({"a"})
        assert graph.predecessors("a") == frozenset()

    def test_predecessors_nonexistent_node(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert graph.predecessors("nonexistent") == frozenset()

    def test_successors_multiple(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("a", "c")])
        assert graph.successors("a") == frozenset({"b", "c"})
        assert graph.successors("b") == frozenset()

    def test_descendants_branching(self) -> None:
        # a -> b, a -> c, b -> d, c -> d
        graph = DependencyGraph.from_edges([("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")])
        assert graph.descendants("a") == frozenset({"b", "c", "d"})
        assert graph.descendants("d") == frozenset()

    def test_descendants_in_cycle_terminates(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "a")])
        assert graph.descendants("a") == frozenset({"a", "b"})


class TestDependencyGraphOrdering:
    """Tests for topological and evaluation ordering of the graph."""

    def test_topological_order_linear(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c")])
        assert graph.topological_order() == ["a", "b", "c"]

    def test_has_cycle_false(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c")])
        assert graph.has_cycle() is False

    def test_has_cycle_true(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "a")])
        assert graph.has_cycle() is True

    def test_evaluation_order_tolerates_cycles(self) -> None:
        graph = DependencyGraph.from_edges([("x", "y"), ("y", "x")], nodes=["x", "y", "z"])
        assert graph.evaluation_order() == ["z", "x", "y"]

    def test_evaluation_order_follows_insertion_for_ties(self) -> None:
        graph = DependencyGraph.from_edges([("total", "tax")], nodes=["price", "total", "tax"])
        assert graph.evaluation_order() == ["price", "total", "tax"]
