"""Directed "depends on" graph between output nodes."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ._algorithms import topological_sort

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DependencyGraph(Generic[T]):
    """An immutable directed graph of dependencies between nodes.

    The graph represents "depends on" relationships:
    - predecessors[b] = {a} means "b depends on a"
    - successors[a] = {b} means "a is depended on by b"

    Unlike a plain DAG, cycles are allowed: output nodes may reference each
    other. ``evaluation_order`` still produces a usable order for them.

    Attributes:
        _predecessors: Mapping from node to its direct dependencies.
        _successors: Mapping from node to nodes that depend on it.

    """

    _predecessors: dict[T, frozenset[T]] = field(default_factory=dict)
    _successors: dict[T, frozenset[T]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[T, T]], nodes: Iterable[T] = ()) -> DependencyGraph[T]:
        """Build a graph from (source, target) edges plus optional isolated nodes.

        An edge (a, b) means "b depends on a". Node insertion order (``nodes``
        first, then edge endpoints) is kept and used to break ties in
        ``evaluation_order``.

        Example:
            >>> graph = DependencyGraph.from_edges([("a", "b")], nodes=["c"])
            >>> sorted(graph.nodes)
            ['a', 'b', 'c']

        """
        predecessors: defaultdict[T, set[T]] = defaultdict(set)
        successors: defaultdict[T, set[T]] = defaultdict(set)

        for node in nodes:
            predecessors.setdefault(node, set())
            successors.setdefault(node, set())

        for src, dst in edges:
            predecessors[dst].add(src)
            successors[src].add(dst)
            # Ensure both nodes exist in the graph
            predecessors.setdefault(src, set())
            successors.setdefault(dst, set())

        return cls(
            _predecessors={k: frozenset(v) for k, v in predecessors.items()},
            _successors={k: frozenset(v) for k, v in successors.items()},
        )

    @property
    def nodes(self) -> frozenset[T]:
        """All nodes in the graph."""
        return frozenset(self._predecessors.keys()) | frozenset(self._successors.keys())

    def predecessors(self, node: T) -> frozenset[T]:
        """Get direct dependencies of a node (nodes it depends on)."""
        return self._predecessors.get(node, frozenset())

    def successors(self, node: T) -> frozenset[T]:
        """Get direct dependents of a node (nodes that depend on it)."""
        return self._successors.get(node, frozenset())

    def descendants(self, node: T) -> frozenset[T]:
        """Get all transitive dependents of a node.

        Args:
            node: The node to query.

        Returns:
            Set of all nodes that transitively depend on this node.

        """
        visited: set[T] = set()
        stack = list(self.successors(node))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(self.successors(current))
        return frozenset(visited)

    def topological_order(self) -> list[T]:
        """Return nodes in topological order (dependencies before dependents).

        Raises:
            ValueError: If the graph contains a cycle.

        """
        return topological_sort(self._ordered_successors())

    def evaluation_order(self) -> list[T]:
        """Return a topological order, placing cycle members last in insertion order."""
        return topological_sort(self._ordered_successors(), strict=False)

    def has_cycle(self) -> bool:
        """Check if the graph contains a cycle."""
        try:
            self.topological_order()
        except ValueError:
            return True
        return False

    def _ordered_successors(self) -> dict[T, list[T]]:
        # Successor lists follow insertion order so ties are deterministic
        position = {node: i for i, node in enumerate(self._successors)}
        return {
            node: sorted(succ, key=lambda n: position.get(n, len(position)))
            for node, succ in self._successors.items()
        }

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self.nodes)

    def __contains__(self, node: T) -> bool:
        """Check if a node is in the graph."""
        return node in self._predecessors or node in self._successors
