"""Graph algorithms for node ordering."""

from collections import defaultdict, deque
from collections.abc import Collection, Hashable, Mapping
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


def topological_sort(
    successors: Mapping[T, Collection[T]],
    *,
    strict: bool = True,
) -> list[T]:
    """Sort a graph topologically (dependencies before dependents).

    Given a graph represented as a mapping from nodes to their successors
    (nodes that depend on them), return nodes in an order where each node
    appears before all nodes that depend on it. Ties keep the mapping's
    iteration order.

    Args:
        successors: Mapping from node to collection of nodes that depend on it.
            An edge (a -> b) means "b depends on a".
        strict: If True, a cycle raises. If False, nodes on or behind a cycle
            are appended in mapping order instead.

    Returns:
        List of nodes in topological order.

    Raises:
        ValueError: If ``strict`` and the graph contains a cycle.

    Example:
        >>> topological_sort({"a": ["b"], "b": ["c"], "c": []})
        ['a', 'b', 'c']
        >>> topological_sort({"a": ["b"], "b": ["a"], "c": []}, strict=False)
        ['c', 'a', 'b']

    """
    # Calculate in-degree for each node, keeping first-seen order
    indegree: defaultdict[T, int] = defaultdict(int)
    for node, deps in successors.items():
        indegree[node] = indegree.get(node, 0)
        for dep in deps:
            indegree[dep] += 1

    queue = deque([node for node, deg in indegree.items() if deg == 0])
    order: list[T] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for successor in successors.get(node, []):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                queue.append(successor)

    if len(order) != len(indegree):
        if strict:
            msg = "Cycle detected in graph"
            raise ValueError(msg)
        placed = set(order)
        order.extend(node for node in indegree if node not in placed)

    return order
