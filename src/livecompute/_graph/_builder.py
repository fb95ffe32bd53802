"""Builds the dependency and bidirectional link maps for a set of output nodes."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from itertools import combinations

from livecompute._names import dependencies_overlap, matches_variable

from ._dependency_graph import DependencyGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LinkGraph:
    """Dependency structure of the output nodes of one bound tree.

    Attributes:
        dependency_map: Node id to the variables its expression references.
        bidirectional_map: Node id to its linked peers. Symmetric: two nodes are
            linked when they share a referenced variable or one references the
            other's id.
        graph: Directed "depends on another node" graph.
        order: Node ids with dependencies before dependents; cycle members last
            in document order.

    """

    dependency_map: dict[str, frozenset[str]] = field(default_factory=dict)
    bidirectional_map: dict[str, frozenset[str]] = field(default_factory=dict)
    graph: DependencyGraph[str] = field(default_factory=DependencyGraph)
    order: tuple[str, ...] = ()

    def peers(self, node_id: str) -> frozenset[str]:
        """Bidirectionally linked peers of a node."""
        return self.bidirectional_map.get(node_id, frozenset())

    def are_linked(self, a: str, b: str) -> bool:
        return b in self.peers(a)

    def dependents_of(self, variable: str) -> list[str]:
        """Nodes whose dependencies cover a concrete variable, in evaluation order."""
        return [
            node_id
            for node_id in self.order
            if any(matches_variable(dep, variable) for dep in self.dependency_map.get(node_id, ()))
        ]


def build_link_graph(nodes: Mapping[str, frozenset[str]]) -> LinkGraph:
    """Build the link graph from each node's dependency set.

    Every pair of distinct nodes is compared once (O(n²) over UI-scale node
    counts).

    Args:
        nodes: Node id to its dependency variables, in document order.

    Returns:
        The LinkGraph for these nodes.

    """
    links: dict[str, set[str]] = {node_id: set() for node_id in nodes}
    edges: list[tuple[str, str]] = []

    for a, b in combinations(nodes, 2):
        deps_a = nodes[a]
        deps_b = nodes[b]
        a_reads_b = any(matches_variable(dep, b) for dep in deps_a)
        b_reads_a = any(matches_variable(dep, a) for dep in deps_b)
        if a_reads_b:
            edges.append((b, a))
        if b_reads_a:
            edges.append((a, b))
        if a_reads_b or b_reads_a or dependencies_overlap(deps_a, deps_b):
            links[a].add(b)
            links[b].add(a)

    graph = DependencyGraph.from_edges(edges, nodes=nodes)
    if graph.has_cycle():
        logger.debug("Output nodes reference each other in a cycle")

    logger.debug("Built link graph: %d nodes, %d directed edges", len(nodes), len(edges))
    return LinkGraph(
        dependency_map=dict(nodes),
        bidirectional_map={node_id: frozenset(peers) for node_id, peers in links.items()},
        graph=graph,
        order=tuple(graph.evaluation_order()),
    )
