"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph[T]: A generic, immutable directed graph (cycles tolerated)
- topological_sort: Algorithm for ordering nodes by dependencies
- LinkGraph / build_link_graph: dependency and bidirectional maps of output nodes
"""

from ._algorithms import topological_sort
from ._builder import LinkGraph, build_link_graph
from ._dependency_graph import DependencyGraph

__all__ = ["DependencyGraph", "LinkGraph", "build_link_graph", "topological_sort"]
