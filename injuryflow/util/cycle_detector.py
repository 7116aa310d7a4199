"""
Cycle Detection for Node Declarations
=====================================

Incremental topological ordering over node names. Edges are added one at a
time; an edge that would close a cycle is rejected with ``CyclicDependency``
carrying the offending path, so a graph is never sealed with a loop in it.

Usage:
    detector = IncrementalTopoSort()

    # from_node -> to_node means to_node depends on from_node
    detector.add_edge("product_code", "filtered")
    detector.add_edge("filtered", "summary")

    try:
        detector.add_edge("summary", "product_code")
    except CyclicDependency as e:
        print(e.cycle)  # ['product_code', 'filtered', 'summary', 'product_code']

Nodes keep their insertion order, so ``topological_sort`` is deterministic for
a given declaration sequence.
"""

from collections import deque
from typing import Dict, Generic, Hashable, List, Optional, Set, TypeVar

from injuryflow.errors import CyclicDependency

T = TypeVar("T", bound=Hashable)


class IncrementalTopoSort(Generic[T]):
    """
    Directed dependency graph that refuses edges closing a cycle.

    Attributes:
        graph: Forward edges (node -> nodes that depend on it)
        reverse_graph: Reverse edges (node -> nodes it depends on)
        indegrees: Number of incoming edges for each node
    """

    def __init__(self):
        # dicts used as ordered sets
        self.graph: Dict[T, Dict[T, None]] = {}
        self.reverse_graph: Dict[T, Dict[T, None]] = {}
        self.indegrees: Dict[T, int] = {}

    def add_node(self, node: T) -> None:
        """Add a node if it is not present yet."""
        if node not in self.graph:
            self.graph[node] = {}
            self.reverse_graph[node] = {}
            self.indegrees[node] = 0

    def add_edge(self, from_node: T, to_node: T) -> None:
        """
        Add the edge from_node -> to_node (to_node depends on from_node).

        Raises:
            CyclicDependency: If to_node can already reach from_node
        """
        self.add_node(from_node)
        self.add_node(to_node)

        if to_node in self.graph[from_node]:
            return

        path = self._path(to_node, from_node)
        if path is not None:
            cycle = [str(n) for n in [from_node] + path]
            raise CyclicDependency(
                f"Dependency cycle detected: {' -> '.join(cycle)}", cycle
            )

        self.graph[from_node][to_node] = None
        self.reverse_graph[to_node][from_node] = None
        self.indegrees[to_node] += 1

    def topological_sort(self) -> List[T]:
        """Kahn's algorithm over the current nodes, stable in insertion order."""
        indegrees = dict(self.indegrees)
        queue = deque(node for node in self.graph if indegrees[node] == 0)
        result: List[T] = []

        while queue:
            node = queue.popleft()
            result.append(node)
            for dependent in self.graph[node]:
                indegrees[dependent] -= 1
                if indegrees[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self.graph):
            # add_edge rejects cycles, so this only trips on direct tampering
            raise CyclicDependency("Graph contains cycles")

        return result

    def get_dependencies(self, node: T) -> List[T]:
        return list(self.reverse_graph.get(node, ()))

    def get_dependents(self, node: T) -> List[T]:
        return list(self.graph.get(node, ()))

    def _path(self, start: T, target: T) -> Optional[List[T]]:
        """Return a path start -> ... -> target along forward edges, if any."""
        if start == target:
            return [start]

        visited: Set[T] = {start}
        parents: Dict[T, T] = {}
        stack = [start]

        while stack:
            node = stack.pop()
            for dependent in self.graph.get(node, ()):
                if dependent in visited:
                    continue
                parents[dependent] = node
                if dependent == target:
                    path = [dependent]
                    while path[-1] != start:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                visited.add(dependent)
                stack.append(dependent)

        return None

    def __len__(self) -> int:
        return len(self.graph)

    def __contains__(self, node: T) -> bool:
        return node in self.graph

    def __str__(self) -> str:
        edges = sum(len(dependents) for dependents in self.graph.values())
        return f"IncrementalTopoSort(nodes={len(self.graph)}, edges={edges})"
