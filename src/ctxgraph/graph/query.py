"""Read-only views over the dependency graph."""

from __future__ import annotations

import networkx as nx


class GraphQuery:
    """Query helpers for the file dependency graph.

    The graph itself is the source of truth; these methods expose it as
    plain path sets for consumers that should not depend on networkx.
    """

    def __init__(self, graph: nx.DiGraph) -> None:
        self.graph = graph

    @property
    def nodes(self) -> set[str]:
        return set(self.graph.nodes())

    def forward_edges(self) -> dict[str, set[str]]:
        """path -> files it imports."""
        return {n: set(self.graph.successors(n)) for n in sorted(self.graph.nodes())}

    def reverse_edges(self) -> dict[str, set[str]]:
        """path -> files that import it."""
        return {n: set(self.graph.predecessors(n)) for n in sorted(self.graph.nodes())}

    def imports_of(self, path: str) -> list[str]:
        if not self.graph.has_node(path):
            return []
        return sorted(self.graph.successors(path))

    def importers_of(self, path: str) -> list[str]:
        if not self.graph.has_node(path):
            return []
        return sorted(self.graph.predecessors(path))

    def reachable_from(self, path: str) -> set[str]:
        """Every file transitively imported by `path`, never `path` itself."""
        if not self.graph.has_node(path):
            return set()
        return nx.descendants(self.graph, path)
