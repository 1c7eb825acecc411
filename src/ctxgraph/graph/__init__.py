"""File dependency graph and importance ranking."""

from ctxgraph.graph.builder import GraphBuilder
from ctxgraph.graph.query import GraphQuery
from ctxgraph.graph.ranker import rank, ranked_paths

__all__ = ["GraphBuilder", "GraphQuery", "rank", "ranked_paths"]
