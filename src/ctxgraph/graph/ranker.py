"""Seeded importance propagation over the file dependency graph.

Scores flow along import edges: a file inherits importance from the files
that import it, split evenly across each importer's distinct imports.

    new(v) = (1 - d) * restart(v) + d * sum(score(u) / max(1, out(u)) for u -> v)
    restart(v) = 1/n + boost(v)

where boost(v) is `seed_boost` for seed files and 0 otherwise. Scores start
at restart(v). Exactly `iterations` synchronous passes run; there is no
convergence check, so latency is bounded by the iteration count alone.
"""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx

DEFAULT_DAMPING = 0.85
DEFAULT_ITERATIONS = 20
DEFAULT_SEED_BOOST = 0.5


def rank(
    graph: nx.DiGraph,
    seed_files: Iterable[str] = (),
    damping: float = DEFAULT_DAMPING,
    iterations: int = DEFAULT_ITERATIONS,
    seed_boost: float = DEFAULT_SEED_BOOST,
) -> dict[str, float]:
    """Compute a fresh score for every node.

    Args:
        graph: File dependency graph (edge u -> v means u imports v).
        seed_files: Files matched by the task. Paths not in the graph are ignored.
        damping: Weight of propagated importance versus restart mass.
        iterations: Number of full passes to run.
        seed_boost: Additive restart mass for each seed.

    Returns:
        Mapping path -> non-negative score, one entry per node.
    """
    if not 0.0 <= damping <= 1.0:
        raise ValueError(f"damping must be within [0, 1], got {damping}")
    if iterations < 0:
        raise ValueError(f"iterations must be >= 0, got {iterations}")
    if seed_boost < 0:
        raise ValueError(f"seed_boost must be >= 0, got {seed_boost}")

    nodes = sorted(graph.nodes())
    n = len(nodes)
    if n == 0:
        return {}

    seeds = {s for s in seed_files if s in graph}
    restart = {v: 1.0 / n + (seed_boost if v in seeds else 0.0) for v in nodes}
    out_degree = {v: max(1, sum(1 for _ in graph.successors(v))) for v in nodes}
    # Predecessor lists in a fixed order keep float summation deterministic
    importers = {v: sorted(graph.predecessors(v)) for v in nodes}

    scores = dict(restart)
    for _ in range(iterations):
        scores = {
            v: (1.0 - damping) * restart[v]
            + damping * sum(scores[u] / out_degree[u] for u in importers[v])
            for v in nodes
        }

    return scores


def ranked_paths(scores: dict[str, float]) -> list[str]:
    """Paths ordered by score descending, ties broken by path ascending."""
    return sorted(scores, key=lambda p: (-scores[p], p))
