"""Build a file-level dependency graph from scanned records."""

from __future__ import annotations

import logging
import posixpath

import networkx as nx

from ctxgraph.parser.models import FileRecord

logger = logging.getLogger("ctxgraph.graph")

# Resolution order per language: bare path, suffixes, then directory index files
_JS_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
_RESOLUTION: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "python": ((".py", ".pyi"), ("__init__.py", "__init__.pyi")),
    "javascript": (_JS_SUFFIXES, tuple(f"index{s}" for s in _JS_SUFFIXES)),
    "typescript": (_JS_SUFFIXES, tuple(f"index{s}" for s in _JS_SUFFIXES)),
    "tsx": (_JS_SUFFIXES, tuple(f"index{s}" for s in _JS_SUFFIXES)),
}


class GraphBuilder:
    """Builds the directed import graph over a set of files.

    Nodes are file paths (POSIX, relative to the project root). An edge
    ``a -> b`` means ``a`` imports ``b``. Imports that do not resolve to a
    known file (third-party packages, missing files) are dropped.
    """

    def __init__(self) -> None:
        self.graph = nx.DiGraph()
        self._discarded: list[tuple[str, str]] = []

    def build(self, records: list[FileRecord]) -> nx.DiGraph:
        """Build the graph from a complete set of records.

        Every record becomes a node before any import is resolved, since
        resolution needs the full node set.
        """
        self.graph = nx.DiGraph()
        self._discarded = []

        for record in records:
            self.graph.add_node(
                record.path,
                language=record.language,
                symbol_count=len(record.symbols),
                import_count=len(record.import_paths),
            )

        for record in records:
            for raw in record.import_paths:
                target = self.resolve(record.path, raw, record.language)
                if target is None:
                    logger.debug("Discarding import %r from %s", raw, record.path)
                    self._discarded.append((record.path, raw))
                    continue
                self.graph.add_edge(record.path, target)

        return self.graph

    def resolve(self, importer: str, raw: str, language: str) -> str | None:
        """Resolve a raw import string to a known node, or None."""
        for base in _candidate_bases(importer, raw, language):
            found = self._first_known(base, language)
            if found is not None:
                return found
        return None

    def _first_known(self, base: str, language: str) -> str | None:
        suffixes, index_names = _RESOLUTION.get(language, ((), ()))
        candidates = [base]
        candidates.extend(base + s for s in suffixes)
        candidates.extend(posixpath.join(base, name) for name in index_names)
        for candidate in candidates:
            candidate = posixpath.normpath(candidate)
            if candidate.startswith("../") or candidate == "..":
                continue
            if self.graph.has_node(candidate):
                return candidate
        return None

    def get_stats(self) -> dict:
        """Get graph statistics."""
        return {
            "files": self.graph.number_of_nodes(),
            "edges": self.graph.number_of_edges(),
            "discarded_imports": len(self._discarded),
            "self_imports": nx.number_of_selfloops(self.graph),
        }


def _candidate_bases(importer: str, raw: str, language: str) -> list[str]:
    """Base paths (before suffix/index expansion) an import may refer to."""
    directory = posixpath.dirname(importer)

    if language == "python":
        stripped = raw.lstrip(".")
        dots = len(raw) - len(stripped)
        rel = stripped.replace(".", "/")
        if dots:
            # One dot is the importer's own package, each extra dot goes up
            base_dir = directory
            for _ in range(dots - 1):
                if not base_dir:
                    return []
                base_dir = posixpath.dirname(base_dir)
            return [posixpath.join(base_dir, rel) if rel else base_dir or "."]
        if not rel:
            return []
        bases = [posixpath.join(directory, rel)] if directory else []
        bases.append(rel)
        return bases

    # JS/TS: bare specifiers are packages
    if not (raw.startswith("./") or raw.startswith("../") or raw in (".", "..")):
        return []
    return [posixpath.join(directory, raw)]
