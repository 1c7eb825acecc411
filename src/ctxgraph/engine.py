"""Top-level build pipeline: scan, extract, graph, rank, embed, assemble."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

import networkx as nx

from ctxgraph.cancellation import CancelToken
from ctxgraph.config import ProjectConfig
from ctxgraph.context.engine import ContextAssembler
from ctxgraph.context.models import ContextPackage, TokenCounter, estimate_tokens
from ctxgraph.exceptions import EmbeddingError, ProjectRootError
from ctxgraph.graph.builder import GraphBuilder
from ctxgraph.graph.query import GraphQuery
from ctxgraph.parser.core import FileSystem, LocalFileSystem, scan_files
from ctxgraph.parser.models import FileRecord
from ctxgraph.semantic.embeddings import EmbeddingProvider, create_provider
from ctxgraph.semantic.index import SemanticIndex

logger = logging.getLogger("ctxgraph.engine")


@dataclass
class ProjectSnapshot:
    """Parsed files of one project and the dependency graph between them."""

    root: str
    records: list[FileRecord]
    graph: nx.DiGraph
    warnings: list[str] = field(default_factory=list)

    @property
    def query(self) -> GraphQuery:
        return GraphQuery(self.graph)

    def get_record(self, path: str) -> FileRecord | None:
        for record in self.records:
            if record.path == path:
                return record
        return None


class ContextEngine:
    """Runs the full build for a project root and a task.

    Usage:
        engine = ContextEngine(load_config(root))
        package = engine.build(root, "fix the login bug")
        print(package.render())

    Build artefacts (snapshot, semantic index) are returned to the caller;
    the engine keeps no state between builds and never writes project files.
    """

    def __init__(
        self,
        config: ProjectConfig | None = None,
        fs: FileSystem | None = None,
        embedder: EmbeddingProvider | None = None,
        count_tokens: TokenCounter = estimate_tokens,
    ) -> None:
        self.config = config or ProjectConfig()
        self.fs = fs or LocalFileSystem(self.config.indexer.max_file_size_kb)
        self.embedder = embedder
        self.assembler = ContextAssembler(
            self.config.assembly, count_tokens, self.config.ranker
        )

    def scan(self, root: str | Path, cancel: CancelToken | None = None) -> ProjectSnapshot:
        """Read, parse and link every source file under `root`.

        Raises:
            ProjectRootError: `root` is missing or unreadable.
            BuildCancelledError: `cancel` fired between phases.
        """
        start = time.perf_counter()
        records, warnings = scan_files(root, self.fs, self.config.indexer, cancel)
        logger.info(
            "Parsed %d files (%d skipped) in %.1fms",
            len(records), len(warnings), (time.perf_counter() - start) * 1000,
        )

        if cancel:
            cancel.raise_if_cancelled("graph")
        start = time.perf_counter()
        builder = GraphBuilder()
        graph = builder.build(records)
        stats = builder.get_stats()
        logger.info(
            "Built graph: %d files, %d edges, %d unresolved imports in %.1fms",
            stats["files"], stats["edges"], stats["discarded_imports"],
            (time.perf_counter() - start) * 1000,
        )

        return ProjectSnapshot(str(root), records, graph, warnings)

    def provider(self) -> EmbeddingProvider:
        """The injected embedder, or one created from the semantic config."""
        if self.embedder is None:
            self.embedder = create_provider(self.config.semantic)
        return self.embedder

    def build_index(
        self, snapshot: ProjectSnapshot, cancel: CancelToken | None = None
    ) -> tuple[SemanticIndex | None, list[str]]:
        """Embed the snapshot's files.

        Provider failures do not raise: the index is None and the returned
        warnings say why.
        """
        if not self.config.semantic.enabled:
            return None, []

        start = time.perf_counter()
        try:
            index = SemanticIndex.build(
                snapshot.records, self.provider(), self.config.semantic, cancel
            )
        except EmbeddingError as e:
            logger.warning("Semantic index unavailable: %s", e)
            return None, [f"Semantic search disabled: {e}"]

        logger.info(
            "Built semantic index: %d chunks in %.1fms",
            len(index), (time.perf_counter() - start) * 1000,
        )
        return index, []

    def build(
        self,
        root: str | Path,
        task: str,
        cancel: CancelToken | None = None,
        semantic_index: SemanticIndex | None = None,
    ) -> ContextPackage:
        """Scan `root` and assemble context for `task`.

        A prebuilt `semantic_index` skips embedding the project; a loaded
        index without a provider gets this engine's provider for queries.

        Raises:
            ProjectRootError, BudgetError, BuildCancelledError
        """
        if not Path(root).is_dir() and isinstance(self.fs, LocalFileSystem):
            raise ProjectRootError(f"Project root is not a directory: {root}")

        snapshot = self.scan(root, cancel)

        if cancel:
            cancel.raise_if_cancelled("rank")

        index_warnings: list[str] = []
        if semantic_index is None:
            if cancel:
                cancel.raise_if_cancelled("embed")
            semantic_index, index_warnings = self.build_index(snapshot, cancel)
        elif semantic_index.provider is None:
            semantic_index.provider = self.provider()

        if cancel:
            cancel.raise_if_cancelled("assemble")

        package = self.assembler.assemble(snapshot, task, semantic_index)
        package.warnings.extend(index_warnings)
        return package
