"""Chunk-level vector index with cosine-similarity search and JSON persistence."""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from pathlib import Path

import numpy as np

from ctxgraph.cancellation import CancelToken
from ctxgraph.config import SemanticConfig
from ctxgraph.exceptions import (
    EmbeddingError,
    FatalEmbeddingError,
    IndexFormatError,
    TransientEmbeddingError,
)
from ctxgraph.parser.models import FileRecord
from ctxgraph.semantic.chunker import chunk_file
from ctxgraph.semantic.embeddings import EmbeddingProvider, embed_with_retry
from ctxgraph.semantic.models import Chunk, ScoredChunk

logger = logging.getLogger("ctxgraph.semantic")

FORMAT_VERSION = 1


class SemanticIndex:
    """An ordered list of embedded chunks.

    Usage:
        index = SemanticIndex.build(records, HashEmbeddingProvider(), config)
        hits = index.search("where is the login handled?", top_k=5)
        index.save(path)
        same = SemanticIndex.load(path, provider)
    """

    def __init__(
        self,
        chunks: list[Chunk],
        dimension: int,
        provider: EmbeddingProvider | None = None,
        config: SemanticConfig | None = None,
    ) -> None:
        for chunk in chunks:
            if len(chunk.embedding) != dimension:
                raise IndexFormatError(
                    f"Chunk {chunk.file}:{chunk.start_line} has dimension "
                    f"{len(chunk.embedding)}, expected {dimension}"
                )
        self.chunks = list(chunks)
        self.dimension = dimension
        self.provider = provider
        self.config = config or SemanticConfig()
        self._matrix: np.ndarray | None = None
        self._norms: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self.chunks)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        records: list[FileRecord],
        provider: EmbeddingProvider,
        config: SemanticConfig | None = None,
        cancel: CancelToken | None = None,
    ) -> SemanticIndex:
        """Chunk every record and embed all chunks.

        Raises:
            EmbeddingError: the provider failed or timed out after retries.
            BuildCancelledError: `cancel` fired mid-build.
        """
        config = config or SemanticConfig()
        pending: list[Chunk] = []
        for record in records:
            pending.extend(
                chunk_file(
                    record.path,
                    record.content,
                    config.max_chunk_chars,
                    config.min_chunk_lines,
                )
            )

        texts = [c.content for c in pending]
        vectors = _embed_batches(provider, texts, config, cancel)

        dimension = len(vectors[0]) if vectors else provider.dimension
        chunks = []
        for chunk, vector in zip(pending, vectors):
            if len(vector) != dimension:
                raise FatalEmbeddingError(
                    f"Provider returned mixed dimensions ({len(vector)} vs {dimension})"
                )
            chunks.append(chunk.model_copy(update={"embedding": vector}))

        logger.info("Embedded %d chunks from %d files", len(chunks), len(records))
        return cls(chunks, dimension, provider, config)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str, top_k: int = 20) -> list[ScoredChunk]:
        """Return the `top_k` chunks most similar to `query`.

        Ordered by similarity descending, ties by (file, start_line).
        """
        if top_k <= 0 or not self.chunks:
            return []
        if self.provider is None:
            raise EmbeddingError("No embedding provider attached to this index")

        query_vec = _embed_batches(self.provider, [query], self.config, None)[0]
        if len(query_vec) != self.dimension:
            raise FatalEmbeddingError(
                f"Query embedding has dimension {len(query_vec)}, index has {self.dimension}"
            )

        sims = self._similarities(np.asarray(query_vec, dtype=np.float64))
        order = sorted(
            range(len(self.chunks)),
            key=lambda i: (-sims[i], self.chunks[i].file, self.chunks[i].start_line),
        )
        return [
            ScoredChunk(chunk=self.chunks[i], similarity=float(sims[i]))
            for i in order[:top_k]
        ]

    def _similarities(self, query: np.ndarray) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.asarray(
                [c.embedding for c in self.chunks], dtype=np.float64
            ).reshape(len(self.chunks), self.dimension)
            self._norms = np.linalg.norm(self._matrix, axis=1)

        query_norm = float(np.linalg.norm(query))
        if query_norm == 0:
            return np.zeros(len(self.chunks))
        denom = self._norms * query_norm
        dots = self._matrix @ query
        # Zero-magnitude chunk vectors score 0
        return np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Write all chunks, including embeddings, as JSON."""
        data = {
            "version": FORMAT_VERSION,
            "dimension": self.dimension,
            "chunks": [c.model_dump() for c in self.chunks],
        }
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))

    @classmethod
    def load(
        cls,
        path: str | Path,
        provider: EmbeddingProvider | None = None,
        config: SemanticConfig | None = None,
    ) -> SemanticIndex:
        """Load a saved index. Never calls the embedding provider."""
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise IndexFormatError(f"Could not read index {path}: {e}") from e

        if not isinstance(data, dict) or data.get("version") != FORMAT_VERSION:
            raise IndexFormatError(f"Unsupported index format in {path}")
        try:
            chunks = [Chunk(**c) for c in data["chunks"]]
            dimension = int(data["dimension"])
        except (KeyError, TypeError, ValueError) as e:
            raise IndexFormatError(f"Malformed index {path}: {e}") from e

        if provider is not None and provider.dimension != dimension:
            raise IndexFormatError(
                f"Index dimension {dimension} does not match provider dimension "
                f"{provider.dimension}"
            )
        return cls(chunks, dimension, provider, config)


def _embed_batches(
    provider: EmbeddingProvider,
    texts: list[str],
    config: SemanticConfig,
    cancel: CancelToken | None,
) -> list[list[float]]:
    """Embed `texts` in bounded batches on a thread pool, preserving order."""
    if not texts:
        return []

    size = config.batch_size
    batches = [texts[i:i + size] for i in range(0, len(texts), size)]

    def _job(batch: list[str]) -> list[list[float]]:
        if cancel is not None:
            cancel.raise_if_cancelled("embed")
        return embed_with_retry(
            provider,
            batch,
            max_attempts=config.max_retries,
            backoff_base_s=config.backoff_base_s,
            backoff_max_s=config.backoff_max_s,
            cancel=cancel,
        )

    # Per-batch wait covers every attempt plus the sleeps between them
    backoff_total = sum(
        min(config.backoff_max_s, config.backoff_base_s * 2 ** i)
        for i in range(config.max_retries - 1)
    )
    wait_s = config.timeout_s * config.max_retries + backoff_total

    pool = ThreadPoolExecutor(max_workers=min(config.concurrency, len(batches)))
    try:
        futures = [pool.submit(_job, batch) for batch in batches]
        results: list[list[float]] = []
        for future in futures:
            try:
                results.extend(future.result(timeout=wait_s))
            except FuturesTimeout as e:
                raise TransientEmbeddingError(
                    f"Embedding provider timed out after {wait_s:.1f}s"
                ) from e
        return results
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
