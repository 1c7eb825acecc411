"""Chunking, embeddings and the semantic similarity index."""

from ctxgraph.semantic.chunker import chunk_file
from ctxgraph.semantic.embeddings import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_provider,
    embed_with_retry,
)
from ctxgraph.semantic.index import SemanticIndex
from ctxgraph.semantic.models import Chunk, ScoredChunk

__all__ = [
    "Chunk",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "ScoredChunk",
    "SemanticIndex",
    "chunk_file",
    "create_provider",
    "embed_with_retry",
]
