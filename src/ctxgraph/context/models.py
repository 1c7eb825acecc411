"""Data models for budgeted context assembly."""

from __future__ import annotations

import math
from enum import Enum
from typing import Callable

from pydantic import BaseModel, Field

TokenCounter = Callable[[str], int]

MAP_HEADER = "# Repository Map"
FILES_HEADER = "# Relevant Files"
SEMANTIC_HEADER = "# Semantic Matches"


class BlockKind(str, Enum):
    """Where a context block came from."""

    FULL_FILE = "full_file"  # Ranked file, full content
    SEMANTIC = "semantic"  # Chunk returned by similarity search


class ContextBlock(BaseModel):
    """A labelled piece of source code in the assembled context."""

    kind: BlockKind
    file_path: str
    content: str
    start_line: int = 0  # 0-indexed, inclusive
    end_line: int = 0
    score: float = 0.0  # Rank score or cosine similarity
    tokens: int = 0

    @property
    def label(self) -> str:
        if self.kind == BlockKind.FULL_FILE:
            return self.file_path
        return f"{self.file_path}:{self.start_line + 1}-{self.end_line + 1}"

    def render(self) -> str:
        return f"## {self.label}\n{self.content.rstrip(chr(10))}"


class ContextPackage(BaseModel):
    """The assembled context: map, full files and semantic matches."""

    task: str
    map_section: str = MAP_HEADER
    file_blocks: list[ContextBlock] = Field(default_factory=list)
    semantic_blocks: list[ContextBlock] = Field(default_factory=list)
    seed_files: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    token_budget: int = 0
    map_tokens: int = 0
    total_tokens: int = 0
    map_entries: int = 0
    map_entries_dropped: int = 0
    map_truncated: bool = False  # Hard-truncated to fit the total budget
    semantic_enabled: bool = False

    @property
    def file_tokens(self) -> int:
        return sum(b.tokens for b in self.file_blocks)

    @property
    def semantic_tokens(self) -> int:
        return sum(b.tokens for b in self.semantic_blocks)

    def render(self) -> str:
        """Render map, files and semantic matches, in that order.

        Section headers are only emitted for non-empty sections.
        """
        parts = [self.map_section]
        if self.file_blocks:
            parts.append(
                "\n\n".join([FILES_HEADER] + [b.render() for b in self.file_blocks])
            )
        if self.semantic_blocks:
            parts.append(
                "\n\n".join([SEMANTIC_HEADER] + [b.render() for b in self.semantic_blocks])
            )
        return "\n\n".join(parts)

    def summary(self) -> str:
        """Human-readable summary of what's in the context."""
        pct = self.total_tokens / max(self.token_budget, 1) * 100
        lines = [
            f"Context package for: {self.task}",
            f"Tokens: {self.total_tokens:,} / {self.token_budget:,} ({pct:.0f}%)",
            f"  map:      ~{self.map_tokens:,} tokens, {self.map_entries} files"
            + (f" ({self.map_entries_dropped} dropped)" if self.map_entries_dropped else "")
            + (" [truncated]" if self.map_truncated else ""),
            f"  files:    ~{self.file_tokens:,} tokens, {len(self.file_blocks)} files",
            f"  semantic: ~{self.semantic_tokens:,} tokens, {len(self.semantic_blocks)} chunks"
            + ("" if self.semantic_enabled else " [disabled]"),
        ]
        if self.seed_files:
            lines.append(f"Seeds: {', '.join(self.seed_files)}")
        for block in self.file_blocks + self.semantic_blocks:
            lines.append(
                f"  > {block.label} ({block.kind.value}) "
                f"score={block.score:.4f} ~{block.tokens}tok"
            )
        for warning in self.warnings:
            lines.append(f"warning: {warning}")
        return "\n".join(lines)


def estimate_tokens(text: str) -> int:
    """Estimate token count as ceil(chars / 4)."""
    return math.ceil(len(text) / 4)


def tiktoken_counter(model: str = "gpt-4o") -> TokenCounter:
    """Exact token counter backed by tiktoken.

    Requires ``pip install ctxgraph[tiktoken]``. Unknown model names fall
    back to the cl100k_base encoding.
    """
    try:
        import tiktoken
    except ImportError:
        raise ImportError(
            "tiktoken is required for exact token counting. "
            "Install it with: pip install ctxgraph[tiktoken]"
        )

    try:
        encoding = tiktoken.encoding_for_model(model)
    except KeyError:
        encoding = tiktoken.get_encoding("cl100k_base")

    def count(text: str) -> int:
        return len(encoding.encode(text, disallowed_special=()))

    return count
