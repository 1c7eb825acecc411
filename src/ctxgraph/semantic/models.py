"""Data models for the semantic index."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """A contiguous, 0-indexed inclusive line range of one file."""

    model_config = ConfigDict(frozen=True)

    file: str
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)
    content: str
    embedding: list[float] = Field(default_factory=list)

    def overlaps(self, other: Chunk) -> bool:
        return (
            self.file == other.file
            and self.start_line <= other.end_line
            and other.start_line <= self.end_line
        )


class ScoredChunk(BaseModel):
    """A chunk with its cosine similarity to a query."""

    chunk: Chunk
    similarity: float
