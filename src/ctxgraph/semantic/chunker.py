"""Split files into line-aligned chunks at top-level declaration boundaries."""

from __future__ import annotations

import re

from ctxgraph.semantic.models import Chunk

# An unindented line that starts a new top-level construct
DECLARATION_BOUNDARY = re.compile(
    r"^(?:@\w"
    r"|(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
    r"(?:def|class|function\*?|interface|type\s+\w+\s*=|enum)\b)"
)


def chunk_file(
    file: str,
    content: str,
    max_chunk_chars: int = 1500,
    min_chunk_lines: int = 3,
) -> list[Chunk]:
    """Partition `content` into chunks.

    A chunk closes before a declaration-boundary line once it holds more than
    `min_chunk_lines` lines, or right after the line that brings it to
    `max_chunk_chars` characters. The trailing chunk is always flushed.
    Embeddings are left empty.
    """
    if max_chunk_chars < 1:
        raise ValueError("max_chunk_chars must be >= 1")

    chunks: list[Chunk] = []
    lines = content.splitlines(keepends=True)

    current: list[str] = []
    start = 0
    chars = 0

    def flush(end: int) -> None:
        chunks.append(
            Chunk(file=file, start_line=start, end_line=end, content="".join(current))
        )

    for i, line in enumerate(lines):
        if current and len(current) > min_chunk_lines and DECLARATION_BOUNDARY.match(line):
            flush(i - 1)
            current, start, chars = [], i, 0

        current.append(line)
        chars += len(line)

        if chars >= max_chunk_chars:
            flush(i)
            current, start, chars = [], i + 1, 0

    if current:
        flush(len(lines) - 1)

    return chunks
