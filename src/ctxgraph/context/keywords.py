"""Task keyword extraction and seed-file matching."""

from __future__ import annotations

import re

from ctxgraph.parser.models import FileRecord

MIN_KEYWORD_LENGTH = 3

STOP_WORDS = frozenset({
    "the", "and", "for", "that", "this", "with", "from", "have", "been",
    "will", "can", "should", "would", "could", "into", "when", "where",
    "how", "what", "why", "which", "there", "their", "about", "also",
    "just", "more", "some", "than", "them", "then", "these", "very",
    "after", "before", "between", "each", "other", "such", "only",
    "make", "like", "over", "back", "still", "through", "not", "are",
    "add", "fix", "bug", "error", "issue", "feature", "implement",
    "create", "update", "delete", "remove", "change", "modify", "refactor",
    "test", "check", "run", "build", "deploy", "handle", "process",
    "function", "method", "class", "file", "code", "system",
})

_WORD_RE = re.compile(r"[A-Za-z0-9]+")


def extract_keywords(task: str) -> list[str]:
    """Lowercased task words of at least three characters, minus stop words.

    Order of first appearance is preserved.
    """
    keywords: list[str] = []
    for word in _WORD_RE.findall(task):
        word = word.lower()
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS:
            continue
        if word not in keywords:
            keywords.append(word)
    return keywords


def match_seed_files(records: list[FileRecord], keywords: list[str]) -> list[str]:
    """Paths whose path or an exported symbol name contains a keyword.

    Matching is case-insensitive. Only exported names count, so private
    helpers and methods never seed a file.
    """
    if not keywords:
        return []

    seeds: list[str] = []
    for record in records:
        haystacks = [record.path.lower()] + [
            s.name.lower() for s in record.symbols if s.exported
        ]
        if any(kw in hay for kw in keywords for hay in haystacks):
            seeds.append(record.path)
    return sorted(seeds)
