"""Budgeted context assembly.

Usage:
    from ctxgraph.context import ContextAssembler

    assembler = ContextAssembler(AssemblyConfig(total_token_budget=8000))
    package = assembler.assemble(snapshot, "fix the login bug", index)
    print(package.render())
"""

from ctxgraph.context.engine import ContextAssembler
from ctxgraph.context.keywords import extract_keywords, match_seed_files
from ctxgraph.context.models import (
    BlockKind,
    ContextBlock,
    ContextPackage,
    estimate_tokens,
    tiktoken_counter,
)

__all__ = [
    "BlockKind",
    "ContextAssembler",
    "ContextBlock",
    "ContextPackage",
    "estimate_tokens",
    "extract_keywords",
    "match_seed_files",
    "tiktoken_counter",
]
