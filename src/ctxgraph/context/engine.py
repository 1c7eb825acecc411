"""Budgeted context assembly.

Four phases, always in this order:

  1. Structural map. Every file with its symbol signatures, in path order.
     Over `structure_map_token_cap`, the lowest-ranked files (unseeded rank,
     ties by path) are dropped first. The header is always kept.
  2. Full files. Files matching task keywords seed the ranker; files are
     walked by seeded score and appended whole while the full-file cap and
     the total budget both hold.
  3. Semantic matches. The raw task queries the semantic index; chunks from
     fully included files, or overlapping an appended chunk, are skipped.
  4. Concatenation: map, files, semantic matches.

Phases 2 and 3 pack best-fit-continue: a block that does not fit is skipped
and the walk moves on to the next candidate. Every append is checked against
the full rendered output, so `count_tokens(package.render())` never exceeds
`total_token_budget`. The one exception is a map that alone exceeds the
budget: it is hard-truncated to the budget and phases 2 and 3 are skipped.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ctxgraph.config import AssemblyConfig, RankerConfig
from ctxgraph.context.keywords import extract_keywords, match_seed_files
from ctxgraph.context.models import (
    MAP_HEADER,
    BlockKind,
    ContextBlock,
    ContextPackage,
    TokenCounter,
    estimate_tokens,
)
from ctxgraph.exceptions import BudgetError, EmbeddingError
from ctxgraph.graph.ranker import rank, ranked_paths
from ctxgraph.parser.models import FileRecord, Symbol

if TYPE_CHECKING:
    from ctxgraph.engine import ProjectSnapshot
    from ctxgraph.semantic.index import SemanticIndex

logger = logging.getLogger("ctxgraph.context")


class ContextAssembler:
    """Packs a project snapshot into a token-bounded context string.

    Usage:
        assembler = ContextAssembler(AssemblyConfig(total_token_budget=4000))
        package = assembler.assemble(snapshot, "fix the login bug", index)
        print(package.render())
    """

    def __init__(
        self,
        config: AssemblyConfig | None = None,
        count_tokens: TokenCounter = estimate_tokens,
        ranker_config: RankerConfig | None = None,
    ) -> None:
        self.config = config or AssemblyConfig()
        self.count_tokens = count_tokens
        self.ranker_config = ranker_config or RankerConfig()

    def assemble(
        self,
        snapshot: ProjectSnapshot,
        task: str,
        semantic_index: SemanticIndex | None = None,
    ) -> ContextPackage:
        """Assemble a context package for `task`.

        Args:
            snapshot: Parsed files and their dependency graph.
            task: Natural language description of the task.
            semantic_index: Optional index; None skips phase 3.

        Raises:
            BudgetError: the budget cannot hold even the map header.
        """
        start = time.perf_counter()
        budget = self.config.total_token_budget
        header_tokens = self.count_tokens(MAP_HEADER)
        if header_tokens > budget:
            raise BudgetError(budget, header_tokens)

        package = ContextPackage(
            task=task,
            token_budget=budget,
            warnings=list(snapshot.warnings),
            semantic_enabled=semantic_index is not None,
        )

        # Phase 1: structural map
        self._build_map(snapshot, package)

        if self.count_tokens(package.map_section) > budget:
            package.map_section = self._hard_truncate(package.map_section, budget)
            package.map_truncated = True
            package.semantic_enabled = False
            package.warnings.append(
                f"Repository map exceeds the {budget}-token budget; "
                "map truncated, files and semantic matches skipped"
            )
            return self._finish(package, start)

        # Phase 2: ranked full files
        self._add_full_files(snapshot, task, package)

        # Phase 3: semantic matches
        if semantic_index is not None:
            self._add_semantic_matches(semantic_index, task, package)

        return self._finish(package, start)

    def render_map(self, snapshot: ProjectSnapshot) -> str:
        """The structural map alone, within `structure_map_token_cap`."""
        package = ContextPackage(task="")
        self._build_map(snapshot, package)
        return package.map_section

    # -------------------------------------------------------------------
    # Phase 1: Structural map
    # -------------------------------------------------------------------

    def _build_map(self, snapshot: ProjectSnapshot, package: ContextPackage) -> None:
        entries = {r.path: _map_entry(r) for r in snapshot.records}
        cap = self.config.structure_map_token_cap
        keep_order = _order_paths(entries, self._rank(snapshot, ()))

        def fits(keep: int) -> bool:
            return self.count_tokens(_render_map(entries, keep_order[:keep])) <= cap

        # Smallest number of drops (lowest-ranked first) that fits the cap
        lo, hi = 0, len(keep_order)
        if not fits(hi):
            while lo < hi:
                mid = (lo + hi + 1) // 2
                if fits(mid):
                    lo = mid
                else:
                    hi = mid - 1
        kept = keep_order[:hi]

        package.map_section = _render_map(entries, kept)
        package.map_entries = len(kept)
        package.map_entries_dropped = len(entries) - len(kept)
        if package.map_entries_dropped:
            logger.info(
                "Map over %d-token cap: dropped %d of %d entries",
                cap, package.map_entries_dropped, len(entries),
            )

    def _hard_truncate(self, text: str, budget: int) -> str:
        """Longest prefix of `text` within budget, cut back to a line end."""
        lo, hi = len(MAP_HEADER), len(text)
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if self.count_tokens(text[:mid]) <= budget:
                lo = mid
            else:
                hi = mid - 1
        newline = text.rfind("\n", 0, lo)
        if newline >= len(MAP_HEADER):
            lo = newline
        return text[:lo].rstrip()

    # -------------------------------------------------------------------
    # Phase 2: Full files
    # -------------------------------------------------------------------

    def _add_full_files(
        self, snapshot: ProjectSnapshot, task: str, package: ContextPackage
    ) -> None:
        keywords = extract_keywords(task)
        seeds = match_seed_files(snapshot.records, keywords)
        package.seed_files = seeds
        logger.debug("Keywords %s matched seeds %s", keywords, seeds)

        records = {r.path: r for r in snapshot.records}
        scores = self._rank(snapshot, seeds)
        cap = self.config.full_file_token_cap

        used = 0
        for path in _order_paths(records, scores):
            record = records[path]
            line_count = len(record.content.splitlines())
            block = ContextBlock(
                kind=BlockKind.FULL_FILE,
                file_path=path,
                content=record.content,
                start_line=0,
                end_line=max(0, line_count - 1),
                score=scores.get(path, 0.0),
            )
            block.tokens = self.count_tokens(block.render())
            if used + block.tokens > cap:
                continue
            if self._try_append(package, package.file_blocks, block):
                used += block.tokens

    # -------------------------------------------------------------------
    # Phase 3: Semantic matches
    # -------------------------------------------------------------------

    def _add_semantic_matches(
        self, index: SemanticIndex, task: str, package: ContextPackage
    ) -> None:
        try:
            hits = index.search(task, top_k=self.config.semantic_top_k)
        except EmbeddingError as e:
            logger.warning("Semantic search failed: %s", e)
            package.warnings.append(f"Semantic search disabled: {e}")
            package.semantic_enabled = False
            return

        full_files = {b.file_path for b in package.file_blocks}
        appended = []
        cap = self.config.semantic_token_cap
        used = 0

        for hit in hits:
            chunk = hit.chunk
            if chunk.file in full_files:
                continue
            if any(chunk.overlaps(prev) for prev in appended):
                continue
            block = ContextBlock(
                kind=BlockKind.SEMANTIC,
                file_path=chunk.file,
                content=chunk.content,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                score=hit.similarity,
            )
            block.tokens = self.count_tokens(block.render())
            if used + block.tokens > cap:
                continue
            if self._try_append(package, package.semantic_blocks, block):
                used += block.tokens
                appended.append(chunk)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _try_append(
        self, package: ContextPackage, blocks: list[ContextBlock], block: ContextBlock
    ) -> bool:
        """Append `block` if the whole rendered package still fits the budget."""
        blocks.append(block)
        if self.count_tokens(package.render()) <= package.token_budget:
            return True
        blocks.pop()
        return False

    def _rank(self, snapshot: ProjectSnapshot, seeds) -> dict[str, float]:
        rc = self.ranker_config
        return rank(
            snapshot.graph,
            seeds,
            damping=rc.damping,
            iterations=rc.iterations,
            seed_boost=rc.seed_boost,
        )

    def _finish(self, package: ContextPackage, start: float) -> ContextPackage:
        package.map_tokens = self.count_tokens(package.map_section)
        package.total_tokens = self.count_tokens(package.render())
        logger.info(
            "Assembled %d files, %d chunks (~%d/%d tokens) in %.1fms",
            len(package.file_blocks),
            len(package.semantic_blocks),
            package.total_tokens,
            package.token_budget,
            (time.perf_counter() - start) * 1000,
        )
        return package


def _order_paths(paths, scores: dict[str, float]) -> list[str]:
    """`paths` by score descending, ties by path. Unranked paths score 0."""
    ranked = [p for p in ranked_paths(scores) if p in paths]
    missing = sorted(p for p in paths if p not in scores)
    return ranked + missing


def _symbol_line(symbol: Symbol) -> str:
    return symbol.signature or f"{symbol.kind.value} {symbol.name}"


def _map_entry(record: FileRecord) -> str:
    lines = [record.path]
    lines.extend(f"  {_symbol_line(s)}" for s in record.symbols)
    return "\n".join(lines)


def _render_map(entries: dict[str, str], kept: list[str]) -> str:
    return "\n".join([MAP_HEADER] + [entries[p] for p in sorted(kept)])
