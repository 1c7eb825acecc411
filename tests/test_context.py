"""Tests for budgeted context assembly."""

from __future__ import annotations

import pytest

from ctxgraph.config import AssemblyConfig, SemanticConfig
from ctxgraph.context.engine import ContextAssembler
from ctxgraph.context.keywords import extract_keywords, match_seed_files
from ctxgraph.context.models import (
    FILES_HEADER,
    MAP_HEADER,
    SEMANTIC_HEADER,
    BlockKind,
    ContextBlock,
    ContextPackage,
    estimate_tokens,
)
from ctxgraph.engine import ContextEngine, ProjectSnapshot
from ctxgraph.exceptions import BudgetError, FatalEmbeddingError
from ctxgraph.graph.ranker import rank, ranked_paths
from ctxgraph.parser.core import MemoryFileSystem
from ctxgraph.parser.models import FileRecord, Symbol, SymbolKind
from ctxgraph.semantic.embeddings import EmbeddingProvider, HashEmbeddingProvider
from ctxgraph.semantic.index import SemanticIndex
from ctxgraph.semantic.models import Chunk


def _snapshot(files: dict[str, str]) -> ProjectSnapshot:
    return ContextEngine(fs=MemoryFileSystem(files)).scan("/memory")


def _index(snapshot: ProjectSnapshot) -> SemanticIndex:
    return SemanticIndex.build(
        snapshot.records, HashEmbeddingProvider(256), SemanticConfig(dimension=256)
    )


def _word_count(text: str) -> int:
    return len(text.split())


class BrokenProvider(EmbeddingProvider):
    def embed(self, texts: list[str]) -> list[list[float]]:
        raise FatalEmbeddingError("provider offline")


class TestTokenEstimate:
    def test_ceil_of_quarter_length(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_proportional(self):
        assert estimate_tokens("x = 1\n" * 100) > estimate_tokens("x = 1")


class TestKeywords:
    def test_stop_words_and_short_words_removed(self):
        assert extract_keywords("Fix the login bug in AuthService") == ["login", "authservice"]

    def test_deduplicated_in_order(self):
        assert extract_keywords("cache cache: invalidate the CACHE") == ["cache", "invalidate"]

    def test_match_path_and_symbol(self):
        records = [
            FileRecord(path="src/login_form.ts", language="typescript"),
            FileRecord(
                path="src/session.ts",
                language="typescript",
                symbols=[Symbol(name="handleLogin", kind=SymbolKind.FUNCTION,
                                start_line=0, end_line=2, exported=True)],
            ),
            FileRecord(path="src/billing.ts", language="typescript"),
        ]
        assert match_seed_files(records, ["login"]) == ["src/login_form.ts", "src/session.ts"]

    def test_non_exported_names_do_not_seed(self):
        snapshot = _snapshot({
            "billing.js": "function parseInvoice() {}\nexport function charge() {}\n",
            "helpers.py": "def _parse_invoice():\n    pass\n",
            "invoice.ts": "export class Invoice {}\n",
        })
        assert match_seed_files(snapshot.records, ["invoice"]) == ["invoice.ts"]

    def test_no_keywords_no_seeds(self):
        records = [FileRecord(path="a.py", language="python")]
        assert match_seed_files(records, []) == []


class TestContextPackage:
    def test_empty_package_renders_header(self):
        package = ContextPackage(task="t")
        assert package.render() == MAP_HEADER

    def test_section_headers_only_when_non_empty(self):
        package = ContextPackage(task="t")
        package.semantic_blocks.append(
            ContextBlock(kind=BlockKind.SEMANTIC, file_path="a.py", content="x = 1\n",
                         start_line=4, end_line=4)
        )
        rendered = package.render()
        assert FILES_HEADER not in rendered
        assert f"{SEMANTIC_HEADER}\n\n## a.py:5-5\nx = 1" in rendered

    def test_summary(self):
        package = ContextPackage(task="fix login", token_budget=100, total_tokens=40,
                                 warnings=["something skipped"])
        summary = package.summary()
        assert "fix login" in summary
        assert "40 / 100" in summary
        assert "warning: something skipped" in summary


class TestStructuralMap:
    def test_map_lists_files_and_signatures(self, snapshot):
        text = ContextAssembler().render_map(snapshot)
        lines = text.splitlines()

        assert lines[0] == MAP_HEADER
        assert "utils.py" in lines
        assert "  def calculate_total(items): ..." in lines
        assert "  export function login(creds: Credentials): Session { ... }" in lines

    def test_map_entries_in_path_order(self, snapshot):
        text = ContextAssembler().render_map(snapshot)
        paths = [l for l in text.splitlines()[1:] if not l.startswith("  ")]
        assert paths == sorted(paths)

    def test_truncation_drops_lowest_ranked(self, snapshot):
        cap = 60
        assembler = ContextAssembler(AssemblyConfig(structure_map_token_cap=cap))
        package = assembler.assemble(snapshot, "anything")

        kept = [l for l in package.map_section.splitlines()[1:] if not l.startswith("  ")]
        ranked = ranked_paths(rank(snapshot.graph))

        assert package.map_entries_dropped > 0
        assert estimate_tokens(package.map_section) <= cap
        assert set(kept) == set(ranked[:len(kept)])

    def test_header_kept_under_tiny_cap(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(structure_map_token_cap=0))
        package = assembler.assemble(snapshot, "anything")
        assert package.map_section == MAP_HEADER
        assert package.map_entries == 0


class TestAssemble:
    def test_login_scenario(self, login_project):
        engine = ContextEngine()
        engine.config.semantic.enabled = False
        package = engine.build(login_project, "fix login bug")

        assert package.seed_files == ["auth.ts"]
        assert [b.file_path for b in package.file_blocks] == ["auth.ts"]
        assert "export function login" in package.render()

    def test_section_order(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(
            structure_map_token_cap=1000,
            full_file_token_cap=150,
            semantic_token_cap=500,
            total_token_budget=3000,
        ))
        package = assembler.assemble(snapshot, "calculate the order total", _index(snapshot))
        rendered = package.render()

        assert package.file_blocks
        assert package.semantic_blocks
        assert (
            rendered.index(MAP_HEADER)
            < rendered.index(FILES_HEADER)
            < rendered.index(SEMANTIC_HEADER)
        )

    @pytest.mark.parametrize("budget", [4, 10, 25, 60, 150, 400, 1000, 8000])
    def test_budget_compliance(self, snapshot, budget):
        assembler = ContextAssembler(AssemblyConfig(
            structure_map_token_cap=10_000,
            full_file_token_cap=10_000,
            semantic_token_cap=10_000,
            total_token_budget=budget,
        ))
        package = assembler.assemble(snapshot, "validate the user email", _index(snapshot))

        assert estimate_tokens(package.render()) <= budget
        assert package.total_tokens == estimate_tokens(package.render())

    @pytest.mark.parametrize("budget", [3, 20, 200])
    def test_budget_compliance_custom_counter(self, snapshot, budget):
        assembler = ContextAssembler(
            AssemblyConfig(structure_map_token_cap=10_000, total_token_budget=budget),
            count_tokens=_word_count,
        )
        package = assembler.assemble(snapshot, "display the user name", _index(snapshot))
        assert _word_count(package.render()) <= budget

    def test_budget_below_header(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(total_token_budget=3))
        with pytest.raises(BudgetError):
            assembler.assemble(snapshot, "anything")

    def test_map_over_budget_is_truncated(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(
            structure_map_token_cap=100_000, total_token_budget=30,
        ))
        package = assembler.assemble(snapshot, "calculate total", _index(snapshot))

        assert package.map_truncated
        assert package.file_blocks == []
        assert package.semantic_blocks == []
        assert package.render().startswith(MAP_HEADER)
        assert estimate_tokens(package.render()) <= 30
        assert any("truncated" in w for w in package.warnings)

    def test_idempotent(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(total_token_budget=1500))
        index = _index(snapshot)
        first = assembler.assemble(snapshot, "load a user by id", index).render()
        second = assembler.assemble(snapshot, "load a user by id", index).render()
        assert first == second

    def test_full_file_cap(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(full_file_token_cap=200))
        package = assembler.assemble(snapshot, "calculate total")
        assert 0 < package.file_tokens <= 200

    def test_best_fit_continue(self):
        snapshot = _snapshot({
            "a.py": "import big\n",
            "big.py": "VALUE = 1\n" + "# padding line for size\n" * 100,
            "small.py": "x = 1\n",
        })
        assembler = ContextAssembler(AssemblyConfig(full_file_token_cap=100))
        package = assembler.assemble(snapshot, "anything")

        scores = rank(snapshot.graph)
        assert ranked_paths(scores)[0] == "big.py"
        # big.py does not fit; the walk continues past it
        assert [b.file_path for b in package.file_blocks] == ["a.py", "small.py"]

    def test_seeds_ranked_first(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(full_file_token_cap=10_000))
        package = assembler.assemble(snapshot, "where is validate_email")

        assert package.seed_files == ["utils.py"]
        assert package.file_blocks[0].file_path == "utils.py"

    def test_snapshot_warnings_carried(self, snapshot):
        snapshot.warnings.append("Could not read broken.py")
        package = ContextAssembler().assemble(snapshot, "anything")
        assert "Could not read broken.py" in package.warnings


class TestSemanticPhase:
    def test_skips_fully_included_files(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(
            full_file_token_cap=300, semantic_token_cap=1000, total_token_budget=4000,
        ))
        package = assembler.assemble(snapshot, "calculate the order total", _index(snapshot))

        full = {b.file_path for b in package.file_blocks}
        assert full
        assert not full & {b.file_path for b in package.semantic_blocks}

    def test_skips_overlapping_chunks(self):
        files = {
            "x.py": "".join(f"alpha_{i} = {i}\n" for i in range(10)),
            "y.py": "beta = 1\ngamma = 2\n",
        }
        snapshot = _snapshot(files)
        provider = HashEmbeddingProvider(256)
        contents = [
            ("x.py", 0, 5, "".join(files["x.py"].splitlines(keepends=True)[0:6])),
            ("x.py", 3, 8, "".join(files["x.py"].splitlines(keepends=True)[3:9])),
            ("y.py", 0, 1, files["y.py"]),
        ]
        vectors = provider.embed([c[3] for c in contents])
        index = SemanticIndex(
            [Chunk(file=f, start_line=s, end_line=e, content=c, embedding=v)
             for (f, s, e, c), v in zip(contents, vectors)],
            256,
            provider,
        )

        assembler = ContextAssembler(AssemblyConfig(full_file_token_cap=0))
        package = assembler.assemble(snapshot, contents[0][3], index)
        labels = [b.label for b in package.semantic_blocks]

        assert labels[0] == "x.py:1-6"
        assert "x.py:4-9" not in labels
        assert "y.py:1-2" in labels

    def test_semantic_cap(self, snapshot):
        assembler = ContextAssembler(AssemblyConfig(
            full_file_token_cap=0, semantic_token_cap=80,
        ))
        package = assembler.assemble(snapshot, "user email", _index(snapshot))
        assert package.semantic_tokens <= 80

    def test_provider_failure_degrades(self, snapshot):
        index = _index(snapshot)
        index.provider = BrokenProvider(256)

        package = ContextAssembler().assemble(snapshot, "calculate total", index)

        assert package.file_blocks
        assert package.semantic_blocks == []
        assert not package.semantic_enabled
        assert any("Semantic search disabled" in w for w in package.warnings)

    def test_no_index_skips_phase(self, snapshot):
        package = ContextAssembler().assemble(snapshot, "calculate total")
        assert package.semantic_blocks == []
        assert SEMANTIC_HEADER not in package.render()
