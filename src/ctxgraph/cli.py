"""Command-line interface for ctxgraph."""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path

import click

from ctxgraph import __version__
from ctxgraph.config import (
    INDEX_FILE,
    ProjectConfig,
    get_ctxgraph_dir,
    load_config,
    save_config,
    set_config_value,
)
from ctxgraph.engine import ContextEngine, ProjectSnapshot
from ctxgraph.exceptions import CtxGraphError
from ctxgraph.ui.console import Console

console = Console()


def _get_project_root(path: str) -> Path:
    """Resolve the project root or exit."""
    root = Path(path).resolve()
    if not root.is_dir():
        console.error(f"Not a directory: {path}")
        sys.exit(1)
    return root


def _load_config(root: Path) -> ProjectConfig:
    try:
        return load_config(root)
    except CtxGraphError as e:
        console.error(str(e))
        sys.exit(1)


def _scan(engine: ContextEngine, root: Path) -> ProjectSnapshot:
    """Scan with a progress bar, reporting skipped files."""
    start_time = time.time()
    with console.indexing_progress() as progress:
        progress.add_task("Scanning and parsing source files...", total=None)
        snapshot = engine.scan(root)
    console.success(
        f"Parsed {len(snapshot.records)} files in {time.time() - start_time:.1f}s"
    )
    for warning in snapshot.warnings:
        console.warning(warning)
    return snapshot


@click.group()
@click.version_option(version=__version__, prog_name="ctxgraph")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """ctxgraph - token-budgeted code context for language models."""
    # Without --verbose, skipped files are reported by the console instead
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@main.command("map")
@click.argument("path", default=".")
@click.option("--stats", is_flag=True, help="Show dependency graph statistics.")
def code_map(path: str, stats: bool):
    """Print the structural map of a repository.

    Every file with its symbol signatures, trimmed to the configured
    structure_map_token_cap.
    """
    root = _get_project_root(path)
    engine = ContextEngine(_load_config(root))

    try:
        snapshot = _scan(engine, root)
    except CtxGraphError as e:
        console.error(str(e))
        sys.exit(1)

    if stats:
        console.show_stats({
            "files": snapshot.graph.number_of_nodes(),
            "edges": snapshot.graph.number_of_edges(),
        })
    console.raw(engine.assembler.render_map(snapshot))


@main.command()
@click.argument("path", default=".")
@click.option(
    "--out", "-o", "out", default=None, type=click.Path(dir_okay=False),
    help="Where to write the index (default: .ctxgraph/semantic_index.json).",
)
def index(path: str, out: str | None):
    """Build and save a semantic index of a repository."""
    from ctxgraph.semantic.index import SemanticIndex

    root = _get_project_root(path)
    config = _load_config(root)
    engine = ContextEngine(config)
    out_path = Path(out) if out else get_ctxgraph_dir(root) / INDEX_FILE

    try:
        snapshot = _scan(engine, root)
        console.info(f"Embedding with the '{config.semantic.provider}' provider...")
        start_time = time.time()
        semantic_index = SemanticIndex.build(
            snapshot.records, engine.provider(), config.semantic
        )
    except CtxGraphError as e:
        console.error(str(e))
        sys.exit(1)

    semantic_index.save(out_path)
    console.success(
        f"Embedded {len(semantic_index)} chunks in {time.time() - start_time:.1f}s"
    )
    console.success(f"Semantic index saved to {out_path}")


@main.command()
@click.argument("path")
@click.argument("task")
@click.option("--budget", "-b", default=None, type=int, help="Total token budget.")
@click.option(
    "--index", "index_path", default=None, type=click.Path(exists=True, dir_okay=False),
    help="Load a saved semantic index instead of embedding the project.",
)
@click.option("--no-semantic", is_flag=True, help="Skip the semantic matches section.")
@click.option("--summary", is_flag=True, help="Show per-section token usage on stderr.")
@click.option(
    "--tiktoken", "tiktoken_model", default=None,
    help="Count tokens exactly with tiktoken for this model (e.g. gpt-4o).",
)
def assemble(
    path: str, task: str, budget: int | None, index_path: str | None,
    no_semantic: bool, summary: bool, tiktoken_model: str | None,
):
    """Assemble token-bounded context for a task.

    Examples:

        ctxgraph assemble . "fix the login bug"

        ctxgraph assemble . "add pagination to the user list" --budget 4000
    """
    from ctxgraph.context.models import estimate_tokens, tiktoken_counter
    from ctxgraph.semantic.index import SemanticIndex

    count_tokens = estimate_tokens
    if tiktoken_model:
        try:
            count_tokens = tiktoken_counter(tiktoken_model)
        except ImportError as e:
            console.error(str(e))
            sys.exit(1)

    root = _get_project_root(path)
    config = _load_config(root)
    if budget is not None:
        config.assembly.total_token_budget = budget
    if no_semantic:
        config.semantic.enabled = False

    engine = ContextEngine(config, count_tokens=count_tokens)
    try:
        semantic_index = None
        if index_path and not no_semantic:
            semantic_index = SemanticIndex.load(
                index_path, engine.provider(), config.semantic
            )
        package = engine.build(root, task, semantic_index=semantic_index)
    except CtxGraphError as e:
        console.error(str(e))
        sys.exit(1)

    for warning in package.warnings:
        console.warning(warning)
    if summary:
        console.show_package(package)
    console.raw(package.render())


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=".", help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str):
    """Manage ctxgraph configuration."""
    root = _get_project_root(path)
    config = _load_config(root)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: ctxgraph config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.raw(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: ctxgraph config set <key> <value>")
            sys.exit(1)
        # Try to parse as JSON for non-string values
        try:
            parsed_value = json.loads(value)
        except json.JSONDecodeError:
            parsed_value = value

        try:
            config = set_config_value(config, key, parsed_value)
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ValueError as e:
            console.error(f"Invalid value for {key}: {e}")
            sys.exit(1)
        save_config(root, config)
        console.success(f"Set {key} = {parsed_value}")


if __name__ == "__main__":
    main()
