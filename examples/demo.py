#!/usr/bin/env python3
"""Demo: Using ctxgraph as a Python library.

This shows how to drive each stage programmatically, not just through the CLI.
"""

from pathlib import Path

from ctxgraph.config import AssemblyConfig, ProjectConfig
from ctxgraph.context import ContextAssembler
from ctxgraph.engine import ContextEngine
from ctxgraph.graph import rank, ranked_paths


def main():
    # Point at any code directory
    project_root = Path(".")
    config = ProjectConfig()

    # 1. Scan and build the dependency graph
    print("Scanning project...")
    engine = ContextEngine(config)
    snapshot = engine.scan(project_root)
    print(f"  Files: {len(snapshot.records)}")
    print(f"  Import edges: {snapshot.graph.number_of_edges()}")
    for warning in snapshot.warnings:
        print(f"  skipped: {warning}")

    # 2. Rank files by structural importance
    print("\n--- Most imported files ---")
    scores = rank(snapshot.graph)
    for path in ranked_paths(scores)[:5]:
        importers = snapshot.query.importers_of(path)
        print(f"  {scores[path]:.4f}  {path}  ({len(importers)} importers)")

    # 3. Build a semantic index and search it
    index, warnings = engine.build_index(snapshot)
    if index is not None:
        print("\n--- Chunks similar to 'parse configuration' ---")
        for hit in index.search("parse configuration", top_k=3):
            c = hit.chunk
            print(f"  {hit.similarity:.3f}  {c.file}:{c.start_line + 1}-{c.end_line + 1}")

    # 4. Assemble context for a task under a tight budget
    assembler = ContextAssembler(AssemblyConfig(total_token_budget=2000))
    package = assembler.assemble(snapshot, "fix the config loading bug", index)
    print("\n--- Context package ---")
    print(package.summary())


if __name__ == "__main__":
    main()
