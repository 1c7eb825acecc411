"""Rich-powered console output for ctxgraph."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ctxgraph.context.models import ContextPackage


class Console:
    """Terminal output for ctxgraph.

    Status messages go to stderr so that stdout carries only the map or the
    assembled context and can be piped.
    """

    def __init__(self) -> None:
        self.console = RichConsole()
        self.err = RichConsole(stderr=True)

    def success(self, message: str) -> None:
        self.err.print(f"[green]✓[/green] {escape(message)}")

    def error(self, message: str) -> None:
        self.err.print(f"[red]✗[/red] {escape(message)}")

    def warning(self, message: str) -> None:
        self.err.print(f"[yellow]![/yellow] {escape(message)}")

    def info(self, message: str) -> None:
        self.err.print(f"[blue]i[/blue] {escape(message)}")

    def raw(self, text: str) -> None:
        """Print text to stdout verbatim, without markup or wrapping."""
        self.console.print(
            text, markup=False, highlight=False, emoji=False, soft_wrap=True
        )

    def indexing_progress(self) -> Progress:
        """Create a progress bar for scanning."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=self.err,
        )

    def show_stats(self, stats: dict) -> None:
        """Display graph statistics in a table."""
        table = Table(title="Dependency Graph", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right", style="cyan")

        table.add_row("Files", str(stats.get("files", 0)))
        table.add_row("Import edges", str(stats.get("edges", 0)))
        table.add_row("Unresolved imports", str(stats.get("discarded_imports", 0)))
        table.add_row("Self imports", str(stats.get("self_imports", 0)))
        if "chunks" in stats:
            table.add_section()
            table.add_row("Chunks", str(stats["chunks"]))
            table.add_row("Dimension", str(stats.get("dimension", 0)))

        self.err.print(table)

    def show_package(self, package: ContextPackage) -> None:
        """Display per-section token usage of an assembled package."""
        table = Table(title="Context Package", border_style="cyan")
        table.add_column("Section", style="bold")
        table.add_column("Items", justify="right")
        table.add_column("Tokens", justify="right", style="cyan")

        table.add_row("Repository map", str(package.map_entries), f"{package.map_tokens:,}")
        table.add_row("Relevant files", str(len(package.file_blocks)), f"{package.file_tokens:,}")
        table.add_row(
            "Semantic matches",
            str(len(package.semantic_blocks)),
            f"{package.semantic_tokens:,}",
        )
        table.add_section()
        table.add_row(
            "Total", "", f"{package.total_tokens:,} / {package.token_budget:,}"
        )
        self.err.print(table)

        if package.seed_files:
            self.info(f"Seeds: {', '.join(package.seed_files)}")
