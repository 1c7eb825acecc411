"""Multi-language symbol extraction for ctxgraph."""

from ctxgraph.parser.core import (
    FileSystem,
    LocalFileSystem,
    MemoryFileSystem,
    parse_file,
    scan_files,
)
from ctxgraph.parser.models import FileRecord, Symbol, SymbolKind, detect_language
from ctxgraph.parser.tree_sitter_parser import extract_symbols, parse_source

__all__ = [
    "FileRecord",
    "FileSystem",
    "LocalFileSystem",
    "MemoryFileSystem",
    "Symbol",
    "SymbolKind",
    "detect_language",
    "extract_symbols",
    "parse_file",
    "parse_source",
    "scan_files",
]
