"""Core parser orchestration: file discovery, concurrent reads, per-file parsing."""

from __future__ import annotations

import fnmatch
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Callable, Protocol

from ctxgraph.cancellation import CancelToken
from ctxgraph.config import IndexerConfig
from ctxgraph.exceptions import ParserError, ProjectRootError
from ctxgraph.parser.models import FileRecord, detect_language
from ctxgraph.parser.tree_sitter_parser import is_available, parse_source

logger = logging.getLogger("ctxgraph.parser")


class FileSystem(Protocol):
    """Read-only view of a project tree."""

    def list_files(
        self, root: str, include_patterns: list[str], exclude_patterns: list[str]
    ) -> list[str]:
        """Return POSIX paths relative to `root`."""
        ...

    def read_file(self, path: str) -> str:
        """Return the text of `path` (an absolute path or one relative to the cwd)."""
        ...


class LocalFileSystem:
    """FileSystem backed by the local disk. Never writes."""

    def __init__(self, max_file_size_kb: int = 500) -> None:
        self.max_size = max_file_size_kb * 1024

    def list_files(
        self, root: str, include_patterns: list[str], exclude_patterns: list[str]
    ) -> list[str]:
        root_path = Path(root)
        if not root_path.is_dir():
            raise ProjectRootError(f"Project root is not a directory: {root}")
        try:
            os.listdir(root_path)
        except OSError as e:
            raise ProjectRootError(f"Project root is unreadable: {root} ({e})") from e

        all_exclude = list(exclude_patterns) + _read_gitignore(root_path)
        files: list[str] = []

        for dirpath, dirnames, filenames in os.walk(root_path):
            rel_dir = os.path.relpath(dirpath, root_path)

            # Filter out excluded directories
            dirnames[:] = [
                d
                for d in dirnames
                if not _should_exclude(_join(rel_dir, d), all_exclude)
            ]

            for filename in filenames:
                rel_path = _join(rel_dir, filename)
                if _should_exclude(rel_path, all_exclude):
                    continue
                if not _should_include(rel_path, include_patterns):
                    continue
                try:
                    if (Path(dirpath) / filename).stat().st_size > self.max_size:
                        continue
                except OSError:
                    continue
                files.append(PurePosixPath(*Path(rel_path).parts).as_posix())

        return sorted(files)

    def read_file(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8", errors="replace")


class MemoryFileSystem:
    """FileSystem over an in-memory mapping of relative path -> text."""

    def __init__(self, files: dict[str, str], root: str = "/memory") -> None:
        self.files = dict(files)
        self.root = root

    def list_files(
        self, root: str, include_patterns: list[str], exclude_patterns: list[str]
    ) -> list[str]:
        return sorted(
            p
            for p in self.files
            if _should_include(p, include_patterns)
            and not _should_exclude(p, exclude_patterns)
        )

    def read_file(self, path: str) -> str:
        key = path if path in self.files else os.path.relpath(path, self.root)
        key = key.replace(os.sep, "/")
        if key not in self.files:
            raise FileNotFoundError(path)
        return self.files[key]


def parse_file(path: str, source: str, language: str | None = None) -> FileRecord | None:
    """Parse a single file, auto-detecting its language.

    Returns None if the language is not supported or its grammar is not
    installed. Raises ParserError if the source does not parse.
    """
    language = language or detect_language(path)
    if not language or not is_available(language):
        return None
    return parse_source(path, source, language)


def scan_files(
    root: str | Path,
    fs: FileSystem | None = None,
    config: IndexerConfig | None = None,
    cancel: CancelToken | None = None,
    progress_callback: Callable[[str, int, int], None] | None = None,
) -> tuple[list[FileRecord], list[str]]:
    """Read and parse every source file under `root`.

    Reads run on a bounded thread pool; parsing is sequential and results
    keep the sorted path order.

    Returns:
        (records, warnings) where warnings describe skipped files.
    """
    config = config or IndexerConfig()
    fs = fs or LocalFileSystem(config.max_file_size_kb)
    root_str = str(root)

    paths = fs.list_files(root_str, config.include_patterns, config.exclude_patterns)
    logger.info("Found %d candidate files under %s", len(paths), root_str)

    if cancel:
        cancel.raise_if_cancelled("scan")
    sources = _read_all(root_str, paths, fs, config.read_workers)

    if cancel:
        cancel.raise_if_cancelled("extract")

    records: list[FileRecord] = []
    warnings: list[str] = []
    total = len(paths)
    for i, (rel_path, source) in enumerate(zip(paths, sources)):
        if progress_callback:
            progress_callback(rel_path, i + 1, total)
        if isinstance(source, Exception):
            msg = f"Could not read {rel_path}: {source}"
            logger.warning(msg)
            warnings.append(msg)
            continue
        language = detect_language(rel_path)
        if language and not is_available(language):
            msg = f"Skipping {rel_path}: no tree-sitter grammar installed for {language}"
            logger.warning(msg)
            warnings.append(msg)
            continue
        try:
            record = parse_file(rel_path, source, language)
        except ParserError as e:
            logger.warning("%s", e)
            warnings.append(str(e))
            continue
        if record is not None:
            records.append(record)

    return records, warnings


def _read_all(
    root: str, paths: list[str], fs: FileSystem, workers: int
) -> list[str | Exception]:
    """Read files concurrently, returning results in input order."""

    def _read(rel_path: str) -> str | Exception:
        try:
            return fs.read_file(os.path.join(root, rel_path))
        except (OSError, UnicodeError) as e:
            return e

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_read, paths))


def _join(rel_dir: str, name: str) -> str:
    return os.path.join(rel_dir, name) if rel_dir != "." else name


def _should_include(path: str, patterns: list[str]) -> bool:
    """Empty include list means every file."""
    if not patterns:
        return True
    name = PurePosixPath(path).name
    return any(fnmatch.fnmatch(name, p) or fnmatch.fnmatch(path, p) for p in patterns)


def _should_exclude(path: str, patterns: list[str]) -> bool:
    """Check if a path matches any exclusion pattern."""
    path_parts = Path(path).parts
    for pattern in patterns:
        # Check against full path
        if fnmatch.fnmatch(path, pattern):
            return True
        # Check against any path component
        for part in path_parts:
            if fnmatch.fnmatch(part, pattern):
                return True
    return False


def _read_gitignore(root: Path) -> list[str]:
    """Read .gitignore patterns from the project root."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return []

    patterns = []
    try:
        for line in gitignore.read_text().splitlines():
            line = line.strip()
            if line and not line.startswith("#") and not line.startswith("!"):
                if line.endswith("/"):
                    line = line[:-1]
                patterns.append(line.lstrip("/"))
    except OSError:
        logger.warning("Could not read %s", gitignore)
    return patterns
