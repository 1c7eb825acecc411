"""Data models for extracted symbols and scanned files."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SymbolKind(str, Enum):
    """Types of declarations the extractor emits."""

    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    METHOD = "method"
    VARIABLE = "variable"
    EXPORT = "export"


class Symbol(BaseModel):
    """A named declaration with its body elided."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: SymbolKind
    signature: str = ""  # e.g. "def login(user, password) ..."
    start_line: int = Field(ge=0)  # 0-indexed
    end_line: int = Field(ge=0)
    exported: bool = False  # visible to importers of the file

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("symbol name must be non-empty")
        return v

    @model_validator(mode="after")
    def _lines_ordered(self) -> Symbol:
        if self.end_line < self.start_line:
            raise ValueError("end_line must be >= start_line")
        return self


class FileRecord(BaseModel):
    """One scanned source file: its symbols and raw import strings."""

    model_config = ConfigDict(frozen=True)

    path: str  # POSIX path relative to the project root
    language: str
    content: str = Field(default="", exclude=True, repr=False)
    symbols: list[Symbol] = Field(default_factory=list)
    import_paths: list[str] = Field(default_factory=list)  # raw, unresolved


# Language detection by file extension
EXTENSION_LANGUAGE_MAP: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}


def detect_language(file_path: str) -> str | None:
    """Detect programming language from file extension."""
    ext = PurePosixPath(file_path).suffix.lower()
    return EXTENSION_LANGUAGE_MAP.get(ext)
