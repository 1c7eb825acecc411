"""Configuration management for ctxgraph."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ctxgraph.exceptions import ConfigError

CTXGRAPH_DIR = ".ctxgraph"
CONFIG_FILE = "config.json"
INDEX_FILE = "semantic_index.json"


class IndexerConfig(BaseModel):
    """Which files a scan considers, and how they are read."""

    include_patterns: list[str] = Field(
        default_factory=lambda: [
            "*.py",
            "*.pyi",
            "*.js",
            "*.jsx",
            "*.mjs",
            "*.cjs",
            "*.ts",
            "*.tsx",
        ]
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            "node_modules",
            "__pycache__",
            ".git",
            ".ctxgraph",
            ".next",
            "dist",
            "build",
            ".venv",
            "venv",
            ".env",
            "*.min.js",
            "*.d.ts",
            "*.map",
            "*.lock",
        ]
    )
    max_file_size_kb: int = 500
    read_workers: int = Field(default=8, ge=1)


class RankerConfig(BaseModel):
    """Importance propagation parameters."""

    damping: float = Field(default=0.85, ge=0.0, le=1.0)
    iterations: int = Field(default=20, ge=0)
    seed_boost: float = Field(default=0.5, ge=0.0)


class SemanticConfig(BaseModel):
    """Chunking, embedding and retry settings for the semantic index."""

    enabled: bool = True
    provider: str = "hash"  # "hash" or "openai"
    model: str = "text-embedding-3-small"
    dimension: int = 256
    api_key_env: str = ""
    max_chunk_chars: int = Field(default=1500, ge=1)
    min_chunk_lines: int = Field(default=3, ge=0)
    batch_size: int = Field(default=64, ge=1)
    concurrency: int = Field(default=4, ge=1)
    timeout_s: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_s: float = Field(default=0.5, ge=0)
    backoff_max_s: float = Field(default=8.0, ge=0)

    @property
    def api_key(self) -> str | None:
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        if self.provider == "openai":
            return os.environ.get("OPENAI_API_KEY")
        return None


class AssemblyConfig(BaseModel):
    """Token caps for each phase of context assembly."""

    structure_map_token_cap: int = Field(default=1000, ge=0)
    full_file_token_cap: int = Field(default=4000, ge=0)
    semantic_token_cap: int = Field(default=2000, ge=0)
    total_token_budget: int = Field(default=8000, ge=0)
    semantic_top_k: int = Field(default=20, ge=0)


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    ranker: RankerConfig = Field(default_factory=RankerConfig)
    semantic: SemanticConfig = Field(default_factory=SemanticConfig)
    assembly: AssemblyConfig = Field(default_factory=AssemblyConfig)

    @model_validator(mode="after")
    def _check_backoff(self) -> ProjectConfig:
        if self.semantic.backoff_max_s < self.semantic.backoff_base_s:
            raise ValueError("semantic.backoff_max_s must be >= semantic.backoff_base_s")
        return self


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .ctxgraph directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / CTXGRAPH_DIR).is_dir():
            return current
        current = current.parent
    if (current / CTXGRAPH_DIR).is_dir():
        return current
    return None


def get_ctxgraph_dir(root: Path) -> Path:
    """Get the .ctxgraph directory for a project root."""
    return root / CTXGRAPH_DIR


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .ctxgraph/config.json."""
    config_path = get_ctxgraph_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return ProjectConfig(**data)
        except (json.JSONDecodeError, ValueError) as e:
            raise ConfigError(f"Invalid config at {config_path}: {e}") from e
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .ctxgraph/config.json."""
    cg_dir = get_ctxgraph_dir(root)
    cg_dir.mkdir(parents=True, exist_ok=True)
    config_path = cg_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'assembly.total_token_budget')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    return ProjectConfig(**data)
