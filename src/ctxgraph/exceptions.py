"""Custom exceptions for ctxgraph."""


class CtxGraphError(Exception):
    """Base exception for all ctxgraph errors."""


class ConfigError(CtxGraphError):
    """Configuration-related errors."""


class ParserError(CtxGraphError):
    """A single file could not be parsed. Callers skip the file."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not parse {path}: {reason}")
        self.path = path
        self.reason = reason


class GraphError(CtxGraphError):
    """Dependency graph errors."""


class IndexFormatError(CtxGraphError):
    """A persisted semantic index is malformed or inconsistent."""


class EmbeddingError(CtxGraphError):
    """The embedding provider failed. Semantic search is degraded, not fatal."""


class TransientEmbeddingError(EmbeddingError):
    """Rate limits, timeouts and connection resets. Safe to retry."""


class FatalEmbeddingError(EmbeddingError):
    """Authentication or configuration problems. Never retried."""


class BudgetError(CtxGraphError):
    """The token budget cannot hold even the repository map header."""

    def __init__(self, budget: int, minimum: int):
        super().__init__(
            f"Token budget {budget} is smaller than the minimum viable map "
            f"({minimum} tokens)"
        )
        self.budget = budget
        self.minimum = minimum


class ProjectRootError(CtxGraphError):
    """The project root is missing or unreadable."""


class BuildCancelledError(CtxGraphError):
    """The build was cancelled between phases."""

    def __init__(self, phase: str):
        super().__init__(f"Build cancelled before phase '{phase}'")
        self.phase = phase


class ProviderNotAvailableError(EmbeddingError):
    """Raised when an embedding provider's SDK is not installed."""

    def __init__(self, provider: str, package: str):
        super().__init__(
            f"Provider '{provider}' requires the '{package}' package. "
            f"Install it with: pip install ctxgraph[{provider}]"
        )
