"""Embedding providers and retry handling.

Providers turn texts into fixed-dimension vectors:

========= ============================== ======================================
Key       Backend                        Notes
========= ============================== ======================================
hash      feature hashing (blake2b)      Deterministic, offline, keyword-level
openai    OpenAI embeddings API          Needs ``pip install ctxgraph[openai]``
========= ============================== ======================================
"""

from __future__ import annotations

import logging
import math
import re
import time
from abc import ABC, abstractmethod
from hashlib import blake2b
from typing import Any

from ctxgraph.cancellation import CancelToken
from ctxgraph.config import SemanticConfig
from ctxgraph.exceptions import (
    ConfigError,
    FatalEmbeddingError,
    ProviderNotAvailableError,
    TransientEmbeddingError,
)

logger = logging.getLogger("ctxgraph.semantic")

_TOKEN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*|\d+")


class EmbeddingProvider(ABC):
    """Abstract base for embedding providers."""

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed each text, returning one vector per input in order.

        Raises:
            TransientEmbeddingError: the call may succeed if retried.
            FatalEmbeddingError: retrying will not help.
        """
        ...


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic token-hashing embedder with no ML dependencies.

    Identifiers are also split on camelCase and snake_case boundaries so
    ``getUserName`` shares features with "user name".
    """

    def __init__(self, dimension: int = 256) -> None:
        super().__init__(dimension)

    def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._embed_one(text) for text in texts]

    def _embed_one(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for token in _tokenize(text):
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if (digest[4] & 1) == 0 else -1.0
            vec[idx] += sign
        return _l2_normalize(vec)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Provider for the OpenAI embeddings API (and compatible servers)."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        super().__init__(dimension)
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise ProviderNotAvailableError("openai", "openai")

            kwargs: dict[str, Any] = {"timeout": self.timeout_s, "max_retries": 0}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def embed(self, texts: list[str]) -> list[list[float]]:
        import openai

        client = self._get_client()
        try:
            response = client.embeddings.create(
                model=self.model, input=texts, dimensions=self.dimension
            )
        except (openai.RateLimitError, openai.APITimeoutError, openai.APIConnectionError) as e:
            raise TransientEmbeddingError(f"OpenAI embeddings unavailable: {e}") from e
        except openai.InternalServerError as e:
            raise TransientEmbeddingError(f"OpenAI server error: {e}") from e
        except openai.APIError as e:
            raise FatalEmbeddingError(f"OpenAI embeddings failed: {e}") from e

        data = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in data]


def create_provider(config: SemanticConfig) -> EmbeddingProvider:
    """Create the provider named by `config.provider`."""
    if config.provider == "hash":
        return HashEmbeddingProvider(config.dimension)
    if config.provider == "openai":
        return OpenAIEmbeddingProvider(
            model=config.model,
            dimension=config.dimension,
            api_key=config.api_key,
            timeout_s=config.timeout_s,
        )
    raise ConfigError(
        f"Unknown embedding provider: '{config.provider}'. Available: hash, openai"
    )


def embed_with_retry(
    provider: EmbeddingProvider,
    texts: list[str],
    max_attempts: int = 3,
    backoff_base_s: float = 0.5,
    backoff_max_s: float = 8.0,
    cancel: CancelToken | None = None,
) -> list[list[float]]:
    """Call `provider.embed`, retrying transient failures with exponential backoff.

    Delays are base, 2*base, 4*base, ... capped at `backoff_max_s`. Fatal
    errors and the final transient error propagate. Cancellation interrupts
    the backoff sleep.
    """
    attempt = 1
    while True:
        try:
            vectors = provider.embed(texts)
        except TransientEmbeddingError as e:
            if attempt >= max_attempts:
                raise
            delay = min(backoff_max_s, backoff_base_s * (2 ** (attempt - 1)))
            logger.warning(
                "Embedding attempt %d/%d failed (%s); retrying in %.2fs",
                attempt, max_attempts, e, delay,
            )
            if cancel is not None:
                if cancel.wait(delay):
                    cancel.raise_if_cancelled("embed")
            elif delay > 0:
                time.sleep(delay)
            attempt += 1
            continue

        if len(vectors) != len(texts):
            raise FatalEmbeddingError(
                f"Provider returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors


def _tokenize(text: str) -> list[str]:
    """Lowercased identifiers plus their camelCase / snake_case parts."""
    tokens: list[str] = []
    for raw in _TOKEN_RE.findall(text):
        lowered = raw.lower()
        tokens.append(lowered)
        spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", raw).replace("_", " ")
        parts = [p.lower() for p in spaced.split() if p]
        if len(parts) > 1:
            tokens.extend(parts)
    return tokens


def _l2_normalize(vec: list[float]) -> list[float]:
    norm = math.sqrt(sum(v * v for v in vec))
    if norm == 0:
        return vec
    return [v / norm for v in vec]
