"""
Embedding adapter and providers.

The adapter is the only component that calls out per write and per search.
It trims input, checks the vector dimension and L2-normalises the result;
it never retries and never substitutes another provider on failure.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
import requests

from .errors import EmbeddingDimensionMismatch, ProviderError

if TYPE_CHECKING:
    from google.genai import Client as GenAIClient

    from .config import StoreConfig

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class EmbeddingResult(NamedTuple):
    vector: list[float]
    tokens: int


class EmbeddingProvider(ABC):
    """Synchronous provider interface. Implementations raise ProviderError."""

    model: str

    @abstractmethod
    def embed_texts(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed ``texts``, returning one result per input in the same order."""


# =============================================================================
# Ollama
# =============================================================================


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Local embeddings through Ollama's ``/api/embed`` endpoint."""

    def __init__(self, model: str, base_url: str = "http://localhost:11434", timeout: float = 30):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def embed_texts(self, texts: list[str]) -> list[EmbeddingResult]:
        try:
            response = requests.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": texts},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(f"Ollama request failed: {e}", retryable=True) from e

        if response.status_code >= 400:
            raise ProviderError(
                f"Ollama returned HTTP {response.status_code}: {response.text[:200]}",
                retryable=response.status_code in RETRYABLE_STATUS,
            )

        try:
            body = response.json()
            embeddings = body["embeddings"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"Malformed Ollama response: {e}") from e
        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise ProviderError(
                f"Malformed Ollama response: expected {len(texts)} embeddings"
            )

        # Ollama reports one prompt token total per request
        total_tokens = int(body.get("prompt_eval_count") or 0)
        per_text = total_tokens // len(texts) if texts else 0
        return [EmbeddingResult(list(vector), per_text) for vector in embeddings]


# =============================================================================
# Google Gemini
# =============================================================================


class GoogleEmbeddingProvider(EmbeddingProvider):
    """Gemini embeddings through the ``google-genai`` client."""

    def __init__(
        self,
        model: str,
        api_key: str | None,
        dimension: int,
        task_type: str = "SEMANTIC_SIMILARITY",
    ):
        if not api_key:
            raise ProviderError(
                "GOOGLE_API_KEY not found. Set environment variable or create ~/.secrets/GOOGLE_API_KEY"
            )
        self.model = model
        self.dimension = dimension
        self.task_type = task_type
        self._api_key = api_key
        self._client: GenAIClient | None = None

    def _get_client(self) -> GenAIClient:
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def embed_texts(self, texts: list[str]) -> list[EmbeddingResult]:
        from google.genai import types

        try:
            response = self._get_client().models.embed_content(
                model=self.model,
                contents=texts,
                config=types.EmbedContentConfig(
                    task_type=self.task_type, output_dimensionality=self.dimension
                ),
            )
        except Exception as e:
            code = getattr(e, "code", None)
            raise ProviderError(
                f"Google embedding failed: {e}",
                retryable=code in RETRYABLE_STATUS or code is None,
            ) from e

        embeddings = response.embeddings or []
        if len(embeddings) != len(texts):
            raise ProviderError(f"Malformed Google response: expected {len(texts)} embeddings")

        results = []
        for embedding in embeddings:
            if not embedding.values:
                raise ProviderError("Malformed Google response: empty embedding")
            # Token statistics are only reported by Vertex AI
            stats = getattr(embedding, "statistics", None)
            tokens = int(getattr(stats, "token_count", 0) or 0)
            results.append(EmbeddingResult(list(embedding.values), tokens))
        return results


# =============================================================================
# Deterministic hashing
# =============================================================================

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class HashEmbeddingProvider(EmbeddingProvider):
    """Signed feature hashing over word tokens.

    No network and no model: texts sharing words get similar vectors,
    nothing more. Meant for offline development and tests. Rejects input
    without any word token, the way hosted providers reject empty input.
    """

    def __init__(self, dimension: int, model: str = "hash"):
        self.dimension = dimension
        self.model = model

    def _embed_one(self, text: str) -> EmbeddingResult:
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            raise ProviderError("Hash embedding input contains no tokens")
        vector = np.zeros(self.dimension)
        for token in tokens:
            digest = hashlib.sha256(token.encode()).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            vector[bucket] += 1.0 if digest[4] & 1 else -1.0
        return EmbeddingResult(vector.tolist(), len(tokens))

    def embed_texts(self, texts: list[str]) -> list[EmbeddingResult]:
        return [self._embed_one(text) for text in texts]


def create_provider(config: StoreConfig) -> EmbeddingProvider:
    provider = config.embedding_provider
    if provider == "ollama":
        return OllamaEmbeddingProvider(config.embedding_model, config.ollama_base_url)
    if provider == "google":
        return GoogleEmbeddingProvider(
            config.embedding_model, config.google_api_key, config.vector_dimension
        )
    return HashEmbeddingProvider(config.vector_dimension, model=config.embedding_model)


# =============================================================================
# Adapter
# =============================================================================


class EmbeddingAdapter:
    """Async front for a provider with a fixed output dimension."""

    def __init__(self, provider: EmbeddingProvider, dimension: int):
        self.provider = provider
        self.dimension = dimension

    async def embed(self, text: str) -> EmbeddingResult:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        if not texts:
            return []
        cleaned = [text.strip() for text in texts]
        logger.debug(
            "Embedding %d text(s) with %s (chars=%d)",
            len(cleaned),
            getattr(self.provider, "model", type(self.provider).__name__),
            sum(len(t) for t in cleaned),
        )
        try:
            results = await asyncio.to_thread(self.provider.embed_texts, cleaned)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Embedding provider error: {e}") from e

        if len(results) != len(cleaned):
            raise ProviderError(
                f"Embedding provider returned {len(results)} results for {len(cleaned)} inputs"
            )
        return [self._finish(result) for result in results]

    def _finish(self, result: Any) -> EmbeddingResult:
        try:
            vector = np.asarray(result.vector, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ProviderError(f"Malformed embedding vector: {e}") from e
        if vector.ndim != 1:
            raise ProviderError(f"Malformed embedding vector with shape {vector.shape}")
        if vector.shape[0] != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, int(vector.shape[0]))
        if not np.all(np.isfinite(vector)):
            raise ProviderError("Embedding vector contains non-finite values")

        norm = np.linalg.norm(vector)
        normalized = (vector / norm).tolist() if norm > 0 else vector.tolist()
        return EmbeddingResult(normalized, int(result.tokens))
