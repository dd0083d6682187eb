"""
Tests for the embedding adapter and providers.

Run with: pytest test_embedding.py -v
"""

import math

import pytest
import requests

from semantic_store import (
    EmbeddingAdapter,
    EmbeddingDimensionMismatch,
    EmbeddingProvider,
    EmbeddingResult,
    GoogleEmbeddingProvider,
    HashEmbeddingProvider,
    OllamaEmbeddingProvider,
    ProviderError,
    StoreConfig,
    create_provider,
)


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no JSON")
        return self._body


class StaticProvider(EmbeddingProvider):
    model = "static"

    def __init__(self, vectors):
        self.vectors = vectors
        self.seen = []

    def embed_texts(self, texts):
        self.seen.extend(texts)
        return [EmbeddingResult(v, 3) for v in self.vectors[: len(texts)]]


# =============================================================================
# Adapter
# =============================================================================


class TestEmbeddingAdapter:
    """Tests for normalisation and dimension checks."""

    async def test_normalises_vector(self):
        adapter = EmbeddingAdapter(StaticProvider([[3.0, 4.0]]), 2)
        result = await adapter.embed("hello")
        assert result.vector == pytest.approx([0.6, 0.8])
        assert result.tokens == 3

    async def test_trims_input(self):
        provider = StaticProvider([[1.0, 0.0]])
        await EmbeddingAdapter(provider, 2).embed("  padded text \n")
        assert provider.seen == ["padded text"]

    async def test_wrong_dimension(self):
        adapter = EmbeddingAdapter(StaticProvider([[1.0, 0.0, 0.0]]), 2)
        with pytest.raises(EmbeddingDimensionMismatch) as exc:
            await adapter.embed("hello")
        assert exc.value.expected == 2
        assert exc.value.actual == 3
        assert exc.value.retryable is False

    async def test_non_finite_values(self):
        adapter = EmbeddingAdapter(StaticProvider([[math.nan, 1.0]]), 2)
        with pytest.raises(ProviderError):
            await adapter.embed("hello")

    async def test_result_count_mismatch(self):
        adapter = EmbeddingAdapter(StaticProvider([[1.0, 0.0]]), 2)
        with pytest.raises(ProviderError):
            await adapter.embed_batch(["one", "two"])

    async def test_unexpected_exception_wrapped(self):
        class Broken(EmbeddingProvider):
            model = "broken"

            def embed_texts(self, texts):
                raise KeyError("boom")

        with pytest.raises(ProviderError):
            await EmbeddingAdapter(Broken(), 2).embed("hello")

    async def test_empty_batch(self):
        assert await EmbeddingAdapter(StaticProvider([]), 2).embed_batch([]) == []


# =============================================================================
# Hash provider
# =============================================================================


class TestHashEmbeddings:
    """Tests for the offline hash provider."""

    async def test_deterministic(self):
        adapter = EmbeddingAdapter(HashEmbeddingProvider(128), 128)
        first = await adapter.embed("Expand into enterprise")
        second = await adapter.embed("Expand into enterprise")
        assert first.vector == second.vector
        assert first.tokens == 3

    async def test_similarity(self):
        """Texts sharing words should be closer than unrelated texts."""
        adapter = EmbeddingAdapter(HashEmbeddingProvider(512), 512)
        a, b, c = await adapter.embed_batch(
            ["database query optimization", "optimize database queries fast", "chocolate cake recipe"]
        )

        def cosine(x, y):
            return sum(i * j for i, j in zip(x.vector, y.vector))

        assert cosine(a, b) > cosine(a, c)

    async def test_rejects_empty(self):
        adapter = EmbeddingAdapter(HashEmbeddingProvider(64), 64)
        with pytest.raises(ProviderError):
            await adapter.embed("   ")


# =============================================================================
# Ollama provider
# =============================================================================


class TestOllamaProvider:
    """Tests for Ollama request/response handling."""

    def test_success(self, monkeypatch):
        calls = {}

        def fake_post(url, json, timeout):
            calls.update(url=url, json=json)
            return FakeResponse(body={"embeddings": [[0.1, 0.2], [0.3, 0.4]], "prompt_eval_count": 10})

        monkeypatch.setattr(requests, "post", fake_post)
        provider = OllamaEmbeddingProvider("nomic-embed-text", "http://ollama:11434/")
        results = provider.embed_texts(["a", "b"])

        assert calls["url"] == "http://ollama:11434/api/embed"
        assert calls["json"] == {"model": "nomic-embed-text", "input": ["a", "b"]}
        assert [r.vector for r in results] == [[0.1, 0.2], [0.3, 0.4]]
        assert results[0].tokens == 5

    def test_connection_error_is_retryable(self, monkeypatch):
        def fake_post(url, json, timeout):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(requests, "post", fake_post)
        with pytest.raises(ProviderError) as exc:
            OllamaEmbeddingProvider("m").embed_texts(["a"])
        assert exc.value.retryable is True

    @pytest.mark.parametrize("status,retryable", [(429, True), (503, True), (400, False), (404, False)])
    def test_http_errors(self, monkeypatch, status, retryable):
        monkeypatch.setattr(
            requests, "post", lambda url, json, timeout: FakeResponse(status, text="nope")
        )
        with pytest.raises(ProviderError) as exc:
            OllamaEmbeddingProvider("m").embed_texts(["a"])
        assert exc.value.retryable is retryable
        assert str(status) in str(exc.value)

    def test_malformed_response(self, monkeypatch):
        monkeypatch.setattr(
            requests, "post", lambda url, json, timeout: FakeResponse(body={"embedding": [0.1]})
        )
        with pytest.raises(ProviderError):
            OllamaEmbeddingProvider("m").embed_texts(["a"])

    async def test_adapter_passes_through(self, monkeypatch):
        monkeypatch.setattr(
            requests, "post", lambda url, json, timeout: FakeResponse(body={"embeddings": [[0.0, 2.0]]})
        )
        result = await EmbeddingAdapter(OllamaEmbeddingProvider("m"), 2).embed("hello")
        assert result.vector == pytest.approx([0.0, 1.0])


# =============================================================================
# Provider selection
# =============================================================================


class TestCreateProvider:
    """Tests for provider construction from config."""

    def _config(self, **overrides):
        values = dict(uri="/tmp/db", table_name="ideas", vector_dimension=64, embedding_model="m")
        values.update(overrides)
        return StoreConfig(**values)

    def test_ollama_default(self):
        provider = create_provider(self._config(ollama_base_url="http://host:1234"))
        assert isinstance(provider, OllamaEmbeddingProvider)
        assert provider.base_url == "http://host:1234"

    def test_hash(self):
        provider = create_provider(self._config(embedding_provider="hash"))
        assert isinstance(provider, HashEmbeddingProvider)
        assert provider.dimension == 64

    def test_google_requires_key(self):
        with pytest.raises(ProviderError):
            create_provider(self._config(embedding_provider="google"))

    def test_google_with_key(self):
        provider = create_provider(self._config(embedding_provider="google", google_api_key="k"))
        assert isinstance(provider, GoogleEmbeddingProvider)
        assert provider.dimension == 64
