"""Shared fixtures: isolated LanceDB directories and offline hash embeddings."""

import random
import uuid

import pytest

from semantic_store import (
    EmbeddingAdapter,
    HashEmbeddingProvider,
    StoreConfig,
    idea_store,
    memory_store,
)

TEST_DIM = 512

RANDOM_WORDS = [
    "quantum",
    "neural",
    "cosmic",
    "fractal",
    "entropy",
    "stellar",
    "velocity",
    "catalyst",
    "synthesis",
    "paradox",
    "spectrum",
    "resonance",
]


def unique_content(base: str) -> str:
    """Generate content that shares no tokens with other tests' content."""
    random_phrase = " ".join(random.sample(RANDOM_WORDS, 4))
    return f"{base} - {random_phrase} - context {uuid.uuid4().hex}"


def make_config(tmp_path, table_name: str, **overrides) -> StoreConfig:
    values = dict(
        uri=str(tmp_path / "test-db"),
        table_name=table_name,
        vector_dimension=TEST_DIM,
        embedding_model="hash",
        embedding_provider="hash",
    )
    values.update(overrides)
    return StoreConfig(**values)


@pytest.fixture
def embedder():
    return EmbeddingAdapter(HashEmbeddingProvider(TEST_DIM), TEST_DIM)


@pytest.fixture
async def ideas(tmp_path, embedder):
    store = idea_store(make_config(tmp_path, "ideas"), embedder)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def memories(tmp_path, embedder):
    store = memory_store(make_config(tmp_path, "memories"), embedder)
    await store.initialize()
    yield store
    await store.close()
