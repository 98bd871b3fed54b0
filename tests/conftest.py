"""Shared fixtures: in-memory storage plus a deterministic bag-of-words embedder.

No external services are needed (no Ollama, no PostgreSQL, no LLM).
"""

import re
import zlib

import pytest
import pytest_asyncio

from src.genesis.memory import MemoryConfig, MemoryManager
from src.genesis.memory.operators import EmbeddingConfig, EmbeddingService
from src.genesis.memory.storage import InMemoryBackend
from src.genesis.protocol import create_default_registry

EMBED_DIM = 64


def bag_of_words(text: str, dim: int = EMBED_DIM) -> list[float]:
    """Hash each lowercase word into a bucket. Identical text -> identical vector."""
    vector = [0.0] * dim
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        vector[zlib.crc32(word.encode("utf-8")) % dim] += 1.0
    return vector


class FakeEmbedder:
    """Embedding callback that records calls and can be told to fail."""

    def __init__(self, dim: int = EMBED_DIM):
        self.dim = dim
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def __call__(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return bag_of_words(text, self.dim)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def make_manager(embedder):
    """Factory for managers on a fresh in-memory backend."""

    def build(embedding_config: EmbeddingConfig | None = None, **config) -> MemoryManager:
        embedding = EmbeddingService(
            embedding_config or EmbeddingConfig(requests_per_minute=10_000),
            embed_callback=embedder,
        )
        return MemoryManager(MemoryConfig(**config), backend=InMemoryBackend(), embedding=embedding)

    return build


@pytest_asyncio.fixture
async def manager(make_manager):
    memory = make_manager()
    await memory.initialize()
    yield memory
    await memory.shutdown()


@pytest.fixture
def registry(manager):
    return create_default_registry(manager)
