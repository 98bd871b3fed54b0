"""EmbeddingService - text to fixed-dimension vectors.

Wraps the Ollama embedding endpoint with an in-process cache keyed by
(model, text) and a sliding one-minute request budget. One instance is built
at process start and handed to everything that needs embeddings.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Awaitable, Callable

import ollama
from loguru import logger

from src.genesis.errors import GenesisError, RateLimitError, UpstreamError, ValidationError


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding service."""
    embedding_model: str = "nomic-embed-text"
    embedding_dim: int | None = None  # Expected vector length; None = whatever the model returns
    ollama_host: str | None = None  # None = default localhost:11434
    timeout: float = 30.0           # Per-request timeout (seconds)

    requests_per_minute: int = 60
    cache_size: int = 1000
    batch_size: int = 10
    max_content_length: int = 8000


class RateLimiter:
    """Sliding-window request budget.

    `acquire` never waits: it either records the request or raises
    RateLimitError with the time until the oldest request leaves the window.
    Check-and-record runs without yielding to the event loop, so concurrent
    coroutines cannot both take the last slot.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: deque[float] = deque()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()

    def acquire(self) -> None:
        now = self._clock()
        self._evict(now)

        if len(self._requests) >= self.max_requests:
            wait = self._requests[0] + self.window_seconds - now
            raise RateLimitError(max(1, math.ceil(wait * 1000)))

        self._requests.append(now)

    @property
    def remaining(self) -> int:
        self._evict(self._clock())
        return max(0, self.max_requests - len(self._requests))


class EmbeddingCache:
    """Bounded cache evicting the oldest insertion first."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._entries: OrderedDict[str, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(model: str, text: str) -> str:
        return hashlib.sha256(f"{model}\x00{text}".encode("utf-8")).hexdigest()

    def get(self, key: str) -> list[float] | None:
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self.hits += 1
        return list(vector)

    def put(self, key: str, vector: list[float]) -> None:
        if key in self._entries:
            return
        self._entries[key] = list(vector)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class EmbeddingService:
    """Converts text to vectors with caching and a request budget.

    Provider failures surface as UpstreamError and budget exhaustion as
    RateLimitError; neither is retried here.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        embed_callback: Callable[[str], Awaitable[list[float]]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EmbeddingConfig()
        self.cache = EmbeddingCache(self.config.cache_size)
        self.limiter = RateLimiter(self.config.requests_per_minute, 60.0, clock)
        self._client: ollama.AsyncClient | None = None
        self._embed_callback = embed_callback
        self._initialized = False

    async def initialize(self) -> None:
        """Create the Ollama client unless an external callback is set."""
        if self._initialized:
            return

        if self._embed_callback is None:
            self._client = ollama.AsyncClient(
                host=self.config.ollama_host,
                timeout=self.config.timeout,
            )
            logger.info(
                f"[Embedding] Using Ollama model {self.config.embedding_model} "
                f"at {self.config.ollama_host or 'localhost:11434'}"
            )

        self._initialized = True

    async def close(self) -> None:
        self._client = None
        self._initialized = False

    def set_embed_callback(self, callback: Callable[[str], Awaitable[list[float]]]) -> None:
        """Set external embedding callback (overrides Ollama)."""
        self._embed_callback = callback

    async def embed(self, text: str, timeout: float | None = None) -> list[float]:
        """Embed one text, serving repeated texts from the cache."""
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Cannot embed empty text")

        truncated = text[:self.config.max_content_length]
        key = EmbeddingCache.make_key(self.config.embedding_model, truncated)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        self.limiter.acquire()
        vector = await self._call_provider(truncated, timeout or self.config.timeout)
        self.cache.put(key, vector)
        return vector

    async def embed_batch(
        self,
        texts: list[str],
        timeout: float | None = None
    ) -> list[list[float]]:
        """Embed many texts, chunk by chunk, each chunk concurrently.

        Output order matches input order.
        """
        results: list[list[float]] = []
        size = max(1, self.config.batch_size)

        for start in range(0, len(texts), size):
            chunk = texts[start:start + size]
            vectors = await asyncio.gather(*(self.embed(t, timeout) for t in chunk))
            results.extend(vectors)

        return results

    async def _call_provider(self, text: str, timeout: float) -> list[float]:
        await self.initialize()

        try:
            vector = await asyncio.wait_for(self._provider_embed(text), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                f"Embedding failed: provider timed out after {timeout}s",
                {"model": self.config.embedding_model},
            ) from e
        except GenesisError:
            raise
        except Exception as e:
            raise UpstreamError(
                f"Embedding failed: {e}",
                {"model": self.config.embedding_model, "cause": type(e).__name__},
            ) from e

        if not vector:
            raise UpstreamError(
                "Embedding failed: provider returned an empty vector",
                {"model": self.config.embedding_model},
            )
        expected = self.config.embedding_dim
        if expected and len(vector) != expected:
            raise UpstreamError(
                f"Embedding failed: expected {expected} dimensions, provider returned {len(vector)}",
                {"model": self.config.embedding_model, "expected": expected, "actual": len(vector)},
            )
        return [float(x) for x in vector]

    async def _provider_embed(self, text: str) -> list[float]:
        if self._embed_callback is not None:
            return await self._embed_callback(text)

        response = await self._client.embed(
            model=self.config.embedding_model,
            input=text,
        )
        embeddings = response["embeddings"] if response else None
        return embeddings[0] if embeddings else []

    def get_provider_info(self) -> dict:
        return {
            "provider": "callback" if self._embed_callback else "ollama",
            "model": self.config.embedding_model,
            "dimension": self.config.embedding_dim,
            "host": self.config.ollama_host or "localhost:11434",
            "cache_entries": len(self.cache),
            "cache_hits": self.cache.hits,
            "rate_limit_remaining": self.limiter.remaining,
        }
