"""Tests for the embedding service: cache, rate limiter, batching, failures."""

import asyncio

import pytest

from src.genesis.errors import RateLimitError, UpstreamError, ValidationError
from src.genesis.memory.operators import EmbeddingCache, EmbeddingConfig, EmbeddingService, RateLimiter

from conftest import bag_of_words


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestEmbeddingCache:
    def test_key_depends_on_model_and_text(self):
        assert EmbeddingCache.make_key("m1", "hello") == EmbeddingCache.make_key("m1", "hello")
        assert EmbeddingCache.make_key("m1", "hello") != EmbeddingCache.make_key("m2", "hello")
        assert EmbeddingCache.make_key("m1", "hello") != EmbeddingCache.make_key("m1", "hello!")

    def test_evicts_oldest_insertion(self):
        cache = EmbeddingCache(max_size=2)
        cache.put("a", [1.0])
        cache.put("b", [2.0])
        cache.get("a")  # reads do not refresh position
        cache.put("c", [3.0])

        assert "a" not in cache
        assert "b" in cache and "c" in cache
        assert len(cache) == 2

    def test_hit_miss_counters(self):
        cache = EmbeddingCache()
        assert cache.get("missing") is None
        cache.put("k", [0.5])
        assert cache.get("k") == [0.5]
        assert cache.hits == 1
        assert cache.misses == 1


class TestRateLimiter:
    def test_budget_exhausted_raises_with_wait(self):
        clock = FakeClock()
        limiter = RateLimiter(2, 60.0, clock)
        limiter.acquire()
        clock.now += 10
        limiter.acquire()

        with pytest.raises(RateLimitError) as exc:
            limiter.acquire()
        assert exc.value.retry_after_ms == 50_000
        assert exc.value.details["retry_after_ms"] == 50_000
        assert exc.value.code == "rate_limited"

    def test_window_slides(self):
        clock = FakeClock()
        limiter = RateLimiter(1, 60.0, clock)
        limiter.acquire()
        assert limiter.remaining == 0

        clock.now += 60
        assert limiter.remaining == 1
        limiter.acquire()


class TestEmbeddingService:
    @pytest.mark.asyncio
    async def test_embed_uses_cache(self, embedder):
        service = EmbeddingService(EmbeddingConfig(), embed_callback=embedder)

        first = await service.embed("async communication")
        second = await service.embed("async communication")

        assert first == second == bag_of_words("async communication")
        assert embedder.calls == ["async communication"]
        assert service.cache.hits == 1

    @pytest.mark.asyncio
    async def test_cached_texts_do_not_count_against_budget(self, embedder):
        service = EmbeddingService(
            EmbeddingConfig(requests_per_minute=1), embed_callback=embedder, clock=FakeClock()
        )
        await service.embed("one")
        await service.embed("one")

        with pytest.raises(RateLimitError):
            await service.embed("two")
        assert embedder.calls == ["one"]

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, embedder):
        service = EmbeddingService(embed_callback=embedder)
        with pytest.raises(ValidationError):
            await service.embed("   ")
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_upstream_error(self, embedder):
        embedder.error = ConnectionError("connection refused")
        service = EmbeddingService(embed_callback=embedder)

        with pytest.raises(UpstreamError) as exc:
            await service.embed("hello")
        assert "Embedding failed" in exc.value.message
        assert isinstance(exc.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_failures_not_retried_or_cached(self, embedder):
        embedder.error = RuntimeError("boom")
        service = EmbeddingService(embed_callback=embedder)
        with pytest.raises(UpstreamError):
            await service.embed("hello")
        assert len(embedder.calls) == 1

        embedder.error = None
        assert await service.embed("hello") == bag_of_words("hello")
        assert len(embedder.calls) == 2

    @pytest.mark.asyncio
    async def test_wrong_dimension_is_upstream_error(self, embedder):
        service = EmbeddingService(EmbeddingConfig(embedding_dim=embedder.dim + 1), embed_callback=embedder)

        with pytest.raises(UpstreamError) as exc:
            await service.embed("hello")
        assert exc.value.details["actual"] == embedder.dim
        assert len(service.cache) == 0

        matching = EmbeddingService(EmbeddingConfig(embedding_dim=embedder.dim), embed_callback=embedder)
        assert len(await matching.embed("hello")) == embedder.dim

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(text):
            await asyncio.sleep(1)
            return [1.0]

        service = EmbeddingService(embed_callback=slow)
        with pytest.raises(UpstreamError) as exc:
            await service.embed("hello", timeout=0.01)
        assert "timed out" in exc.value.message

    @pytest.mark.asyncio
    async def test_empty_vector_is_upstream_error(self):
        async def empty(text):
            return []

        service = EmbeddingService(embed_callback=empty)
        with pytest.raises(UpstreamError):
            await service.embed("hello")

    @pytest.mark.asyncio
    async def test_batch_preserves_order(self, embedder):
        service = EmbeddingService(EmbeddingConfig(batch_size=3), embed_callback=embedder)
        texts = [f"text number {i}" for i in range(7)]

        vectors = await service.embed_batch(texts)

        assert vectors == [bag_of_words(t) for t in texts]
        assert sorted(embedder.calls) == sorted(texts)

    @pytest.mark.asyncio
    async def test_batch_runs_chunk_by_chunk(self):
        """No more than batch_size requests are in flight at once."""
        in_flight = 0
        peak = 0

        async def tracked(text):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return bag_of_words(text)

        service = EmbeddingService(EmbeddingConfig(batch_size=2), embed_callback=tracked)
        await service.embed_batch(["a", "b", "c", "d", "e"])
        assert peak == 2

    @pytest.mark.asyncio
    async def test_truncates_long_text(self, embedder):
        service = EmbeddingService(EmbeddingConfig(max_content_length=5), embed_callback=embedder)
        await service.embed("abcdefghij")
        assert embedder.calls == ["abcde"]
