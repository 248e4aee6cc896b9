"""
Tests for embeddings base class and the content-hash cache.
"""

import pytest

from chronograph.core.embeddings.base import Embedder
from chronograph.core.embeddings.cached import CachedEmbedder


class MockEmbedder(Embedder):
    """Mock embedder that records every text it embeds."""

    def __init__(self):
        self.embedded: list[str] = []
        self.batch_calls = 0
        self.closed = False

    async def embed(self, text: str, **kwargs):
        self.embedded.append(text)
        return [float(len(text)), 0.2, 0.3, 0.4, 0.5]

    async def batch_embed(self, texts, batch_size=32, **kwargs):
        self.batch_calls += 1
        return await super().batch_embed(texts, batch_size=batch_size, **kwargs)

    async def close(self):
        self.closed = True


@pytest.mark.unit
@pytest.mark.asyncio
class TestEmbedderBase:
    """Test base Embedder functionality."""

    async def test_abstract_instantiation(self):
        """Test that abstract class cannot be instantiated."""
        with pytest.raises(TypeError, match="Can't instantiate abstract class"):
            Embedder()

    async def test_batch_embed_default_keeps_order(self):
        embedder = MockEmbedder()

        results = await embedder.batch_embed(["a", "bbb", "cc"])

        assert [vector[0] for vector in results] == [1.0, 3.0, 2.0]

    async def test_get_dimension_default(self):
        embedder = MockEmbedder()
        assert await embedder.get_dimension() == 5


@pytest.mark.unit
@pytest.mark.asyncio
class TestCachedEmbedder:
    """Test the LRU embedding cache."""

    async def test_repeated_text_hits_cache(self):
        inner = MockEmbedder()
        embedder = CachedEmbedder(inner)

        first = await embedder.embed("Alice")
        second = await embedder.embed("Alice")

        assert first == second
        assert inner.embedded == ["Alice"]
        assert embedder.hits == 1
        assert embedder.misses == 1

    async def test_cached_vector_is_a_copy(self):
        embedder = CachedEmbedder(MockEmbedder())

        vector = await embedder.embed("Alice")
        vector.append(99.0)

        assert len(await embedder.embed("Alice")) == 5

    async def test_batch_embeds_only_missing(self):
        inner = MockEmbedder()
        embedder = CachedEmbedder(inner)
        await embedder.embed("Alice")

        results = await embedder.batch_embed(["Alice", "Bob", "Carol"])

        assert len(results) == 3
        assert inner.embedded == ["Alice", "Bob", "Carol"]
        assert inner.batch_calls == 1
        assert embedder.hits == 1
        assert embedder.misses == 3

    async def test_fully_cached_batch_skips_inner(self):
        inner = MockEmbedder()
        embedder = CachedEmbedder(inner)
        await embedder.batch_embed(["a", "b"])

        await embedder.batch_embed(["b", "a"])

        assert inner.batch_calls == 1

    async def test_lru_eviction(self):
        inner = MockEmbedder()
        embedder = CachedEmbedder(inner, max_size=2)

        await embedder.embed("a")
        await embedder.embed("b")
        await embedder.embed("a")
        await embedder.embed("c")
        await embedder.embed("a")
        await embedder.embed("b")

        # "b" was least recently used when "c" arrived
        assert inner.embedded == ["a", "b", "c", "b"]

    async def test_options_are_part_of_key(self):
        inner = MockEmbedder()
        embedder = CachedEmbedder(inner)

        await embedder.embed("Alice", model="small")
        await embedder.embed("Alice", model="large")
        await embedder.embed("Alice", model="small")
        await embedder.batch_embed(["Alice"], model="large")
        await embedder.embed("Alice")

        assert inner.embedded == ["Alice", "Alice", "Alice"]
        assert embedder.hits == 2
        assert embedder.misses == 3

    async def test_clear_and_close(self):
        inner = MockEmbedder()
        embedder = CachedEmbedder(inner)
        await embedder.embed("a")

        embedder.clear()
        await embedder.embed("a")
        await embedder.close()

        assert inner.embedded == ["a", "a"]
        assert inner.closed is True
