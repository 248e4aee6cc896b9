"""
Content-hash embedding cache.

Wraps any Embedder with an in-process LRU keyed by sha256 of the text, so
re-ingesting an entity name or fact does not hit the provider again.
Provider options passed as keyword arguments are part of the key.
"""

import hashlib
import json
from collections import OrderedDict

from chronograph.core.embeddings.base import Embedder


class CachedEmbedder(Embedder):
    """LRU cache in front of another embedder."""

    def __init__(self, inner: Embedder, max_size: int = 10_000):
        self.inner = inner
        self.max_size = max_size
        self._cache: OrderedDict[str, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str, options: dict) -> str:
        digest = hashlib.sha256(text.encode("utf-8"))
        if options:
            digest.update(b"\0")
            digest.update(json.dumps(options, sort_keys=True, default=str).encode("utf-8"))
        return digest.hexdigest()

    def _get(self, key: str) -> list[float] | None:
        vector = self._cache.get(key)
        if vector is not None:
            self._cache.move_to_end(key)
        return vector

    def _put(self, key: str, vector: list[float]) -> None:
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_size:
            self._cache.popitem(last=False)

    async def embed(self, text: str, **kwargs) -> list[float]:
        key = self._key(text, kwargs)
        cached = self._get(key)
        if cached is not None:
            self.hits += 1
            return list(cached)

        self.misses += 1
        vector = await self.inner.embed(text, **kwargs)
        self._put(key, list(vector))
        return vector

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """Embed only the texts that are not cached, in one inner batch call."""
        keys = [self._key(text, kwargs) for text in texts]
        results: list[list[float] | None] = [self._get(key) for key in keys]

        missing = [i for i, vector in enumerate(results) if vector is None]
        self.hits += len(texts) - len(missing)
        self.misses += len(missing)

        if missing:
            fresh = await self.inner.batch_embed(
                [texts[i] for i in missing], batch_size=batch_size, **kwargs
            )
            for i, vector in zip(missing, fresh, strict=True):
                self._put(keys[i], list(vector))
                results[i] = vector

        return [list(vector) for vector in results]

    async def get_dimension(self) -> int:
        return await self.inner.get_dimension()

    def clear(self) -> None:
        self._cache.clear()

    async def close(self):
        await self.inner.close()
