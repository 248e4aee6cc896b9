"""
Abstract base class for cross-encoder rerankers.
"""

from abc import ABC, abstractmethod


class Reranker(ABC):
    """
    Scores (query, passage) pairs jointly, which is more precise than comparing
    independently computed embeddings. Used on the top fused search candidates.
    """

    @abstractmethod
    async def rerank(self, query: str, candidates: list[str]) -> list[tuple[str, float]]:
        """
        Score candidates against a query.

        Args:
            query: Search query
            candidates: Passages to score

        Returns:
            (candidate, score) pairs sorted by score descending, scores in [0, 1]
        """
        pass

    async def close(self):
        """Close any open connections."""
        pass
