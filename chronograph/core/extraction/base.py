"""
Abstract base class for extraction providers.

An Extractor turns episode text into structured entities, relations and
dates, and answers the pairwise questions the pipeline needs: do two facts
contradict, is a mention a known entity, is a fact already known.
"""

from abc import ABC, abstractmethod

from chronograph.models.edge import EntityEdge
from chronograph.models.extraction import ExtractedEntity, ExtractionResult
from chronograph.models.node import EntityNode, EpisodicNode


class Extractor(ABC):
    """Abstract base for extraction providers."""

    @abstractmethod
    async def extract(
        self, episode: EpisodicNode, previous_episodes: list[EpisodicNode]
    ) -> ExtractionResult:
        """
        Extract entities, relations and validity dates from an episode.

        Args:
            episode: Episode to extract from
            previous_episodes: Recent prior episodes of the same group, oldest first

        Returns:
            ExtractionResult with relations referencing entities by name

        Raises:
            TransientProviderError: On retryable failures
            ProviderError: On terminal failures
        """
        pass

    @abstractmethod
    async def contradicts(self, existing_fact: str, new_fact: str) -> bool:
        """
        Decide whether two facts cannot both be true at the same time.

        Args:
            existing_fact: Fact already in the graph
            new_fact: Newly extracted fact
        """
        pass

    async def same_entity(
        self, candidate: ExtractedEntity, existing: list[EntityNode]
    ) -> str | None:
        """
        Identity check for entity deduplication.

        Returns:
            uuid of the existing node that is the same entity, or None

        Raises:
            NotImplementedError: If the provider has no identity check
        """
        raise NotImplementedError

    async def duplicate_fact(self, fact: str, existing: list[EntityEdge]) -> str | None:
        """
        Duplicate check for fact deduplication.

        Returns:
            uuid of the existing edge stating the same fact, or None

        Raises:
            NotImplementedError: If the provider has no duplicate check
        """
        raise NotImplementedError

    async def close(self):
        """Close any open connections."""
        pass
