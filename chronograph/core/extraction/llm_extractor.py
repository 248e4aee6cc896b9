"""
Prompt-driven extractor on top of an LLMProvider.
"""

import asyncio

from chronograph.core.extraction import prompts
from chronograph.core.extraction.base import Extractor
from chronograph.core.llm.base import LLMProvider
from chronograph.models.edge import EntityEdge
from chronograph.models.extraction import (
    ContradictionResponse,
    DuplicateFactResponse,
    EdgeDatesResponse,
    EntityResolutionResponse,
    ExtractedEdgeDates,
    ExtractedEntitiesResponse,
    ExtractedEntity,
    ExtractedRelation,
    ExtractedRelationsResponse,
    ExtractionResult,
)
from chronograph.models.node import EntityNode, EpisodicNode
from chronograph.utils.logger import get_logger
from chronograph.utils.text import normalize_name

logger = get_logger(__name__)


class LLMExtractor(Extractor):
    """
    Extractor backed by structured LLM outputs.

    Extraction runs in three steps: entities, relations between those
    entities, then validity dates per relation (concurrently).
    """

    def __init__(self, llm: LLMProvider, max_tokens: int = 2000, temperature: float = 0.0):
        """
        Initialize LLM extractor.

        Args:
            llm: LLM provider used for every prompt
            max_tokens: Token budget per completion
            temperature: Sampling temperature
        """
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def _ask(self, prompt_pair: tuple[str, str], response_format):
        system_prompt, prompt = prompt_pair
        return await self.llm.complete(
            prompt,
            response_format=response_format,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system_prompt=system_prompt,
        )

    async def extract(
        self, episode: EpisodicNode, previous_episodes: list[EpisodicNode]
    ) -> ExtractionResult:
        entities_response: ExtractedEntitiesResponse = await self._ask(
            prompts.extract_entities_prompt(episode, previous_episodes),
            ExtractedEntitiesResponse,
        )
        entities = self._unique_entities(entities_response.entities)
        if not entities:
            return ExtractionResult()

        relations: list[ExtractedRelation] = []
        if len(entities) > 1:
            relations_response: ExtractedRelationsResponse = await self._ask(
                prompts.extract_relations_prompt(episode, previous_episodes, entities),
                ExtractedRelationsResponse,
            )
            relations = self._valid_relations(relations_response.relations, entities)

        date_responses: list[EdgeDatesResponse] = await asyncio.gather(
            *(
                self._ask(prompts.extract_edge_dates_prompt(episode, relation), EdgeDatesResponse)
                for relation in relations
            )
        )
        dates = [
            ExtractedEdgeDates(
                relation_index=i, valid_at=response.valid_at, invalid_at=response.invalid_at
            )
            for i, response in enumerate(date_responses)
        ]

        logger.bind(episode_uuid=episode.uuid).debug(
            f"Extracted {len(entities)} entities and {len(relations)} relations"
        )
        return ExtractionResult(entities=entities, relations=relations, dates=dates)

    @staticmethod
    def _unique_entities(entities: list[ExtractedEntity]) -> list[ExtractedEntity]:
        seen: set[str] = set()
        unique = []
        for entity in entities:
            key = normalize_name(entity.name)
            if key and key not in seen:
                seen.add(key)
                unique.append(entity)
        return unique

    @staticmethod
    def _valid_relations(
        relations: list[ExtractedRelation], entities: list[ExtractedEntity]
    ) -> list[ExtractedRelation]:
        known = {normalize_name(entity.name) for entity in entities}
        valid = []
        for relation in relations:
            source, target = normalize_name(relation.source_name), normalize_name(relation.target_name)
            if source in known and target in known and source != target and relation.fact.strip():
                valid.append(relation)
            else:
                logger.debug(f"Dropping relation with unknown or identical endpoints: {relation.name}")
        return valid

    async def contradicts(self, existing_fact: str, new_fact: str) -> bool:
        response: ContradictionResponse = await self._ask(
            prompts.contradiction_prompt(existing_fact, new_fact), ContradictionResponse
        )
        return response.contradicts

    async def same_entity(
        self, candidate: ExtractedEntity, existing: list[EntityNode]
    ) -> str | None:
        if not existing:
            return None
        response: EntityResolutionResponse = await self._ask(
            prompts.entity_resolution_prompt(candidate, existing), EntityResolutionResponse
        )
        # Ignore hallucinated uuids
        if response.duplicate_uuid in {node.uuid for node in existing}:
            return response.duplicate_uuid
        return None

    async def duplicate_fact(self, fact: str, existing: list[EntityEdge]) -> str | None:
        if not existing:
            return None
        response: DuplicateFactResponse = await self._ask(
            prompts.duplicate_fact_prompt(fact, existing), DuplicateFactResponse
        )
        if response.duplicate_uuid in {edge.uuid for edge in existing}:
            return response.duplicate_uuid
        return None

    async def close(self):
        await self.llm.close()
