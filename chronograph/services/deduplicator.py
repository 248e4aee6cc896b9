"""
Entity and fact deduplication.

Entity resolution pipeline:
1. Exact normalized-name match within the group resolves immediately
2. Embed the mention and take the top-K most similar entities
3. Candidates at or above the similarity threshold go to the extractor's
   identity check; if that is unavailable, the most similar candidate wins
   (earliest created_at on ties)
4. Mentions still new after 1-3 are matched the same way against new nodes
   created earlier in the same extraction

Fact resolution merges a candidate fact into a current edge between the same
pair of entities when the text matches exactly or the extractor calls it a
duplicate.
"""

import asyncio

from chronograph.config import DedupConfig
from chronograph.core.embeddings.base import Embedder
from chronograph.core.extraction.base import Extractor
from chronograph.core.graph_store.base import GraphStore
from chronograph.models.edge import EntityEdge
from chronograph.models.extraction import ExtractedEntity
from chronograph.models.filters import StoreFilter
from chronograph.models.node import EntityNode
from chronograph.utils.exceptions import ProviderError
from chronograph.utils.logger import get_logger
from chronograph.utils.retry import ProviderCaller
from chronograph.utils.similarity import cosine_similarity_matrix
from chronograph.utils.text import normalize_fact

logger = get_logger(__name__)


class Deduplicator:
    """
    Resolves extracted mentions against existing graph entities and facts.

    Never creates a second EntityNode for a name already present in the
    group: the exact-name path runs before any provider call.
    """

    def __init__(
        self,
        store: GraphStore,
        embedder: Embedder,
        extractor: Extractor,
        config: DedupConfig | None = None,
        caller: ProviderCaller | None = None,
    ):
        """
        Initialize deduplicator.

        Args:
            store: Graph store to resolve against
            embedder: Embedder for entity names
            extractor: Provider of identity and duplicate-fact checks
            config: Thresholds and top-K
            caller: Retry/timeout policy for provider calls
        """
        self.store = store
        self.embedder = embedder
        self.extractor = extractor
        self.config = config or DedupConfig()
        self.call = caller or ProviderCaller()

    # ═══════════════════════════════════════════════════════════
    # ENTITIES
    # ═══════════════════════════════════════════════════════════

    async def resolve(
        self, candidate: ExtractedEntity, group_id: str
    ) -> tuple[EntityNode, bool]:
        """
        Resolve one entity mention.

        Args:
            candidate: Extracted mention
            group_id: Group to resolve within

        Returns:
            (node, is_new). Existing nodes come back with summary and labels
            merged from the mention; new nodes carry their name embedding.
        """
        exact = await self.store.get_entity_nodes(
            StoreFilter(group_ids=[group_id], names=[candidate.name], newest_first=False)
        )
        if exact:
            node = exact[0]
            await self._merge(node, candidate)
            logger.debug(f"Resolved '{candidate.name}' by exact name to {node.uuid}")
            return node, False

        embedding = await self.call(
            lambda: self.embedder.embed(candidate.name),
            "embed_entity_name",
            context={"entity_name": candidate.name},
        )

        similar = await self.store.node_similarity_search(
            embedding,
            [group_id],
            limit=self.config.top_k,
            min_score=self.config.similarity_threshold,
        )

        match = await self._pick_match(candidate, similar) if similar else None
        if match is not None:
            await self._merge(match, candidate)
            logger.debug(f"Resolved '{candidate.name}' by similarity to '{match.name}'")
            return match, False

        node = EntityNode(
            name=candidate.name,
            group_id=group_id,
            labels=candidate.labels or ["Entity"],
            summary=candidate.summary,
            name_embedding=embedding,
        )
        return node, True

    async def resolve_many(
        self, candidates: list[ExtractedEntity], group_id: str
    ) -> list[tuple[EntityNode, bool]]:
        """
        Resolve the mentions of one extraction.

        Each mention is resolved against the store, then every mention that
        came back new is resolved against the new nodes before it, so
        near-duplicates within one episode ("Acme Corp", "Acme Corp.") share
        a node.

        Returns:
            (node, is_new) per candidate, in candidate order
        """
        resolved = list(
            await asyncio.gather(*(self.resolve(candidate, group_id) for candidate in candidates))
        )

        created: list[EntityNode] = []
        for index, (candidate, (node, is_new)) in enumerate(zip(candidates, resolved, strict=True)):
            if not is_new:
                continue
            match = await self._match_created(candidate, node, created)
            if match is None:
                created.append(node)
                continue
            await self._merge(match, candidate)
            resolved[index] = (match, True)
            logger.debug(f"Resolved '{candidate.name}' to '{match.name}' from the same episode")
        return resolved

    async def _match_created(
        self, candidate: ExtractedEntity, node: EntityNode, created: list[EntityNode]
    ) -> EntityNode | None:
        if not created:
            return None
        scores = cosine_similarity_matrix(
            node.name_embedding, [other.name_embedding for other in created]
        )
        similar = sorted(
            (
                (other, float(score))
                for other, score in zip(created, scores, strict=True)
                if score >= self.config.similarity_threshold
            ),
            key=lambda pair: -pair[1],
        )
        if not similar:
            return None
        return await self._pick_match(candidate, similar)

    async def _pick_match(
        self, candidate: ExtractedEntity, similar: list[tuple[EntityNode, float]]
    ) -> EntityNode | None:
        if self.config.use_identity_check:
            nodes = [node for node, _ in similar]
            try:
                duplicate_uuid = await self.call(
                    lambda: self.extractor.same_entity(candidate, nodes),
                    "same_entity",
                    context={"entity_name": candidate.name},
                )
            except (NotImplementedError, ProviderError) as e:
                logger.bind(entity_name=candidate.name).warning(
                    f"Identity check unavailable, using similarity fallback: {e!r}"
                )
            else:
                return next((node for node in nodes if node.uuid == duplicate_uuid), None)

        best_node, _ = min(similar, key=lambda pair: (-pair[1], pair[0].created_at))
        return best_node

    async def _merge(self, node: EntityNode, candidate: ExtractedEntity) -> None:
        if candidate.summary and candidate.summary != node.summary:
            node.summary = candidate.summary
        for label in candidate.labels:
            if label not in node.labels:
                node.labels.append(label)
        if not node.name_embedding:
            node.name_embedding = await self.call(
                lambda: self.embedder.embed(node.name),
                "embed_entity_name",
                context={"entity_uuid": node.uuid},
            )

    # ═══════════════════════════════════════════════════════════
    # FACTS
    # ═══════════════════════════════════════════════════════════

    async def resolve_edge(
        self, candidate: EntityEdge, pending: list[EntityEdge] | None = None
    ) -> tuple[EntityEdge, bool]:
        """
        Resolve one fact against current edges between the same entities.

        Args:
            candidate: New edge (endpoints already resolved)
            pending: Edges created or modified earlier in the same ingestion and
                not yet stored; they take precedence over stored copies

        Returns:
            (edge, is_new). When merged, the existing edge is returned with
            the candidate's episodes appended.
        """
        pair = {candidate.source_node_uuid, candidate.target_node_uuid}
        stored = await self.store.get_entity_edges(
            StoreFilter(
                group_ids=[candidate.group_id],
                node_pair=(candidate.source_node_uuid, candidate.target_node_uuid),
                current_only=True,
            )
        )
        in_flight = {edge.uuid: edge for edge in pending or []}
        merged = [in_flight.pop(edge.uuid, edge) for edge in stored] + list(in_flight.values())
        existing = [
            edge
            for edge in merged
            if edge.is_current and {edge.source_node_uuid, edge.target_node_uuid} == pair
        ]

        key = normalize_fact(candidate.fact)
        duplicate = next((edge for edge in existing if normalize_fact(edge.fact) == key), None)

        if duplicate is None and existing and self.config.use_identity_check:
            try:
                duplicate_uuid = await self.call(
                    lambda: self.extractor.duplicate_fact(candidate.fact, existing),
                    "duplicate_fact",
                    context={"edge_uuid": candidate.uuid},
                )
            except (NotImplementedError, ProviderError) as e:
                logger.bind(edge_uuid=candidate.uuid).warning(
                    f"Duplicate-fact check unavailable, keeping fact as new: {e!r}"
                )
            else:
                duplicate = next((edge for edge in existing if edge.uuid == duplicate_uuid), None)

        if duplicate is None:
            return candidate, True

        for episode_uuid in candidate.episodes:
            duplicate.add_episode(episode_uuid)
        return duplicate, False
