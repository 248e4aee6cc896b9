"""
Hybrid search: semantic, lexical and graph-proximity retrieval fused with
reciprocal-rank fusion, optionally diversified with MMR and reranked with a
cross-encoder.

Search is read-only and takes no locks.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np

from chronograph.core.embeddings.base import Embedder
from chronograph.core.graph_store.base import GraphStore
from chronograph.core.reranker.base import Reranker
from chronograph.models.edge import EntityEdge
from chronograph.models.search import (
    ScoredCommunity,
    ScoredEdge,
    ScoredEpisode,
    ScoredNode,
    SearchConfig,
    SearchFilters,
    SearchResults,
)
from chronograph.utils.datetime_utils import ensure_utc
from chronograph.utils.exceptions import ProviderError, ValidationError
from chronograph.utils.logger import get_logger
from chronograph.utils.retry import ProviderCaller

logger = get_logger(__name__)


@dataclass
class _Candidate:
    """One fused result, whatever its kind."""

    uuid: str
    item: Any
    text: str
    embedding: list[float]
    recency: datetime
    score: float = 0.0


def reciprocal_rank_fusion(
    channels: list[list[tuple[str, int]]], k: float = 60.0
) -> dict[str, float]:
    """
    Sum 1/(rank + k) over channels.

    Args:
        channels: Per channel, (uuid, rank) pairs with 1-based ranks
        k: Smoothing constant

    Returns:
        uuid -> fused score
    """
    scores: dict[str, float] = {}
    for channel in channels:
        for uuid, rank in channel:
            scores[uuid] = scores.get(uuid, 0.0) + 1.0 / (rank + k)
    return scores


def _positional(results: list[tuple[Any, float]]) -> list[tuple[str, int]]:
    return [(item.uuid, position) for position, (item, _) in enumerate(results, start=1)]


def _unit_rows(vectors: list[list[float]], dimension: int) -> np.ndarray:
    """Row-normalized matrix; rows with the wrong dimension or zero norm are zero."""
    matrix = np.zeros((len(vectors), dimension))
    for i, vector in enumerate(vectors):
        if len(vector) == dimension:
            matrix[i] = vector
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


def maximal_marginal_relevance(
    query_embedding: list[float],
    candidate_embeddings: list[list[float]],
    mmr_lambda: float,
) -> list[tuple[int, float]]:
    """
    Greedy MMR ordering.

    Each step picks the candidate maximizing
    lambda * sim(query, c) - (1 - lambda) * max(sim(c, selected)).

    Returns:
        (candidate index, mmr score) in selection order
    """
    if not candidate_embeddings or not query_embedding:
        return [(i, 0.0) for i in range(len(candidate_embeddings))]

    dimension = len(query_embedding)
    query = _unit_rows([query_embedding], dimension)[0]
    matrix = _unit_rows(candidate_embeddings, dimension)
    relevance = matrix @ query
    pairwise = matrix @ matrix.T

    remaining = list(range(len(candidate_embeddings)))
    selected: list[tuple[int, float]] = []
    while remaining:
        if selected:
            chosen = [index for index, _ in selected]
            redundancy = pairwise[np.ix_(remaining, chosen)].max(axis=1)
        else:
            redundancy = np.zeros(len(remaining))
        mmr = mmr_lambda * relevance[remaining] - (1 - mmr_lambda) * redundancy
        best = int(np.argmax(mmr))
        selected.append((remaining.pop(best), float(mmr[best])))
    return selected


class HybridSearchEngine:
    """Fuses retrieval channels over edges, entity nodes and communities."""

    def __init__(
        self,
        store: GraphStore,
        embedder: Embedder,
        reranker: Reranker | None = None,
        config: SearchConfig | None = None,
        caller: ProviderCaller | None = None,
    ):
        """
        Initialize search engine.

        Args:
            store: Graph store providing the retrieval primitives
            embedder: Embedder for the query
            reranker: Optional cross-encoder for the top fused candidates
            config: Default search settings
            caller: Retry/timeout policy for provider calls
        """
        self.store = store
        self.embedder = embedder
        self.reranker = reranker
        self.config = config or SearchConfig()
        self.call = caller or ProviderCaller()

    async def search(
        self,
        query: str,
        group_ids: list[str] | str,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        center_node_uuid: str | None = None,
        as_of: datetime | None = None,
        config: SearchConfig | None = None,
    ) -> SearchResults:
        """
        Ranked facts, entities and (optionally) communities and episodes for a query.

        Args:
            query: Free-text query
            group_ids: Groups to search
            filters: Narrowing applied inside every channel
            limit: Results per kind (overrides config.limit)
            center_node_uuid: Boost results near this entity
            as_of: Point-in-time view; None means currently valid facts only
            config: Per-call settings (overrides the engine default)

        Returns:
            SearchResults

        Raises:
            ValidationError: On an empty query or no group_ids
            ProviderError: If the query could not be embedded
        """
        if not query or not query.strip():
            raise ValidationError("Search query cannot be empty")
        if isinstance(group_ids, str):
            group_ids = [group_ids]
        if not group_ids or not all(group_ids):
            raise ValidationError("At least one non-empty group_id is required")

        config = config or self.config
        limit = limit or config.limit
        as_of = ensure_utc(as_of)

        query_embedding = await self.call(
            lambda: self.embedder.embed(query), "embed_query", context={"query": query[:100]}
        )

        edges, nodes, communities, episodes = await asyncio.gather(
            self._search_edges(
                query, query_embedding, group_ids, filters, center_node_uuid, as_of, config, limit
            ),
            self._search_nodes(
                query, query_embedding, group_ids, filters, center_node_uuid, config, limit
            ),
            self._search_communities(query, query_embedding, group_ids, config, limit),
            self._search_episodes(query, query_embedding, group_ids, as_of, config, limit),
        )

        logger.bind(group_ids=group_ids).debug(
            f"Search '{query[:50]}': {len(edges)} edges, {len(nodes)} nodes, "
            f"{len(communities)} communities, {len(episodes)} episodes"
        )

        return SearchResults(
            query=query,
            as_of=as_of,
            edges=[ScoredEdge(edge=c.item, score=c.score) for c in edges],
            nodes=[ScoredNode(node=c.item, score=c.score) for c in nodes],
            communities=[ScoredCommunity(community=c.item, score=c.score) for c in communities],
            episodes=[ScoredEpisode(episode=c.item, score=c.score) for c in episodes],
        )

    # ═══════════════════════════════════════════════════════════
    # CHANNELS
    # ═══════════════════════════════════════════════════════════

    async def _search_edges(
        self,
        query: str,
        query_embedding: list[float],
        group_ids: list[str],
        filters: SearchFilters | None,
        center_node_uuid: str | None,
        as_of: datetime | None,
        config: SearchConfig,
        limit: int,
    ) -> list[_Candidate]:
        if not config.include_edges:
            return []

        channels = [
            self.store.edge_similarity_search(
                query_embedding, group_ids, config.channel_limit, config.sim_min_score, filters, as_of
            ),
            self.store.edge_fulltext_search(query, group_ids, config.channel_limit, filters, as_of),
        ]
        if center_node_uuid:
            channels.append(
                self.store.edge_bfs_search(
                    [center_node_uuid], group_ids, config.bfs_max_depth, config.channel_limit, filters, as_of
                )
            )
        semantic, lexical, *proximity = await asyncio.gather(*channels)

        rankings = [_positional(semantic), _positional(lexical)]
        found: dict[str, EntityEdge] = {edge.uuid: edge for edge, _ in [*semantic, *lexical]}
        for results in proximity:
            rankings.append([(edge.uuid, hops) for edge, hops in results])
            found.update({edge.uuid: edge for edge, _ in results})

        eligible = {
            uuid: edge
            for uuid, edge in found.items()
            if (edge.is_valid_at(as_of) if as_of else edge.is_current)
        }
        candidates = [
            _Candidate(uuid, edge, edge.fact, edge.fact_embedding, edge.valid_at)
            for uuid, edge in eligible.items()
        ]
        boost = None
        if config.edge_reranker == "episode_mentions":
            boost = {uuid: float(len(edge.episodes)) for uuid, edge in eligible.items()}
        return await self._rank(query, query_embedding, candidates, rankings, config, limit, boost)

    async def _search_nodes(
        self,
        query: str,
        query_embedding: list[float],
        group_ids: list[str],
        filters: SearchFilters | None,
        center_node_uuid: str | None,
        config: SearchConfig,
        limit: int,
    ) -> list[_Candidate]:
        if not config.include_nodes:
            return []

        channels = [
            self.store.node_similarity_search(
                query_embedding, group_ids, config.channel_limit, config.sim_min_score, filters
            ),
            self.store.node_fulltext_search(query, group_ids, config.channel_limit, filters),
        ]
        if center_node_uuid:
            channels.append(
                self.store.node_bfs_search(
                    [center_node_uuid], group_ids, config.bfs_max_depth, config.channel_limit, filters
                )
            )
        semantic, lexical, *proximity = await asyncio.gather(*channels)

        rankings = [_positional(semantic), _positional(lexical)]
        found = {node.uuid: node for node, _ in [*semantic, *lexical]}
        for results in proximity:
            rankings.append([(node.uuid, hops) for node, hops in results])
            found.update({node.uuid: node for node, _ in results})

        candidates = [
            _Candidate(
                uuid,
                node,
                f"{node.name}: {node.summary}" if node.summary else node.name,
                node.name_embedding,
                node.created_at,
            )
            for uuid, node in found.items()
        ]
        return await self._rank(query, query_embedding, candidates, rankings, config, limit)

    async def _search_communities(
        self,
        query: str,
        query_embedding: list[float],
        group_ids: list[str],
        config: SearchConfig,
        limit: int,
    ) -> list[_Candidate]:
        if not config.include_communities:
            return []

        semantic, lexical = await asyncio.gather(
            self.store.community_similarity_search(
                query_embedding, group_ids, config.channel_limit, config.sim_min_score
            ),
            self.store.community_fulltext_search(query, group_ids, config.channel_limit),
        )
        found = {community.uuid: community for community, _ in [*semantic, *lexical]}
        candidates = [
            _Candidate(
                uuid,
                community,
                f"{community.name}: {community.summary}",
                community.name_embedding,
                community.created_at,
            )
            for uuid, community in found.items()
        ]
        return await self._rank(
            query, query_embedding, candidates, [_positional(semantic), _positional(lexical)], config, limit
        )

    async def _search_episodes(
        self,
        query: str,
        query_embedding: list[float],
        group_ids: list[str],
        as_of: datetime | None,
        config: SearchConfig,
        limit: int,
    ) -> list[_Candidate]:
        """Lexical match over episode content; as_of hides episodes from later on."""
        if not config.include_episodes:
            return []

        lexical = await self.store.episode_fulltext_search(
            query, group_ids, config.channel_limit, as_of
        )
        candidates = [
            _Candidate(episode.uuid, episode, episode.content or episode.name, [], episode.reference_time)
            for episode, _ in lexical
        ]
        return await self._rank(
            query, query_embedding, candidates, [_positional(lexical)], config, limit
        )

    # ═══════════════════════════════════════════════════════════
    # FUSION AND RERANKING
    # ═══════════════════════════════════════════════════════════

    async def _rank(
        self,
        query: str,
        query_embedding: list[float],
        candidates: list[_Candidate],
        rankings: list[list[tuple[str, int]]],
        config: SearchConfig,
        limit: int,
        boost: dict[str, float] | None = None,
    ) -> list[_Candidate]:
        """
        Fuse, then diversify and rerank the head.

        A boost is added to the fused score and replaces MMR and the
        cross-encoder, so its order is final.
        """
        if not candidates:
            return []

        fused = reciprocal_rank_fusion(rankings, config.rrf_k)
        for candidate in candidates:
            candidate.score = fused.get(candidate.uuid, 0.0)
        if boost is not None:
            for candidate in candidates:
                candidate.score += boost.get(candidate.uuid, 0.0)
            return self._tie_break(candidates)[:limit]
        ordered = self._tie_break(candidates)

        if config.mmr_lambda is not None:
            selection = maximal_marginal_relevance(
                query_embedding, [c.embedding for c in ordered], config.mmr_lambda
            )
            reordered = []
            for index, score in selection:
                ordered[index].score = score
                reordered.append(ordered[index])
            ordered = reordered

        if self.reranker is not None and config.use_cross_encoder:
            head, tail = ordered[: config.rerank_top_m], ordered[config.rerank_top_m :]
            ordered = await self._rerank(query, head) + tail

        return ordered[:limit]

    async def _rerank(self, query: str, candidates: list[_Candidate]) -> list[_Candidate]:
        """Rerank candidates with the cross-encoder; keeps the input order on failure."""
        by_text: dict[str, list[_Candidate]] = {}
        for candidate in candidates:
            by_text.setdefault(candidate.text, []).append(candidate)

        try:
            scored = await self.call(
                lambda: self.reranker.rerank(query, list(by_text)), "rerank"
            )
        except ProviderError as e:
            logger.warning(f"Reranking failed, keeping fused order: {e}")
            return candidates

        reranked: list[_Candidate] = []
        for text, score in scored:
            for candidate in by_text.pop(text, []):
                candidate.score = score
                reranked.append(candidate)
        unscored = [candidate for group in by_text.values() for candidate in group]
        return self._tie_break(reranked) + unscored

    @staticmethod
    def _tie_break(candidates: list[_Candidate]) -> list[_Candidate]:
        """Score descending, then most recent first, then uuid."""
        candidates = sorted(candidates, key=lambda c: c.uuid)
        candidates.sort(key=lambda c: c.recency, reverse=True)
        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates
