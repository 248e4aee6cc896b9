"""
TemporalGraph - the single entry point of ChronoGraph.

Brings together:
- Graph store (SQLite or Neo4j)
- Embedder, extractor, LLM and optional reranker
- Ingestion pipeline, hybrid search and community builder
"""

from datetime import datetime

from chronograph.config import Config
from chronograph.core.embeddings.base import Embedder
from chronograph.core.extraction.base import Extractor
from chronograph.core.extraction.llm_extractor import LLMExtractor
from chronograph.core.factory import EmbedderFactory, GraphStoreFactory, LLMFactory, RerankerFactory
from chronograph.core.graph_store.base import GraphStore
from chronograph.core.llm.base import LLMProvider
from chronograph.core.reranker.base import Reranker
from chronograph.models.edge import EdgeKind, EntityEdge
from chronograph.models.filters import StoreFilter
from chronograph.models.ingestion import AddEpisodeResult, RawEpisode
from chronograph.models.node import CommunityNode, EpisodeType, EpisodicNode, NodeKind
from chronograph.models.search import SearchConfig, SearchFilters, SearchResults
from chronograph.services.communities import CommunityBuilder
from chronograph.services.ingestion import IngestionPipeline
from chronograph.services.search import HybridSearchEngine
from chronograph.utils.exceptions import ValidationError
from chronograph.utils.logger import get_logger, setup_logging
from chronograph.utils.retry import ProviderCaller

logger = get_logger(__name__)


class TemporalGraph:
    """
    Temporal knowledge-graph memory.

    Features:
    - Episode ingestion with entity resolution and fact invalidation
    - Point-in-time (as_of) hybrid search
    - Episode and group deletion with provenance cleanup
    - Community detection on demand
    """

    def __init__(
        self,
        store: GraphStore,
        embedder: Embedder,
        extractor: Extractor,
        llm: LLMProvider | None = None,
        reranker: Reranker | None = None,
        config: Config | None = None,
    ):
        """
        Initialize TemporalGraph.

        Args:
            store: Graph store backend
            embedder: Embedder for names, facts and queries
            extractor: Extraction provider
            llm: LLM for community summaries (optional)
            reranker: Cross-encoder for search (optional)
            config: Configuration object
        """
        self.store = store
        self.embedder = embedder
        self.extractor = extractor
        self.llm = llm
        self.reranker = reranker
        self.config = config or Config()

        caller = ProviderCaller.from_policy(
            self.config.retry, timeout=self.config.ingestion.provider_timeout
        )

        self.ingestion = IngestionPipeline(
            store=store,
            embedder=embedder,
            extractor=extractor,
            config=self.config.ingestion,
            dedup_config=self.config.dedup,
            caller=caller,
        )
        self.search_engine = HybridSearchEngine(
            store=store,
            embedder=embedder,
            reranker=reranker,
            config=self.config.search,
            caller=caller,
        )
        self.communities = CommunityBuilder(
            store=store,
            embedder=embedder,
            llm=llm,
            caller=caller,
        )

    @classmethod
    def from_config(cls, config: Config | None = None) -> "TemporalGraph":
        """
        Build every component from configuration.

        Args:
            config: Configuration (defaults to Config.from_env_or_yaml())
        """
        config = config or Config.from_env_or_yaml()
        setup_logging(**config.logging.model_dump())

        llm = LLMFactory.create(config.llm)
        extractor = LLMExtractor(
            llm, max_tokens=config.llm.max_tokens, temperature=config.llm.temperature
        )
        return cls(
            store=GraphStoreFactory.create(config),
            embedder=EmbedderFactory.create(config.embedder),
            extractor=extractor,
            llm=llm,
            reranker=RerankerFactory.create(config.reranker, config.llm),
            config=config,
        )

    async def initialize(self) -> None:
        """Connect the store and create indices."""
        logger.info("Initializing TemporalGraph")
        await self.store.initialize()
        logger.info("TemporalGraph ready")

    # ═══════════════════════════════════════════════════════════
    # INGESTION
    # ═══════════════════════════════════════════════════════════

    async def add_episode(
        self,
        name: str,
        body: str,
        group_id: str,
        source: EpisodeType | str = EpisodeType.TEXT,
        reference_time: datetime | None = None,
        source_description: str = "",
    ) -> AddEpisodeResult:
        """
        Ingest one episode atomically.

        Raises:
            ValidationError: On malformed input
            IngestionError: If a provider failed; nothing was written
            ConflictError: On persistent lock contention
            GraphStoreError: If the commit failed
        """
        return await self.ingestion.add_episode(
            name=name,
            body=body,
            group_id=group_id,
            source=source,
            reference_time=reference_time,
            source_description=source_description,
        )

    async def add_episodes_bulk(
        self, episodes: list[RawEpisode], group_id: str
    ) -> list[AddEpisodeResult]:
        """
        Ingest several episodes in reference_time order.

        Each episode is its own transaction, so a failure leaves the episodes
        before it committed and the rest unprocessed. Episodes without a
        reference_time keep their position after the dated ones.

        Args:
            episodes: Episodes to ingest
            group_id: Group for all of them

        Returns:
            One AddEpisodeResult per episode, in ingestion order
        """
        ordered = sorted(
            episodes, key=lambda e: (e.reference_time is None, e.reference_time or 0)
        )
        results = []
        for episode in ordered:
            results.append(
                await self.add_episode(
                    name=episode.name,
                    body=episode.body,
                    group_id=group_id,
                    source=episode.source,
                    reference_time=episode.reference_time,
                    source_description=episode.source_description,
                )
            )
        logger.bind(group_id=group_id).info(f"Bulk ingested {len(results)} episodes")
        return results

    # ═══════════════════════════════════════════════════════════
    # RETRIEVAL
    # ═══════════════════════════════════════════════════════════

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
        """Hybrid search; see HybridSearchEngine.search."""
        return await self.search_engine.search(
            query,
            group_ids,
            filters=filters,
            limit=limit,
            center_node_uuid=center_node_uuid,
            as_of=as_of,
            config=config,
        )

    async def retrieve_episodes(
        self,
        group_ids: list[str] | str,
        last_n: int = 3,
        reference_time: datetime | None = None,
    ) -> list[EpisodicNode]:
        """
        Most recent episodes up to reference_time, in chronological order.

        Args:
            group_ids: Groups to read
            last_n: Number of episodes
            reference_time: Upper bound on reference_time (defaults to no bound)
        """
        if isinstance(group_ids, str):
            group_ids = [group_ids]
        if last_n < 1:
            raise ValidationError("last_n must be at least 1")

        episodes = await self.store.get_episodes(
            StoreFilter(group_ids=group_ids, time_end=reference_time, limit=last_n, newest_first=True)
        )
        return list(reversed(episodes))

    async def get_entity_edges(
        self,
        group_ids: list[str] | str,
        node_uuid: str | None = None,
        current_only: bool = False,
        as_of: datetime | None = None,
        limit: int | None = None,
    ) -> list[EntityEdge]:
        """
        Facts of a group, optionally around one entity or at a point in time.

        Args:
            group_ids: Groups to read
            node_uuid: Only facts incident to this entity
            current_only: Only facts with invalid_at null
            as_of: Only facts valid at this moment
            limit: Max facts, newest valid_at first
        """
        if isinstance(group_ids, str):
            group_ids = [group_ids]

        edges = await self.store.get_entity_edges(
            StoreFilter(
                group_ids=group_ids,
                node_uuid=node_uuid,
                current_only=current_only,
                time_end=as_of,
                limit=None if as_of else limit,
            )
        )
        if as_of is not None:
            edges = [edge for edge in edges if edge.is_valid_at(as_of)][:limit]
        return edges

    # ═══════════════════════════════════════════════════════════
    # DELETION
    # ═══════════════════════════════════════════════════════════

    async def delete_episode(self, episode_uuid: str) -> None:
        """
        Remove an episode and what only it attests.

        Deletes the EpisodicNode and its provenance edges, strips the uuid
        from every fact's episodes, and deletes facts no other episode attests.
        Entities are kept.

        Raises:
            NotFoundError: If the episode does not exist
        """
        episode = await self.store.get_node(NodeKind.EPISODIC, episode_uuid)
        group_id = episode.group_id

        async with self.store.group_lock(group_id, timeout=self.config.ingestion.lock_timeout):
            attested = await self.store.get_entity_edges(
                StoreFilter(group_ids=[group_id], episode_uuid=episode_uuid)
            )
            kept: list[EntityEdge] = []
            orphaned: list[str] = []
            for edge in attested:
                edge.episodes = [uuid for uuid in edge.episodes if uuid != episode_uuid]
                if edge.episodes:
                    kept.append(edge)
                else:
                    orphaned.append(edge.uuid)

            async with self.store.transaction() as tx:
                await tx.save_edges(kept)
                if orphaned:
                    await tx.delete_edges(
                        EdgeKind.ENTITY, StoreFilter(uuids=orphaned, group_ids=[group_id])
                    )
                await tx.delete_nodes(
                    NodeKind.EPISODIC, StoreFilter(uuids=[episode_uuid], group_ids=[group_id])
                )

        logger.bind(episode_uuid=episode_uuid, group_id=group_id).info(
            f"Episode deleted: {len(kept)} facts kept, {len(orphaned)} facts removed"
        )

    async def delete_group(self, group_id: str) -> None:
        """Remove every node and edge of one group."""
        if not group_id:
            raise ValidationError("group_id cannot be empty")
        async with self.store.group_lock(group_id, timeout=self.config.ingestion.lock_timeout):
            await self.store.delete_group(group_id)
        logger.bind(group_id=group_id).info("Group deleted")

    async def clear_data(self) -> None:
        """Remove everything from the store."""
        await self.store.clear_data()
        logger.warning("All graph data cleared")

    # ═══════════════════════════════════════════════════════════
    # COMMUNITIES
    # ═══════════════════════════════════════════════════════════

    async def build_communities(self, group_ids: list[str] | str) -> list[CommunityNode]:
        """Rebuild the communities of each group."""
        if isinstance(group_ids, str):
            group_ids = [group_ids]

        communities: list[CommunityNode] = []
        for group_id in group_ids:
            async with self.store.group_lock(group_id, timeout=self.config.ingestion.lock_timeout):
                communities.extend(await self.communities.build(group_id))
        return communities

    async def close(self) -> None:
        """Close all providers and the store."""
        logger.info("Shutting down TemporalGraph")

        await self.extractor.close()
        # LLMExtractor closes the LLM it wraps
        if self.llm is not None and getattr(self.extractor, "llm", None) is not self.llm:
            await self.llm.close()
        await self.embedder.close()
        if self.reranker is not None:
            await self.reranker.close()
        await self.store.close()

        logger.info("TemporalGraph shutdown complete")
