"""
Episode ingestion pipeline.

extract -> resolve entities -> resolve facts -> invalidate -> persist.

Extraction and resolution run outside the per-group lock. The commit takes
the lock and checks that the group's revision has not moved since resolution
started; if it has, resolution is redone, and the final attempt resolves
while holding the lock. Everything an episode writes lands in one store
transaction, so a failure or cancellation leaves the graph untouched.
"""

import time
from datetime import datetime

from chronograph.config import DedupConfig, IngestionConfig
from chronograph.core.embeddings.base import Embedder
from chronograph.core.extraction.base import Extractor
from chronograph.core.graph_store.base import GraphStore
from chronograph.models.edge import EntityEdge, EpisodicEdge
from chronograph.models.extraction import ExtractedEntity, ExtractionResult
from chronograph.models.filters import StoreFilter
from chronograph.models.ingestion import AddEpisodeResult
from chronograph.models.node import EntityNode, EpisodeType, EpisodicNode
from chronograph.services.deduplicator import Deduplicator
from chronograph.services.temporal_invalidator import TemporalInvalidator
from chronograph.utils.datetime_utils import ensure_utc, parse_datetime, utc_now
from chronograph.utils.exceptions import IngestionError, ProviderError, ValidationError
from chronograph.utils.logger import get_logger
from chronograph.utils.retry import ProviderCaller, retry_on_conflict
from chronograph.utils.text import normalize_name

logger = get_logger(__name__)


class IngestionPipeline:
    """Turns episodes into graph updates, one atomic commit per episode."""

    def __init__(
        self,
        store: GraphStore,
        embedder: Embedder,
        extractor: Extractor,
        config: IngestionConfig | None = None,
        dedup_config: DedupConfig | None = None,
        caller: ProviderCaller | None = None,
    ):
        """
        Initialize ingestion pipeline.

        Args:
            store: Graph store
            embedder: Embedder for names and facts
            extractor: Extraction provider
            config: Ingestion settings (window, attempts, timeouts)
            dedup_config: Deduplication settings
            caller: Retry/timeout policy for provider calls
        """
        self.store = store
        self.embedder = embedder
        self.extractor = extractor
        self.config = config or IngestionConfig()
        self.call = caller or ProviderCaller(timeout=self.config.provider_timeout)

        self.deduplicator = Deduplicator(
            store=store,
            embedder=embedder,
            extractor=extractor,
            config=dedup_config,
            caller=self.call,
        )
        self.invalidator = TemporalInvalidator(
            store=store,
            extractor=extractor,
            caller=self.call,
            candidate_limit=self.config.invalidation_candidate_limit,
        )

    @staticmethod
    def build_episode(
        name: str,
        body: str,
        group_id: str,
        source: EpisodeType | str = EpisodeType.TEXT,
        reference_time: datetime | None = None,
        source_description: str = "",
    ) -> EpisodicNode:
        """
        Validate input and build the EpisodicNode.

        Raises:
            ValidationError: On empty group_id or body, or an unknown source kind
        """
        if not group_id or not group_id.strip():
            raise ValidationError("group_id cannot be empty")
        if not body or not body.strip():
            raise ValidationError("Episode body cannot be empty", context={"group_id": group_id})

        try:
            source = EpisodeType(source)
        except ValueError as e:
            raise ValidationError(
                f"Unknown episode source: {source!r}", context={"group_id": group_id}
            ) from e

        return EpisodicNode(
            name=name,
            group_id=group_id,
            source=source,
            source_description=source_description,
            content=body,
            reference_time=ensure_utc(reference_time) or utc_now(),
        )

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
        Ingest one episode.

        Args:
            name: Episode name
            body: Raw content (text, JSON string or message transcript)
            group_id: Graph partition to write to
            source: Kind of content
            reference_time: When the content happened (defaults to now)
            source_description: Free-form origin description

        Returns:
            AddEpisodeResult with resolved nodes and affected facts

        Raises:
            ValidationError: On malformed input (nothing is written)
            IngestionError: If a provider failed (nothing is written)
            ConflictError: If the group lock stayed contended after one retry
            GraphStoreError: If the commit failed (rolled back)
        """
        started = time.perf_counter()
        episode = self.build_episode(
            name, body, group_id, source, reference_time, source_description
        )
        log = logger.bind(episode_uuid=episode.uuid, group_id=group_id)
        log.info(f"Ingesting episode '{name}'")

        previous = await self._previous_episodes(episode)

        try:
            extraction = await self.call(
                lambda: self.extractor.extract(episode, previous),
                "extract",
                context={"episode_uuid": episode.uuid},
            )
            result = await retry_on_conflict(
                lambda: self._resolve_and_commit(episode, extraction),
                "add_episode",
            )
        except ProviderError as e:
            log.error(f"Episode ingestion failed: {e}")
            raise IngestionError(
                f"Episode ingestion failed: {e.message}",
                context={**e.context, "episode_uuid": episode.uuid, "group_id": group_id},
            ) from e

        result.processing_time_ms = (time.perf_counter() - started) * 1000
        log.info(
            f"Episode ingested: {len(result.nodes)} entities, {len(result.edges)} facts, "
            f"{len(result.invalidated_edges)} invalidated in {result.processing_time_ms:.0f}ms"
        )
        return result

    async def _previous_episodes(self, episode: EpisodicNode) -> list[EpisodicNode]:
        if self.config.episode_window == 0:
            return []
        recent = await self.store.get_episodes(
            StoreFilter(
                group_ids=[episode.group_id],
                time_end=episode.reference_time,
                limit=self.config.episode_window,
                newest_first=True,
            )
        )
        return list(reversed(recent))

    # ═══════════════════════════════════════════════════════════
    # RESOLUTION AND COMMIT
    # ═══════════════════════════════════════════════════════════

    async def _resolve_and_commit(
        self, episode: EpisodicNode, extraction: ExtractionResult
    ) -> AddEpisodeResult:
        group_id = episode.group_id
        attempts = self.config.max_resolution_attempts

        for attempt in range(1, attempts):
            revision = self.store.group_revision(group_id)
            result = await self._resolve(episode, extraction)
            async with self.store.group_lock(group_id, timeout=self.config.lock_timeout):
                if self.store.group_revision(group_id) == revision:
                    await self._commit(result)
                    return result
            logger.bind(episode_uuid=episode.uuid, attempt=attempt).info(
                "Group changed during resolution, resolving again"
            )

        async with self.store.group_lock(group_id, timeout=self.config.lock_timeout):
            result = await self._resolve(episode, extraction)
            await self._commit(result)
            return result

    async def _resolve(
        self, episode: EpisodicNode, extraction: ExtractionResult
    ) -> AddEpisodeResult:
        group_id = episode.group_id
        now = utc_now()

        # One resolve per normalized name
        mentions: dict[str, ExtractedEntity] = {}
        for entity in extraction.entities:
            mentions.setdefault(normalize_name(entity.name), entity)
        entities = list(mentions.values())

        resolved = await self.deduplicator.resolve_many(entities, group_id)

        nodes_by_uuid: dict[str, EntityNode] = {}
        name_map: dict[str, EntityNode] = {}
        for entity, (node, _) in zip(entities, resolved, strict=True):
            canonical = nodes_by_uuid.setdefault(node.uuid, node)
            if canonical is not node:
                for label in node.labels:
                    if label not in canonical.labels:
                        canonical.labels.append(label)
            name_map[normalize_name(entity.name)] = canonical

        candidates = self._candidate_edges(episode, extraction, name_map, now)
        if candidates:
            embeddings = await self.call(
                lambda: self.embedder.batch_embed([edge.fact for edge in candidates]),
                "embed_facts",
                context={"episode_uuid": episode.uuid},
            )
            for edge, embedding in zip(candidates, embeddings, strict=True):
                edge.fact_embedding = embedding

        # Every edge read or created during this episode, by uuid
        tracked: dict[str, EntityEdge] = {}
        edges: dict[str, EntityEdge] = {}
        invalidated: dict[str, EntityEdge] = {}

        for candidate in candidates:
            edge, is_new = await self.deduplicator.resolve_edge(
                candidate, pending=list(tracked.values())
            )
            edge = tracked.setdefault(edge.uuid, edge)
            edges[edge.uuid] = edge
            if not is_new:
                continue

            existing = await self.invalidator.find_candidates(edge)
            existing = [tracked.get(other.uuid, other) for other in existing]
            for closed in await self.invalidator.invalidate(edge, existing, now=now):
                tracked.setdefault(closed.uuid, closed)
                invalidated[closed.uuid] = closed

        episodic_edges = [
            EpisodicEdge(
                group_id=group_id,
                source_node_uuid=episode.uuid,
                target_node_uuid=node_uuid,
                created_at=now,
            )
            for node_uuid in nodes_by_uuid
        ]

        affected = list(edges)
        affected += [uuid for uuid in invalidated if uuid not in edges]

        return AddEpisodeResult(
            episode=episode,
            nodes=list(nodes_by_uuid.values()),
            edges=list(edges.values()),
            invalidated_edges=list(invalidated.values()),
            episodic_edges=episodic_edges,
            affected_edge_uuids=affected,
        )

    def _candidate_edges(
        self,
        episode: EpisodicNode,
        extraction: ExtractionResult,
        name_map: dict[str, EntityNode],
        now: datetime,
    ) -> list[EntityEdge]:
        """Relations remapped onto resolved nodes, with validity dates applied."""
        candidates: list[EntityEdge] = []
        for index, relation in enumerate(extraction.relations):
            source = name_map.get(normalize_name(relation.source_name))
            target = name_map.get(normalize_name(relation.target_name))
            if source is None or target is None or source.uuid == target.uuid:
                logger.bind(episode_uuid=episode.uuid).debug(
                    f"Dropping relation with unresolved endpoints: {relation.fact}"
                )
                continue

            dates = extraction.dates_for(index)
            valid_at = parse_datetime(dates.valid_at) if dates else None
            invalid_at = parse_datetime(dates.invalid_at) if dates else None
            valid_at = valid_at or episode.reference_time
            if invalid_at is not None and invalid_at < valid_at:
                invalid_at = None

            candidates.append(
                EntityEdge(
                    name=relation.name,
                    fact=relation.fact,
                    group_id=episode.group_id,
                    source_node_uuid=source.uuid,
                    target_node_uuid=target.uuid,
                    episodes=[episode.uuid],
                    valid_at=valid_at,
                    invalid_at=invalid_at,
                    expired_at=now if invalid_at else None,
                    created_at=now,
                )
            )
        return candidates

    async def _commit(self, result: AddEpisodeResult) -> None:
        episode = result.episode
        if not self.config.store_raw_episode_content:
            episode = episode.model_copy(update={"content": ""})

        changed_edges = {edge.uuid: edge for edge in result.edges}
        for edge in result.invalidated_edges:
            changed_edges.setdefault(edge.uuid, edge)

        async with self.store.transaction() as tx:
            await tx.save_nodes([episode])
            await tx.save_nodes(result.nodes)
            await tx.save_edges(list(changed_edges.values()))
            await tx.save_edges(result.episodic_edges)
