"""
Temporal invalidation of contradicted facts.

Ordering is by valid_at (when the fact became true), never by ingestion
time. Closing an interval sets invalid_at or moves it earlier; nothing here
clears it. A fact that arrives late can therefore split an already closed
interval: Boston [T1, T3) becomes [T1, T2) when Seattle@T2 lands after
Portland@T3.
"""

import asyncio
from datetime import datetime

from chronograph.core.extraction.base import Extractor
from chronograph.core.graph_store.base import GraphStore
from chronograph.models.edge import EntityEdge
from chronograph.models.filters import StoreFilter
from chronograph.utils.datetime_utils import utc_now
from chronograph.utils.logger import get_logger
from chronograph.utils.retry import ProviderCaller
from chronograph.utils.similarity import cosine_similarity_matrix

logger = get_logger(__name__)


class TemporalInvalidator:
    """Closes the validity interval of facts a new fact contradicts."""

    def __init__(
        self,
        store: GraphStore,
        extractor: Extractor,
        caller: ProviderCaller | None = None,
        candidate_limit: int = 20,
    ):
        """
        Initialize temporal invalidator.

        Args:
            store: Graph store to read candidate edges from
            extractor: Provider of the pairwise contradiction check
            caller: Retry/timeout policy for provider calls
            candidate_limit: Max existing edges compared per new edge
        """
        self.store = store
        self.extractor = extractor
        self.call = caller or ProviderCaller()
        self.candidate_limit = candidate_limit

    async def find_candidates(self, edge: EntityEdge) -> list[EntityEdge]:
        """
        Edges that might contradict a new edge.

        An edge qualifies while it is current or while its interval
        [valid_at, invalid_at) contains the new edge's valid_at. Edges on the
        same pair come first, then edges sharing either endpoint; each tier is
        ordered by fact-embedding similarity to the new edge.
        """
        group = [edge.group_id]
        same_pair, from_source, from_target = await asyncio.gather(
            self.store.get_entity_edges(
                StoreFilter(
                    group_ids=group,
                    node_pair=(edge.source_node_uuid, edge.target_node_uuid),
                )
            ),
            self.store.get_entity_edges(
                StoreFilter(group_ids=group, node_uuid=edge.source_node_uuid)
            ),
            self.store.get_entity_edges(
                StoreFilter(group_ids=group, node_uuid=edge.target_node_uuid)
            ),
        )

        pair_uuids = {e.uuid for e in same_pair}
        by_uuid: dict[str, EntityEdge] = {}
        for candidate in [*same_pair, *from_source, *from_target]:
            if candidate.uuid != edge.uuid and _overlaps(candidate, edge.valid_at):
                by_uuid.setdefault(candidate.uuid, candidate)
        candidates = list(by_uuid.values())
        if not candidates:
            return []

        scores = cosine_similarity_matrix(
            edge.fact_embedding, [candidate.fact_embedding for candidate in candidates]
        )
        ranked = sorted(
            zip(candidates, scores, strict=True),
            key=lambda pair: (pair[0].uuid not in pair_uuids, -pair[1], pair[0].uuid),
        )
        return [candidate for candidate, _ in ranked[: self.candidate_limit]]

    async def invalidate(
        self,
        new_edge: EntityEdge,
        candidates: list[EntityEdge],
        now: datetime | None = None,
    ) -> list[EntityEdge]:
        """
        Apply contradiction results between a new edge and candidate edges.

        - Candidate valid at or before the new edge: candidate.invalid_at =
          new_edge.valid_at, or unchanged if it already closes earlier.
          expired_at = now unless already set.
        - Candidate strictly newer: new_edge.invalid_at = earliest such
          candidate's valid_at.
        - Candidates whose interval ends at or before new_edge.valid_at are
          skipped.

        Args:
            new_edge: Newly extracted, resolved edge (may be mutated)
            candidates: Existing edges to compare against (mutated in place)
            now: Transaction time for expired_at

        Returns:
            Candidate edges that were invalidated or shortened
        """
        now = now or utc_now()
        open_candidates = [
            c for c in candidates if c.uuid != new_edge.uuid and _overlaps(c, new_edge.valid_at)
        ]
        if not open_candidates:
            return []

        verdicts = await asyncio.gather(
            *(
                self.call(
                    lambda c=candidate: self.extractor.contradicts(c.fact, new_edge.fact),
                    "contradicts",
                    context={"edge_uuid": candidate.uuid},
                )
                for candidate in open_candidates
            )
        )
        contradicted = [c for c, verdict in zip(open_candidates, verdicts, strict=True) if verdict]

        invalidated: list[EntityEdge] = []
        newer_valid_ats: list[datetime] = []
        for candidate in contradicted:
            # Equal valid_at closes the stored edge
            if candidate.valid_at <= new_edge.valid_at:
                if candidate.invalidate(new_edge.valid_at, expired_at=now):
                    invalidated.append(candidate)
                    logger.bind(edge_uuid=candidate.uuid).info(
                        f"Invalidated fact '{candidate.fact}' at {new_edge.valid_at.isoformat()}"
                    )
            else:
                newer_valid_ats.append(candidate.valid_at)

        if newer_valid_ats and new_edge.invalidate(min(newer_valid_ats), expired_at=now):
            logger.bind(edge_uuid=new_edge.uuid).info(
                f"New fact '{new_edge.fact}' already superseded at {new_edge.invalid_at.isoformat()}"
            )

        return invalidated


def _overlaps(edge: EntityEdge, moment: datetime) -> bool:
    """Current, or closed after moment."""
    return edge.invalid_at is None or edge.invalid_at > moment
