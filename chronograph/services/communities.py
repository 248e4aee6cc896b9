"""
Community detection and summarization.

Communities are derived data: a rebuild deletes a group's CommunityNodes and
recomputes them from currently valid entity edges.
"""

import asyncio
from collections import Counter, defaultdict

from chronograph.core.embeddings.base import Embedder
from chronograph.core.extraction import prompts
from chronograph.core.graph_store.base import GraphStore
from chronograph.core.llm.base import LLMProvider
from chronograph.models.extraction import CommunitySummaryResponse
from chronograph.models.filters import StoreFilter
from chronograph.models.node import CommunityNode, EntityNode, NodeKind
from chronograph.utils.exceptions import ProviderError
from chronograph.utils.logger import get_logger
from chronograph.utils.retry import ProviderCaller

logger = get_logger(__name__)

MAX_PROPAGATION_ROUNDS = 100


def label_propagation(
    node_uuids: list[str], neighbors: dict[str, Counter], max_rounds: int = MAX_PROPAGATION_ROUNDS
) -> list[list[str]]:
    """
    Cluster nodes by synchronous label propagation.

    Every node starts in its own community and adopts the label most common
    among its neighbors (weighted by edge count). A plurality of one keeps the
    larger of the current and candidate label, which makes the process settle.

    Args:
        node_uuids: All nodes, including isolated ones
        neighbors: uuid -> Counter of neighbor uuid to edge count
        max_rounds: Upper bound on propagation rounds

    Returns:
        Clusters as lists of node uuids
    """
    labels = {uuid: index for index, uuid in enumerate(node_uuids)}

    for _ in range(max_rounds):
        changed = False
        new_labels: dict[str, int] = {}
        for uuid in node_uuids:
            current = labels[uuid]
            weights: Counter = Counter()
            for neighbor, count in neighbors.get(uuid, Counter()).items():
                weights[labels[neighbor]] += count
            if not weights:
                new_labels[uuid] = current
                continue

            candidate, top = max(weights.items(), key=lambda item: (item[1], item[0]))
            new_label = candidate if top > 1 else max(candidate, current)
            new_labels[uuid] = new_label
            changed = changed or new_label != current
        labels = new_labels
        if not changed:
            break

    clusters: dict[int, list[str]] = defaultdict(list)
    for uuid in node_uuids:
        clusters[labels[uuid]].append(uuid)
    return list(clusters.values())


class CommunityBuilder:
    """Rebuilds the CommunityNodes of a group."""

    def __init__(
        self,
        store: GraphStore,
        embedder: Embedder,
        llm: LLMProvider | None = None,
        caller: ProviderCaller | None = None,
    ):
        """
        Initialize community builder.

        Args:
            store: Graph store
            embedder: Embedder for community names
            llm: LLM for community summaries; member names are used without one
            caller: Retry/timeout policy for provider calls
        """
        self.store = store
        self.embedder = embedder
        self.llm = llm
        self.call = caller or ProviderCaller()

    async def build(self, group_id: str) -> list[CommunityNode]:
        """
        Recompute and persist the communities of one group.

        Returns:
            The new CommunityNodes (clusters of at least two entities)
        """
        group = StoreFilter.by_group(group_id)
        nodes, edges = await asyncio.gather(
            self.store.get_entity_nodes(group),
            self.store.get_entity_edges(StoreFilter(group_ids=[group_id], current_only=True)),
        )

        neighbors: dict[str, Counter] = defaultdict(Counter)
        for edge in edges:
            neighbors[edge.source_node_uuid][edge.target_node_uuid] += 1
            neighbors[edge.target_node_uuid][edge.source_node_uuid] += 1

        by_uuid = {node.uuid: node for node in nodes}
        clusters = [
            cluster
            for cluster in label_propagation(list(by_uuid), neighbors)
            if len(cluster) >= 2
        ]

        communities = await asyncio.gather(
            *(
                self._summarize(group_id, [by_uuid[uuid] for uuid in cluster])
                for cluster in clusters
            )
        )

        async with self.store.transaction() as tx:
            await tx.delete_nodes(NodeKind.COMMUNITY, group)
            await tx.save_nodes(list(communities))

        logger.bind(group_id=group_id).info(f"Built {len(communities)} communities")
        return list(communities)

    async def _summarize(self, group_id: str, members: list[EntityNode]) -> CommunityNode:
        fallback_name = ", ".join(sorted(member.name for member in members))
        name, summary = fallback_name, fallback_name

        if self.llm is not None:
            system_prompt, prompt = prompts.community_summary_prompt(members)
            try:
                response: CommunitySummaryResponse = await self.call(
                    lambda: self.llm.complete(
                        prompt, response_format=CommunitySummaryResponse, system_prompt=system_prompt
                    ),
                    "community_summary",
                    context={"group_id": group_id},
                )
                name, summary = response.name, response.summary
            except ProviderError as e:
                logger.bind(group_id=group_id).warning(
                    f"Community summary failed, using member names: {e}"
                )

        embedding = await self.call(
            lambda: self.embedder.embed(name), "embed_community_name", context={"group_id": group_id}
        )
        return CommunityNode(
            name=name,
            group_id=group_id,
            summary=summary,
            name_embedding=embedding,
            member_uuids=[member.uuid for member in members],
        )
