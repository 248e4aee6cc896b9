"""
Base interface for graph storage.

A GraphStore persists the five record kinds (entity, episodic and community
nodes; entity and episodic edges), answers filtered reads, and exposes the
retrieval primitives hybrid search is built from. All writes go through a
GraphWriter obtained from transaction(), which commits on clean exit and
rolls back on any exception, including cancellation.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from chronograph.models.edge import AnyEdge, EdgeKind, EntityEdge, EpisodicEdge
from chronograph.models.filters import StoreFilter
from chronograph.models.node import AnyNode, CommunityNode, EntityNode, EpisodicNode, NodeKind
from chronograph.models.search import SearchFilters
from chronograph.utils.exceptions import ConflictError, NotFoundError
from chronograph.utils.logger import get_logger

logger = get_logger(__name__)


class GraphWriter(ABC):
    """
    Write handle bound to one open store transaction.

    Tracks which groups it touched so the store can bump their revision
    once the transaction commits.
    """

    def __init__(self):
        self.touched_groups: set[str] = set()

    def touch(self, *group_ids: str) -> None:
        """Mark groups as modified by this transaction."""
        self.touched_groups.update(group_ids)

    async def save_nodes(self, nodes: list[AnyNode]) -> None:
        """
        Upsert nodes. Episodic nodes are insert-only: an existing uuid is left as is.

        Args:
            nodes: Nodes of any kind, saved in order
        """
        if not nodes:
            return
        self.touch(*(node.group_id for node in nodes))
        await self._save_nodes(nodes)

    async def save_edges(self, edges: list[AnyEdge]) -> None:
        """
        Upsert edges.

        Entity edge upserts never clear an invalid_at/expired_at that is
        already stored. Every endpoint must exist (saved earlier in this
        transaction or before it).

        Raises:
            GraphStoreError: If an endpoint does not exist
        """
        if not edges:
            return
        self.touch(*(edge.group_id for edge in edges))
        await self._save_edges(edges)

    async def delete_nodes(self, kind: NodeKind, filter: StoreFilter) -> int:
        """
        Delete matching nodes and every edge incident to them.

        Returns:
            Number of nodes deleted
        """
        if filter.group_ids:
            self.touch(*filter.group_ids)
        return await self._delete_nodes(kind, filter)

    async def delete_edges(self, kind: EdgeKind, filter: StoreFilter) -> int:
        """
        Delete matching edges.

        Returns:
            Number of edges deleted
        """
        if filter.group_ids:
            self.touch(*filter.group_ids)
        return await self._delete_edges(kind, filter)

    @abstractmethod
    async def _save_nodes(self, nodes: list[AnyNode]) -> None:
        pass

    @abstractmethod
    async def _save_edges(self, edges: list[AnyEdge]) -> None:
        pass

    @abstractmethod
    async def _delete_nodes(self, kind: NodeKind, filter: StoreFilter) -> int:
        pass

    @abstractmethod
    async def _delete_edges(self, kind: EdgeKind, filter: StoreFilter) -> int:
        pass

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass

    async def close(self) -> None:
        """Release the underlying connection/session."""
        pass


class GraphStore(ABC):
    """Abstract base class for graph storage implementations."""

    def __init__(self):
        self._group_locks: dict[str, asyncio.Lock] = {}
        self._revisions: dict[str, int] = {}

    async def initialize(self) -> None:
        """Connect and create schema/indices."""
        await self.ensure_indices_and_constraints()

    @abstractmethod
    async def ensure_indices_and_constraints(self) -> None:
        """Create tables, constraints and search indices. Idempotent."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections."""
        pass

    # ═══════════════════════════════════════════════════════════
    # TRANSACTIONS, LOCKING, REVISIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def _open_writer(self) -> GraphWriter:
        """Begin a backend transaction and return its writer."""
        pass

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GraphWriter]:
        """
        Open a write transaction.

        Commits when the block exits cleanly; rolls back on any exception or
        cancellation and re-raises it. Revisions of touched groups are bumped
        only after a successful commit.
        """
        writer = await self._open_writer()
        try:
            yield writer
        except BaseException:
            try:
                await writer.rollback()
            except Exception as rollback_error:
                logger.bind(error=str(rollback_error)).error("Transaction rollback failed")
            raise
        else:
            await writer.commit()
            for group_id in writer.touched_groups:
                self._revisions[group_id] = self._revisions.get(group_id, 0) + 1
        finally:
            await writer.close()

    @asynccontextmanager
    async def group_lock(self, group_id: str, timeout: float | None = None) -> AsyncIterator[None]:
        """
        Per-group mutual exclusion for the resolve/invalidate/persist sequence.

        Args:
            group_id: Group to serialize on
            timeout: Seconds to wait for the lock (None waits forever)

        Raises:
            ConflictError: If the lock was not acquired in time
        """
        lock = self._group_locks.setdefault(group_id, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except TimeoutError as e:
            raise ConflictError(
                f"Timed out after {timeout}s waiting for group lock",
                context={"group_id": group_id},
            ) from e

        try:
            yield
        finally:
            lock.release()

    def group_revision(self, group_id: str) -> int:
        """Number of committed transactions that touched the group."""
        return self._revisions.get(group_id, 0)

    # ═══════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_nodes(self, kind: NodeKind, filter: StoreFilter | None = None) -> list[AnyNode]:
        """
        Fetch nodes of one kind.

        Args:
            kind: Node kind to read
            filter: Optional filter (uuids, group_ids, names, time range, limit)

        Returns:
            Matching nodes ordered by primary time field
        """
        pass

    @abstractmethod
    async def get_edges(self, kind: EdgeKind, filter: StoreFilter | None = None) -> list[AnyEdge]:
        """
        Fetch edges of one kind.

        Args:
            kind: Edge kind to read
            filter: Optional filter (uuids, group_ids, node pair, incident node,
                episode, current_only, time range, limit)

        Returns:
            Matching edges ordered by primary time field
        """
        pass

    async def get_node(self, kind: NodeKind, uuid: str) -> AnyNode:
        """
        Fetch one node by uuid.

        Raises:
            NotFoundError: If no node of this kind has the uuid
        """
        nodes = await self.get_nodes(kind, StoreFilter.by_uuids([uuid]))
        if not nodes:
            raise NotFoundError(f"{kind.value} node not found", context={"uuid": uuid})
        return nodes[0]

    async def get_edge(self, kind: EdgeKind, uuid: str) -> AnyEdge:
        """
        Fetch one edge by uuid.

        Raises:
            NotFoundError: If no edge of this kind has the uuid
        """
        edges = await self.get_edges(kind, StoreFilter.by_uuids([uuid]))
        if not edges:
            raise NotFoundError(f"{kind.value} edge not found", context={"uuid": uuid})
        return edges[0]

    async def get_entity_nodes(self, filter: StoreFilter | None = None) -> list[EntityNode]:
        return await self.get_nodes(NodeKind.ENTITY, filter)

    async def get_episodes(self, filter: StoreFilter | None = None) -> list[EpisodicNode]:
        return await self.get_nodes(NodeKind.EPISODIC, filter)

    async def get_communities(self, filter: StoreFilter | None = None) -> list[CommunityNode]:
        return await self.get_nodes(NodeKind.COMMUNITY, filter)

    async def get_entity_edges(self, filter: StoreFilter | None = None) -> list[EntityEdge]:
        return await self.get_edges(EdgeKind.ENTITY, filter)

    async def get_episodic_edges(self, filter: StoreFilter | None = None) -> list[EpisodicEdge]:
        return await self.get_edges(EdgeKind.EPISODIC, filter)

    # ═══════════════════════════════════════════════════════════
    # SINGLE-CALL WRITES
    # ═══════════════════════════════════════════════════════════

    async def save_nodes(self, nodes: list[AnyNode]) -> None:
        """Save nodes in their own transaction."""
        async with self.transaction() as tx:
            await tx.save_nodes(nodes)

    async def save_edges(self, edges: list[AnyEdge]) -> None:
        """Save edges in their own transaction."""
        async with self.transaction() as tx:
            await tx.save_edges(edges)

    async def delete_nodes(self, kind: NodeKind, filter: StoreFilter) -> int:
        """Delete nodes (and incident edges) in their own transaction."""
        async with self.transaction() as tx:
            return await tx.delete_nodes(kind, filter)

    async def delete_edges(self, kind: EdgeKind, filter: StoreFilter) -> int:
        """Delete edges in their own transaction."""
        async with self.transaction() as tx:
            return await tx.delete_edges(kind, filter)

    async def delete_group(self, group_id: str) -> None:
        """Remove every node and edge of one group."""
        group_filter = StoreFilter.by_group(group_id)
        async with self.transaction() as tx:
            for edge_kind in EdgeKind:
                await tx.delete_edges(edge_kind, group_filter)
            for node_kind in NodeKind:
                await tx.delete_nodes(node_kind, group_filter)

    async def clear_data(self) -> None:
        """Remove every node and edge of every group."""
        everything = StoreFilter()
        async with self.transaction() as tx:
            tx.touch(*self._revisions)
            for edge_kind in EdgeKind:
                await tx.delete_edges(edge_kind, everything)
            for node_kind in NodeKind:
                await tx.delete_nodes(node_kind, everything)

    # ═══════════════════════════════════════════════════════════
    # SEARCH PRIMITIVES
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def node_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, float]]:
        """
        Entity nodes ranked by cosine similarity of name_embedding.

        Returns:
            (node, score) pairs, best first, score >= min_score
        """
        pass

    @abstractmethod
    async def edge_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, float]]:
        """
        Eligible entity edges ranked by cosine similarity of fact_embedding.

        Eligible means current (invalid_at null) when as_of is None, else
        valid_at <= as_of < invalid_at.
        """
        pass

    @abstractmethod
    async def community_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
    ) -> list[tuple[CommunityNode, float]]:
        pass

    @abstractmethod
    async def node_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, float]]:
        """Entity nodes matching query terms in name or summary, best first."""
        pass

    @abstractmethod
    async def edge_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, float]]:
        """Eligible entity edges matching query terms in name or fact, best first."""
        pass

    @abstractmethod
    async def community_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
    ) -> list[tuple[CommunityNode, float]]:
        pass

    @abstractmethod
    async def episode_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        as_of: datetime | None = None,
    ) -> list[tuple[EpisodicNode, float]]:
        """Episodes matching query terms in name or content, best first; as_of bounds reference_time."""
        pass

    @abstractmethod
    async def edge_bfs_search(
        self,
        origin_node_uuids: list[str],
        group_ids: list[str],
        max_depth: int = 2,
        limit: int = 50,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, int]]:
        """
        Eligible entity edges reachable from the origins.

        Returns:
            (edge, hops) pairs where hops is the 1-based hop at which the edge
            was first reached, nearest first
        """
        pass

    @abstractmethod
    async def node_bfs_search(
        self,
        origin_node_uuids: list[str],
        group_ids: list[str],
        max_depth: int = 2,
        limit: int = 50,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, int]]:
        """Entity nodes reachable over current edges, excluding the origins, nearest first."""
        pass
