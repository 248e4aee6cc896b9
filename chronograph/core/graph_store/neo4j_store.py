"""
Neo4j graph store implementation.

Graph layout:
- (:Entity), (:Episodic), (:Community) nodes keyed by uuid
- (:Entity)-[:RELATES_TO]->(:Entity) for facts (EntityEdge)
- (:Episodic)-[:MENTIONS]->(:Entity|:Community) for provenance (EpisodicEdge)

Lexical search uses Lucene full-text indexes, semantic search uses
vector.similarity.cosine, and proximity search uses variable-length paths.
"""

from datetime import datetime
from typing import Any

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession, AsyncTransaction
from neo4j.exceptions import DriverError, Neo4jError

from chronograph.core.graph_store.base import GraphStore, GraphWriter
from chronograph.models.edge import AnyEdge, EdgeKind, EntityEdge, EpisodicEdge
from chronograph.models.filters import StoreFilter
from chronograph.models.node import (
    AnyNode,
    CommunityNode,
    EntityNode,
    EpisodeType,
    EpisodicNode,
    NodeKind,
)
from chronograph.models.search import SearchFilters
from chronograph.utils.datetime_utils import ensure_utc
from chronograph.utils.exceptions import GraphStoreError
from chronograph.utils.logger import get_logger
from chronograph.utils.text import normalize_name, search_tokens

logger = get_logger(__name__)

NODE_LABELS = {
    NodeKind.ENTITY: "Entity",
    NodeKind.EPISODIC: "Episodic",
    NodeKind.COMMUNITY: "Community",
}

EDGE_PATTERNS = {
    EdgeKind.ENTITY: "(s:Entity)-[e:RELATES_TO]->(t:Entity)",
    EdgeKind.EPISODIC: "(s:Episodic)-[e:MENTIONS]->(t)",
}

EDGE_PROJECTION = "e {.*, source_node_uuid: s.uuid, target_node_uuid: t.uuid} AS e"

SCHEMA_QUERIES = [
    "CREATE CONSTRAINT entity_uuid IF NOT EXISTS FOR (n:Entity) REQUIRE n.uuid IS UNIQUE",
    "CREATE CONSTRAINT episodic_uuid IF NOT EXISTS FOR (n:Episodic) REQUIRE n.uuid IS UNIQUE",
    "CREATE CONSTRAINT community_uuid IF NOT EXISTS FOR (n:Community) REQUIRE n.uuid IS UNIQUE",
    "CREATE INDEX entity_group IF NOT EXISTS FOR (n:Entity) ON (n.group_id)",
    "CREATE INDEX entity_name_key IF NOT EXISTS FOR (n:Entity) ON (n.group_id, n.name_key)",
    "CREATE INDEX episodic_group_time IF NOT EXISTS FOR (n:Episodic) ON (n.group_id, n.reference_time)",
    "CREATE INDEX community_group IF NOT EXISTS FOR (n:Community) ON (n.group_id)",
    "CREATE INDEX relates_to_uuid IF NOT EXISTS FOR ()-[e:RELATES_TO]-() ON (e.uuid)",
    "CREATE INDEX relates_to_group IF NOT EXISTS FOR ()-[e:RELATES_TO]-() ON (e.group_id)",
    "CREATE INDEX mentions_uuid IF NOT EXISTS FOR ()-[e:MENTIONS]-() ON (e.uuid)",
    "CREATE FULLTEXT INDEX entity_node_fts IF NOT EXISTS FOR (n:Entity) ON EACH [n.name, n.summary]",
    "CREATE FULLTEXT INDEX episodic_node_fts IF NOT EXISTS FOR (n:Episodic) ON EACH [n.name, n.content]",
    "CREATE FULLTEXT INDEX community_node_fts IF NOT EXISTS FOR (n:Community) ON EACH [n.name, n.summary]",
    "CREATE FULLTEXT INDEX entity_edge_fts IF NOT EXISTS FOR ()-[e:RELATES_TO]-() ON EACH [e.name, e.fact]",
]


def _native(value: Any) -> Any:
    """Convert neo4j.time values to aware Python datetimes."""
    if hasattr(value, "to_native"):
        return ensure_utc(value.to_native())
    return value


def _clean(record: dict[str, Any]) -> dict[str, Any]:
    return {key: _native(value) for key, value in record.items()}


def _lucene_query(query: str) -> str | None:
    tokens = search_tokens(query)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


def _time_property(kind: NodeKind | EdgeKind) -> str:
    if kind == EdgeKind.ENTITY:
        return "valid_at"
    if kind == NodeKind.EPISODIC:
        return "reference_time"
    return "created_at"


def _build_where(
    alias: str, kind: NodeKind | EdgeKind, f: StoreFilter | None
) -> tuple[list[str], dict[str, Any]]:
    """Translate a StoreFilter into Cypher predicates on one variable."""
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if f is None:
        return clauses, params

    if f.uuids is not None:
        clauses.append(f"{alias}.uuid IN $uuids")
        params["uuids"] = f.uuids
    if f.group_ids is not None:
        clauses.append(f"{alias}.group_id IN $group_ids")
        params["group_ids"] = f.group_ids

    if isinstance(kind, EdgeKind):
        if f.node_pair is not None:
            clauses.append(
                "((s.uuid = $pair_a AND t.uuid = $pair_b) OR (s.uuid = $pair_b AND t.uuid = $pair_a))"
            )
            params["pair_a"], params["pair_b"] = f.node_pair
        if f.node_uuid is not None:
            clauses.append("(s.uuid = $node_uuid OR t.uuid = $node_uuid)")
            params["node_uuid"] = f.node_uuid
        if f.episode_uuid is not None:
            if kind == EdgeKind.ENTITY:
                clauses.append(f"$episode_uuid IN {alias}.episodes")
            else:
                clauses.append("s.uuid = $episode_uuid")
            params["episode_uuid"] = f.episode_uuid
        if f.current_only and kind == EdgeKind.ENTITY:
            clauses.append(f"{alias}.invalid_at IS NULL")
    elif f.names is not None and kind in (NodeKind.ENTITY, NodeKind.COMMUNITY):
        clauses.append(f"{alias}.name_key IN $name_keys")
        params["name_keys"] = sorted({normalize_name(name) for name in f.names})

    time_property = _time_property(kind)
    if f.time_start is not None:
        clauses.append(f"{alias}.{time_property} >= $time_start")
        params["time_start"] = f.time_start
    if f.time_end is not None:
        clauses.append(f"{alias}.{time_property} <= $time_end")
        params["time_end"] = f.time_end

    return clauses, params


def _eligibility(alias: str, as_of: datetime | None) -> tuple[str, dict[str, Any]]:
    if as_of is None:
        return f"{alias}.invalid_at IS NULL", {}
    return (
        f"{alias}.valid_at <= $as_of AND ({alias}.invalid_at IS NULL OR {alias}.invalid_at > $as_of)",
        {"as_of": ensure_utc(as_of)},
    )


def _search_filter_clauses(
    alias: str, kind: NodeKind | EdgeKind, filters: SearchFilters | None
) -> tuple[list[str], dict[str, Any]]:
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if filters is None:
        return clauses, params

    if filters.edge_types and kind == EdgeKind.ENTITY:
        clauses.append(f"{alias}.name IN $edge_types")
        params["edge_types"] = filters.edge_types
    if filters.node_labels and kind == NodeKind.ENTITY:
        clauses.append(f"any(label IN {alias}.labels WHERE label IN $node_labels)")
        params["node_labels"] = filters.node_labels
    if filters.created_after is not None:
        clauses.append(f"{alias}.created_at >= $created_after")
        params["created_after"] = filters.created_after
    if filters.created_before is not None:
        clauses.append(f"{alias}.created_at <= $created_before")
        params["created_before"] = filters.created_before

    return clauses, params


def _where_cypher(clauses: list[str]) -> str:
    return f" WHERE {' AND '.join(clauses)}" if clauses else ""


# ═══════════════════════════════════════════════════════════
# RECORD MAPPING
# ═══════════════════════════════════════════════════════════


def _node_properties(node: AnyNode) -> dict[str, Any]:
    properties = node.model_dump()
    if isinstance(node, EpisodicNode):
        properties["source"] = node.source.value
    else:
        properties["name_key"] = normalize_name(node.name)
    return properties


def _record_to_node(kind: NodeKind, data: dict[str, Any]) -> AnyNode:
    data = _clean(data)
    data.pop("name_key", None)
    if kind == NodeKind.ENTITY:
        return EntityNode(**data)
    if kind == NodeKind.EPISODIC:
        data["source"] = EpisodeType(data["source"])
        return EpisodicNode(**data)
    return CommunityNode(**data)


def _record_to_edge(kind: EdgeKind, data: dict[str, Any]) -> AnyEdge:
    data = _clean(data)
    if kind == EdgeKind.ENTITY:
        return EntityEdge(**data)
    return EpisodicEdge(**data)


# ═══════════════════════════════════════════════════════════
# WRITER
# ═══════════════════════════════════════════════════════════


class Neo4jGraphWriter(GraphWriter):
    """Writer bound to one explicit Neo4j transaction."""

    def __init__(self, session: AsyncSession, tx: AsyncTransaction):
        super().__init__()
        self.session = session
        self.tx = tx

    async def _run(self, query: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            result = await self.tx.run(query, params)
            return await result.data()
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(f"Neo4j write failed: {e}") from e

    async def _save_nodes(self, nodes: list[AnyNode]) -> None:
        by_kind: dict[NodeKind, list[dict[str, Any]]] = {}
        for node in nodes:
            by_kind.setdefault(node.kind, []).append(_node_properties(node))

        for kind, batch in by_kind.items():
            label = NODE_LABELS[kind]
            # Episodes are insert-only
            set_clause = "ON CREATE SET n += node" if kind == NodeKind.EPISODIC else "SET n += node"
            await self._run(
                f"UNWIND $nodes AS node MERGE (n:{label} {{uuid: node.uuid}}) {set_clause}",
                {"nodes": batch},
            )

    async def _save_edges(self, edges: list[AnyEdge]) -> None:
        entity_edges = [e.model_dump() for e in edges if isinstance(e, EntityEdge)]
        episodic_edges = [e.model_dump() for e in edges if isinstance(e, EpisodicEdge)]

        if entity_edges:
            records = await self._run(
                """
                UNWIND $edges AS edge
                MATCH (s:Entity {uuid: edge.source_node_uuid})
                MATCH (t:Entity {uuid: edge.target_node_uuid})
                MERGE (s)-[e:RELATES_TO {uuid: edge.uuid}]->(t)
                ON CREATE SET e.group_id = edge.group_id,
                              e.name = edge.name,
                              e.fact = edge.fact,
                              e.valid_at = edge.valid_at,
                              e.created_at = edge.created_at
                SET e.episodes = edge.episodes,
                    e.fact_embedding = CASE WHEN size(edge.fact_embedding) > 0
                                            THEN edge.fact_embedding ELSE e.fact_embedding END,
                    e.invalid_at = CASE WHEN e.invalid_at IS NULL OR edge.invalid_at < e.invalid_at
                                        THEN edge.invalid_at ELSE e.invalid_at END,
                    e.expired_at = coalesce(e.expired_at, edge.expired_at)
                RETURN count(e) AS saved
                """,
                {"edges": entity_edges},
            )
            self._check_saved(records, len(entity_edges))

        if episodic_edges:
            records = await self._run(
                """
                UNWIND $edges AS edge
                MATCH (ep:Episodic {uuid: edge.source_node_uuid})
                MATCH (n {uuid: edge.target_node_uuid}) WHERE n:Entity OR n:Community
                MERGE (ep)-[m:MENTIONS {uuid: edge.uuid}]->(n)
                ON CREATE SET m.group_id = edge.group_id, m.created_at = edge.created_at
                RETURN count(m) AS saved
                """,
                {"edges": episodic_edges},
            )
            self._check_saved(records, len(episodic_edges))

    @staticmethod
    def _check_saved(records: list[dict[str, Any]], expected: int) -> None:
        saved = records[0]["saved"] if records else 0
        if saved != expected:
            raise GraphStoreError(
                "Edge references nodes that do not exist",
                context={"expected": expected, "saved": saved},
            )

    async def _delete_nodes(self, kind: NodeKind, filter: StoreFilter) -> int:
        clauses, params = _build_where("n", kind, filter)
        limit = f" WITH n LIMIT {int(filter.limit)}" if filter.limit else ""
        records = await self._run(
            f"MATCH (n:{NODE_LABELS[kind]}){_where_cypher(clauses)}{limit} "
            "DETACH DELETE n RETURN count(*) AS deleted",
            params,
        )
        return records[0]["deleted"] if records else 0

    async def _delete_edges(self, kind: EdgeKind, filter: StoreFilter) -> int:
        clauses, params = _build_where("e", kind, filter)
        limit = f" WITH e LIMIT {int(filter.limit)}" if filter.limit else ""
        records = await self._run(
            f"MATCH {EDGE_PATTERNS[kind]}{_where_cypher(clauses)}{limit} "
            "DELETE e RETURN count(*) AS deleted",
            params,
        )
        return records[0]["deleted"] if records else 0

    async def commit(self) -> None:
        try:
            await self.tx.commit()
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(f"Neo4j commit failed: {e}") from e

    async def rollback(self) -> None:
        await self.tx.rollback()

    async def close(self) -> None:
        await self.session.close()


# ═══════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════


class Neo4jGraphStore(GraphStore):
    """
    Neo4j-based temporal graph store.

    Features:
    - Native graph traversal for proximity search
    - Lucene full-text indexes
    - ACID transactions
    """

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        username: str = "neo4j",
        password: str = "password",
        database: str = "neo4j",
    ):
        """
        Initialize Neo4j graph store.

        Args:
            uri: Neo4j connection URI
            username: Username
            password: Password
            database: Database name
        """
        super().__init__()
        self.uri = uri
        self.username = username
        self.password = password
        self.database = database
        self.driver: AsyncDriver | None = None

    async def connect(self) -> None:
        """
        Establish connection to Neo4j.

        Raises:
            GraphStoreError: If connection fails
        """
        if self.driver is None:
            try:
                self.driver = AsyncGraphDatabase.driver(
                    self.uri,
                    auth=(self.username, self.password),
                )
            except Exception as e:
                logger.bind(uri=self.uri).error(f"Failed to connect to Neo4j: {e}")
                raise GraphStoreError(f"Failed to connect to Neo4j: {e}") from e

    async def ensure_indices_and_constraints(self) -> None:
        """
        Create constraints and indexes.

        Raises:
            GraphStoreError: If initialization fails
        """
        await self.connect()
        try:
            async with self.driver.session(database=self.database) as session:
                for query in SCHEMA_QUERIES:
                    await session.run(query)
        except (Neo4jError, DriverError) as e:
            logger.bind(database=self.database).error(f"Failed to initialize Neo4j: {e}")
            raise GraphStoreError(f"Failed to initialize Neo4j: {e}") from e

    async def close(self) -> None:
        if self.driver is not None:
            await self.driver.close()
            self.driver = None

    async def _open_writer(self) -> GraphWriter:
        await self.connect()
        session = self.driver.session(database=self.database)
        try:
            tx = await session.begin_transaction()
        except (Neo4jError, DriverError) as e:
            await session.close()
            raise GraphStoreError(f"Failed to begin Neo4j transaction: {e}") from e
        return Neo4jGraphWriter(session, tx)

    async def _query(self, query: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        await self.connect()
        try:
            async with self.driver.session(database=self.database) as session:
                result = await session.run(query, params)
                return await result.data()
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(f"Neo4j read failed: {e}") from e

    # ═══════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def _order_limit(alias: str, kind: NodeKind | EdgeKind, f: StoreFilter | None) -> str:
        direction = "DESC" if f is None or f.newest_first else "ASC"
        cypher = f" ORDER BY {alias}.{_time_property(kind)} {direction}, {alias}.uuid"
        if f is not None and f.limit is not None:
            cypher += f" LIMIT {int(f.limit)}"
        return cypher

    async def get_nodes(self, kind: NodeKind, filter: StoreFilter | None = None) -> list[AnyNode]:
        clauses, params = _build_where("n", kind, filter)
        records = await self._query(
            f"MATCH (n:{NODE_LABELS[kind]}){_where_cypher(clauses)} RETURN n {{.*}} AS n"
            + self._order_limit("n", kind, filter),
            params,
        )
        return [_record_to_node(kind, record["n"]) for record in records]

    async def get_edges(self, kind: EdgeKind, filter: StoreFilter | None = None) -> list[AnyEdge]:
        clauses, params = _build_where("e", kind, filter)
        records = await self._query(
            f"MATCH {EDGE_PATTERNS[kind]}{_where_cypher(clauses)} RETURN {EDGE_PROJECTION}"
            + self._order_limit("e", kind, filter),
            params,
        )
        return [_record_to_edge(kind, record["e"]) for record in records]

    # ═══════════════════════════════════════════════════════════
    # SEARCH PRIMITIVES
    # ═══════════════════════════════════════════════════════════

    async def _node_similarity(
        self,
        kind: NodeKind,
        embedding: list[float],
        group_ids: list[str],
        limit: int,
        min_score: float,
        filters: SearchFilters | None,
    ) -> list[tuple[AnyNode, float]]:
        if not embedding or not group_ids:
            return []
        clauses, params = _search_filter_clauses("n", kind, filters)
        clauses = [
            "n.group_id IN $group_ids",
            "size(n.name_embedding) = size($embedding)",
            *clauses,
        ]
        # vector.similarity.cosine is scaled to [0, 1]
        records = await self._query(
            f"MATCH (n:{NODE_LABELS[kind]}){_where_cypher(clauses)} "
            "WITH n, 2 * vector.similarity.cosine(n.name_embedding, $embedding) - 1 AS score "
            "WHERE score >= $min_score "
            "RETURN n {.*} AS n, score ORDER BY score DESC, n.uuid LIMIT $limit",
            {**params, "group_ids": group_ids, "embedding": embedding, "min_score": min_score, "limit": limit},
        )
        return [(_record_to_node(kind, r["n"]), r["score"]) for r in records]

    async def node_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, float]]:
        return await self._node_similarity(
            NodeKind.ENTITY, embedding, group_ids, limit, min_score, filters
        )

    async def community_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
    ) -> list[tuple[CommunityNode, float]]:
        return await self._node_similarity(
            NodeKind.COMMUNITY, embedding, group_ids, limit, min_score, None
        )

    async def edge_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, float]]:
        if not embedding or not group_ids:
            return []
        eligibility, eligibility_params = _eligibility("e", as_of)
        clauses, params = _search_filter_clauses("e", EdgeKind.ENTITY, filters)
        clauses = [
            "e.group_id IN $group_ids",
            "size(e.fact_embedding) = size($embedding)",
            eligibility,
            *clauses,
        ]
        records = await self._query(
            f"MATCH {EDGE_PATTERNS[EdgeKind.ENTITY]}{_where_cypher(clauses)} "
            "WITH s, e, t, 2 * vector.similarity.cosine(e.fact_embedding, $embedding) - 1 AS score "
            "WHERE score >= $min_score "
            f"RETURN {EDGE_PROJECTION}, score ORDER BY score DESC, e.uuid LIMIT $limit",
            {
                **params,
                **eligibility_params,
                "group_ids": group_ids,
                "embedding": embedding,
                "min_score": min_score,
                "limit": limit,
            },
        )
        return [(_record_to_edge(EdgeKind.ENTITY, r["e"]), r["score"]) for r in records]

    async def _node_fulltext(
        self,
        kind: NodeKind,
        index: str,
        query: str,
        group_ids: list[str],
        limit: int,
        filters: SearchFilters | None,
        as_of: datetime | None = None,
    ) -> list[tuple[AnyNode, float]]:
        lucene = _lucene_query(query)
        if lucene is None or not group_ids:
            return []
        clauses, params = _search_filter_clauses("n", kind, filters)
        clauses = ["n.group_id IN $group_ids", *clauses]
        if as_of is not None:
            clauses.append("n.reference_time <= $as_of")
            params["as_of"] = ensure_utc(as_of)
        records = await self._query(
            f"CALL db.index.fulltext.queryNodes('{index}', $query) YIELD node AS n, score"
            f"{_where_cypher(clauses)} "
            "RETURN n {.*} AS n, score ORDER BY score DESC, n.uuid LIMIT $limit",
            {**params, "query": lucene, "group_ids": group_ids, "limit": limit},
        )
        return [(_record_to_node(kind, r["n"]), r["score"]) for r in records]

    async def node_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, float]]:
        return await self._node_fulltext(
            NodeKind.ENTITY, "entity_node_fts", query, group_ids, limit, filters
        )

    async def community_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
    ) -> list[tuple[CommunityNode, float]]:
        return await self._node_fulltext(
            NodeKind.COMMUNITY, "community_node_fts", query, group_ids, limit, None
        )

    async def episode_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        as_of: datetime | None = None,
    ) -> list[tuple[EpisodicNode, float]]:
        return await self._node_fulltext(
            NodeKind.EPISODIC, "episodic_node_fts", query, group_ids, limit, None, as_of
        )

    async def edge_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, float]]:
        lucene = _lucene_query(query)
        if lucene is None or not group_ids:
            return []
        eligibility, eligibility_params = _eligibility("e", as_of)
        clauses, params = _search_filter_clauses("e", EdgeKind.ENTITY, filters)
        clauses = ["e.group_id IN $group_ids", eligibility, *clauses]
        records = await self._query(
            "CALL db.index.fulltext.queryRelationships('entity_edge_fts', $query) "
            "YIELD relationship AS e, score "
            f"MATCH (s:Entity)-[e]->(t:Entity){_where_cypher(clauses)} "
            f"RETURN {EDGE_PROJECTION}, score ORDER BY score DESC, e.uuid LIMIT $limit",
            {
                **params,
                **eligibility_params,
                "query": lucene,
                "group_ids": group_ids,
                "limit": limit,
            },
        )
        return [(_record_to_edge(EdgeKind.ENTITY, r["e"]), r["score"]) for r in records]

    async def edge_bfs_search(
        self,
        origin_node_uuids: list[str],
        group_ids: list[str],
        max_depth: int = 2,
        limit: int = 50,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, int]]:
        if not origin_node_uuids or not group_ids:
            return []
        eligibility, eligibility_params = _eligibility("r", as_of)
        filter_clauses, params = _search_filter_clauses("r", EdgeKind.ENTITY, filters)
        path_predicate = " AND ".join(["r.group_id IN $group_ids", eligibility, *filter_clauses])
        records = await self._query(
            f"MATCH p = (origin:Entity)-[:RELATES_TO*1..{int(max_depth)}]-(:Entity) "
            f"WHERE origin.uuid IN $origins AND all(r IN relationships(p) WHERE {path_predicate}) "
            "WITH relationships(p) AS rels "
            "UNWIND range(0, size(rels) - 1) AS i "
            "WITH rels[i] AS e, min(i + 1) AS hops "
            "MATCH (s:Entity)-[e]->(t:Entity) "
            f"RETURN {EDGE_PROJECTION}, hops ORDER BY hops, e.uuid LIMIT $limit",
            {
                **params,
                **eligibility_params,
                "origins": origin_node_uuids,
                "group_ids": group_ids,
                "limit": limit,
            },
        )
        return [(_record_to_edge(EdgeKind.ENTITY, r["e"]), r["hops"]) for r in records]

    async def node_bfs_search(
        self,
        origin_node_uuids: list[str],
        group_ids: list[str],
        max_depth: int = 2,
        limit: int = 50,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, int]]:
        if not origin_node_uuids or not group_ids:
            return []
        clauses, params = _search_filter_clauses("n", NodeKind.ENTITY, filters)
        clauses = [
            "origin.uuid IN $origins",
            "NOT n.uuid IN $origins",
            "n.group_id IN $group_ids",
            "all(r IN relationships(p) WHERE r.group_id IN $group_ids AND r.invalid_at IS NULL)",
            *clauses,
        ]
        records = await self._query(
            f"MATCH p = (origin:Entity)-[:RELATES_TO*1..{int(max_depth)}]-(n:Entity)"
            f"{_where_cypher(clauses)} "
            "WITH n, min(length(p)) AS hops "
            "RETURN n {.*} AS n, hops ORDER BY hops, n.uuid LIMIT $limit",
            {**params, "origins": origin_node_uuids, "group_ids": group_ids, "limit": limit},
        )
        return [(_record_to_node(NodeKind.ENTITY, r["n"]), r["hops"]) for r in records]
