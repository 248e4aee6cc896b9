"""
SQLite graph store implementation.

Embedded backend using aiosqlite:
- WAL journal, so readers see the last committed snapshot while a write
  transaction is open
- One dedicated connection per write transaction (BEGIN IMMEDIATE)
- FTS5 tables with bm25 ranking for lexical search
- Cosine similarity over JSON-stored embeddings computed with numpy
"""

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import numpy as np

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
from chronograph.utils.datetime_utils import parse_datetime, to_iso
from chronograph.utils.exceptions import GraphStoreError
from chronograph.utils.logger import get_logger
from chronograph.utils.similarity import cosine_similarity_matrix
from chronograph.utils.text import normalize_name, search_tokens

logger = get_logger(__name__)

# Max bound parameters per IN (...) chunk
_CHUNK = 500

NODE_TABLES = {
    NodeKind.ENTITY: "entity_nodes",
    NodeKind.EPISODIC: "episodic_nodes",
    NodeKind.COMMUNITY: "community_nodes",
}

EDGE_TABLES = {
    EdgeKind.ENTITY: "entity_edges",
    EdgeKind.EPISODIC: "episodic_edges",
}

FTS_TABLES = {
    "entity_nodes": "entity_nodes_fts",
    "episodic_nodes": "episodic_nodes_fts",
    "community_nodes": "community_nodes_fts",
    "entity_edges": "entity_edges_fts",
}

# Indexed text columns, in FTS column order
FTS_COLUMNS = {
    "entity_nodes": ("name", "summary"),
    "episodic_nodes": ("name", "content"),
    "community_nodes": ("name", "summary"),
    "entity_edges": ("name", "fact"),
}

SCHEMA = """
CREATE TABLE IF NOT EXISTS entity_nodes (
    uuid TEXT PRIMARY KEY,
    group_id TEXT NOT NULL,
    name TEXT NOT NULL,
    name_key TEXT NOT NULL,
    labels TEXT NOT NULL DEFAULT '[]',
    summary TEXT NOT NULL DEFAULT '',
    name_embedding TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entity_nodes_group ON entity_nodes(group_id);
CREATE INDEX IF NOT EXISTS idx_entity_nodes_name_key ON entity_nodes(group_id, name_key);

CREATE TABLE IF NOT EXISTS episodic_nodes (
    uuid TEXT PRIMARY KEY,
    group_id TEXT NOT NULL,
    name TEXT NOT NULL,
    source TEXT NOT NULL,
    source_description TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL,
    reference_time TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_episodic_nodes_group_time ON episodic_nodes(group_id, reference_time);

CREATE TABLE IF NOT EXISTS community_nodes (
    uuid TEXT PRIMARY KEY,
    group_id TEXT NOT NULL,
    name TEXT NOT NULL,
    name_key TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    name_embedding TEXT,
    member_uuids TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_community_nodes_group ON community_nodes(group_id);

CREATE TABLE IF NOT EXISTS entity_edges (
    uuid TEXT PRIMARY KEY,
    group_id TEXT NOT NULL,
    source_node_uuid TEXT NOT NULL,
    target_node_uuid TEXT NOT NULL,
    name TEXT NOT NULL,
    fact TEXT NOT NULL,
    fact_embedding TEXT,
    episodes TEXT NOT NULL DEFAULT '[]',
    valid_at TEXT NOT NULL,
    invalid_at TEXT,
    expired_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entity_edges_group ON entity_edges(group_id, invalid_at);
CREATE INDEX IF NOT EXISTS idx_entity_edges_source ON entity_edges(source_node_uuid);
CREATE INDEX IF NOT EXISTS idx_entity_edges_target ON entity_edges(target_node_uuid);

CREATE TABLE IF NOT EXISTS episodic_edges (
    uuid TEXT PRIMARY KEY,
    group_id TEXT NOT NULL,
    source_node_uuid TEXT NOT NULL,
    target_node_uuid TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_episodic_edges_source ON episodic_edges(source_node_uuid);
CREATE INDEX IF NOT EXISTS idx_episodic_edges_target ON episodic_edges(target_node_uuid);

CREATE VIRTUAL TABLE IF NOT EXISTS entity_nodes_fts USING fts5(
    uuid UNINDEXED, group_id UNINDEXED, name, summary
);
CREATE VIRTUAL TABLE IF NOT EXISTS episodic_nodes_fts USING fts5(
    uuid UNINDEXED, group_id UNINDEXED, name, content
);
CREATE VIRTUAL TABLE IF NOT EXISTS community_nodes_fts USING fts5(
    uuid UNINDEXED, group_id UNINDEXED, name, summary
);
CREATE VIRTUAL TABLE IF NOT EXISTS entity_edges_fts USING fts5(
    uuid UNINDEXED, group_id UNINDEXED, name, fact
);
"""


def _chunks(items: list[Any], size: int = _CHUNK) -> Iterable[list[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


def _dump_embedding(embedding: list[float]) -> str | None:
    return json.dumps(embedding) if embedding else None


def _load_embedding(value: str | None) -> list[float]:
    return json.loads(value) if value else []


def _fts_query(query: str) -> str | None:
    """Quote each word token and OR them, so user text can't inject FTS syntax."""
    tokens = search_tokens(query)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


def _time_column(table: str) -> str:
    if table == "entity_edges":
        return "valid_at"
    if table == "episodic_nodes":
        return "reference_time"
    return "created_at"


def _build_where(table: str, f: StoreFilter | None) -> tuple[list[str], list[Any]]:
    """Translate a StoreFilter into SQL clauses for one table."""
    clauses: list[str] = []
    params: list[Any] = []
    if f is None:
        return clauses, params

    def in_clause(column: str, values: list[str]) -> None:
        if not values:
            clauses.append("0")
            return
        clauses.append(f"{table}.{column} IN ({_placeholders(len(values))})")
        params.extend(values)

    if f.uuids is not None:
        in_clause("uuid", f.uuids)
    if f.group_ids is not None:
        in_clause("group_id", f.group_ids)

    is_edge = table in EDGE_TABLES.values()
    if is_edge:
        if f.node_pair is not None:
            a, b = f.node_pair
            clauses.append(
                f"(({table}.source_node_uuid = ? AND {table}.target_node_uuid = ?) "
                f"OR ({table}.source_node_uuid = ? AND {table}.target_node_uuid = ?))"
            )
            params.extend([a, b, b, a])
        if f.node_uuid is not None:
            clauses.append(f"({table}.source_node_uuid = ? OR {table}.target_node_uuid = ?)")
            params.extend([f.node_uuid, f.node_uuid])
        if f.episode_uuid is not None:
            if table == "entity_edges":
                clauses.append(
                    f"EXISTS (SELECT 1 FROM json_each({table}.episodes) WHERE value = ?)"
                )
            else:
                clauses.append(f"{table}.source_node_uuid = ?")
            params.append(f.episode_uuid)
        if f.current_only and table == "entity_edges":
            clauses.append(f"{table}.invalid_at IS NULL")
    elif f.names is not None and table in ("entity_nodes", "community_nodes"):
        in_clause("name_key", sorted({normalize_name(name) for name in f.names}))

    time_column = _time_column(table)
    if f.time_start is not None:
        clauses.append(f"{table}.{time_column} >= ?")
        params.append(to_iso(f.time_start))
    if f.time_end is not None:
        clauses.append(f"{table}.{time_column} <= ?")
        params.append(to_iso(f.time_end))

    return clauses, params


def _eligibility(as_of: datetime | None, table: str = "entity_edges") -> tuple[str, list[Any]]:
    if as_of is None:
        return f"{table}.invalid_at IS NULL", []
    stamp = to_iso(as_of)
    return (
        f"{table}.valid_at <= ? AND ({table}.invalid_at IS NULL OR {table}.invalid_at > ?)",
        [stamp, stamp],
    )


def _search_filter_clauses(table: str, filters: SearchFilters | None) -> tuple[list[str], list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if filters is None:
        return clauses, params

    if filters.edge_types and table == "entity_edges":
        clauses.append(f"{table}.name IN ({_placeholders(len(filters.edge_types))})")
        params.extend(filters.edge_types)
    if filters.node_labels and table == "entity_nodes":
        clauses.append(
            f"EXISTS (SELECT 1 FROM json_each({table}.labels) "
            f"WHERE value IN ({_placeholders(len(filters.node_labels))}))"
        )
        params.extend(filters.node_labels)
    if filters.created_after is not None:
        clauses.append(f"{table}.created_at >= ?")
        params.append(to_iso(filters.created_after))
    if filters.created_before is not None:
        clauses.append(f"{table}.created_at <= ?")
        params.append(to_iso(filters.created_before))

    return clauses, params


def _where_sql(clauses: list[str]) -> str:
    return f" WHERE {' AND '.join(clauses)}" if clauses else ""


# ═══════════════════════════════════════════════════════════
# ROW MAPPING
# ═══════════════════════════════════════════════════════════


def _node_to_row(node: AnyNode) -> tuple[str, dict[str, Any]]:
    base = {
        "uuid": node.uuid,
        "group_id": node.group_id,
        "name": node.name,
        "created_at": to_iso(node.created_at),
    }
    if isinstance(node, EntityNode):
        return "entity_nodes", {
            **base,
            "name_key": normalize_name(node.name),
            "labels": json.dumps(node.labels),
            "summary": node.summary,
            "name_embedding": _dump_embedding(node.name_embedding),
        }
    if isinstance(node, EpisodicNode):
        return "episodic_nodes", {
            **base,
            "source": node.source.value,
            "source_description": node.source_description,
            "content": node.content,
            "reference_time": to_iso(node.reference_time),
        }
    if isinstance(node, CommunityNode):
        return "community_nodes", {
            **base,
            "name_key": normalize_name(node.name),
            "summary": node.summary,
            "name_embedding": _dump_embedding(node.name_embedding),
            "member_uuids": json.dumps(node.member_uuids),
        }
    raise GraphStoreError(f"Unsupported node type: {type(node).__name__}")


def _edge_to_row(edge: AnyEdge) -> tuple[str, dict[str, Any]]:
    base = {
        "uuid": edge.uuid,
        "group_id": edge.group_id,
        "source_node_uuid": edge.source_node_uuid,
        "target_node_uuid": edge.target_node_uuid,
        "created_at": to_iso(edge.created_at),
    }
    if isinstance(edge, EntityEdge):
        return "entity_edges", {
            **base,
            "name": edge.name,
            "fact": edge.fact,
            "fact_embedding": _dump_embedding(edge.fact_embedding),
            "episodes": json.dumps(edge.episodes),
            "valid_at": to_iso(edge.valid_at),
            "invalid_at": to_iso(edge.invalid_at),
            "expired_at": to_iso(edge.expired_at),
        }
    if isinstance(edge, EpisodicEdge):
        return "episodic_edges", base
    raise GraphStoreError(f"Unsupported edge type: {type(edge).__name__}")


def _row_to_node(table: str, row: aiosqlite.Row) -> AnyNode:
    if table == "entity_nodes":
        return EntityNode(
            uuid=row["uuid"],
            group_id=row["group_id"],
            name=row["name"],
            labels=json.loads(row["labels"]),
            summary=row["summary"],
            name_embedding=_load_embedding(row["name_embedding"]),
            created_at=parse_datetime(row["created_at"]),
        )
    if table == "episodic_nodes":
        return EpisodicNode(
            uuid=row["uuid"],
            group_id=row["group_id"],
            name=row["name"],
            source=EpisodeType(row["source"]),
            source_description=row["source_description"],
            content=row["content"],
            reference_time=parse_datetime(row["reference_time"]),
            created_at=parse_datetime(row["created_at"]),
        )
    return CommunityNode(
        uuid=row["uuid"],
        group_id=row["group_id"],
        name=row["name"],
        summary=row["summary"],
        name_embedding=_load_embedding(row["name_embedding"]),
        member_uuids=json.loads(row["member_uuids"]),
        created_at=parse_datetime(row["created_at"]),
    )


def _row_to_edge(table: str, row: aiosqlite.Row) -> AnyEdge:
    if table == "entity_edges":
        return EntityEdge(
            uuid=row["uuid"],
            group_id=row["group_id"],
            source_node_uuid=row["source_node_uuid"],
            target_node_uuid=row["target_node_uuid"],
            name=row["name"],
            fact=row["fact"],
            fact_embedding=_load_embedding(row["fact_embedding"]),
            episodes=json.loads(row["episodes"]),
            valid_at=parse_datetime(row["valid_at"]),
            invalid_at=parse_datetime(row["invalid_at"]),
            expired_at=parse_datetime(row["expired_at"]),
            created_at=parse_datetime(row["created_at"]),
        )
    return EpisodicEdge(
        uuid=row["uuid"],
        group_id=row["group_id"],
        source_node_uuid=row["source_node_uuid"],
        target_node_uuid=row["target_node_uuid"],
        created_at=parse_datetime(row["created_at"]),
    )


def _upsert_sql(table: str, columns: list[str]) -> str:
    insert = (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({_placeholders(len(columns))})"
    )
    if table in ("episodic_nodes", "episodic_edges"):
        return f"{insert} ON CONFLICT(uuid) DO NOTHING"
    if table == "entity_edges":
        # invalid_at only moves earlier; expired_at is write-once
        return (
            f"{insert} ON CONFLICT(uuid) DO UPDATE SET "
            "episodes = excluded.episodes, "
            "fact_embedding = COALESCE(excluded.fact_embedding, entity_edges.fact_embedding), "
            "invalid_at = COALESCE(MIN(entity_edges.invalid_at, excluded.invalid_at), "
            "entity_edges.invalid_at, excluded.invalid_at), "
            "expired_at = COALESCE(entity_edges.expired_at, excluded.expired_at)"
        )
    updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c not in ("uuid", "created_at"))
    return f"{insert} ON CONFLICT(uuid) DO UPDATE SET {updates}"


# ═══════════════════════════════════════════════════════════
# WRITER
# ═══════════════════════════════════════════════════════════


class SQLiteGraphWriter(GraphWriter):
    """Writer bound to a dedicated connection holding BEGIN IMMEDIATE."""

    def __init__(self, connection: aiosqlite.Connection):
        super().__init__()
        self.connection = connection

    async def _execute(self, sql: str, params: Iterable[Any] = ()) -> aiosqlite.Cursor:
        try:
            return await self.connection.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise GraphStoreError(f"SQLite write failed: {e}", context={"sql": sql[:120]}) from e

    async def _save_nodes(self, nodes: list[AnyNode]) -> None:
        for node in nodes:
            table, row = _node_to_row(node)
            columns = list(row)
            cursor = await self._execute(_upsert_sql(table, columns), [row[c] for c in columns])
            # rowcount is 0 when an insert-only row already existed
            if table in FTS_TABLES and cursor.rowcount:
                await self._refresh_fts(table, row)

    async def _save_edges(self, edges: list[AnyEdge]) -> None:
        await self._check_endpoints(edges)
        for edge in edges:
            table, row = _edge_to_row(edge)
            columns = list(row)
            await self._execute(_upsert_sql(table, columns), [row[c] for c in columns])
            if table in FTS_TABLES:
                await self._refresh_fts(table, row)

    async def _refresh_fts(self, table: str, row: dict[str, Any]) -> None:
        fts = FTS_TABLES[table]
        texts = [row[column] for column in FTS_COLUMNS[table]]
        await self._execute(f"DELETE FROM {fts} WHERE uuid = ?", [row["uuid"]])
        await self._execute(
            f"INSERT INTO {fts} VALUES ({_placeholders(2 + len(texts))})",
            [row["uuid"], row["group_id"], *texts],
        )

    async def _existing_uuids(self, tables: list[str], uuids: set[str]) -> set[str]:
        found: set[str] = set()
        for table in tables:
            for chunk in _chunks(sorted(uuids)):
                cursor = await self._execute(
                    f"SELECT uuid FROM {table} WHERE uuid IN ({_placeholders(len(chunk))})", chunk
                )
                found.update(row[0] for row in await cursor.fetchall())
        return found

    async def _check_endpoints(self, edges: list[AnyEdge]) -> None:
        entity_refs: set[str] = set()
        episode_refs: set[str] = set()
        mention_refs: set[str] = set()
        for edge in edges:
            if isinstance(edge, EntityEdge):
                entity_refs.update((edge.source_node_uuid, edge.target_node_uuid))
            else:
                episode_refs.add(edge.source_node_uuid)
                mention_refs.add(edge.target_node_uuid)

        missing = entity_refs - await self._existing_uuids(["entity_nodes"], entity_refs)
        missing |= episode_refs - await self._existing_uuids(["episodic_nodes"], episode_refs)
        missing |= mention_refs - await self._existing_uuids(
            ["entity_nodes", "community_nodes"], mention_refs
        )
        if missing:
            raise GraphStoreError(
                "Edge references nodes that do not exist",
                context={"missing_node_uuids": sorted(missing)},
            )

    async def _select_uuids(self, table: str, f: StoreFilter) -> list[str]:
        clauses, params = _build_where(table, f)
        sql = f"SELECT uuid FROM {table}{_where_sql(clauses)}"
        if f.limit is not None:
            sql += f" LIMIT {int(f.limit)}"
        cursor = await self._execute(sql, params)
        return [row[0] for row in await cursor.fetchall()]

    async def _delete_uuids(self, table: str, uuids: list[str]) -> None:
        for chunk in _chunks(uuids):
            marks = _placeholders(len(chunk))
            await self._execute(f"DELETE FROM {table} WHERE uuid IN ({marks})", chunk)
            if table in FTS_TABLES:
                await self._execute(f"DELETE FROM {FTS_TABLES[table]} WHERE uuid IN ({marks})", chunk)

    async def _delete_incident(self, table: str, column: str, node_uuids: list[str]) -> None:
        for chunk in _chunks(node_uuids):
            cursor = await self._execute(
                f"SELECT uuid FROM {table} WHERE {column} IN ({_placeholders(len(chunk))})", chunk
            )
            await self._delete_uuids(table, [row[0] for row in await cursor.fetchall()])

    async def _delete_nodes(self, kind: NodeKind, filter: StoreFilter) -> int:
        table = NODE_TABLES[kind]
        uuids = await self._select_uuids(table, filter)
        if not uuids:
            return 0

        if kind == NodeKind.EPISODIC:
            await self._delete_incident("episodic_edges", "source_node_uuid", uuids)
        else:
            await self._delete_incident("episodic_edges", "target_node_uuid", uuids)
        if kind == NodeKind.ENTITY:
            await self._delete_incident("entity_edges", "source_node_uuid", uuids)
            await self._delete_incident("entity_edges", "target_node_uuid", uuids)

        await self._delete_uuids(table, uuids)
        return len(uuids)

    async def _delete_edges(self, kind: EdgeKind, filter: StoreFilter) -> int:
        table = EDGE_TABLES[kind]
        uuids = await self._select_uuids(table, filter)
        await self._delete_uuids(table, uuids)
        return len(uuids)

    async def commit(self) -> None:
        try:
            await self.connection.execute("COMMIT")
        except sqlite3.Error as e:
            raise GraphStoreError(f"SQLite commit failed: {e}") from e

    async def rollback(self) -> None:
        await self.connection.execute("ROLLBACK")

    async def close(self) -> None:
        await self.connection.close()


# ═══════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════


class SQLiteGraphStore(GraphStore):
    """
    SQLite-based temporal graph store.

    Features:
    - Zero-dependency local storage
    - Snapshot reads concurrent with a write transaction (WAL)
    - FTS5 full-text search
    - In-process cosine similarity search
    """

    def __init__(self, db_path: str = "data/chronograph.db", busy_timeout: float = 30.0):
        """
        Initialize SQLite graph store.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds a connection waits on a locked database
        """
        super().__init__()
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.connection: aiosqlite.Connection | None = None

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def _open_connection(self) -> aiosqlite.Connection:
        connection = await aiosqlite.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        )
        connection.row_factory = aiosqlite.Row
        await connection.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout * 1000)}")
        return connection

    async def connect(self) -> None:
        """Open the shared read connection."""
        if self.connection is None:
            try:
                self.connection = await self._open_connection()
                await self.connection.execute("PRAGMA journal_mode = WAL")
            except sqlite3.Error as e:
                logger.bind(db_path=self.db_path).error(f"Failed to open SQLite database: {e}")
                raise GraphStoreError(f"Failed to open SQLite database: {e}") from e

    async def ensure_indices_and_constraints(self) -> None:
        await self.connect()
        try:
            await self.connection.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise GraphStoreError(f"Failed to create SQLite schema: {e}") from e

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    async def _open_writer(self) -> GraphWriter:
        await self.connect()
        connection = await self._open_connection()
        try:
            await connection.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            await connection.close()
            raise GraphStoreError(f"Failed to begin SQLite transaction: {e}") from e
        return SQLiteGraphWriter(connection)

    async def _fetch(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        await self.connect()
        try:
            cursor = await self.connection.execute(sql, tuple(params))
            return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise GraphStoreError(f"SQLite read failed: {e}", context={"sql": sql[:120]}) from e

    # ═══════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════

    async def _select(self, table: str, f: StoreFilter | None) -> list[aiosqlite.Row]:
        clauses, params = _build_where(table, f)
        direction = "DESC" if f is None or f.newest_first else "ASC"
        sql = (
            f"SELECT * FROM {table}{_where_sql(clauses)} "
            f"ORDER BY {table}.{_time_column(table)} {direction}, {table}.uuid"
        )
        if f is not None and f.limit is not None:
            sql += f" LIMIT {int(f.limit)}"
        return await self._fetch(sql, params)

    async def get_nodes(self, kind: NodeKind, filter: StoreFilter | None = None) -> list[AnyNode]:
        table = NODE_TABLES[kind]
        return [_row_to_node(table, row) for row in await self._select(table, filter)]

    async def get_edges(self, kind: EdgeKind, filter: StoreFilter | None = None) -> list[AnyEdge]:
        table = EDGE_TABLES[kind]
        return [_row_to_edge(table, row) for row in await self._select(table, filter)]

    # ═══════════════════════════════════════════════════════════
    # SEARCH PRIMITIVES
    # ═══════════════════════════════════════════════════════════

    async def _candidate_rows(
        self,
        table: str,
        group_ids: list[str],
        filters: SearchFilters | None,
        as_of: datetime | None = None,
        extra_clauses: list[str] | None = None,
        extra_params: list[Any] | None = None,
    ) -> list[aiosqlite.Row]:
        if not group_ids:
            return []
        clauses, params = _build_where(table, StoreFilter(group_ids=group_ids))
        if table == "entity_edges":
            eligibility, eligibility_params = _eligibility(as_of)
            clauses.append(eligibility)
            params.extend(eligibility_params)
        filter_clauses, filter_params = _search_filter_clauses(table, filters)
        clauses.extend(filter_clauses)
        params.extend(filter_params)
        clauses.extend(extra_clauses or [])
        params.extend(extra_params or [])
        return await self._fetch(f"SELECT * FROM {table}{_where_sql(clauses)}", params)

    def _rank_by_similarity(
        self,
        rows: list[aiosqlite.Row],
        column: str,
        embedding: list[float],
        limit: int,
        min_score: float,
    ) -> list[tuple[aiosqlite.Row, float]]:
        rows = [row for row in rows if row[column]]
        if not rows or not embedding:
            return []
        scores = cosine_similarity_matrix(embedding, [json.loads(row[column]) for row in rows])
        order = np.argsort(-scores, kind="stable")
        ranked = [(rows[i], float(scores[i])) for i in order if scores[i] >= min_score]
        return ranked[:limit]

    async def node_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, float]]:
        rows = await self._candidate_rows("entity_nodes", group_ids, filters)
        return [
            (_row_to_node("entity_nodes", row), score)
            for row, score in self._rank_by_similarity(rows, "name_embedding", embedding, limit, min_score)
        ]

    async def edge_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, float]]:
        rows = await self._candidate_rows("entity_edges", group_ids, filters, as_of)
        return [
            (_row_to_edge("entity_edges", row), score)
            for row, score in self._rank_by_similarity(rows, "fact_embedding", embedding, limit, min_score)
        ]

    async def community_similarity_search(
        self,
        embedding: list[float],
        group_ids: list[str],
        limit: int = 50,
        min_score: float = 0.0,
    ) -> list[tuple[CommunityNode, float]]:
        rows = await self._candidate_rows("community_nodes", group_ids, None)
        return [
            (_row_to_node("community_nodes", row), score)
            for row, score in self._rank_by_similarity(rows, "name_embedding", embedding, limit, min_score)
        ]

    async def _fulltext(
        self,
        table: str,
        query: str,
        group_ids: list[str],
        limit: int,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[aiosqlite.Row, float]]:
        match = _fts_query(query)
        if match is None or not group_ids:
            return []

        fts = FTS_TABLES[table]
        clauses = [f"{fts} MATCH ?"]
        params: list[Any] = [match]
        scope = StoreFilter(
            group_ids=group_ids, time_end=as_of if table == "episodic_nodes" else None
        )
        group_clauses, group_params = _build_where(table, scope)
        clauses.extend(group_clauses)
        params.extend(group_params)
        if table == "entity_edges":
            eligibility, eligibility_params = _eligibility(as_of)
            clauses.append(eligibility)
            params.extend(eligibility_params)
        filter_clauses, filter_params = _search_filter_clauses(table, filters)
        clauses.extend(filter_clauses)
        params.extend(filter_params)

        # bm25() is lower-is-better; negate so callers sort descending
        sql = (
            f"SELECT {table}.*, -bm25({fts}) AS score FROM {fts} "
            f"JOIN {table} ON {table}.uuid = {fts}.uuid"
            f"{_where_sql(clauses)} ORDER BY bm25({fts}), {table}.uuid LIMIT {int(limit)}"
        )
        rows = await self._fetch(sql, params)
        return [(row, float(row["score"])) for row in rows]

    async def node_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        filters: SearchFilters | None = None,
    ) -> list[tuple[EntityNode, float]]:
        rows = await self._fulltext("entity_nodes", query, group_ids, limit, filters)
        return [(_row_to_node("entity_nodes", row), score) for row, score in rows]

    async def edge_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        filters: SearchFilters | None = None,
        as_of: datetime | None = None,
    ) -> list[tuple[EntityEdge, float]]:
        rows = await self._fulltext("entity_edges", query, group_ids, limit, filters, as_of)
        return [(_row_to_edge("entity_edges", row), score) for row, score in rows]

    async def community_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
    ) -> list[tuple[CommunityNode, float]]:
        rows = await self._fulltext("community_nodes", query, group_ids, limit)
        return [(_row_to_node("community_nodes", row), score) for row, score in rows]

    async def episode_fulltext_search(
        self,
        query: str,
        group_ids: list[str],
        limit: int = 50,
        as_of: datetime | None = None,
    ) -> list[tuple[EpisodicNode, float]]:
        rows = await self._fulltext("episodic_nodes", query, group_ids, limit, as_of=as_of)
        return [(_row_to_node("episodic_nodes", row), score) for row, score in rows]

    async def _incident_rows(
        self,
        node_uuids: list[str],
        group_ids: list[str],
        filters: SearchFilters | None,
        as_of: datetime | None,
    ) -> list[aiosqlite.Row]:
        rows: list[aiosqlite.Row] = []
        for chunk in _chunks(node_uuids, _CHUNK // 2):
            marks = _placeholders(len(chunk))
            rows.extend(
                await self._candidate_rows(
                    "entity_edges",
                    group_ids,
                    filters,
                    as_of,
                    [
                        f"(entity_edges.source_node_uuid IN ({marks}) "
                        f"OR entity_edges.target_node_uuid IN ({marks}))"
                    ],
                    [*chunk, *chunk],
                )
            )
        return rows

    async def _bfs(
        self,
        origin_node_uuids: list[str],
        group_ids: list[str],
        max_depth: int,
        filters: SearchFilters | None,
        as_of: datetime | None,
    ) -> tuple[dict[str, tuple[aiosqlite.Row, int]], dict[str, int]]:
        """Breadth-first walk. Returns first-hop maps for edges and nodes."""
        edge_hops: dict[str, tuple[aiosqlite.Row, int]] = {}
        node_hops: dict[str, int] = {uuid: 0 for uuid in origin_node_uuids}
        frontier = list(origin_node_uuids)

        for depth in range(1, max_depth + 1):
            if not frontier:
                break
            next_frontier: list[str] = []
            for row in await self._incident_rows(frontier, group_ids, filters, as_of):
                if row["uuid"] not in edge_hops:
                    edge_hops[row["uuid"]] = (row, depth)
                for endpoint in (row["source_node_uuid"], row["target_node_uuid"]):
                    if endpoint not in node_hops:
                        node_hops[endpoint] = depth
                        next_frontier.append(endpoint)
            frontier = next_frontier

        return edge_hops, node_hops

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
        edge_hops, _ = await self._bfs(origin_node_uuids, group_ids, max_depth, filters, as_of)
        ranked = sorted(edge_hops.values(), key=lambda item: (item[1], item[0]["uuid"]))
        return [(_row_to_edge("entity_edges", row), hops) for row, hops in ranked[:limit]]

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
        _, node_hops = await self._bfs(origin_node_uuids, group_ids, max_depth, None, None)
        reached = {uuid: hops for uuid, hops in node_hops.items() if hops > 0}
        if not reached:
            return []

        nodes = await self.get_nodes(
            NodeKind.ENTITY, StoreFilter(uuids=list(reached), group_ids=group_ids)
        )
        if filters and filters.node_labels:
            wanted = set(filters.node_labels)
            nodes = [node for node in nodes if wanted.intersection(node.labels)]
        nodes.sort(key=lambda node: (reached[node.uuid], node.uuid))
        return [(node, reached[node.uuid]) for node in nodes[:limit]]
