"""
Graph store implementations for ChronoGraph.

Provides abstract base and concrete implementations for temporal graph storage.

Available backends:
- SQLiteGraphStore: Embedded, zero-setup (aiosqlite + FTS5)
- Neo4jGraphStore: Server-backed graph database
"""

from chronograph.core.graph_store.base import GraphStore, GraphWriter
from chronograph.core.graph_store.neo4j_store import Neo4jGraphStore
from chronograph.core.graph_store.sqlite_store import SQLiteGraphStore

__all__ = [
    "GraphStore",
    "GraphWriter",
    "SQLiteGraphStore",
    "Neo4jGraphStore",
]
