"""
Shared test fixtures for graph store tests.
"""

from datetime import UTC, datetime

import pytest

from chronograph.core.graph_store.neo4j_store import Neo4jGraphStore
from chronograph.models.edge import EntityEdge
from chronograph.models.node import EntityNode

GROUP = "group_store"


@pytest.fixture
def neo4j_store():
    """Create Neo4j store for testing (not connected)."""
    return Neo4jGraphStore(
        uri="bolt://localhost:7687",
        username="neo4j",
        password="password",
        database="neo4j",
    )


@pytest.fixture
def entity():
    """Build an EntityNode with a unit embedding along one axis."""

    def build(name: str, axis: int = 0, group_id: str = GROUP, labels=None) -> EntityNode:
        embedding = [0.0] * 4
        embedding[axis] = 1.0
        return EntityNode(
            name=name,
            group_id=group_id,
            labels=labels or ["Entity"],
            summary=f"{name} summary",
            name_embedding=embedding,
        )

    return build


@pytest.fixture
def fact():
    """Build an EntityEdge between two nodes."""

    def build(
        source: EntityNode,
        target: EntityNode,
        text: str,
        name: str = "RELATES_TO",
        embedding: list[float] | None = None,
        valid_at: datetime | None = None,
        invalid_at: datetime | None = None,
        episodes: list[str] | None = None,
    ) -> EntityEdge:
        return EntityEdge(
            group_id=source.group_id,
            source_node_uuid=source.uuid,
            target_node_uuid=target.uuid,
            name=name,
            fact=text,
            fact_embedding=embedding or [1.0, 0.0, 0.0, 0.0],
            valid_at=valid_at or datetime(2024, 1, 1, tzinfo=UTC),
            invalid_at=invalid_at,
            episodes=episodes or [],
        )

    return build
