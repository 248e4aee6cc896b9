"""
Data models for ChronoGraph.

Bi-temporal knowledge graph:
1. Episodes (raw input, immutable)
2. Entities and facts (entity nodes + entity edges with validity intervals)
3. Communities (derived clusters of entities)

Core models:
- EntityNode, EpisodicNode, CommunityNode: Node variants
- EntityEdge, EpisodicEdge: Fact and provenance edges
- ExtractionResult: What an extractor returns for one episode
- StoreFilter: Filter set for store get/delete operations
- SearchFilters, SearchConfig, SearchResults: Hybrid search
- AddEpisodeResult: Ingestion result
- RawEpisode: Bulk ingestion input
"""

from chronograph.models.edge import AnyEdge, EdgeKind, EntityEdge, EpisodicEdge
from chronograph.models.extraction import (
    ExtractedEdgeDates,
    ExtractedEntity,
    ExtractedRelation,
    ExtractionResult,
)
from chronograph.models.filters import StoreFilter
from chronograph.models.ingestion import AddEpisodeResult, RawEpisode
from chronograph.models.node import (
    AnyNode,
    CommunityNode,
    EntityNode,
    EpisodeType,
    EpisodicNode,
    NodeKind,
)
from chronograph.models.search import (
    ScoredCommunity,
    ScoredEpisode,
    ScoredEdge,
    ScoredNode,
    SearchConfig,
    SearchFilters,
    SearchResults,
)

__all__ = [
    # Nodes
    "NodeKind",
    "EpisodeType",
    "EntityNode",
    "EpisodicNode",
    "CommunityNode",
    "AnyNode",
    # Edges
    "EdgeKind",
    "EntityEdge",
    "EpisodicEdge",
    "AnyEdge",
    # Extraction
    "ExtractedEntity",
    "ExtractedRelation",
    "ExtractedEdgeDates",
    "ExtractionResult",
    # Store
    "StoreFilter",
    # Search
    "SearchFilters",
    "SearchConfig",
    "SearchResults",
    "ScoredEdge",
    "ScoredNode",
    "ScoredCommunity",
    "ScoredEpisode",
    # Ingestion
    "AddEpisodeResult",
    "RawEpisode",
]
