"""
Services for ChronoGraph.

High-level business logic services:
- TemporalGraph: Unified interface for all graph operations
- IngestionPipeline: Episode extraction, resolution and atomic commit
- Deduplicator: Entity and fact resolution
- TemporalInvalidator: Closes the validity of contradicted facts
- HybridSearchEngine: Fused semantic, lexical and graph search
- CommunityBuilder: Community detection and summaries
"""

from chronograph.services.communities import CommunityBuilder
from chronograph.services.deduplicator import Deduplicator
from chronograph.services.graph_engine import TemporalGraph
from chronograph.services.ingestion import IngestionPipeline
from chronograph.services.search import HybridSearchEngine
from chronograph.services.temporal_invalidator import TemporalInvalidator

__all__ = [
    "TemporalGraph",
    "IngestionPipeline",
    "Deduplicator",
    "TemporalInvalidator",
    "HybridSearchEngine",
    "CommunityBuilder",
]
