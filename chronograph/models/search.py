"""Search request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from chronograph.models.edge import EntityEdge
from chronograph.models.node import CommunityNode, EntityNode, EpisodicNode
from chronograph.utils.datetime_utils import ensure_utc


class SearchFilters(BaseModel):
    """Optional narrowing applied inside every retrieval channel."""

    edge_types: list[str] | None = Field(default=None, description="Relation names to keep")
    node_labels: list[str] | None = Field(default=None, description="Entity labels to keep")
    created_after: datetime | None = None
    created_before: datetime | None = None

    @field_validator("created_after", "created_before", mode="after")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class SearchConfig(BaseModel):
    """Tuning knobs for hybrid search."""

    limit: int = Field(default=10, ge=1)
    channel_limit: int = Field(default=50, ge=1, description="Top-N per retrieval channel")
    rrf_k: float = Field(default=60.0, gt=0, description="Constant c in 1/(rank + c)")
    sim_min_score: float = Field(default=0.0, ge=-1.0, le=1.0)
    bfs_max_depth: int = Field(default=2, ge=1, le=5)
    mmr_lambda: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Apply MMR diversification when set"
    )
    use_cross_encoder: bool = True
    rerank_top_m: int = Field(default=20, ge=1)
    include_edges: bool = True
    include_nodes: bool = True
    include_communities: bool = False
    include_episodes: bool = False
    edge_reranker: Literal["rrf", "episode_mentions"] = Field(
        default="rrf",
        description="episode_mentions orders facts by attesting episode count, RRF breaking ties",
    )


class ScoredEdge(BaseModel):
    """A ranked fact."""

    edge: EntityEdge
    score: float


class ScoredNode(BaseModel):
    """A ranked entity."""

    node: EntityNode
    score: float


class ScoredCommunity(BaseModel):
    """A ranked community."""

    community: CommunityNode
    score: float


class ScoredEpisode(BaseModel):
    """A ranked episode."""

    episode: EpisodicNode
    score: float


class SearchResults(BaseModel):
    """Ranked results of one search call."""

    query: str
    as_of: datetime | None = None
    edges: list[ScoredEdge] = Field(default_factory=list)
    nodes: list[ScoredNode] = Field(default_factory=list)
    communities: list[ScoredCommunity] = Field(default_factory=list)
    episodes: list[ScoredEpisode] = Field(default_factory=list)

    @property
    def facts(self) -> list[str]:
        return [scored.edge.fact for scored in self.edges]
