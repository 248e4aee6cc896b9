"""
Episode ingestion input and result models.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from chronograph.models.edge import EntityEdge, EpisodicEdge
from chronograph.models.node import EntityNode, EpisodeType, EpisodicNode
from chronograph.utils.datetime_utils import ensure_utc


class RawEpisode(BaseModel):
    """One episode queued for add_episodes_bulk()."""

    name: str
    body: str
    source: EpisodeType = EpisodeType.TEXT
    source_description: str = ""
    reference_time: datetime | None = None

    @field_validator("reference_time", mode="after")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class AddEpisodeResult(BaseModel):
    """
    Result of add_episode().

    affected_edge_uuids covers new facts, facts that gained this episode as
    an attestation, and facts this episode invalidated.
    """

    episode: EpisodicNode
    nodes: list[EntityNode] = Field(default_factory=list, description="Resolved entities")
    edges: list[EntityEdge] = Field(default_factory=list, description="New or merged facts")
    invalidated_edges: list[EntityEdge] = Field(default_factory=list)
    episodic_edges: list[EpisodicEdge] = Field(default_factory=list)
    affected_edge_uuids: list[str] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, ge=0)
