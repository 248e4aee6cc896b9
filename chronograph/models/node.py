"""
Graph node models.

Three node variants share one small capability set (uuid, group_id,
created_at) through GraphNode; everything else is per-variant data.
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chronograph.utils.datetime_utils import ensure_utc, utc_now
from chronograph.utils.id_generator import generate_uuid


class NodeKind(str, Enum):
    """Storage kind of a node."""

    ENTITY = "entity"
    EPISODIC = "episodic"
    COMMUNITY = "community"


class EpisodeType(str, Enum):
    """Source kind of an episode."""

    TEXT = "text"
    JSON = "json"
    MESSAGE = "message"


class GraphNode(BaseModel):
    """Fields every node carries."""

    kind: ClassVar[NodeKind]

    model_config = ConfigDict(json_encoders={datetime: lambda v: v.isoformat()})

    uuid: str = Field(default_factory=generate_uuid)
    name: str = ""
    group_id: str
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", mode="after")
    @classmethod
    def _utc_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class EntityNode(GraphNode):
    """
    A real-world entity (person, place, organization, concept).

    The uuid is a stable identity: later mentions resolve onto it and may
    refresh summary, labels and embedding, never the uuid.
    """

    kind: ClassVar[NodeKind] = NodeKind.ENTITY

    labels: list[str] = Field(default_factory=lambda: ["Entity"])
    summary: str = ""
    name_embedding: list[float] = Field(default_factory=list)


class EpisodicNode(GraphNode):
    """
    One unit of raw input. Immutable once created.

    reference_time is when the content happened, which is what validity is
    keyed on; created_at is when it was ingested.
    """

    kind: ClassVar[NodeKind] = NodeKind.EPISODIC
    model_config = ConfigDict(frozen=True)

    source: EpisodeType = EpisodeType.TEXT
    source_description: str = ""
    content: str
    reference_time: datetime = Field(default_factory=utc_now)

    @field_validator("reference_time", mode="after")
    @classmethod
    def _utc_reference_time(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class CommunityNode(GraphNode):
    """A derived cluster of entities with an LLM-written summary."""

    kind: ClassVar[NodeKind] = NodeKind.COMMUNITY

    summary: str = ""
    name_embedding: list[float] = Field(default_factory=list)
    member_uuids: list[str] = Field(default_factory=list)


AnyNode = EntityNode | EpisodicNode | CommunityNode
