"""
Graph edge models.

EntityEdge is a fact with bi-temporal validity. It is append-only with soft
invalidation: once created, only invalid_at/expired_at get set (invalid_at may
move earlier, never later or back to null) and attesting episodes get appended.
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chronograph.utils.datetime_utils import ensure_utc, utc_now
from chronograph.utils.id_generator import generate_uuid


class EdgeKind(str, Enum):
    """Storage kind of an edge."""

    ENTITY = "entity"
    EPISODIC = "episodic"


class GraphEdge(BaseModel):
    """Fields every edge carries."""

    kind: ClassVar[EdgeKind]

    model_config = ConfigDict(json_encoders={datetime: lambda v: v.isoformat()})

    uuid: str = Field(default_factory=generate_uuid)
    group_id: str
    source_node_uuid: str
    target_node_uuid: str
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", mode="after")
    @classmethod
    def _utc_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class EntityEdge(GraphEdge):
    """A fact relating two entities, valid over [valid_at, invalid_at)."""

    kind: ClassVar[EdgeKind] = EdgeKind.ENTITY

    name: str
    fact: str
    fact_embedding: list[float] = Field(default_factory=list)
    episodes: list[str] = Field(default_factory=list)
    valid_at: datetime = Field(default_factory=utc_now)
    invalid_at: datetime | None = None
    expired_at: datetime | None = None

    @field_validator("valid_at", "invalid_at", "expired_at", mode="after")
    @classmethod
    def _utc_times(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_interval(self) -> "EntityEdge":
        if self.invalid_at is not None and self.invalid_at < self.valid_at:
            raise ValueError(
                f"invalid_at ({self.invalid_at}) precedes valid_at ({self.valid_at})"
            )
        return self

    @property
    def is_current(self) -> bool:
        """True while the fact is believed true."""
        return self.invalid_at is None

    def is_valid_at(self, as_of: datetime) -> bool:
        """
        Point-in-time eligibility.

        Args:
            as_of: Moment to evaluate

        Returns:
            True if valid_at <= as_of and (invalid_at is None or invalid_at > as_of)
        """
        as_of = ensure_utc(as_of)
        if self.valid_at > as_of:
            return False
        return self.invalid_at is None or self.invalid_at > as_of

    def invalidate(self, invalid_at: datetime, expired_at: datetime | None = None) -> bool:
        """
        Close the validity interval.

        An already closed interval can only be shortened: a later or equal
        invalid_at is a no-op, and invalid_at is never unset. expired_at keeps
        the first recorded value. invalid_at is clamped up to valid_at.

        Returns:
            True if the edge changed
        """
        invalid_at = max(ensure_utc(invalid_at), self.valid_at)
        if self.invalid_at is not None and invalid_at >= self.invalid_at:
            return False

        self.invalid_at = invalid_at
        if self.expired_at is None:
            self.expired_at = ensure_utc(expired_at) or utc_now()
        return True

    def add_episode(self, episode_uuid: str) -> bool:
        """Record another attesting episode. Returns True if it was new."""
        if episode_uuid in self.episodes:
            return False
        self.episodes.append(episode_uuid)
        return True


class EpisodicEdge(GraphEdge):
    """Provenance: episode (source) mentions entity or community (target)."""

    kind: ClassVar[EdgeKind] = EdgeKind.EPISODIC
    model_config = ConfigDict(frozen=True)


AnyEdge = EntityEdge | EpisodicEdge
