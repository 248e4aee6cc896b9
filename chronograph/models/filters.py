"""Store-level filter sets shared by get/delete operations on every backend."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from chronograph.utils.datetime_utils import ensure_utc


class StoreFilter(BaseModel):
    """
    Conjunctive filter over nodes or edges.

    Fields that do not apply to the queried kind are ignored, e.g. node_pair
    on a node query. The time range applies to the kind's primary time field:
    valid_at for entity edges, reference_time for episodes, created_at for
    everything else.
    """

    uuids: list[str] | None = None
    group_ids: list[str] | None = None

    # Edges only
    node_pair: tuple[str, str] | None = Field(
        default=None, description="Edges between these two nodes, either direction"
    )
    node_uuid: str | None = Field(default=None, description="Edges incident to this node")
    episode_uuid: str | None = Field(
        default=None, description="Entity edges attested by / episodic edges from this episode"
    )
    current_only: bool = Field(default=False, description="Entity edges with invalid_at null")

    # Nodes only
    names: list[str] | None = Field(default=None, description="Entity or community names, compared after normalize_name()")

    time_start: datetime | None = None
    time_end: datetime | None = None

    limit: int | None = Field(default=None, ge=1)
    newest_first: bool = True

    @field_validator("time_start", "time_end", mode="after")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_range(self) -> "StoreFilter":
        if self.time_start and self.time_end and self.time_start > self.time_end:
            raise ValueError("time_start must not be after time_end")
        return self

    @classmethod
    def by_uuids(cls, uuids: list[str]) -> "StoreFilter":
        return cls(uuids=list(uuids))

    @classmethod
    def by_group(cls, group_ids: list[str] | str) -> "StoreFilter":
        if isinstance(group_ids, str):
            group_ids = [group_ids]
        return cls(group_ids=list(group_ids))
