"""
Extraction models.

ExtractionResult is what an Extractor hands to the ingestion pipeline. The
*Response models are the structured outputs requested from the LLM.
"""

from pydantic import BaseModel, Field


class ExtractedEntity(BaseModel):
    """An entity mention found in an episode."""

    model_config = {"extra": "ignore"}

    name: str = Field(..., description="Explicit, unambiguous entity name (full name when known)")
    labels: list[str] = Field(
        default_factory=list, description="Entity type labels, e.g. Person, Location, Organization"
    )
    summary: str = Field(default="", description="One-sentence description from the episode")


class ExtractedRelation(BaseModel):
    """A fact between two extracted entities, referenced by name."""

    model_config = {"extra": "ignore"}

    source_name: str = Field(..., description="Name of the subject entity")
    target_name: str = Field(..., description="Name of the object entity")
    name: str = Field(..., description="Relation label in SCREAMING_SNAKE_CASE, e.g. LIVES_IN")
    fact: str = Field(..., description="Natural-language statement of the fact")


class ExtractedEdgeDates(BaseModel):
    """Validity dates for one relation, by index into ExtractionResult.relations."""

    model_config = {"extra": "ignore"}

    relation_index: int = Field(..., ge=0, description="Index of the relation these dates belong to")
    valid_at: str | None = Field(
        default=None, description="ISO-8601 moment the fact became true, or null"
    )
    invalid_at: str | None = Field(
        default=None, description="ISO-8601 moment the fact stopped being true, or null"
    )


class ExtractionResult(BaseModel):
    """Structured content of one episode."""

    entities: list[ExtractedEntity] = Field(default_factory=list)
    relations: list[ExtractedRelation] = Field(default_factory=list)
    dates: list[ExtractedEdgeDates] = Field(default_factory=list)

    def dates_for(self, relation_index: int) -> ExtractedEdgeDates | None:
        for dates in self.dates:
            if dates.relation_index == relation_index:
                return dates
        return None


# LLM structured outputs


class ExtractedEntitiesResponse(BaseModel):
    """LLM output for entity extraction."""

    model_config = {"extra": "ignore"}

    entities: list[ExtractedEntity] = Field(
        default_factory=list, description="Entities mentioned in the CURRENT episode (or empty)"
    )


class ExtractedRelationsResponse(BaseModel):
    """LLM output for fact extraction."""

    model_config = {"extra": "ignore"}

    relations: list[ExtractedRelation] = Field(
        default_factory=list, description="Facts between the given entities (or empty)"
    )


class EdgeDatesResponse(BaseModel):
    """LLM output for date extraction of a single fact."""

    model_config = {"extra": "ignore"}

    valid_at: str | None = Field(
        default=None, description="ISO-8601 date-time when the fact became true, or null"
    )
    invalid_at: str | None = Field(
        default=None, description="ISO-8601 date-time when the fact stopped being true, or null"
    )


class EntityResolutionResponse(BaseModel):
    """LLM output for an identity check."""

    model_config = {"extra": "ignore"}

    duplicate_uuid: str | None = Field(
        default=None,
        description="uuid of the existing entity that is the same real-world entity, or null",
    )
    reasoning: str = Field(default="", description="Short justification")


class ContradictionResponse(BaseModel):
    """LLM output for a pairwise contradiction check."""

    model_config = {"extra": "ignore"}

    contradicts: bool = Field(
        ..., description="True if both facts cannot be true at the same time"
    )
    reasoning: str = Field(default="", description="Short justification")


class DuplicateFactResponse(BaseModel):
    """LLM output for a fact deduplication check."""

    model_config = {"extra": "ignore"}

    duplicate_uuid: str | None = Field(
        default=None,
        description="uuid of the existing fact that states the same information, or null",
    )


class CommunitySummaryResponse(BaseModel):
    """LLM output for a community summary."""

    model_config = {"extra": "ignore"}

    name: str = Field(..., description="Short name for the group of entities")
    summary: str = Field(..., description="One-paragraph summary of what connects the entities")
