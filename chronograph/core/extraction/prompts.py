"""
Prompt builders for LLM-driven extraction.

Each builder returns a (system_prompt, user_prompt) pair. Structured output
shape comes from the response_format model passed alongside.
"""

import json

from chronograph.models.edge import EntityEdge
from chronograph.models.extraction import ExtractedEntity, ExtractedRelation
from chronograph.models.node import EntityNode, EpisodicNode
from chronograph.utils.datetime_utils import to_iso


def _format_previous(previous_episodes: list[EpisodicNode]) -> str:
    if not previous_episodes:
        return "(none)"
    return "\n".join(
        f"[{to_iso(episode.reference_time)}] {episode.content}" for episode in previous_episodes
    )


def extract_entities_prompt(
    episode: EpisodicNode, previous_episodes: list[EpisodicNode]
) -> tuple[str, str]:
    system = (
        "You are an entity extraction system for a temporal knowledge graph. "
        "You extract the people, places, organizations, objects and concepts a text talks about."
    )
    user = f"""
## Previous Messages (context only, do not extract from these)
{_format_previous(previous_episodes)}

## Current Message
Source: {episode.source.value} {episode.source_description}
{episode.content}

## Task

Extract every entity explicitly or implicitly mentioned in the CURRENT message.

Guidelines:
1. Use the most complete, unambiguous name available (use previous messages to resolve pronouns and nicknames).
2. Always extract the speaker/author when the message is a conversation turn.
3. Labels are short type names such as Person, Location, Organization, Product, Event.
4. Summary is one sentence of what the current message says about the entity.
5. Do NOT extract dates, times or relationships as entities.
6. Do NOT extract the same entity twice.
"""
    return system, user


def extract_relations_prompt(
    episode: EpisodicNode,
    previous_episodes: list[EpisodicNode],
    entities: list[ExtractedEntity],
) -> tuple[str, str]:
    system = (
        "You are an expert fact extractor that extracts fact triples from text. "
        "Treat the reference time as the time the current message was sent."
    )
    entity_list = json.dumps([{"name": e.name, "labels": e.labels} for e in entities], indent=2)
    user = f"""
## Previous Messages (context only)
{_format_previous(previous_episodes)}

## Current Message
{episode.content}

## Entities
{entity_list}

## Reference Time
{to_iso(episode.reference_time)}

## Task

Extract all factual relationships between the given ENTITIES stated or unambiguously implied in the CURRENT message.

Guidelines:
1. source_name and target_name must be names copied exactly from the ENTITIES list, and must differ.
2. name is a predicate in SCREAMING_SNAKE_CASE readable as "source [name] target" (e.g. WORKS_AT, LIVES_IN).
3. fact is a clear, self-contained sentence that states the relationship with relevant context.
4. Extract ongoing states, past events and changes (e.g. "moved to" is a LIVES_IN fact).
5. Do NOT extract vague statements or relationships with entities outside the list.
"""
    return system, user


def extract_edge_dates_prompt(episode: EpisodicNode, relation: ExtractedRelation) -> tuple[str, str]:
    system = (
        "You extract when a fact became true and when it stopped being true. "
        "Answer with ISO-8601 UTC date-times or null."
    )
    user = f"""
## Current Message
{episode.content}

## Reference Time
{to_iso(episode.reference_time)}

## Fact
{relation.fact}

## Task

Determine valid_at (when the fact started being true) and invalid_at (when it ended).

Guidelines:
1. Only use dates stated or implied by the message; resolve relative expressions ("last year", "two weeks ago") against the reference time.
2. If the fact is stated in the present tense with no date, use the reference time as valid_at.
3. If only a date is known, use 00:00:00 of that date.
4. Use null when a date cannot be determined. Do not guess invalid_at.
"""
    return system, user


def contradiction_prompt(existing_fact: str, new_fact: str) -> tuple[str, str]:
    system = "You decide whether two facts about the world contradict each other."
    user = f"""
## Existing Fact
{existing_fact}

## New Fact
{new_fact}

## Task

Set contradicts to true only if both facts cannot be true at the same time
(e.g. living in two different cities, holding a position someone else now holds,
a relationship that has ended). Facts that merely add information, or that
can hold simultaneously, do not contradict.
"""
    return system, user


def entity_resolution_prompt(
    candidate: ExtractedEntity, existing: list[EntityNode]
) -> tuple[str, str]:
    system = "You decide whether a newly mentioned entity is the same as one already known."
    existing_list = json.dumps(
        [
            {"uuid": node.uuid, "name": node.name, "labels": node.labels, "summary": node.summary}
            for node in existing
        ],
        indent=2,
    )
    user = f"""
## New Entity
Name: {candidate.name}
Labels: {", ".join(candidate.labels) or "(none)"}
Summary: {candidate.summary or "(none)"}

## Existing Entities
{existing_list}

## Task

Return the uuid of the existing entity that refers to the SAME real-world entity
as the new one, or null if none does. Similar names are not enough: two different
people who share a first name are different entities.
"""
    return system, user


def duplicate_fact_prompt(fact: str, existing: list[EntityEdge]) -> tuple[str, str]:
    system = "You decide whether a new fact restates a fact that is already known."
    existing_list = json.dumps([{"uuid": edge.uuid, "fact": edge.fact} for edge in existing], indent=2)
    user = f"""
## New Fact
{fact}

## Existing Facts
{existing_list}

## Task

Return the uuid of the existing fact that conveys the same information as the
new fact, or null. Facts that differ in a key detail (place, role, date) are not duplicates.
"""
    return system, user


def community_summary_prompt(members: list[EntityNode]) -> tuple[str, str]:
    system = "You summarize a cluster of related entities from a knowledge graph."
    member_list = "\n".join(
        f"- {node.name}: {node.summary or '(no summary)'}" for node in members
    )
    user = f"""
## Entities
{member_list}

## Task

Give the cluster a short descriptive name and a one-paragraph summary of what
connects these entities.
"""
    return system, user
