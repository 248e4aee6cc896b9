"""
Tests for the episode ingestion pipeline.

Runs the full pipeline against SQLite with the scripted extractor and the
bag-of-words embedder from the root conftest.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from chronograph.core.graph_store.sqlite_store import SQLiteGraphWriter
from chronograph.models.filters import StoreFilter
from chronograph.models.node import EntityNode, EpisodeType
from chronograph.utils.exceptions import (
    IngestionError,
    ProviderError,
    TransientProviderError,
    ValidationError,
)

GROUP = "group_ingest"

T1 = datetime(2024, 1, 1, tzinfo=UTC)
T2 = datetime(2024, 6, 1, tzinfo=UTC)

BOSTON = "Alice moved to Boston."
SEATTLE = "Alice moved to Seattle."


@pytest.fixture
def relocation(extractor, make_extraction):
    """Script the Boston -> Seattle move."""
    extractor.script[BOSTON] = make_extraction(
        [("Alice", "Person"), ("Boston", "Place")],
        [("Alice", "Boston", "LIVES_IN", "Alice lives in Boston")],
    )
    extractor.script[SEATTLE] = make_extraction(
        [("Alice", "Person"), ("Seattle", "Place")],
        [("Alice", "Seattle", "LIVES_IN", "Alice lives in Seattle")],
    )
    extractor.contradict("Alice lives in Boston", "Alice lives in Seattle")
    extractor.contradict("Alice lives in Seattle", "Alice lives in Boston")


async def facts(store, group_id: str = GROUP) -> dict[str, object]:
    edges = await store.get_entity_edges(StoreFilter.by_group(group_id))
    return {edge.fact: edge for edge in edges}


@pytest.mark.unit
@pytest.mark.asyncio
class TestAddEpisode:
    """Test add_episode() end to end."""

    async def test_basic_ingestion(self, graph, sqlite_store, relocation):
        result = await graph.add_episode("move", BOSTON, GROUP, reference_time=T1)

        assert sorted(node.name for node in result.nodes) == ["Alice", "Boston"]
        assert [edge.fact for edge in result.edges] == ["Alice lives in Boston"]
        assert result.invalidated_edges == []
        assert result.affected_edge_uuids == [result.edges[0].uuid]
        assert result.processing_time_ms > 0

        edge = (await facts(sqlite_store))["Alice lives in Boston"]
        assert edge.valid_at == T1
        assert edge.episodes == [result.episode.uuid]

        mentions = await sqlite_store.get_episodic_edges(StoreFilter(episode_uuid=result.episode.uuid))
        assert {m.target_node_uuid for m in mentions} == {n.uuid for n in result.nodes}

    async def test_supersession(self, graph, sqlite_store, relocation):
        await graph.add_episode("first", BOSTON, GROUP, reference_time=T1)
        result = await graph.add_episode("second", SEATTLE, GROUP, reference_time=T2)

        stored = await facts(sqlite_store)
        boston, seattle = stored["Alice lives in Boston"], stored["Alice lives in Seattle"]
        assert boston.invalid_at == T2
        assert boston.expired_at is not None
        assert seattle.invalid_at is None
        assert [e.uuid for e in result.invalidated_edges] == [boston.uuid]
        assert set(result.affected_edge_uuids) == {boston.uuid, seattle.uuid}

        nodes = await sqlite_store.get_entity_nodes(StoreFilter(group_ids=[GROUP], names=["Alice"]))
        assert len(nodes) == 1

    async def test_late_arriving_older_fact(self, graph, sqlite_store, relocation):
        await graph.add_episode("second", SEATTLE, GROUP, reference_time=T2)
        result = await graph.add_episode("first", BOSTON, GROUP, reference_time=T1)

        stored = await facts(sqlite_store)
        assert stored["Alice lives in Seattle"].is_current
        assert stored["Alice lives in Boston"].invalid_at == T2
        assert result.invalidated_edges == []

    async def test_late_fact_between_two_others_splits_interval(
        self, graph, sqlite_store, extractor, make_extraction, relocation
    ):
        portland = "Alice moved to Portland."
        extractor.script[portland] = make_extraction(
            [("Alice", "Person"), ("Portland", "Place")],
            [("Alice", "Portland", "LIVES_IN", "Alice lives in Portland")],
        )
        for other in ("Alice lives in Boston", "Alice lives in Seattle"):
            extractor.contradict(other, "Alice lives in Portland")
            extractor.contradict("Alice lives in Portland", other)
        t3 = datetime(2024, 12, 1, tzinfo=UTC)

        await graph.add_episode("boston", BOSTON, GROUP, reference_time=T1)
        await graph.add_episode("portland", portland, GROUP, reference_time=t3)
        result = await graph.add_episode("seattle", SEATTLE, GROUP, reference_time=T2)

        stored = await facts(sqlite_store)
        boston = stored["Alice lives in Boston"]
        seattle = stored["Alice lives in Seattle"]
        assert (boston.valid_at, boston.invalid_at) == (T1, T2)
        assert (seattle.valid_at, seattle.invalid_at) == (T2, t3)
        assert stored["Alice lives in Portland"].is_current
        assert [e.uuid for e in result.invalidated_edges] == [boston.uuid]

        for as_of, expected in (
            (datetime(2024, 3, 1, tzinfo=UTC), ["Alice lives in Boston"]),
            (datetime(2024, 8, 1, tzinfo=UTC), ["Alice lives in Seattle"]),
            (datetime(2025, 1, 1, tzinfo=UTC), ["Alice lives in Portland"]),
        ):
            results = await graph.search("Alice lives", GROUP, as_of=as_of)
            assert results.facts == expected

    async def test_same_fact_twice_attested_twice(self, graph, sqlite_store, extractor, make_extraction):
        body = "Bob works at Acme."
        extractor.script[body] = make_extraction(
            ["Bob", "Acme"], [("Bob", "Acme", "WORKS_AT", "Bob works at Acme")]
        )

        first = await graph.add_episode("one", body, GROUP, reference_time=T1)
        second = await graph.add_episode("two", body, GROUP, reference_time=T2)

        edges = list((await facts(sqlite_store)).values())
        assert len(edges) == 1
        assert edges[0].episodes == [first.episode.uuid, second.episode.uuid]
        assert edges[0].valid_at == T1
        assert second.affected_edge_uuids == [edges[0].uuid]
        assert len(await sqlite_store.get_entity_nodes(StoreFilter.by_group(GROUP))) == 2

    async def test_duplicate_mentions_collapse(self, graph, extractor, make_extraction):
        body = "Alice (alice) met Bob."
        extractor.script[body] = make_extraction(
            ["Alice", "alice", "Bob"], [("alice", "Bob", "KNOWS", "Alice knows Bob")]
        )

        result = await graph.add_episode("meet", body, GROUP)

        assert sorted(node.name for node in result.nodes) == ["Alice", "Bob"]
        assert len(result.edges) == 1

    async def test_near_duplicate_mentions_share_entity(
        self, graph, sqlite_store, extractor, make_extraction
    ):
        body = "Bob joined Acme Corp. Acme Corp. is in Paris."
        extractor.script[body] = make_extraction(
            ["Acme Corp", "Acme Corp.", "Bob"],
            [("Bob", "Acme Corp.", "WORKS_AT", "Bob works at Acme Corp")],
        )

        result = await graph.add_episode("join", body, GROUP)

        stored = await sqlite_store.get_entity_nodes(StoreFilter.by_group(GROUP))
        assert sorted(node.name for node in stored) == ["Acme Corp", "Bob"]
        acme = next(node for node in stored if node.name == "Acme Corp")
        assert result.edges[0].target_node_uuid == acme.uuid
        assert len(result.episodic_edges) == 2

    async def test_unresolved_relation_dropped(self, graph, extractor, make_extraction):
        body = "Alice met someone."
        extractor.script[body] = make_extraction(
            ["Alice"], [("Alice", "Nobody", "KNOWS", "Alice knows Nobody")]
        )

        result = await graph.add_episode("meet", body, GROUP)

        assert result.edges == []
        assert [node.name for node in result.nodes] == ["Alice"]

    async def test_extracted_dates(self, graph, extractor, make_extraction):
        body = "Alice lived in Paris from 2010 to 2015."
        extractor.script[body] = make_extraction(
            ["Alice", "Paris"],
            [("Alice", "Paris", "LIVES_IN", "Alice lives in Paris")],
            dates={0: ("2010-01-01T00:00:00Z", "2015-01-01T00:00:00Z")},
        )

        result = await graph.add_episode("history", body, GROUP, reference_time=T1)

        edge = result.edges[0]
        assert edge.valid_at == datetime(2010, 1, 1, tzinfo=UTC)
        assert edge.invalid_at == datetime(2015, 1, 1, tzinfo=UTC)
        assert edge.expired_at is not None

    async def test_invalid_at_before_valid_at_discarded(self, graph, extractor, make_extraction):
        body = "Alice lives in Paris."
        extractor.script[body] = make_extraction(
            ["Alice", "Paris"],
            [("Alice", "Paris", "LIVES_IN", "Alice lives in Paris")],
            dates={0: ("2015-01-01T00:00:00Z", "2010-01-01T00:00:00Z")},
        )

        result = await graph.add_episode("history", body, GROUP, reference_time=T1)

        edge = result.edges[0]
        assert edge.valid_at == datetime(2015, 1, 1, tzinfo=UTC)
        assert edge.invalid_at is None
        assert edge.expired_at is None

    async def test_missing_dates_default_to_reference_time(self, graph, extractor, make_extraction):
        body = "Alice lives in Paris."
        extractor.script[body] = make_extraction(
            ["Alice", "Paris"],
            [("Alice", "Paris", "LIVES_IN", "Alice lives in Paris")],
            dates={0: ("not a date", None)},
        )

        result = await graph.add_episode("history", body, GROUP, reference_time=T1)

        assert result.edges[0].valid_at == T1

    async def test_empty_extraction_stores_episode(self, graph, sqlite_store):
        result = await graph.add_episode("note", "Nothing to see.", GROUP, source="message")

        assert result.nodes == []
        episodes = await sqlite_store.get_episodes(StoreFilter.by_group(GROUP))
        assert [e.uuid for e in episodes] == [result.episode.uuid]
        assert episodes[0].source == EpisodeType.MESSAGE

    async def test_raw_content_not_stored(self, graph, sqlite_store):
        graph.ingestion.config.store_raw_episode_content = False

        result = await graph.add_episode("note", "Secret.", GROUP)

        episode = await sqlite_store.get_episodes(StoreFilter(uuids=[result.episode.uuid]))
        assert episode[0].content == ""
        assert result.episode.content == "Secret."


@pytest.mark.unit
@pytest.mark.asyncio
class TestValidation:
    """Test input validation."""

    @pytest.mark.parametrize(
        "body, group_id, source",
        [
            ("", GROUP, "text"),
            ("   ", GROUP, "text"),
            ("Some text", "", "text"),
            ("Some text", GROUP, "video"),
        ],
    )
    async def test_rejected(self, graph, sqlite_store, extractor, body, group_id, source):
        with pytest.raises(ValidationError):
            await graph.add_episode("bad", body, group_id, source=source)

        assert extractor.seen_previous == []
        assert await sqlite_store.get_episodes() == []

    async def test_naive_reference_time_is_utc(self, graph):
        result = await graph.add_episode("note", "Hello.", GROUP, reference_time=datetime(2024, 1, 1))

        assert result.episode.reference_time == T1


@pytest.mark.unit
@pytest.mark.asyncio
class TestFailureAtomicity:
    """A failed episode leaves the graph as it was."""

    async def test_extraction_failure(self, graph, sqlite_store, extractor):
        extractor.extract_error = ProviderError("model unavailable")

        with pytest.raises(IngestionError) as exc_info:
            await graph.add_episode("move", BOSTON, GROUP)

        assert exc_info.value.context["group_id"] == GROUP
        assert "episode_uuid" in exc_info.value.context
        assert await sqlite_store.get_episodes() == []
        assert len(extractor.seen_previous) == 1

    async def test_transient_extraction_failure_retried(self, graph, sqlite_store, extractor):
        extractor.extract_error = TransientProviderError("overloaded")

        with pytest.raises(IngestionError):
            await graph.add_episode("move", BOSTON, GROUP)

        assert len(extractor.seen_previous) == graph.config.retry.max_attempts
        assert await sqlite_store.get_episodes() == []

    async def test_contradiction_failure_leaves_old_fact(self, graph, sqlite_store, extractor, relocation):
        await graph.add_episode("first", BOSTON, GROUP, reference_time=T1)
        extractor.contradiction_error = ProviderError("model unavailable")

        with pytest.raises(IngestionError):
            await graph.add_episode("second", SEATTLE, GROUP, reference_time=T2)

        stored = await facts(sqlite_store)
        assert list(stored) == ["Alice lives in Boston"]
        assert stored["Alice lives in Boston"].is_current
        assert len(await sqlite_store.get_episodes()) == 1
        assert await sqlite_store.get_entity_nodes(StoreFilter(names=["Seattle"])) == []

    async def test_cancelled_during_commit(self, graph, sqlite_store, relocation, monkeypatch):
        await graph.add_episode("first", BOSTON, GROUP, reference_time=T1)
        revision = sqlite_store.group_revision(GROUP)

        save_edges = SQLiteGraphWriter.save_edges
        written = asyncio.Event()

        async def stalled_save_edges(self, edges):
            await save_edges(self, edges)
            written.set()
            await asyncio.sleep(10)

        monkeypatch.setattr(SQLiteGraphWriter, "save_edges", stalled_save_edges)
        task = asyncio.create_task(
            graph.add_episode("second", SEATTLE, GROUP, reference_time=T2)
        )
        await written.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        monkeypatch.undo()

        stored = await facts(sqlite_store)
        assert list(stored) == ["Alice lives in Boston"]
        assert stored["Alice lives in Boston"].is_current
        assert len(await sqlite_store.get_episodes()) == 1
        assert await sqlite_store.get_entity_nodes(StoreFilter(names=["Seattle"])) == []
        assert len(await sqlite_store.get_episodic_edges(StoreFilter.by_group(GROUP))) == 2
        assert sqlite_store.group_revision(GROUP) == revision

        # lock and write connection were released
        await graph.add_episode("second", SEATTLE, GROUP, reference_time=T2)
        assert (await facts(sqlite_store))["Alice lives in Boston"].invalid_at == T2

    async def test_transient_embedding_failure_recovers(self, graph, sqlite_store, embedder, relocation):
        embedder.transient_failures = 1

        result = await graph.add_episode("move", BOSTON, GROUP, reference_time=T1)

        assert len(result.edges) == 1
        assert embedder.transient_failures == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestConcurrency:
    """Test revision checks and the per-group lock."""

    async def test_concurrent_episodes_share_entity(self, graph, sqlite_store, extractor, make_extraction):
        extractor.script["Alice met Bob."] = make_extraction(["Alice", "Bob"])
        extractor.script["Alice met Carol."] = make_extraction(["Alice", "Carol"])

        await asyncio.gather(
            graph.add_episode("a", "Alice met Bob.", GROUP),
            graph.add_episode("b", "Alice met Carol.", GROUP),
        )

        names = [node.name for node in await sqlite_store.get_entity_nodes(StoreFilter.by_group(GROUP))]
        assert sorted(names) == ["Alice", "Bob", "Carol"]

    async def test_group_change_triggers_new_resolution(
        self, graph, sqlite_store, extractor, make_extraction, monkeypatch
    ):
        extractor.script["Alice met Bob."] = make_extraction(["Alice", "Bob"])
        pipeline = graph.ingestion
        original = pipeline._resolve
        calls = []

        async def racing_resolve(episode, extraction):
            calls.append(episode.uuid)
            if len(calls) == 1:
                async with sqlite_store.transaction() as tx:
                    await tx.save_nodes([EntityNode(name="Alice", group_id=GROUP)])
            return await original(episode, extraction)

        monkeypatch.setattr(pipeline, "_resolve", racing_resolve)

        await graph.add_episode("a", "Alice met Bob.", GROUP)

        assert len(calls) == 2
        alices = await sqlite_store.get_entity_nodes(StoreFilter(group_ids=[GROUP], names=["Alice"]))
        assert len(alices) == 1

    async def test_groups_are_independent(self, graph, sqlite_store, extractor, make_extraction):
        extractor.script["Alice met Bob."] = make_extraction(["Alice", "Bob"])

        await graph.add_episode("a", "Alice met Bob.", "group_one")
        await graph.add_episode("b", "Alice met Bob.", "group_two")

        for group_id in ("group_one", "group_two"):
            nodes = await sqlite_store.get_entity_nodes(StoreFilter.by_group(group_id))
            assert len(nodes) == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestEpisodeWindow:
    """Test previous-episode context."""

    async def test_window_passes_recent_episodes_oldest_first(self, graph, extractor):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        for day in range(4):
            await graph.add_episode(f"ep{day}", f"Day {day}.", GROUP, reference_time=start + timedelta(days=day))

        await graph.add_episode("ep4", "Day 4.", GROUP, reference_time=start + timedelta(days=4))

        previous = extractor.seen_previous[-1]
        assert [episode.name for episode in previous] == ["ep1", "ep2", "ep3"]

    async def test_window_excludes_later_episodes(self, graph, extractor):
        await graph.add_episode("later", "Later.", GROUP, reference_time=T2)
        await graph.add_episode("earlier", "Earlier.", GROUP, reference_time=T1)

        assert extractor.seen_previous[-1] == []

    async def test_window_disabled(self, graph, extractor):
        graph.ingestion.config.episode_window = 0
        await graph.add_episode("one", "One.", GROUP, reference_time=T1)
        await graph.add_episode("two", "Two.", GROUP, reference_time=T2)

        assert extractor.seen_previous == [[], []]
