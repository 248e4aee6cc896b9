"""
Tests for hybrid search: fusion helpers and end-to-end retrieval.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from chronograph.core.reranker.base import Reranker
from chronograph.models.search import SearchConfig, SearchFilters
from chronograph.services.search import (
    HybridSearchEngine,
    maximal_marginal_relevance,
    reciprocal_rank_fusion,
)
from chronograph.utils.exceptions import ProviderError, ValidationError
from chronograph.utils.retry import ProviderCaller

GROUP = "group_search"

T1 = datetime(2024, 1, 1, tzinfo=UTC)
T2 = datetime(2024, 6, 1, tzinfo=UTC)


class ReverseReranker(Reranker):
    """Scores passages by reverse alphabetical order."""

    def __init__(self):
        self.calls: list[list[str]] = []

    async def rerank(self, query: str, candidates: list[str]) -> list[tuple[str, float]]:
        self.calls.append(list(candidates))
        ordered = sorted(candidates, reverse=True)
        return [(text, 1.0 - i / len(ordered)) for i, text in enumerate(ordered)]


@pytest.fixture
async def relocated(graph, extractor, make_extraction):
    """Alice lived in Boston from T1 and in Seattle from T2."""
    extractor.script["Alice moved to Boston."] = make_extraction(
        ["Alice", "Boston"], [("Alice", "Boston", "LIVES_IN", "Alice lives in Boston")]
    )
    extractor.script["Alice moved to Seattle."] = make_extraction(
        ["Alice", "Seattle"], [("Alice", "Seattle", "LIVES_IN", "Alice lives in Seattle")]
    )
    extractor.contradict("Alice lives in Boston", "Alice lives in Seattle")

    await graph.add_episode("first", "Alice moved to Boston.", GROUP, reference_time=T1)
    await graph.add_episode("second", "Alice moved to Seattle.", GROUP, reference_time=T2)
    return graph


@pytest.fixture
async def coffee(graph, extractor, make_extraction):
    """Two equally relevant facts about different people."""
    extractor.script["Alice likes coffee at the Cafe."] = make_extraction(
        ["Alice", "Cafe"], [("Alice", "Cafe", "LIKES", "Alice likes coffee")]
    )
    extractor.script["Carol likes coffee at the Diner."] = make_extraction(
        ["Carol", "Diner"], [("Carol", "Diner", "LIKES", "Carol likes coffee")]
    )
    await graph.add_episode("a", "Carol likes coffee at the Diner.", GROUP, reference_time=T2)
    first = await graph.add_episode("b", "Alice likes coffee at the Cafe.", GROUP, reference_time=T1)
    alice = next(node for node in first.nodes if node.name == "Alice")
    return graph, alice


@pytest.mark.unit
class TestFusion:
    """Test reciprocal_rank_fusion() and maximal_marginal_relevance()."""

    def test_rrf_sums_channels(self):
        scores = reciprocal_rank_fusion([[("a", 1), ("b", 2)], [("b", 1)]], k=60)

        assert scores["a"] == pytest.approx(1 / 61)
        assert scores["b"] == pytest.approx(1 / 62 + 1 / 61)

    def test_rrf_empty(self):
        assert reciprocal_rank_fusion([]) == {}

    def test_mmr_diversifies(self):
        selection = maximal_marginal_relevance(
            [1.0, 0.0], [[1.0, 0.0], [1.0, 0.0], [0.0, 1.0]], mmr_lambda=0.3
        )

        assert [index for index, _ in selection] == [0, 2, 1]
        assert [score for _, score in selection] == pytest.approx([0.3, 0.0, -0.4])

    def test_mmr_lambda_one_is_relevance_order(self):
        selection = maximal_marginal_relevance(
            [1.0, 0.0], [[0.0, 1.0], [1.0, 0.0], [0.7, 0.7]], mmr_lambda=1.0
        )

        assert [index for index, _ in selection] == [1, 2, 0]

    def test_mmr_no_candidates(self):
        assert maximal_marginal_relevance([1.0], [], 0.5) == []

    def test_mmr_wrong_dimension_scores_zero(self):
        selection = maximal_marginal_relevance([1.0, 0.0], [[1.0, 0.0, 0.0], [1.0, 0.0]], 1.0)

        assert selection[0] == (1, pytest.approx(1.0))
        assert selection[1] == (0, pytest.approx(0.0))


@pytest.mark.unit
@pytest.mark.asyncio
class TestSearch:
    """Test HybridSearchEngine.search() against SQLite."""

    async def test_current_facts_by_default(self, relocated):
        results = await relocated.search("Where does Alice live?", GROUP)

        assert results.facts == ["Alice lives in Seattle"]
        assert results.as_of is None

    async def test_as_of_between_facts(self, relocated):
        results = await relocated.search("Alice lives", GROUP, as_of=datetime(2024, 3, 1, tzinfo=UTC))

        assert results.facts == ["Alice lives in Boston"]

    async def test_as_of_after_change(self, relocated):
        results = await relocated.search("Alice lives", GROUP, as_of=datetime(2024, 9, 1, tzinfo=UTC))

        assert results.facts == ["Alice lives in Seattle"]

    async def test_as_of_before_anything(self, relocated):
        results = await relocated.search("Alice lives", GROUP, as_of=datetime(2023, 1, 1, tzinfo=UTC))

        assert results.facts == []

    async def test_as_of_at_invalidation_moment(self, relocated):
        results = await relocated.search("Alice lives", GROUP, as_of=T2)

        assert results.facts == ["Alice lives in Seattle"]

    async def test_entities_returned(self, relocated):
        results = await relocated.search("Boston", GROUP)

        assert results.nodes[0].node.name == "Boston"
        assert all(scored.score > 0 for scored in results.nodes)

    async def test_center_node_boosts_nearby_facts(self, coffee):
        graph, alice = coffee

        results = await graph.search("likes coffee", GROUP, center_node_uuid=alice.uuid)

        assert results.facts[0] == "Alice likes coffee"
        assert set(results.facts) == {"Alice likes coffee", "Carol likes coffee"}

    async def test_scores_descending(self, coffee):
        graph, _ = coffee

        results = await graph.search("likes coffee", GROUP)

        scores = [scored.score for scored in results.edges]
        assert scores == sorted(scores, reverse=True)

    async def test_edge_type_filter(self, relocated, extractor, make_extraction):
        extractor.script["Alice works in Boston."] = make_extraction(
            ["Alice", "Boston"], [("Alice", "Boston", "WORKS_IN", "Alice works in Boston")]
        )
        await relocated.add_episode("work", "Alice works in Boston.", GROUP, reference_time=T2)

        results = await relocated.search(
            "Alice Boston", GROUP, filters=SearchFilters(edge_types=["WORKS_IN"])
        )

        assert results.facts == ["Alice works in Boston"]

    async def test_groups_isolated(self, relocated):
        results = await relocated.search("Alice lives", "some_other_group")

        assert results.facts == []
        assert results.nodes == []

    async def test_limit(self, coffee):
        graph, _ = coffee

        results = await graph.search("likes coffee", GROUP, limit=1)

        assert len(results.edges) == 1
        assert len(results.nodes) == 1

    async def test_disable_kinds(self, relocated):
        config = SearchConfig(include_nodes=False)

        results = await relocated.search("Alice", GROUP, config=config)

        assert results.nodes == []
        assert results.facts

    async def test_episodes_searched_when_enabled(self, relocated):
        config = SearchConfig(include_episodes=True)

        default = await relocated.search("Seattle", GROUP)
        current = await relocated.search("Seattle", GROUP, config=config)
        earlier = await relocated.search(
            "Seattle", GROUP, as_of=datetime(2024, 3, 1, tzinfo=UTC), config=config
        )

        assert default.episodes == []
        assert [scored.episode.content for scored in current.episodes] == ["Alice moved to Seattle."]
        assert current.episodes[0].score > 0
        assert earlier.episodes == []

    async def test_episode_mentions_orders_by_attestations(self, coffee, extractor, make_extraction):
        graph, _ = coffee
        extractor.script["Carol still likes coffee at the Diner."] = make_extraction(
            ["Carol", "Diner"], [("Carol", "Diner", "LIKES", "Carol likes coffee")]
        )
        await graph.add_episode("c", "Carol still likes coffee at the Diner.", GROUP, reference_time=T2)
        config = SearchConfig(include_nodes=False, edge_reranker="episode_mentions")

        fused = await graph.search("Alice likes coffee", GROUP)
        by_mentions = await graph.search("Alice likes coffee", GROUP, config=config)

        assert fused.facts[0] == "Alice likes coffee"
        assert by_mentions.facts == ["Carol likes coffee", "Alice likes coffee"]
        assert [len(scored.edge.episodes) for scored in by_mentions.edges] == [2, 1]
        assert 2 < by_mentions.edges[0].score < 3

    @pytest.mark.parametrize("query, group_ids", [("", GROUP), ("   ", GROUP), ("Alice", []), ("Alice", [""])])
    async def test_invalid_input(self, graph, query, group_ids):
        with pytest.raises(ValidationError):
            await graph.search(query, group_ids)

    async def test_query_embedding_failure(self, relocated, embedder):
        embedder.transient_failures = 10

        with pytest.raises(ProviderError, match="embed_query"):
            await relocated.search("Alice lives", GROUP)


@pytest.mark.unit
@pytest.mark.asyncio
class TestReranking:
    """Test cross-encoder reranking and MMR in the engine."""

    async def test_reranker_orders_results(self, sqlite_store, embedder, coffee):
        reranker = ReverseReranker()
        engine = HybridSearchEngine(
            sqlite_store,
            embedder,
            reranker=reranker,
            config=SearchConfig(include_nodes=False),
            caller=ProviderCaller(base_delay=0.0),
        )

        results = await engine.search("likes coffee", GROUP)

        assert results.facts == ["Carol likes coffee", "Alice likes coffee"]
        assert results.edges[0].score == pytest.approx(1.0)
        assert sorted(reranker.calls[0]) == ["Alice likes coffee", "Carol likes coffee"]

    async def test_reranker_disabled_by_config(self, sqlite_store, embedder, coffee):
        reranker = ReverseReranker()
        engine = HybridSearchEngine(
            sqlite_store, embedder, reranker=reranker, config=SearchConfig(use_cross_encoder=False)
        )

        await engine.search("likes coffee", GROUP)

        assert reranker.calls == []

    async def test_reranker_failure_keeps_fused_order(self, sqlite_store, embedder, coffee):
        reranker = AsyncMock(spec=Reranker)
        reranker.rerank.side_effect = ProviderError("reranker down")
        engine = HybridSearchEngine(
            sqlite_store, embedder, config=SearchConfig(include_nodes=False)
        )
        fused = await engine.search("likes coffee", GROUP)

        engine.reranker = reranker
        results = await engine.search("likes coffee", GROUP)

        assert results.facts == fused.facts
        reranker.rerank.assert_awaited()

    async def test_mmr_scores_in_results(self, sqlite_store, embedder, coffee):
        engine = HybridSearchEngine(sqlite_store, embedder, config=SearchConfig(mmr_lambda=0.5))

        results = await engine.search("likes coffee", GROUP)

        assert len(results.edges) == 2
        assert results.edges[0].score > results.edges[1].score
