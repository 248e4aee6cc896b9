"""
Shared test fixtures for all test modules.

Unit tests run against a SQLite store in a temporary directory with
deterministic in-process providers:
- BagOfWordsEmbedder: bag-of-words vectors, so texts sharing words are similar
- ScriptedExtractor: extraction results and contradictions set per test
"""

from collections.abc import AsyncGenerator

import numpy as np
import pytest

from chronograph.config import Config, RetryConfig
from chronograph.core.embeddings.base import Embedder
from chronograph.core.extraction.base import Extractor
from chronograph.core.graph_store.sqlite_store import SQLiteGraphStore
from chronograph.models.extraction import (
    ExtractedEdgeDates,
    ExtractedEntity,
    ExtractedRelation,
    ExtractionResult,
)
from chronograph.models.node import EpisodicNode
from chronograph.services.graph_engine import TemporalGraph
from chronograph.utils.exceptions import TransientProviderError
from chronograph.utils.text import normalize_fact, search_tokens

DIMENSION = 512


class BagOfWordsEmbedder(Embedder):
    """
    Deterministic bag-of-words embedder.

    Every distinct token gets its own axis, so unrelated words are orthogonal.
    """

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.vocabulary: dict[str, int] = {}
        self.calls: list[str] = []
        self.transient_failures = 0

    async def embed(self, text: str, **kwargs) -> list[float]:
        self.calls.append(text)
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise TransientProviderError("embedder overloaded")

        vector = np.zeros(self.dimension)
        for token in search_tokens(text):
            index = self.vocabulary.setdefault(token, len(self.vocabulary) % self.dimension)
            vector[index] += 1.0
        if not vector.any():
            vector[0] = 1.0
        return (vector / np.linalg.norm(vector)).tolist()

    async def get_dimension(self) -> int:
        return self.dimension

    async def close(self):
        pass


class ScriptedExtractor(Extractor):
    """
    Extractor whose answers are set by the test.

    script maps episode content to the ExtractionResult to return;
    contradictions holds (existing_fact, new_fact) pairs, compared after
    normalize_fact().
    """

    def __init__(self):
        self.script: dict[str, ExtractionResult] = {}
        self.contradictions: set[tuple[str, str]] = set()
        self.extract_error: Exception | None = None
        self.contradiction_error: Exception | None = None
        self.seen_previous: list[list[EpisodicNode]] = []
        self.closed = False

    def contradict(self, existing_fact: str, new_fact: str) -> None:
        self.contradictions.add((normalize_fact(existing_fact), normalize_fact(new_fact)))

    async def extract(
        self, episode: EpisodicNode, previous_episodes: list[EpisodicNode]
    ) -> ExtractionResult:
        self.seen_previous.append(list(previous_episodes))
        if self.extract_error is not None:
            raise self.extract_error
        return self.script.get(episode.content, ExtractionResult())

    async def contradicts(self, existing_fact: str, new_fact: str) -> bool:
        if self.contradiction_error is not None:
            raise self.contradiction_error
        return (normalize_fact(existing_fact), normalize_fact(new_fact)) in self.contradictions

    async def close(self):
        self.closed = True


def build_extraction(
    entities: list[str | tuple[str, str]],
    relations: list[tuple[str, str, str, str]] | None = None,
    dates: dict[int, tuple[str | None, str | None]] | None = None,
) -> ExtractionResult:
    """
    ExtractionResult shorthand.

    Args:
        entities: Names, or (name, label) pairs
        relations: (source, target, relation name, fact)
        dates: relation index -> (valid_at, invalid_at) ISO strings
    """
    extracted = []
    for entity in entities:
        name, label = entity if isinstance(entity, tuple) else (entity, "Entity")
        extracted.append(ExtractedEntity(name=name, labels=[label], summary=f"{name} summary"))

    return ExtractionResult(
        entities=extracted,
        relations=[
            ExtractedRelation(source_name=s, target_name=t, name=n, fact=f)
            for s, t, n, f in relations or []
        ],
        dates=[
            ExtractedEdgeDates(relation_index=index, valid_at=valid_at, invalid_at=invalid_at)
            for index, (valid_at, invalid_at) in (dates or {}).items()
        ],
    )


# Fixtures


@pytest.fixture
def embedder() -> BagOfWordsEmbedder:
    return BagOfWordsEmbedder()


@pytest.fixture
def extractor() -> ScriptedExtractor:
    return ScriptedExtractor()


@pytest.fixture
def test_config(tmp_path) -> Config:
    """Config with a temporary SQLite file and no backoff delay."""
    config = Config()
    config.sqlite.db_path = str(tmp_path / "graph.db")
    config.retry = RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0)
    config.ingestion.lock_timeout = 2.0
    config.ingestion.provider_timeout = 5.0
    return config


@pytest.fixture
async def sqlite_store(test_config) -> AsyncGenerator[SQLiteGraphStore, None]:
    store = SQLiteGraphStore(db_path=test_config.sqlite.db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def graph(sqlite_store, embedder, extractor, test_config) -> TemporalGraph:
    return TemporalGraph(
        store=sqlite_store,
        embedder=embedder,
        extractor=extractor,
        config=test_config,
    )


@pytest.fixture
def make_extraction():
    """The build_extraction() helper."""
    return build_extraction
