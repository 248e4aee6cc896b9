"""
Tests for OpenAI embedder.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from chronograph.core.embeddings.openai import OpenAIEmbedder
from chronograph.utils.exceptions import EmbeddingError, TransientProviderError, ValidationError


def embedding_response(*vectors):
    response = MagicMock()
    response.data = [MagicMock(embedding=list(vector)) for vector in vectors]
    return response


@pytest.fixture
def openai_embedder():
    """Create OpenAI embedder for testing."""
    return OpenAIEmbedder(api_key="test-key", model="text-embedding-3-small", timeout=120.0)


@pytest.mark.unit
@pytest.mark.asyncio
class TestOpenAIEmbedder:
    """Test OpenAI embedder."""

    async def test_embed(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = embedding_response([0.1, 0.2, 0.3])

            result = await openai_embedder.embed("test text")

            assert result == [0.1, 0.2, 0.3]
            mock_create.assert_called_once_with(
                model="text-embedding-3-small", input=["test text"]
            )

    async def test_embed_with_kwargs(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = embedding_response([0.1, 0.2])

            await openai_embedder.embed("test", dimensions=512)

            assert mock_create.call_args.kwargs["dimensions"] == 512

    async def test_empty_text_rejected(self, openai_embedder):
        with pytest.raises(ValidationError):
            await openai_embedder.embed("")
        with pytest.raises(ValidationError):
            await openai_embedder.batch_embed(["ok", " "])

    async def test_batch_embed_splits_batches(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = [
                embedding_response([1.0], [2.0]),
                embedding_response([3.0]),
            ]

            results = await openai_embedder.batch_embed(["a", "b", "c"], batch_size=2)

            assert results == [[1.0], [2.0], [3.0]]
            assert mock_create.call_count == 2

    async def test_batch_embed_empty_list(self, openai_embedder):
        assert await openai_embedder.batch_embed([]) == []

    async def test_incomplete_response(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = embedding_response([1.0])

            with pytest.raises(EmbeddingError):
                await openai_embedder.batch_embed(["a", "b"])

    async def test_timeout_is_transient(self, openai_embedder):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = openai.APITimeoutError(request=request)

            with pytest.raises(TransientProviderError):
                await openai_embedder.embed("test")

    async def test_other_errors_are_terminal(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.side_effect = RuntimeError("boom")

            with pytest.raises(EmbeddingError):
                await openai_embedder.embed("test")

    async def test_known_dimension_without_call(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            assert await openai_embedder.get_dimension() == 1536
            mock_create.assert_not_called()

    async def test_unknown_model_dimension(self):
        embedder = OpenAIEmbedder(api_key="test-key", model="custom-model")
        with patch.object(embedder.client.embeddings, 'create', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = embedding_response([0.0] * 7)

            assert await embedder.get_dimension() == 7
