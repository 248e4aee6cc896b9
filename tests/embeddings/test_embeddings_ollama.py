"""
Tests for Ollama embedder.
"""
from unittest.mock import AsyncMock, patch

import httpx
import ollama
import pytest

from chronograph.core.embeddings.ollama import OllamaEmbedder
from chronograph.utils.exceptions import EmbeddingError, TransientProviderError, ValidationError


@pytest.fixture
def ollama_embedder():
    """Create Ollama embedder for testing."""
    return OllamaEmbedder(
        host="http://localhost:11434",
        model="nomic-embed-text",
        timeout=120.0
    )


@pytest.mark.unit
@pytest.mark.asyncio
class TestOllamaEmbedder:
    """Test Ollama embedder."""

    async def test_initialization(self, ollama_embedder):
        assert ollama_embedder.host == "http://localhost:11434"
        assert ollama_embedder.model == "nomic-embed-text"
        assert ollama_embedder._dimension is None

    async def test_embed(self, ollama_embedder):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.return_value = {"embedding": [0.1, 0.2, 0.3]}

            result = await ollama_embedder.embed("test text")

            assert result == [0.1, 0.2, 0.3]
            mock_embed.assert_called_once_with(model="nomic-embed-text", prompt="test text")

    async def test_empty_text_rejected(self, ollama_embedder):
        with pytest.raises(ValidationError):
            await ollama_embedder.embed("   ")

    async def test_batch_embed(self, ollama_embedder):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.side_effect = [
                {"embedding": [0.1, 0.2]},
                {"embedding": [0.3, 0.4]},
                {"embedding": [0.5, 0.6]}
            ]

            results = await ollama_embedder.batch_embed(["text1", "text2", "text3"], batch_size=2)

            assert results == [[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]]
            assert mock_embed.call_count == 3

    async def test_batch_embed_empty_list(self, ollama_embedder):
        assert await ollama_embedder.batch_embed([]) == []

    async def test_get_dimension_caching(self, ollama_embedder):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.return_value = {"embedding": [0.1, 0.2, 0.3]}

            assert await ollama_embedder.get_dimension() == 3
            assert await ollama_embedder.get_dimension() == 3
            assert mock_embed.call_count == 1

    async def test_connect_error_is_transient(self, ollama_embedder):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.side_effect = httpx.ConnectError("refused")

            with pytest.raises(TransientProviderError):
                await ollama_embedder.embed("test")

    @pytest.mark.parametrize("status", [429, 503])
    async def test_overloaded_server_is_transient(self, ollama_embedder, status):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.side_effect = ollama.ResponseError("busy", status)

            with pytest.raises(TransientProviderError):
                await ollama_embedder.embed("test")

    async def test_missing_model_is_terminal(self, ollama_embedder):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.side_effect = ollama.ResponseError("model not found", 404)

            with pytest.raises(EmbeddingError):
                await ollama_embedder.embed("test")

    async def test_invalid_response(self, ollama_embedder):
        with patch.object(ollama_embedder.client, 'embeddings', new_callable=AsyncMock) as mock_embed:
            mock_embed.return_value = {}

            with pytest.raises(EmbeddingError):
                await ollama_embedder.embed("test")


@pytest.mark.integration
@pytest.mark.asyncio
class TestOllamaEmbedderIntegration:
    """
    Integration tests for Ollama embedder.
    Requires running Ollama server with nomic-embed-text model.
    Run with: pytest -m integration
    """

    async def test_real_embedding(self):
        embedder = OllamaEmbedder(model="nomic-embed-text")

        try:
            result = await embedder.embed("test text")
            assert len(result) > 0
            assert all(isinstance(x, float) for x in result)
        except Exception as e:
            pytest.skip(f"Ollama not available: {e}")
        finally:
            await embedder.close()
