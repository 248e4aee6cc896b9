"""
Ollama embedder using native ollama-python SDK.
"""

import asyncio

import httpx
import ollama

from chronograph.core.embeddings.base import Embedder
from chronograph.utils.exceptions import EmbeddingError, TransientProviderError, ValidationError
from chronograph.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaEmbedder(Embedder):
    """
    Ollama embedder for generating text embeddings.

    Supports models like nomic-embed-text, mxbai-embed-large, etc.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 120.0,
    ):
        """
        Initialize Ollama embedder.

        Args:
            host: Ollama server URL
            model: Embedding model name (e.g., "nomic-embed-text", "mxbai-embed-large")
            timeout: Request timeout in seconds
        """
        self.host = host
        self.model = model
        self.timeout = timeout
        self._dimension = None

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding for text using Ollama.

        Raises:
            ValidationError: If text is invalid
            TransientProviderError: On timeouts and connection failures
            EmbeddingError: If Ollama embedding fails
        """
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        try:
            response = await self.client.embeddings(model=self.model, prompt=text, **kwargs)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            raise TransientProviderError(f"Ollama embedding transient error: {e}") from e
        except ollama.ResponseError as e:
            if e.status_code in (429, 502, 503, 504):
                raise TransientProviderError(f"Ollama embedding transient error: {e}") from e
            raise EmbeddingError(f"Ollama embedding error: {e}") from e
        except Exception as e:
            logger.bind(model=self.model, host=self.host).error(f"Ollama embedding error: {e}")
            raise EmbeddingError(f"Ollama embedding error: {e}") from e

        if not response or "embedding" not in response:
            raise EmbeddingError("Ollama returned invalid embedding response")

        return list(response["embedding"])

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """
        Batch embed multiple texts with concurrency.

        Ollama processes requests sequentially on the server; batches are
        sent as concurrent requests.
        """
        embeddings = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            tasks = [self.embed(text, **kwargs) for text in batch]
            embeddings.extend(await asyncio.gather(*tasks))

        return embeddings

    async def get_dimension(self) -> int:
        """Get embedding dimension. Cached after first call."""
        if self._dimension is None:
            test_embedding = await self.embed("test")
            self._dimension = len(test_embedding)
        return self._dimension

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
