"""
OpenAI embedder using official SDK.
"""

import openai
from openai import AsyncOpenAI

from chronograph.core.embeddings.base import Embedder
from chronograph.utils.exceptions import EmbeddingError, TransientProviderError, ValidationError
from chronograph.utils.logger import get_logger

logger = get_logger(__name__)

TRANSIENT_OPENAI_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIEmbedder(Embedder):
    """
    OpenAI embedder for generating text embeddings.

    Supports models like text-embedding-3-small, text-embedding-3-large, etc.
    """

    # Known dimensions for OpenAI embedding models
    _MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            api_key: OpenAI API key
            model: Embedding model name (e.g., "text-embedding-3-small")
            organization: Optional organization ID
            base_url: Optional custom base URL
            timeout: Request timeout in seconds
        """
        self.model = model

        self.client = AsyncOpenAI(
            api_key=api_key,
            organization=organization,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding for text using OpenAI.

        Raises:
            ValidationError: If text is invalid
            TransientProviderError: On timeouts, rate limits and server errors
            EmbeddingError: If OpenAI API call fails otherwise
        """
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        return (await self._create([text], **kwargs))[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int = 2048, **kwargs
    ) -> list[list[float]]:
        """
        Batch embed using OpenAI's native batch API.

        OpenAI supports up to 2048 inputs per request.
        """
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise ValidationError("Texts cannot be empty")

        embeddings = []
        for i in range(0, len(texts), batch_size):
            embeddings.extend(await self._create(texts[i : i + batch_size], **kwargs))
        return embeddings

    async def _create(self, inputs: list[str], **kwargs) -> list[list[float]]:
        try:
            response = await self.client.embeddings.create(
                model=self.model, input=inputs, **kwargs
            )
        except TRANSIENT_OPENAI_ERRORS as e:
            raise TransientProviderError(f"OpenAI embedding transient error: {e}") from e
        except Exception as e:
            logger.bind(model=self.model, num_texts=len(inputs)).error(
                f"OpenAI embedding error: {e}"
            )
            raise EmbeddingError(f"OpenAI embedding error: {e}") from e

        if not response.data or len(response.data) != len(inputs):
            raise EmbeddingError("OpenAI returned incomplete embedding response")

        # response.data is ordered like the input
        return [item.embedding for item in response.data]

    async def get_dimension(self) -> int:
        """
        Get embedding dimension.

        Uses known dimensions for OpenAI models, else a test embedding.
        """
        if self.model in self._MODEL_DIMENSIONS:
            return self._MODEL_DIMENSIONS[self.model]

        return await super().get_dimension()

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
