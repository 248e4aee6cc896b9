"""
Factory for creating embedder providers.
"""

from chronograph.config import OLLAMA_DEFAULT_HOST, EmbedderConfig
from chronograph.core.embeddings.base import Embedder
from chronograph.core.embeddings.cached import CachedEmbedder
from chronograph.core.embeddings.ollama import OllamaEmbedder
from chronograph.core.embeddings.openai import OpenAIEmbedder
from chronograph.utils.exceptions import ConfigurationError


class EmbedderFactory:
    """Factory for creating embedder providers from configuration."""

    @staticmethod
    def create(config: EmbedderConfig) -> Embedder:
        """
        Create embedder from configuration, wrapped in a CachedEmbedder when enabled.

        Args:
            config: Embedder configuration

        Returns:
            Embedder instance

        Raises:
            ConfigurationError: If provider is not supported or misconfigured
        """
        if config.provider == "ollama":
            embedder: Embedder = OllamaEmbedder(
                host=config.base_url or OLLAMA_DEFAULT_HOST,
                model=config.model,
                timeout=config.timeout,
            )
        elif config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError(
                    "OpenAI API key is required", context={"section": "embedder"}
                )
            embedder = OpenAIEmbedder(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        else:
            raise ConfigurationError(f"Unsupported embedder provider: {config.provider}")

        if config.cache_enabled:
            return CachedEmbedder(embedder, max_size=config.cache_size)
        return embedder

    @staticmethod
    async def get_dimension(embedder: Embedder, config: EmbedderConfig | None = None) -> int:
        """
        Get embedding dimension with fallback logic.

        Priority:
        1. From config if provided
        2. From the embedder itself (known model table or a test embedding)
        """
        if config and config.dimension:
            return config.dimension

        return await embedder.get_dimension()
