"""
Factory for creating cross-encoder rerankers.
"""

from chronograph.config import LLMConfig, RerankerConfig
from chronograph.core.reranker.base import Reranker
from chronograph.core.reranker.openai import OpenAIReranker
from chronograph.utils.exceptions import ConfigurationError


class RerankerFactory:
    """Factory for creating rerankers from configuration."""

    @staticmethod
    def create(config: RerankerConfig, llm_config: LLMConfig | None = None) -> Reranker | None:
        """
        Create reranker from configuration.

        The OpenAI reranker falls back to the LLM section's API key.

        Returns:
            Reranker instance, or None when provider is "none"

        Raises:
            ConfigurationError: If provider is not supported or misconfigured
        """
        if config.provider == "none":
            return None
        elif config.provider == "openai":
            api_key = config.api_key or (llm_config.api_key if llm_config else None)
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key is required", context={"section": "reranker"}
                )
            return OpenAIReranker(
                api_key=api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        else:
            raise ConfigurationError(f"Unsupported reranker provider: {config.provider}")
