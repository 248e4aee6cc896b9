"""
Factory for creating LLM providers.
"""

from chronograph.config import OLLAMA_DEFAULT_HOST, LLMConfig
from chronograph.core.llm.base import LLMProvider
from chronograph.core.llm.ollama import OllamaLLM
from chronograph.core.llm.openai import OpenAILLM
from chronograph.utils.exceptions import ConfigurationError


class LLMFactory:
    """Factory for creating LLM providers from configuration."""

    @staticmethod
    def create(config: LLMConfig) -> LLMProvider:
        """
        Create LLM provider from configuration.

        Args:
            config: LLM configuration

        Returns:
            LLM provider instance

        Raises:
            ConfigurationError: If provider is not supported or misconfigured
        """
        if config.provider == "ollama":
            return OllamaLLM(
                host=config.base_url or OLLAMA_DEFAULT_HOST,
                model=config.model,
                timeout=config.timeout,
            )
        elif config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError("OpenAI API key is required", context={"section": "llm"})
            return OpenAILLM(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        else:
            raise ConfigurationError(f"Unsupported LLM provider: {config.provider}")
