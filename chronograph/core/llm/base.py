"""
Abstract base class for LLM providers.
Handles text generation with optional structured outputs.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class LLMProvider(ABC):
    """
    Abstract base for LLM text generation providers.

    Responsibilities:
    - Text completion/generation
    - Structured output (JSON/Pydantic models)

    Implementations raise TransientProviderError for failures worth retrying
    (timeouts, rate limits, connection resets) and LLMError otherwise.
    """

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        system_prompt: str | None = None,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion from prompt.

        Args:
            prompt: The input prompt
            response_format: Optional Pydantic model for structured output
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic, 1.0 = creative)
            system_prompt: Optional system message
            **kwargs: Provider-specific parameters

        Returns:
            Pydantic model instance if response_format provided, else string
        """
        pass

    @abstractmethod
    async def close(self):
        """
        Close any open connections.
        """
