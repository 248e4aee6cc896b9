"""
Ollama LLM provider using native ollama-python SDK.
"""

import json

import httpx
import ollama
from pydantic import BaseModel

from chronograph.core.llm.base import LLMProvider
from chronograph.utils.exceptions import LLMError, TransientProviderError, ValidationError
from chronograph.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaLLM(LLMProvider):
    """
    Ollama LLM provider for text generation.

    Uses native ollama-python SDK for chat completions
    with JSON schema mode for structured outputs.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 120.0,
    ):
        """
        Initialize Ollama LLM provider.

        Args:
            host: Ollama server URL
            model: Model name for text generation (e.g., "llama3.1", "mistral")
            timeout: Request timeout in seconds
        """
        self.host = host
        self.model = model
        self.timeout = timeout

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

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
        Generate completion using Ollama.

        Structured output passes the model's JSON schema as the `format`
        argument and validates the reply against it.

        Raises:
            TransientProviderError: On timeouts and connection failures
            LLMError: On other API errors or unparseable structured output
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        options = {
            "temperature": temperature,
            "num_predict": max_tokens,
            **kwargs.get("options", {}),
        }

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        format_type = None
        if response_format:
            format_type = response_format.model_json_schema()
            prompt = f"""{prompt}

Return ONLY valid JSON matching the requested structure, no markdown formatting or extra text."""

        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat(
                model=self.model,
                messages=messages,
                format=format_type,
                options=options,
                **{k: v for k, v in kwargs.items() if k != "options"},
            )
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            raise TransientProviderError(f"Ollama transient error: {e}") from e
        except ollama.ResponseError as e:
            if e.status_code in (429, 502, 503, 504):
                raise TransientProviderError(f"Ollama transient error: {e}") from e
            raise LLMError(f"Ollama API error: {e}") from e
        except Exception as e:
            logger.bind(model=self.model, host=self.host).error(f"Ollama API error: {e}")
            raise LLMError(f"Ollama API error: {e}") from e

        content = response["message"]["content"]

        if not response_format:
            return content

        cleaned = self._extract_json(content)
        try:
            return response_format.model_validate_json(cleaned)
        except Exception as e:
            raise LLMError(
                f"Failed to parse structured output: {e}\n"
                f"Raw response (first 500 chars): {content[:500]}\n"
                f"Expected format: {response_format.__name__}"
            ) from e

    def _extract_json(self, content: str) -> str:
        """
        Extract JSON from content that might have markdown formatting.

        Args:
            content: Raw content that may contain JSON

        Returns:
            Cleaned JSON string
        """
        content = content.strip()

        if "```json" in content:
            content = content.split("```json")[1].split("```")[0].strip()
        elif "```" in content:
            content = content.split("```")[1].split("```")[0].strip()

        # Some models prefix prose; keep the outermost object
        if not content.startswith("{") and "{" in content:
            start, end = content.find("{"), content.rfind("}")
            if end > start:
                candidate = content[start : end + 1]
                try:
                    json.loads(candidate)
                    content = candidate
                except json.JSONDecodeError:
                    pass

        return content

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
