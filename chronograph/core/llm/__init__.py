"""
LLM providers for ChronoGraph.

Available providers:
- OpenAILLM: OpenAI chat completions with native structured outputs
- OllamaLLM: Local models via ollama-python with JSON schema output
"""

from chronograph.core.llm.base import LLMProvider
from chronograph.core.llm.ollama import OllamaLLM
from chronograph.core.llm.openai import OpenAILLM

__all__ = [
    "LLMProvider",
    "OpenAILLM",
    "OllamaLLM",
]
