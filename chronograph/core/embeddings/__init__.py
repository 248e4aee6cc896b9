"""
Embedder abstraction layer for text embeddings.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)

CachedEmbedder wraps either with a content-hash LRU.
"""

from chronograph.core.embeddings.base import Embedder
from chronograph.core.embeddings.cached import CachedEmbedder
from chronograph.core.embeddings.ollama import OllamaEmbedder
from chronograph.core.embeddings.openai import OpenAIEmbedder

__all__ = [
    "Embedder",
    "CachedEmbedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
]
