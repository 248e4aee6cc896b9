"""
Factory modules for creating ChronoGraph components.

Provides modular factories for LLM, Embedder, Graph Store, and Reranker.
"""

from chronograph.core.factory.embedder_factory import EmbedderFactory
from chronograph.core.factory.graph_factory import GraphStoreFactory
from chronograph.core.factory.llm_factory import LLMFactory
from chronograph.core.factory.reranker_factory import RerankerFactory

__all__ = [
    "LLMFactory",
    "EmbedderFactory",
    "GraphStoreFactory",
    "RerankerFactory",
]
