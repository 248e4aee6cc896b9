"""
Cross-encoder rerankers for hybrid search.
"""

from chronograph.core.reranker.base import Reranker
from chronograph.core.reranker.openai import OpenAIReranker

__all__ = [
    "Reranker",
    "OpenAIReranker",
]
