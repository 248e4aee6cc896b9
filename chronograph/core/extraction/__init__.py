"""
Extraction providers for ChronoGraph.

- Extractor: abstract interface used by ingestion, dedup and invalidation
- LLMExtractor: prompt-driven implementation on top of an LLMProvider
"""

from chronograph.core.extraction.base import Extractor
from chronograph.core.extraction.llm_extractor import LLMExtractor

__all__ = [
    "Extractor",
    "LLMExtractor",
]
