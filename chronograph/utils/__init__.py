"""Utility modules for ChronoGraph."""

from chronograph.utils.datetime_utils import ensure_utc, parse_datetime, to_iso, utc_now
from chronograph.utils.exceptions import (
    ChronoGraphError,
    ConfigurationError,
    ConflictError,
    EmbeddingError,
    ExtractionError,
    GraphStoreError,
    IngestionError,
    LLMError,
    NotFoundError,
    ProviderError,
    StoreError,
    TransientProviderError,
    ValidationError,
)
from chronograph.utils.id_generator import generate_uuid
from chronograph.utils.logger import get_logger, setup_logging
from chronograph.utils.text import normalize_fact, normalize_name, search_tokens

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    # IDs
    "generate_uuid",
    # Datetime
    "utc_now",
    "ensure_utc",
    "parse_datetime",
    "to_iso",
    # Text
    "normalize_name",
    "normalize_fact",
    "search_tokens",
    # Exceptions
    "ChronoGraphError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ConfigurationError",
    "StoreError",
    "GraphStoreError",
    "ProviderError",
    "TransientProviderError",
    "LLMError",
    "EmbeddingError",
    "ExtractionError",
    "IngestionError",
]
