"""
Custom exception hierarchy for ChronoGraph.

Provides structured error types for ingestion, search and storage failures.
All exceptions inherit from ChronoGraphError for easy catching, and carry a
context dict with the episode/entity uuid the failure relates to.
"""


class ChronoGraphError(Exception):
    """
    Base exception for all ChronoGraph errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize ChronoGraph error.
        Args:
            message: Human-readable cause
            context: Optional context dictionary (episode_uuid, entity_uuid, ...)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(ChronoGraphError):
    """
    Validation errors.
    Raised when input is malformed, before any side effect happens.
    """

    pass


class NotFoundError(ChronoGraphError):
    """
    Resource not found errors.
    Raised when a uuid lookup finds nothing. Never retried.
    """

    pass


class ConflictError(ChronoGraphError):
    """
    Lock contention errors.
    Raised when the per-group lock cannot be acquired in time.
    """

    pass


class ConfigurationError(ChronoGraphError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class StoreError(ChronoGraphError):
    """
    Base exception for store operations.
    Not retried blindly: a failed write may or may not have landed.
    """

    pass


class GraphStoreError(StoreError):
    """
    Graph store operation errors.
    Raised when graph database operations fail.
    """

    pass


class ProviderError(ChronoGraphError):
    """
    Base exception for external provider failures (LLM, embedder, extractor).
    """

    pass


class TransientProviderError(ProviderError):
    """
    Provider failures worth retrying (timeouts, rate limits, 5xx).
    """

    pass


class LLMError(ProviderError):
    """
    LLM operation errors.
    Raised when LLM operations fail (API errors, timeouts, etc.).
    """

    pass


class EmbeddingError(ProviderError):
    """
    Embedding generation errors.
    Raised when embedding generation fails.
    """

    pass


class ExtractionError(ProviderError):
    """
    Extraction errors.
    Raised when the extractor returns unusable output.
    """

    pass


class IngestionError(ChronoGraphError):
    """
    Episode ingestion failure.
    The episode was not persisted; context carries the episode_uuid.
    """

    pass
