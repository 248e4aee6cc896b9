"""
Retry helpers for external provider calls.

Provider calls (LLM, embedder, extractor) get a mandatory timeout and a
bounded exponential backoff on transient failures. Store writes are never
routed through here.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from chronograph.utils.exceptions import ConflictError, ProviderError, TransientProviderError
from chronograph.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_PROVIDER_TIMEOUT = 60.0


async def call_with_timeout(operation: Callable[[], Awaitable[T]], timeout: float | None) -> T:
    """
    Await an operation with a timeout.

    Args:
        operation: Async callable
        timeout: Seconds, or None for no limit

    Returns:
        Result of operation

    Raises:
        TransientProviderError: If the call timed out
    """
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except TimeoutError as e:
        raise TransientProviderError(f"Provider call timed out after {timeout}s") from e


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    timeout: float | None = None,
    context: dict | None = None,
) -> T:
    """
    Retry an async provider operation with exponential backoff.

    Only TransientProviderError (which includes timeouts) is retried. Any other
    error propagates immediately.

    Args:
        operation: Async callable to retry
        operation_name: Name for logging
        max_attempts: Total attempts including the first
        base_delay: Delay before the second attempt in seconds
        max_delay: Upper bound on a single delay
        timeout: Per-attempt timeout in seconds
        context: Extra fields attached to the raised error

    Returns:
        Result of operation

    Raises:
        ProviderError: If all attempts fail
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await call_with_timeout(operation, timeout)
        except TransientProviderError as e:
            last_error = e
            if attempt < max_attempts - 1:
                delay = min(base_delay * (2**attempt), max_delay)
                logger.bind(operation=operation_name, attempt=attempt + 1).warning(
                    f"{operation_name} failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
            else:
                logger.bind(operation=operation_name).error(
                    f"{operation_name} failed after {max_attempts} attempts: {e}"
                )

    raise ProviderError(
        f"{operation_name} failed after {max_attempts} attempts: {last_error}",
        context={**(context or {}), "operation": operation_name, "max_attempts": max_attempts},
    ) from last_error


async def retry_on_conflict(operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
    """
    Run an operation, retrying exactly once if it raises ConflictError.

    Args:
        operation: Async callable
        operation_name: Name for logging

    Returns:
        Result of operation
    """
    try:
        return await operation()
    except ConflictError as e:
        logger.bind(operation=operation_name, **e.context).warning(
            f"{operation_name} hit lock contention, retrying once: {e}"
        )
        return await operation()


class ProviderCaller:
    """
    A retry policy plus per-call timeout, bound once and reused for every
    provider call a service makes.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout

    @classmethod
    def from_policy(cls, policy, timeout: float = DEFAULT_PROVIDER_TIMEOUT) -> "ProviderCaller":
        """Build from any object with max_attempts/base_delay/max_delay (e.g. RetryConfig)."""
        return cls(
            max_attempts=policy.max_attempts,
            base_delay=policy.base_delay,
            max_delay=policy.max_delay,
            timeout=timeout,
        )

    async def __call__(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        context: dict | None = None,
    ) -> T:
        return await retry_async(
            operation,
            operation_name,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            timeout=self.timeout,
            context=context,
        )
