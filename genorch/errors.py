"""Error types for generation orchestration."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from genorch.middleware.rate_limit import RateLimitInfo


RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."


class GenerationError(Exception):
    """Base exception for generation operations."""


class RateLimitExceededError(GenerationError):
    """Raised when a rate limit rejects a generation call."""

    def __init__(self, info: RateLimitInfo, declined: bool = False) -> None:
        self.info = info
        self.declined = declined
        message = RATE_LIMIT_MESSAGE
        if declined:
            message = f"Operation aborted: {message}"
        super().__init__(message)


class GenerationCancelled(GenerationError):
    """Raised when a generation was aborted through its abort event."""

    def __init__(self, message: str = "Generation was cancelled") -> None:
        super().__init__(message)


class ProviderError(GenerationError):
    """Raised when a provider call fails."""

    def __init__(self, provider: str, message: str, retryable: bool = False) -> None:
        self.provider = provider
        self.retryable = retryable
        super().__init__(f"[{provider}] {message}")


class StorageError(GenerationError):
    """Raised by durable rate-limit storage. Never leaves the storage layer."""


def is_abort_error(error: BaseException) -> bool:
    return isinstance(error, (GenerationCancelled, asyncio.CancelledError))
