"""Error translation middleware."""

from __future__ import annotations

import logging
from typing import Any

from genorch.errors import GenerationError, ProviderError
from genorch.middleware.base import Middleware, Next
from genorch.types import GenerationOptions, GenerationResult

logger = logging.getLogger(__name__)

# Exception type names vendors commonly use for transient failures.
_RETRYABLE_NAMES = ("Timeout", "TimeoutError", "ConnectionError", "ServiceUnavailable", "TooManyRequests")


def error_translation_middleware(provider_id: str) -> Middleware:
    """Wrap vendor exceptions raised below this middleware in :class:`ProviderError`.

    Package errors (cancellation included) propagate unchanged. Errors raised while
    a chunk stream is consumed are not seen here.
    """

    async def middleware(input: Any, options: GenerationOptions, next: Next) -> GenerationResult:
        try:
            return await next(input, options)
        except GenerationError:
            raise
        except Exception as e:
            retryable = type(e).__name__ in _RETRYABLE_NAMES or isinstance(e, TimeoutError)
            logger.error("Generation failed for provider %s: %s", provider_id, e)
            raise ProviderError(provider_id, str(e) or type(e).__name__, retryable=retryable) from e

    return middleware
