"""Debug logging middleware."""

from __future__ import annotations

import logging
import time
from typing import Any

from genorch.middleware.base import Middleware, Next
from genorch.types import GenerationOptions, GenerationResult, is_chunk_stream

logger = logging.getLogger(__name__)


def logging_middleware(provider_id: str) -> Middleware:
    """Log input, duration and output of every generation for *provider_id*.

    Chunk streams are logged as such and handed on untouched.
    """

    async def middleware(input: Any, options: GenerationOptions, next: Next) -> GenerationResult:
        logger.info("[%s] Starting generation with input: %r", provider_id, input)
        start = time.monotonic()
        try:
            result = await next(input, options)
        except Exception as e:
            logger.info(
                "[%s] Generation failed after %.2fs: %s",
                provider_id, time.monotonic() - start, e,
            )
            raise
        elapsed = time.monotonic() - start
        if is_chunk_stream(result):
            logger.info("[%s] Streaming generation started after %.2fs", provider_id, elapsed)
        else:
            logger.info("[%s] Generated %s output in %.2fs", provider_id, result.kind.value, elapsed)
            logger.debug("[%s] Output: %r", provider_id, result)
        return result

    return middleware
