"""Middlewares wrapping a provider's generate call.

Available middlewares:
- ``rate_limit_middleware``: sliding-window throttling with durable trackers
- ``lock_middleware``: pins selection and edit mode to the generation's blocks
- ``highlight_blocks_middleware``: keeps target blocks visible while generating
- ``dry_run_middleware``: placeholder outputs instead of provider calls
- ``logging_middleware``: debug logging of inputs, outputs and timing
- ``error_translation_middleware``: vendor exceptions become ``ProviderError``
"""

from genorch.middleware.base import (
    DisposableResult,
    Middleware,
    Next,
    compose,
    compose_middlewares,
)
from genorch.middleware.debug import logging_middleware
from genorch.middleware.dry_run import dry_run_middleware
from genorch.middleware.lock import highlight_blocks_middleware, lock_middleware, lock_middlewares
from genorch.middleware.rate_limit import RateLimiter, RateLimitInfo, rate_limit_middleware
from genorch.middleware.translate import error_translation_middleware

__all__ = [
    "DisposableResult",
    "Middleware",
    "Next",
    "RateLimitInfo",
    "RateLimiter",
    "compose",
    "compose_middlewares",
    "dry_run_middleware",
    "error_translation_middleware",
    "highlight_blocks_middleware",
    "lock_middleware",
    "lock_middlewares",
    "logging_middleware",
    "rate_limit_middleware",
]
