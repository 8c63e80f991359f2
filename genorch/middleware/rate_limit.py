"""Sliding-window rate limit middleware.

Counts admitted requests per partition key inside a trailing window of
``time_window_ms``. Old timestamps are dropped lazily on the next call once
the window has elapsed since the last cleanup, no background timer runs.

Limiters with the same ``(max_requests, time_window_ms)`` share counters via
their instance signature; different configurations never interfere.

Read-then-write on a tracker is not atomic across the storage round trip:
concurrent calls sharing a key may both observe a count below the limit.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

from genorch.config import RateLimitConfig
from genorch.errors import RateLimitExceededError
from genorch.middleware.base import Next
from genorch.middleware.storage import RequestTracker, TrackerStorage, default_storage
from genorch.types import GenerationOptions, GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_KEY = "global"

KeyFn = Callable[[Any, GenerationOptions], str]
RateLimitCallback = Callable[
    [Any, GenerationOptions, "RateLimitInfo"], Union[bool, None, Awaitable[Union[bool, None]]]
]


@dataclass(frozen=True)
class RateLimitInfo:
    """Handed to ``on_rate_limit_exceeded`` when a call hits the limit."""

    key: str
    current_count: int
    max_requests: int
    time_window_ms: int
    remaining_time_ms: float


def _now_ms() -> float:
    return time.time() * 1000.0


def instance_signature(max_requests: int, time_window_ms: int) -> str:
    return f"ratelimit_{max_requests}_{time_window_ms}"


class RateLimiter:
    """Middleware instance enforcing ``max_requests`` per ``time_window_ms``."""

    def __init__(
        self,
        max_requests: int,
        time_window_ms: int,
        key: str | KeyFn = DEFAULT_KEY,
        on_rate_limit_exceeded: RateLimitCallback | None = None,
        storage: TrackerStorage | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if time_window_ms <= 0:
            raise ValueError(f"time_window_ms must be > 0, got {time_window_ms}")
        self.max_requests = max_requests
        self.time_window_ms = time_window_ms
        self.signature = instance_signature(max_requests, time_window_ms)
        self._key = key
        self._on_exceeded = on_rate_limit_exceeded
        self._storage = storage
        self._clock = clock or _now_ms

    @classmethod
    def from_config(
        cls,
        config: RateLimitConfig,
        storage: TrackerStorage | None = None,
        **kwargs: Any,
    ) -> RateLimiter:
        return cls(
            config.max_requests,
            config.time_window_ms,
            key=config.key,
            storage=storage or default_storage(config),
            **kwargs,
        )

    @property
    def storage(self) -> TrackerStorage:
        if self._storage is None:
            self._storage = default_storage()
        return self._storage

    def resolve_key(self, input: Any, options: GenerationOptions) -> str:
        if callable(self._key):
            return self._key(input, options)
        return self._key

    async def __call__(
        self, input: Any, options: GenerationOptions, next: Next
    ) -> GenerationResult:
        key = self.resolve_key(input, options)
        now = self._clock()
        tracker = await self.storage.load(self.signature, key)
        if tracker is None:
            tracker = RequestTracker(timestamps=[], last_cleanup=now)

        if now - tracker.last_cleanup > self.time_window_ms:
            tracker.timestamps = [t for t in tracker.timestamps if now - t < self.time_window_ms]
            tracker.last_cleanup = now

        if len(tracker.timestamps) >= self.max_requests:
            oldest = min(tracker.timestamps)
            info = RateLimitInfo(
                key=key,
                current_count=len(tracker.timestamps),
                max_requests=self.max_requests,
                time_window_ms=self.time_window_ms,
                remaining_time_ms=max(0.0, self.time_window_ms - (now - oldest)),
            )
            if self._on_exceeded is None:
                logger.info("Rate limit hit for %r (%d/%d)", key, info.current_count, self.max_requests)
                raise RateLimitExceededError(info)

            proceed = self._on_exceeded(input, options, info)
            if inspect.isawaitable(proceed):
                proceed = await proceed
            if not proceed:
                logger.info("Rate limit hit for %r, callback declined", key)
                raise RateLimitExceededError(info, declined=True)
            logger.debug("Rate limit hit for %r, callback allowed the call", key)

        tracker.timestamps.append(now)
        await self.storage.save(self.signature, key, tracker)

        return await next(input, options)


def rate_limit_middleware(
    max_requests: int,
    time_window_ms: int,
    key: str | KeyFn = DEFAULT_KEY,
    on_rate_limit_exceeded: RateLimitCallback | None = None,
    storage: TrackerStorage | None = None,
    clock: Callable[[], float] | None = None,
) -> RateLimiter:
    """Create a rate limit middleware. See :class:`RateLimiter`."""
    return RateLimiter(
        max_requests,
        time_window_ms,
        key=key,
        on_rate_limit_exceeded=on_rate_limit_exceeded,
        storage=storage,
        clock=clock,
    )
