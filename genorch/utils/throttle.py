"""Leading + trailing edge throttle for callbacks on the running event loop."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any


class Throttle:
    """Invoke *func* at most once per *interval* seconds.

    The first call runs immediately. Calls inside the interval are coalesced:
    only the latest arguments run once the interval has elapsed. Trailing
    calls are scheduled with ``loop.call_later`` and need a running loop.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._func = func
        self.interval = interval
        self._clock = clock
        self._last_call: float | None = None
        self._pending: tuple[Any, ...] | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def __call__(self, *args: Any) -> None:
        now = self._clock()
        self._pending = args
        if self._last_call is None or now - self._last_call >= self.interval:
            self._cancel_timer()
            self._invoke()
        elif self._handle is None:
            remaining = self.interval - (now - self._last_call)
            self._handle = asyncio.get_running_loop().call_later(remaining, self._invoke)

    def _invoke(self) -> None:
        self._handle = None
        args, self._pending = self._pending, None
        if args is None:
            return
        self._last_call = self._clock()
        self._func(*args)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> None:
        """Run a pending trailing call now."""
        self._cancel_timer()
        self._invoke()

    def cancel(self) -> None:
        """Drop a pending trailing call."""
        self._cancel_timer()
        self._pending = None
