"""Onion-style composition of middlewares around a terminal generate call.

Each middleware receives ``(input, options, next)`` and may:
    - return ``next``'s result unchanged or transformed
    - short-circuit with its own result without calling ``next``
    - catch an error raised by ``next`` and translate or re-raise it

``next`` may be awaited at most once per invocation. Retry or fan-out must
re-invoke the whole composed pipeline instead.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from genorch.types import Disposer, GenerationOptions, GenerationResult

logger = logging.getLogger(__name__)

Handler = Callable[[Any, GenerationOptions], Awaitable[GenerationResult]]
Next = Handler
Middleware = Callable[[Any, GenerationOptions, Next], Awaitable[GenerationResult]]
MiddlewareEntry = Union[Middleware, None, bool]


# ---------------------------------------------------------------------------
# Disposers
# ---------------------------------------------------------------------------


@dataclass
class DisposerStack:
    """Collects cleanup callbacks registered during one generation."""

    _disposers: list[Disposer] = field(default_factory=list)

    def add(self, dispose: Disposer) -> None:
        self._disposers.append(dispose)

    def __len__(self) -> int:
        return len(self._disposers)

    async def dispose(self) -> None:
        """Run disposers in reverse order. Failures are logged, not raised."""
        while self._disposers:
            disposer = self._disposers.pop()
            try:
                await disposer()
            except Exception:
                logger.exception("Error in disposer %r", disposer)


@dataclass
class DisposableResult:
    """A generation result plus the cleanup for everything it acquired.

    Call :meth:`dispose` once the result was consumed or the generation
    was cancelled.
    """

    result: GenerationResult
    _stack: DisposerStack

    async def dispose(self) -> None:
        await self._stack.dispose()


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def _valid(middlewares: Sequence[MiddlewareEntry]) -> list[Middleware]:
    return [m for m in middlewares if m is not None and m is not False and m is not True]


def _chain(middlewares: list[Middleware], handler: Handler) -> Handler:
    async def run(index: int, input: Any, options: GenerationOptions) -> GenerationResult:
        if index >= len(middlewares):
            return await handler(input, options)

        called = False

        async def next_(next_input: Any, next_options: GenerationOptions) -> GenerationResult:
            nonlocal called
            if called:
                raise RuntimeError(
                    f"next() called multiple times by middleware {middlewares[index]!r}"
                )
            called = True
            return await run(index + 1, next_input, next_options)

        return await middlewares[index](input, options, next_)

    async def chained(input: Any, options: GenerationOptions) -> GenerationResult:
        return await run(0, input, options)

    return chained


def compose_middlewares(
    middlewares: Sequence[MiddlewareEntry],
) -> Callable[[Handler], Callable[[Any, GenerationOptions], Awaitable[DisposableResult]]]:
    """Compose *middlewares* (outermost first) around a handler.

    Falsy entries are skipped so callers can write
    ``[rate_limit, debug and logging_middleware(...)]``.

    The composed function returns a :class:`DisposableResult`. If the chain
    raises, every disposer collected so far runs before the error surfaces.
    """
    valid = _valid(middlewares)

    def wrap(handler: Handler) -> Callable[[Any, GenerationOptions], Awaitable[DisposableResult]]:
        chained = _chain(valid, handler)

        async def composed(input: Any, options: GenerationOptions) -> DisposableResult:
            stack = DisposerStack()
            enhanced = dataclasses.replace(options, add_disposer=stack.add)
            try:
                result = await chained(input, enhanced)
            except BaseException:
                await stack.dispose()
                raise
            return DisposableResult(result=result, _stack=stack)

        return composed

    return wrap


def compose(middlewares: Sequence[MiddlewareEntry], handler: Handler) -> Handler:
    """Compose into a function with the same signature as *handler*.

    Disposers go to the caller's ``options.add_disposer`` when present,
    otherwise they run as soon as the call settles.
    """
    chained = _chain(_valid(middlewares), handler)

    async def composed(input: Any, options: GenerationOptions) -> GenerationResult:
        if options.add_disposer is not None:
            return await chained(input, options)
        stack = DisposerStack()
        try:
            return await chained(input, dataclasses.replace(options, add_disposer=stack.add))
        finally:
            await stack.dispose()

    return composed


def register_disposer(options: GenerationOptions, dispose: Disposer) -> bool:
    """Attach *dispose* to the running generation. False if nothing collects it."""
    if options.add_disposer is None:
        return False
    options.add_disposer(dispose)
    return True
