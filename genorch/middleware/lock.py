"""Middlewares applying the selection lock and block highlighting.

Both register their restore as a pipeline disposer, so the lock is held
until the caller disposes the generation result, unless
``automatically_unlock`` releases it when ``next`` settles.
"""

from __future__ import annotations

from typing import Any

from genorch.config import LockConfig
from genorch.lock import LockRecord, highlight_blocks, lock_selection_in_edit_mode
from genorch.middleware.base import Middleware, Next, register_disposer
from genorch.types import GenerationOptions, GenerationResult


def lock_middleware(edit_mode: str, automatically_unlock: bool = False) -> Middleware:
    """Lock selection and edit mode to the generation's blocks."""

    async def middleware(input: Any, options: GenerationOptions, next: Next) -> GenerationResult:
        if options.engine is None:
            return await next(input, options)
        block_ids = options.resolve_block_ids()
        record = LockRecord(engine=options.engine, block_ids=block_ids)

        async def unlock() -> None:
            record.restore()

        deferred = not automatically_unlock and register_disposer(options, unlock)
        try:
            lock_selection_in_edit_mode(options.engine, block_ids, edit_mode, record)
            return await next(input, options)
        except BaseException:
            record.restore()
            raise
        finally:
            if not deferred:
                record.restore()

    return middleware


def highlight_blocks_middleware(
    always_on_top: bool = True,
    disable_clipping: bool = True,
) -> Middleware:
    """Keep the generation's blocks visible until the generation is disposed."""

    async def middleware(input: Any, options: GenerationOptions, next: Next) -> GenerationResult:
        if options.engine is None or not (always_on_top or disable_clipping):
            return await next(input, options)
        block_ids = options.resolve_block_ids()
        record = LockRecord(engine=options.engine, block_ids=block_ids)
        highlight_blocks(
            options.engine, block_ids, record,
            always_on_top=always_on_top, disable_clipping=disable_clipping,
        )

        async def restore() -> None:
            record.restore()

        if not register_disposer(options, restore):
            try:
                return await next(input, options)
            finally:
                record.restore()
        return await next(input, options)

    return middleware


def lock_middlewares(config: LockConfig) -> list[Middleware]:
    """Highlight and lock middlewares configured by *config*, outermost first.

    Empty when ``config.locked`` is off.
    """
    if not config.locked:
        return []
    return [
        highlight_blocks_middleware(
            always_on_top=config.always_on_top,
            disable_clipping=config.disable_clipping,
        ),
        lock_middleware(config.edit_mode, automatically_unlock=config.automatically_unlock),
    ]
