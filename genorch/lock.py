"""Selection / edit-mode lock around a long-running generation.

While locked, the target blocks stay selected, the selection scope is denied,
the edit mode is pinned, and edits go to an isolated undo history. Visual
flags (pending state, always-on-top, parent clipping) keep the targets
visible. Every snapshot is restored exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from genorch.config import LockConfig
from genorch.engine import SCENE_TYPE, SELECT_SCOPE, EditorEngine, Unsubscribe
from genorch.types import BlockState

logger = logging.getLogger(__name__)

R = TypeVar("R")

DENY = "Deny"


def _noop() -> None:
    pass


@dataclass
class LockRecord:
    """Snapshot of everything a lock changed, restorable exactly once."""

    engine: EditorEngine
    block_ids: list[int]
    always_on_top: dict[int, bool] = field(default_factory=dict)
    parent_clipping: dict[int, bool] = field(default_factory=dict)
    selection: list[int] | None = None
    select_scope: str | None = None
    edit_mode: str | None = None
    history: int | None = None
    locked_history: int | None = None
    disposers: list[Unsubscribe] = field(default_factory=list)
    released: bool = False

    def restore(self) -> None:
        if self.released:
            return
        self.released = True
        engine = self.engine

        # Listeners go first, they would re-assert the lock otherwise.
        while self.disposers:
            dispose = self.disposers.pop()
            try:
                dispose()
            except Exception:
                logger.exception("Error removing lock listener %r", dispose)

        if self.selection is not None:
            for selected in engine.find_all_selected():
                if selected not in self.selection:
                    engine.set_selected(selected, False)
            for block_id in self.selection:
                if engine.is_valid(block_id):
                    engine.set_selected(block_id, True)

        if self.select_scope is not None:
            engine.set_global_scope(SELECT_SCOPE, self.select_scope)
        if self.edit_mode is not None:
            engine.set_edit_mode(self.edit_mode)
        if self.history is not None:
            engine.set_active_history(self.history)
        if self.locked_history is not None:
            engine.destroy_history(self.locked_history)

        for block_id, was_on_top in self.always_on_top.items():
            if engine.is_valid(block_id):
                engine.set_always_on_top(block_id, was_on_top)
        for parent, was_clipped in self.parent_clipping.items():
            if engine.is_valid(parent):
                engine.set_clipped(parent, was_clipped)


@dataclass
class LockResult(Generic[R]):
    unlock: Callable[[], None]
    return_value: R


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def highlight_blocks(
    engine: EditorEngine,
    block_ids: Sequence[int],
    record: LockRecord,
    *,
    always_on_top: bool = True,
    disable_clipping: bool = True,
) -> None:
    """Force always-on-top and unclipped parents, snapshotting into *record*."""
    for block_id in block_ids:
        if not engine.is_valid(block_id):
            continue
        if always_on_top and block_id not in record.always_on_top:
            record.always_on_top[block_id] = engine.is_always_on_top(block_id)
            engine.set_always_on_top(block_id, True)
        if disable_clipping:
            parent = engine.get_parent(block_id)
            if parent is None or engine.get_type(parent) == SCENE_TYPE:
                continue
            if parent not in record.parent_clipping:
                record.parent_clipping[parent] = engine.is_clipped(parent)
                engine.set_clipped(parent, False)


def lock_selection_in_edit_mode(
    engine: EditorEngine,
    block_ids: Sequence[int],
    edit_mode: str,
    record: LockRecord | None = None,
) -> LockRecord:
    """Pin the selection to *block_ids* in *edit_mode*.

    Returns the record whose :meth:`LockRecord.restore` unlocks again.
    """
    targets = list(block_ids)
    if record is None:
        record = LockRecord(engine=engine, block_ids=targets)

    def select_only_targets() -> None:
        for selected in engine.find_all_selected():
            if selected not in targets:
                engine.set_selected(selected, False)
        for block_id in targets:
            if engine.is_valid(block_id):
                engine.set_selected(block_id, True)

    def reassert_edit_mode() -> None:
        if engine.get_edit_mode() != edit_mode:
            engine.set_edit_mode(edit_mode)

    record.selection = engine.find_all_selected()
    record.select_scope = engine.get_global_scope(SELECT_SCOPE)
    record.edit_mode = engine.get_edit_mode()
    select_only_targets()
    engine.set_global_scope(SELECT_SCOPE, DENY)
    engine.set_edit_mode(edit_mode)

    record.history = engine.get_active_history()
    record.locked_history = engine.create_history()
    engine.set_active_history(record.locked_history)

    record.disposers.append(engine.on_state_changed(reassert_edit_mode))
    record.disposers.append(engine.on_selection_changed(select_only_targets))
    return record


def _set_pending(engine: EditorEngine, block_ids: Sequence[int]) -> None:
    for block_id in block_ids:
        if engine.is_valid(block_id):
            engine.set_state(block_id, BlockState.pending())


def _set_ready(engine: EditorEngine, block_ids: Sequence[int]) -> None:
    for block_id in block_ids:
        if engine.is_valid(block_id):
            engine.set_state(block_id, BlockState.ready())


# ---------------------------------------------------------------------------
# with_lock
# ---------------------------------------------------------------------------


async def with_lock(
    fn: Callable[[], Awaitable[R]],
    *,
    engine: EditorEngine,
    block_ids: Sequence[int],
    edit_mode: str,
    pending: bool = True,
    always_on_top: bool = True,
    disable_clipping: bool = True,
    locked: bool = True,
    automatically_unlock: bool = False,
) -> LockResult[R]:
    """Run *fn* while the selection and edit mode are locked.

    Pending state is reset to ready once *fn* settles. The lock itself is
    released immediately when *automatically_unlock* is set or *fn* raises;
    otherwise the caller owns the returned ``unlock``.
    """
    targets = list(block_ids)
    if not locked:
        return LockResult(unlock=_noop, return_value=await fn())

    record = LockRecord(engine=engine, block_ids=targets)
    try:
        if pending:
            _set_pending(engine, targets)
        highlight_blocks(
            engine, targets, record,
            always_on_top=always_on_top, disable_clipping=disable_clipping,
        )
        lock_selection_in_edit_mode(engine, targets, edit_mode, record)
        return_value = await fn()
    except BaseException:
        record.restore()
        raise
    finally:
        if pending:
            _set_ready(engine, targets)

    if automatically_unlock:
        record.restore()
        return LockResult(unlock=_noop, return_value=return_value)
    return LockResult(unlock=record.restore, return_value=return_value)


async def with_lock_from_config(
    fn: Callable[[], Awaitable[R]],
    *,
    engine: EditorEngine,
    block_ids: Sequence[int],
    config: LockConfig,
) -> LockResult[R]:
    """:func:`with_lock` with every option taken from *config*."""
    return await with_lock(
        fn,
        engine=engine,
        block_ids=block_ids,
        edit_mode=config.edit_mode,
        pending=config.pending,
        always_on_top=config.always_on_top,
        disable_clipping=config.disable_clipping,
        locked=config.locked,
        automatically_unlock=config.automatically_unlock,
    )
