"""Shared test fixtures for genorch."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from genorch.engine import (
    IMAGE_FILE_URI_PROPERTY,
    PREVIEW_FILE_URI_PROPERTY,
    SCENE_TYPE,
    SELECT_SCOPE,
    SOURCE_SET_PROPERTY,
)
from genorch.middleware.storage import TrackerStorage, reset_default_storage
from genorch.types import BlockState, Source

GRAPHIC_TYPE = "//ly.img.ubq/graphic"
PAGE_TYPE = "//ly.img.ubq/page"
IMAGE_FILL_TYPE = "//ly.img.ubq/fill/image"


@dataclass
class FakeBlock:
    type: str
    parent: int | None = None
    state: BlockState = field(default_factory=BlockState)
    clipped: bool = False
    always_on_top: bool = False
    fill: int | None = None
    strings: dict[str, str] = field(default_factory=dict)
    source_sets: dict[str, list[Source]] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


class FakeEngine:
    """In-memory :class:`~genorch.engine.EditorEngine`.

    Listeners fire synchronously and only when a value actually changes.
    """

    def __init__(self) -> None:
        self.blocks: dict[int, FakeBlock] = {}
        self._next_id = 1
        self.selected: list[int] = []
        self.scopes: dict[str, str] = {SELECT_SCOPE: "Allow"}
        self.edit_mode = "Transform"
        self.histories: set[int] = {0}
        self.active_history = 0
        self._next_history = 1
        self.undo_steps = 0
        self._selection_listeners: list[Callable[[], None]] = []
        self._state_listeners: list[Callable[[], None]] = []

    # -- construction helpers -------------------------------------------

    def create_block(self, type: str = GRAPHIC_TYPE, parent: int | None = None) -> int:
        block_id = self._next_id
        self._next_id += 1
        self.blocks[block_id] = FakeBlock(type=type, parent=parent)
        return block_id

    def create_image_block(
        self,
        sources: list[Source] | None = None,
        image_uri: str = "",
        preview_uri: str = "",
        parent: int | None = None,
    ) -> int:
        block_id = self.create_block(GRAPHIC_TYPE, parent)
        fill_id = self.create_block(IMAGE_FILL_TYPE)
        fill = self.blocks[fill_id]
        fill.source_sets[SOURCE_SET_PROPERTY] = list(sources or [])
        fill.strings[IMAGE_FILE_URI_PROPERTY] = image_uri
        fill.strings[PREVIEW_FILE_URI_PROPERTY] = preview_uri
        self.blocks[block_id].fill = fill_id
        return block_id

    def replace_fill(self, block_id: int) -> int:
        fill_id = self.create_block(IMAGE_FILL_TYPE)
        self.blocks[fill_id].source_sets[SOURCE_SET_PROPERTY] = []
        self.blocks[block_id].fill = fill_id
        return fill_id

    def destroy(self, block_id: int) -> None:
        self.blocks.pop(block_id, None)
        if block_id in self.selected:
            self.selected.remove(block_id)
            self._fire(self._selection_listeners)

    def duplicate(self, block_id: int) -> int:
        original = self.blocks[block_id]
        new_id = self.create_block(original.type, original.parent)
        copy = self.blocks[new_id]
        copy.metadata = dict(original.metadata)
        if original.fill is not None:
            new_fill = self.create_block(IMAGE_FILL_TYPE)
            source = self.blocks[original.fill]
            self.blocks[new_fill].strings = dict(source.strings)
            self.blocks[new_fill].source_sets = {k: list(v) for k, v in source.source_sets.items()}
            copy.fill = new_fill
        return new_id

    @property
    def listener_count(self) -> int:
        return len(self._selection_listeners) + len(self._state_listeners)

    def _fire(self, listeners: list[Callable[[], None]]) -> None:
        for listener in list(listeners):
            listener()

    @staticmethod
    def _subscribe(listeners: list, callback: Callable[[], None]) -> Callable[[], None]:
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    # -- blocks ---------------------------------------------------------

    def is_valid(self, block_id: int) -> bool:
        return block_id in self.blocks

    def get_type(self, block_id: int) -> str:
        return self.blocks[block_id].type

    def get_state(self, block_id: int) -> BlockState:
        return self.blocks[block_id].state

    def set_state(self, block_id: int, state: BlockState) -> None:
        self.blocks[block_id].state = state

    def get_parent(self, block_id: int) -> int | None:
        return self.blocks[block_id].parent

    def is_clipped(self, block_id: int) -> bool:
        return self.blocks[block_id].clipped

    def set_clipped(self, block_id: int, clipped: bool) -> None:
        self.blocks[block_id].clipped = clipped

    def is_always_on_top(self, block_id: int) -> bool:
        return self.blocks[block_id].always_on_top

    def set_always_on_top(self, block_id: int, always_on_top: bool) -> None:
        self.blocks[block_id].always_on_top = always_on_top

    # -- selection ------------------------------------------------------

    def find_all_selected(self) -> list[int]:
        return list(self.selected)

    def set_selected(self, block_id: int, selected: bool) -> None:
        if selected and block_id not in self.selected:
            self.selected.append(block_id)
        elif not selected and block_id in self.selected:
            self.selected.remove(block_id)
        else:
            return
        self._fire(self._selection_listeners)

    def on_selection_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._subscribe(self._selection_listeners, callback)

    # -- editor ---------------------------------------------------------

    def get_global_scope(self, key: str) -> str | None:
        return self.scopes.get(key)

    def set_global_scope(self, key: str, value: str) -> None:
        self.scopes[key] = value

    def get_edit_mode(self) -> str:
        return self.edit_mode

    def set_edit_mode(self, edit_mode: str) -> None:
        if edit_mode == self.edit_mode:
            return
        self.edit_mode = edit_mode
        self._fire(self._state_listeners)

    def on_state_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._subscribe(self._state_listeners, callback)

    # -- history --------------------------------------------------------

    def create_history(self) -> int:
        history = self._next_history
        self._next_history += 1
        self.histories.add(history)
        return history

    def destroy_history(self, history: int) -> None:
        self.histories.discard(history)

    def get_active_history(self) -> int:
        return self.active_history

    def set_active_history(self, history: int) -> None:
        self.active_history = history

    def add_undo_step(self) -> None:
        self.undo_steps += 1

    # -- fills ----------------------------------------------------------

    def has_fill(self, block_id: int) -> bool:
        return block_id in self.blocks and self.blocks[block_id].fill is not None

    def get_fill(self, block_id: int) -> int:
        fill = self.blocks[block_id].fill
        if fill is None:
            raise ValueError(f"Block {block_id} has no fill")
        return fill

    def get_source_set(self, fill_id: int, prop: str) -> list[Source]:
        return list(self.blocks[fill_id].source_sets.get(prop, []))

    def set_source_set(self, fill_id: int, prop: str, sources: list[Source]) -> None:
        self.blocks[fill_id].source_sets[prop] = list(sources)

    def get_string(self, block_id: int, prop: str) -> str:
        return self.blocks[block_id].strings.get(prop, "")

    def set_string(self, block_id: int, prop: str, value: str) -> None:
        self.blocks[block_id].strings[prop] = value

    # -- metadata -------------------------------------------------------

    def has_metadata(self, block_id: int, key: str) -> bool:
        return key in self.blocks[block_id].metadata

    def get_metadata(self, block_id: int, key: str) -> str:
        return self.blocks[block_id].metadata[key]

    def set_metadata(self, block_id: int, key: str, value: str) -> None:
        self.blocks[block_id].metadata[key] = value

    def remove_metadata(self, block_id: int, key: str) -> None:
        self.blocks[block_id].metadata.pop(key, None)


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> FakeEngine:
    """Engine with a scene, a page and nothing selected."""
    eng = FakeEngine()
    eng.scene = eng.create_block(SCENE_TYPE)
    eng.page = eng.create_block(PAGE_TYPE, parent=eng.scene)
    return eng


@pytest.fixture
def sources() -> list[Source]:
    """Source set in ascending resolution."""
    return [
        Source("https://img.example/small.png", 256, 256),
        Source("https://img.example/large.png", 1024, 1024),
        Source("https://img.example/medium.png", 512, 512),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage() -> TrackerStorage:
    """Tracker storage without a durable store."""
    return TrackerStorage()


@pytest.fixture(autouse=True)
def _isolated_default_storage(tmp_path, monkeypatch):
    """Point the process-wide tracker database at a temporary directory."""
    monkeypatch.setenv("GENORCH_STATE_DIR", str(tmp_path / "state"))
    reset_default_storage()
    yield
    reset_default_storage()
