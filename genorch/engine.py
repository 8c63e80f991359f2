"""Protocol for the host editor engine.

genorch never owns the scene graph. Everything it needs from the editor is
expressed by this capability interface: block validity and state, selection,
global scopes, edit mode, undo histories, fills, parents and clipping.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from genorch.types import BlockState, Source

# Global scope controlling whether the user may change the selection.
SELECT_SCOPE = "editor/select"

# Block type of the scene root. Clipping of the scene is never touched.
SCENE_TYPE = "//ly.img.ubq/scene"

SOURCE_SET_PROPERTY = "fill/image/sourceSet"
IMAGE_FILE_URI_PROPERTY = "fill/image/imageFileURI"
PREVIEW_FILE_URI_PROPERTY = "fill/image/previewFileURI"

Unsubscribe = Callable[[], None]


@runtime_checkable
class EditorEngine(Protocol):
    """Capabilities consumed from the host editing engine."""

    # -- blocks --------------------------------------------------------

    def is_valid(self, block_id: int) -> bool: ...

    def get_type(self, block_id: int) -> str: ...

    def get_state(self, block_id: int) -> BlockState: ...

    def set_state(self, block_id: int, state: BlockState) -> None: ...

    def get_parent(self, block_id: int) -> int | None: ...

    def is_clipped(self, block_id: int) -> bool: ...

    def set_clipped(self, block_id: int, clipped: bool) -> None: ...

    def is_always_on_top(self, block_id: int) -> bool: ...

    def set_always_on_top(self, block_id: int, always_on_top: bool) -> None: ...

    # -- selection -----------------------------------------------------

    def find_all_selected(self) -> list[int]: ...

    def set_selected(self, block_id: int, selected: bool) -> None: ...

    def on_selection_changed(self, callback: Callable[[], None]) -> Unsubscribe: ...

    # -- editor --------------------------------------------------------

    def get_global_scope(self, key: str) -> str | None: ...

    def set_global_scope(self, key: str, value: str) -> None: ...

    def get_edit_mode(self) -> str: ...

    def set_edit_mode(self, edit_mode: str) -> None: ...

    def on_state_changed(self, callback: Callable[[], None]) -> Unsubscribe: ...

    # -- history -------------------------------------------------------

    def create_history(self) -> int: ...

    def destroy_history(self, history: int) -> None: ...

    def get_active_history(self) -> int: ...

    def set_active_history(self, history: int) -> None: ...

    def add_undo_step(self) -> None: ...

    # -- fills ---------------------------------------------------------

    def has_fill(self, block_id: int) -> bool: ...

    def get_fill(self, block_id: int) -> int: ...

    def get_source_set(self, fill_id: int, prop: str) -> list[Source]: ...

    def set_source_set(self, fill_id: int, prop: str, sources: list[Source]) -> None: ...

    def get_string(self, block_id: int, prop: str) -> str: ...

    def set_string(self, block_id: int, prop: str, value: str) -> None: ...

    # -- metadata ------------------------------------------------------

    def has_metadata(self, block_id: int, key: str) -> bool: ...

    def get_metadata(self, block_id: int, key: str) -> str: ...

    def set_metadata(self, block_id: int, key: str, value: str) -> None: ...

    def remove_metadata(self, block_id: int, key: str) -> None: ...
