"""Per-block fill processing metadata.

The state of an async fill mutation is stored as JSON in the block's
metadata, so it survives serialization of the scene and is the single
source of truth other code consults before trusting a pending mutation.
"""

from __future__ import annotations

import enum
import logging

from pydantic import BaseModel, Field, ValidationError

from genorch import __version__
from genorch.engine import (
    IMAGE_FILE_URI_PROPERTY,
    PREVIEW_FILE_URI_PROPERTY,
    SOURCE_SET_PROPERTY,
    EditorEngine,
)
from genorch.types import Source

logger = logging.getLogger(__name__)

METADATA_KEY = "genorch/fill-processing"


class ProcessingStatus(str, enum.Enum):
    """IDLE -> PROCESSING -> PROCESSED | ERROR, and back to IDLE on reset."""

    idle = "IDLE"
    processing = "PROCESSING"
    processed = "PROCESSED"
    error = "ERROR"


class ProcessingProgress(BaseModel):
    key: str
    current: float
    total: float


class ProcessingState(BaseModel):
    """Snapshot captured when a fill mutation starts, plus its outcome."""

    status: ProcessingStatus = ProcessingStatus.idle
    version: str = __version__
    block_id: int | None = None
    fill_id: int | None = None
    initial_source_set: list[Source] = Field(default_factory=list)
    initial_image_file_uri: str = ""
    initial_preview_file_uri: str = ""
    processed: list[Source] | None = None
    progress: ProcessingProgress | None = None

    @property
    def is_active(self) -> bool:
        """True once a mutation captured block/fill identity."""
        return self.status != ProcessingStatus.idle


IDLE = ProcessingState()


class FillProcessingMetadata:
    """Read/write :class:`ProcessingState` on blocks of one engine."""

    def __init__(self, engine: EditorEngine, key: str = METADATA_KEY) -> None:
        self.engine = engine
        self.key = key

    def get(self, block_id: int) -> ProcessingState:
        engine = self.engine
        if not engine.is_valid(block_id) or not engine.has_metadata(block_id, self.key):
            return IDLE.model_copy()
        raw = engine.get_metadata(block_id, self.key)
        try:
            return ProcessingState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring unreadable processing metadata on block %d: %s", block_id, e)
            return IDLE.model_copy()

    def set(self, block_id: int, state: ProcessingState) -> None:
        self.engine.set_metadata(block_id, self.key, state.model_dump_json())

    def clear(self, block_id: int) -> None:
        if self.engine.is_valid(block_id) and self.engine.has_metadata(block_id, self.key):
            self.engine.remove_metadata(block_id, self.key)

    # ------------------------------------------------------------------

    def is_consistent(self, block_id: int) -> bool:
        """Staleness check: does the live block still match the captured state?

        False when the block was destroyed, its fill was replaced, or its
        source set was changed from outside.
        """
        engine = self.engine
        if not engine.is_valid(block_id):
            return False
        state = self.get(block_id)
        if not state.is_active:
            return True

        if not engine.has_fill(block_id):
            return False
        fill_id = engine.get_fill(block_id)
        if block_id != state.block_id or fill_id != state.fill_id:
            return False

        source_set = engine.get_source_set(fill_id, SOURCE_SET_PROPERTY)
        if state.status == ProcessingStatus.processed:
            return source_set == state.processed or source_set == state.initial_source_set
        return source_set == state.initial_source_set

    def is_duplicate(self, block_id: int) -> bool:
        """True if the metadata was copied from another block by duplication."""
        engine = self.engine
        if not engine.is_valid(block_id):
            return False
        state = self.get(block_id)
        if state.status in (ProcessingStatus.idle, ProcessingStatus.error):
            return False
        if not engine.has_fill(block_id):
            return False
        fill_id = engine.get_fill(block_id)
        return state.block_id != block_id and state.fill_id != fill_id

    def fix_duplicate(self, block_id: int) -> None:
        """Rebind duplicated metadata to this block and fill.

        A duplicate of a block in PROCESSING is never updated by the running
        mutation, so its initial data is recovered and the state cleared.
        """
        state = self.get(block_id)
        if state.status in (ProcessingStatus.idle, ProcessingStatus.error):
            return
        fill_id = self.engine.get_fill(block_id)
        self.set(block_id, state.model_copy(update={"block_id": block_id, "fill_id": fill_id}))

        if state.status == ProcessingStatus.processing:
            self.recover_initial_image_data(block_id)
            self.clear(block_id)

    def recover_initial_image_data(self, block_id: int) -> None:
        """Roll the fill back to the data captured before processing."""
        engine = self.engine
        if not engine.is_valid(block_id) or not engine.has_fill(block_id):
            return
        state = self.get(block_id)
        if not state.is_active or state.block_id != block_id:
            return
        fill_id = engine.get_fill(block_id)
        if fill_id != state.fill_id:
            return

        if state.initial_image_file_uri:
            engine.set_string(fill_id, IMAGE_FILE_URI_PROPERTY, state.initial_image_file_uri)
        if state.initial_preview_file_uri:
            engine.set_string(fill_id, PREVIEW_FILE_URI_PROPERTY, state.initial_preview_file_uri)
        if state.initial_source_set:
            engine.set_source_set(fill_id, SOURCE_SET_PROPERTY, list(state.initial_source_set))
