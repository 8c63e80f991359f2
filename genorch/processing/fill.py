"""Staleness-safe async fill processing.

Protocol for one block:

1. Capture fill identity and source data, mark the fill pending and write
   PROCESSING metadata.
2. Run the processor. Throttled progress is written only while the block is
   still PROCESSING and consistent.
3. Re-run the staleness check. A stale result is dropped without error,
   the user has reset, deleted or redirected the block in the meantime.
4. Commit, write PROCESSED and add an undo step.

Failures become ERROR metadata plus a rollback of the captured data and are
logged, never raised: by the time a long mutation fails, callers observe the
block metadata rather than this coroutine.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from genorch.config import ProcessingConfig
from genorch.engine import (
    IMAGE_FILE_URI_PROPERTY,
    PREVIEW_FILE_URI_PROPERTY,
    SOURCE_SET_PROPERTY,
    EditorEngine,
)
from genorch.errors import GenerationCancelled
from genorch.processing.metadata import (
    FillProcessingMetadata,
    ProcessingProgress,
    ProcessingState,
    ProcessingStatus,
)
from genorch.types import BlockState, Source
from genorch.utils.throttle import Throttle

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[str, float, float], None]


class FillProcessor(Protocol[T]):
    """Produces new fill data and commits it to the block."""

    async def process_fill(self, state: ProcessingState, progress: ProgressCallback) -> T | None: ...

    def commit_processing(self, data: T, state: ProcessingState) -> int | None:
        """Apply *data*. Returning another block id skips the metadata write."""
        ...


def _is_current(metadata: FillProcessingMetadata, block_id: int) -> bool:
    return (
        metadata.get(block_id).status == ProcessingStatus.processing
        and metadata.is_consistent(block_id)
    )


async def fill_processing(
    block_id: int,
    engine: EditorEngine,
    metadata: FillProcessingMetadata,
    processor: FillProcessor[T],
    *,
    config: ProcessingConfig | None = None,
    progress_interval_ms: int | None = None,
) -> ProcessingState | None:
    """Run *processor* on the fill of *block_id*.

    Returns the final state written (PROCESSED, ERROR or IDLE after a
    cancellation), or None when the result was discarded as stale.

    Progress writes are throttled to *progress_interval_ms*, which defaults
    to ``config.progress_interval_ms``.

    Raises:
        ValueError: If the block has no fill.
    """
    if not engine.has_fill(block_id):
        raise ValueError(f"Block {block_id} does not support fill")

    fill_id = engine.get_fill(block_id)
    initial_source_set = engine.get_source_set(fill_id, SOURCE_SET_PROPERTY)
    captured = ProcessingState(
        status=ProcessingStatus.processing,
        block_id=block_id,
        fill_id=fill_id,
        initial_source_set=initial_source_set,
        initial_image_file_uri=engine.get_string(fill_id, IMAGE_FILE_URI_PROPERTY),
        initial_preview_file_uri=engine.get_string(fill_id, PREVIEW_FILE_URI_PROPERTY),
    )

    def write_progress(key: str, current: float, total: float) -> None:
        if not _is_current(metadata, block_id):
            return
        state = metadata.get(block_id)
        metadata.set(
            block_id,
            state.model_copy(update={"progress": ProcessingProgress(key=key, current=current, total=total)}),
        )

    if progress_interval_ms is None:
        progress_interval_ms = (config or ProcessingConfig()).progress_interval_ms
    progress = Throttle(write_progress, progress_interval_ms / 1000.0)

    try:
        engine.set_state(fill_id, BlockState.pending())
        metadata.set(block_id, captured)

        data = await processor.process_fill(captured, progress)
        progress.cancel()

        if not _is_current(metadata, block_id):
            logger.debug("Discarding stale fill processing result for block %d", block_id)
            return None
        if data is None:
            return None

        update: dict = {"status": ProcessingStatus.processed, "progress": None}
        if isinstance(data, list) and all(isinstance(s, Source) for s in data):
            update["processed"] = list(data)
        processed = captured.model_copy(update=update)
        committed_block = processor.commit_processing(data, processed)

        if committed_block is None or committed_block == block_id:
            metadata.set(block_id, processed)

        engine.add_undo_step()
        return processed
    except (GenerationCancelled, asyncio.CancelledError) as e:
        progress.cancel()
        logger.info("Fill processing of block %d cancelled", block_id)
        idle = None
        if engine.is_valid(block_id) and _is_current(metadata, block_id):
            metadata.recover_initial_image_data(block_id)
            metadata.clear(block_id)
            idle = metadata.get(block_id)
        if isinstance(e, asyncio.CancelledError):
            raise
        return idle
    except Exception:
        progress.cancel()
        failed = None
        if engine.is_valid(block_id):
            failed = captured.model_copy(update={"status": ProcessingStatus.error})
            metadata.set(block_id, failed)
            metadata.recover_initial_image_data(block_id)
        logger.exception("Fill processing of block %d failed", block_id)
        return failed
    finally:
        if engine.is_valid(fill_id):
            engine.set_state(fill_id, BlockState.ready())


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _require_fill(state: ProcessingState) -> int:
    if state.fill_id is None:
        raise ValueError("Processing state has no fill to commit to")
    return state.fill_id


class SourceSetProcessor:
    """Maps the captured source set, highest resolution first."""

    def __init__(
        self,
        engine: EditorEngine,
        process_source_set: Callable[[list[Source], ProgressCallback], Awaitable[list[Source]]],
    ) -> None:
        self.engine = engine
        self._process = process_source_set

    async def process_fill(self, state: ProcessingState, progress: ProgressCallback) -> list[Source] | None:
        if not state.initial_source_set:
            raise ValueError("Fill has no source set to process")
        sources = sorted(state.initial_source_set, key=lambda s: s.pixels, reverse=True)

        # Show the best source while the loading indicator runs.
        if not state.initial_preview_file_uri and state.fill_id is not None:
            self.engine.set_string(state.fill_id, PREVIEW_FILE_URI_PROPERTY, sources[0].uri)

        result = await self._process(sources, progress)
        if not result or all(s is None for s in result):
            raise ValueError("Empty source set after processing fill")
        return result

    def commit_processing(self, data: list[Source], state: ProcessingState) -> int | None:
        fill_id = _require_fill(state)
        self.engine.set_source_set(fill_id, SOURCE_SET_PROPERTY, data)
        self.engine.set_string(fill_id, PREVIEW_FILE_URI_PROPERTY, "")
        return None


class ImageFileURIProcessor:
    """Maps the captured image file URI to a new URI."""

    def __init__(
        self,
        engine: EditorEngine,
        process_uri: Callable[[str, ProgressCallback], Awaitable[str]],
    ) -> None:
        self.engine = engine
        self._process = process_uri

    async def process_fill(self, state: ProcessingState, progress: ProgressCallback) -> str | None:
        if not state.initial_image_file_uri:
            raise ValueError("Fill has no image file URI to process")
        return await self._process(state.initial_image_file_uri, progress)

    def commit_processing(self, data: str, state: ProcessingState) -> int | None:
        fill_id = _require_fill(state)
        self.engine.set_string(fill_id, IMAGE_FILE_URI_PROPERTY, data)
        self.engine.set_string(fill_id, PREVIEW_FILE_URI_PROPERTY, "")
        return None


async def process_fill(
    engine: EditorEngine,
    block_id: int,
    metadata: FillProcessingMetadata,
    process_source_set: Callable[[list[Source], ProgressCallback], Awaitable[list[Source]]],
    *,
    config: ProcessingConfig | None = None,
    progress_interval_ms: int | None = None,
) -> ProcessingState | None:
    """Shorthand for :func:`fill_processing` with a :class:`SourceSetProcessor`."""
    return await fill_processing(
        block_id,
        engine,
        metadata,
        SourceSetProcessor(engine, process_source_set),
        config=config,
        progress_interval_ms=progress_interval_ms,
    )
