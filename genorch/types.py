"""Core data types for genorch.

Every module in the library produces/consumes these types:
- Outputs returned by providers (single value or a lazy chunk stream)
- Options threaded unchanged through the middleware pipeline
- Block level values exchanged with the host editor engine
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import AsyncIterator, Callable, Coroutine, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from genorch.errors import GenerationCancelled

if TYPE_CHECKING:
    from genorch.engine import EditorEngine


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OutputKind(str, enum.Enum):
    """Kind of content a provider generates."""

    image = "image"
    video = "video"
    audio = "audio"
    text = "text"


class BlockStateType(str, enum.Enum):
    """Visual state of a block in the host engine."""

    ready = "Ready"
    pending = "Pending"
    error = "Error"


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImageOutput:
    url: str

    @property
    def kind(self) -> OutputKind:
        return OutputKind.image


@dataclass(frozen=True)
class VideoOutput:
    url: str

    @property
    def kind(self) -> OutputKind:
        return OutputKind.video


@dataclass(frozen=True)
class AudioOutput:
    url: str
    duration: float
    thumbnail_url: str | None = None

    @property
    def kind(self) -> OutputKind:
        return OutputKind.audio


@dataclass(frozen=True)
class TextOutput:
    text: str

    @property
    def kind(self) -> OutputKind:
        return OutputKind.text


Output = Union[ImageOutput, VideoOutput, AudioOutput, TextOutput]

# A provider either returns one output or streams outputs incrementally.
GenerationResult = Union[Output, AsyncIterator[Output]]


def is_chunk_stream(value: object) -> bool:
    """True if *value* is a lazy chunk sequence rather than a single output."""
    return isinstance(value, AsyncIterator)


# ---------------------------------------------------------------------------
# Engine values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Source:
    """One entry of a fill's source set."""

    uri: str
    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class BlockState:
    type: BlockStateType = BlockStateType.ready
    progress: float | None = None

    @classmethod
    def pending(cls, progress: float = 0.0) -> BlockState:
        return cls(BlockStateType.pending, progress)

    @classmethod
    def ready(cls) -> BlockState:
        return cls(BlockStateType.ready)


# ---------------------------------------------------------------------------
# Generation options
# ---------------------------------------------------------------------------

Disposer = Callable[[], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class GenerationContext:
    """Explicit UI state handed to providers and middlewares."""

    locale: str = "en"
    debug: bool = False
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationOptions:
    """Options passed by reference through the whole pipeline.

    ``block_ids`` semantics:
        None  -- use the engine's current selection
        []    -- explicitly no blocks
    """

    engine: EditorEngine | None = None
    abort_event: asyncio.Event | None = None
    block_ids: list[int] | None = None
    context: GenerationContext = field(default_factory=GenerationContext)
    add_disposer: Callable[[Disposer], None] | None = None

    @property
    def aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise GenerationCancelled()

    def resolve_block_ids(self) -> list[int]:
        if self.block_ids is not None:
            return list(self.block_ids)
        if self.engine is None:
            return []
        return self.engine.find_all_selected()
