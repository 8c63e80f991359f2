"""Async fill processing with per-block metadata and staleness detection."""

from genorch.processing.fill import (
    FillProcessor,
    ImageFileURIProcessor,
    SourceSetProcessor,
    fill_processing,
    process_fill,
)
from genorch.processing.metadata import (
    METADATA_KEY,
    FillProcessingMetadata,
    ProcessingProgress,
    ProcessingState,
    ProcessingStatus,
)

__all__ = [
    "METADATA_KEY",
    "FillProcessingMetadata",
    "FillProcessor",
    "ImageFileURIProcessor",
    "ProcessingProgress",
    "ProcessingState",
    "ProcessingStatus",
    "SourceSetProcessor",
    "fill_processing",
    "process_fill",
]
