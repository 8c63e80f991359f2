"""genorch: orchestration of slow, cancellable generation calls against editor state."""

__version__ = "0.1.0"

from genorch.config import GenOrchConfig
from genorch.errors import (
    GenerationCancelled,
    GenerationError,
    ProviderError,
    RateLimitExceededError,
)
from genorch.provider import GenerationOutcome, Provider, ProviderRegistry, generate
from genorch.types import GenerationContext, GenerationOptions, OutputKind

__all__ = [
    "GenOrchConfig",
    "GenerationCancelled",
    "GenerationContext",
    "GenerationError",
    "GenerationOptions",
    "GenerationOutcome",
    "OutputKind",
    "Provider",
    "ProviderError",
    "ProviderRegistry",
    "RateLimitExceededError",
    "__version__",
    "generate",
]
