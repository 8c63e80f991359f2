"""Providers and the high-level generate run.

A provider wraps one vendor ``generate`` call plus the middlewares it always
needs. Providers are immutable; registries are explicit instances owned by
the host rather than process globals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from genorch.config import GenOrchConfig
from genorch.errors import is_abort_error
from genorch.middleware.base import (
    Handler,
    MiddlewareEntry,
    compose,
    compose_middlewares,
)
from genorch.middleware.debug import logging_middleware
from genorch.middleware.dry_run import dry_run_middleware
from genorch.middleware.lock import lock_middlewares
from genorch.middleware.rate_limit import RateLimiter
from genorch.middleware.storage import TrackerStorage
from genorch.quick_actions import merge_quick_actions_config
from genorch.types import GenerationOptions, GenerationResult, OutputKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provider:
    """One generation backend for a single output kind."""

    id: str
    kind: OutputKind
    generate: Handler
    middleware: tuple[MiddlewareEntry, ...] = ()
    name: str | None = None
    history: str | None = None
    quick_actions: Mapping[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name or self.id

    def pipeline(self, extra: Sequence[MiddlewareEntry] = ()) -> Handler:
        """The provider's generate call wrapped in its middlewares, then *extra*."""
        return compose([*self.middleware, *extra], self.generate)

    def supported_quick_actions(self, user_config: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return merge_quick_actions_config(self.quick_actions, user_config)

    def configured_quick_actions(self, config: GenOrchConfig | None = None) -> dict[str, Any]:
        """Quick actions left after applying the overrides in *config*."""
        config = config or GenOrchConfig.default()
        return self.supported_quick_actions(config.quick_actions)


class ProviderRegistry:
    """Providers registered by id."""

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}

    def register(self, provider: Provider) -> Callable[[], None]:
        """Register *provider*. Returns a function that unregisters it again."""
        if provider.id in self._providers:
            logger.warning("Provider %r already registered, replacing it", provider.id)
        self._providers[provider.id] = provider

        def unregister() -> None:
            if self._providers.get(provider.id) is provider:
                del self._providers[provider.id]

        return unregister

    def get(self, provider_id: str) -> Provider | None:
        return self._providers.get(provider_id)

    def by_kind(self, kind: OutputKind) -> list[Provider]:
        return [p for p in self._providers.values() if p.kind == kind]

    def all(self) -> list[Provider]:
        return list(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------


async def _nothing() -> None:
    pass


@dataclass
class GenerationOutcome:
    status: Literal["success", "aborted"]
    output: GenerationResult | None = None
    dispose: Callable[[], Awaitable[None]] = _nothing

    @property
    def aborted(self) -> bool:
        return self.status == "aborted"


def build_middlewares(
    provider: Provider,
    config: GenOrchConfig,
    middlewares: Sequence[MiddlewareEntry] = (),
    storage: TrackerStorage | None = None,
) -> list[MiddlewareEntry]:
    """Middleware order for one run, outermost first."""
    rate_limit = config.rate_limit
    return [
        *provider.middleware,
        config.debug and logging_middleware(provider.id),
        *(lock_middlewares(config.lock) if config.lock.enabled else ()),
        *middlewares,
        rate_limit.enabled and RateLimiter.from_config(rate_limit, storage=storage),
        config.dry_run.enabled and dry_run_middleware(provider.kind, delay_ms=config.dry_run.delay_ms),
    ]


async def generate(
    provider: Provider,
    input: Any,
    options: GenerationOptions,
    *,
    config: GenOrchConfig | None = None,
    middlewares: Sequence[MiddlewareEntry] = (),
    storage: TrackerStorage | None = None,
) -> GenerationOutcome:
    """Run *provider* through the configured pipeline.

    Cancellation becomes an ``aborted`` outcome. Every other error propagates
    after the pipeline's disposers have run. On success the caller owns
    ``outcome.dispose``.
    """
    config = config or GenOrchConfig.default()
    if options.aborted:
        return GenerationOutcome(status="aborted")

    run = compose_middlewares(build_middlewares(provider, config, middlewares, storage))(provider.generate)
    try:
        disposable = await run(input, options)
    except asyncio.CancelledError:
        logger.info("Generation with %s was cancelled", provider.label)
        raise
    except Exception as e:
        if is_abort_error(e):
            logger.info("Generation with %s was aborted", provider.label)
            return GenerationOutcome(status="aborted")
        raise

    if options.aborted:
        await disposable.dispose()
        return GenerationOutcome(status="aborted")
    return GenerationOutcome(status="success", output=disposable.result, dispose=disposable.dispose)
