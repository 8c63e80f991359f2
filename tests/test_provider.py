"""Tests for genorch.provider."""

from __future__ import annotations

import asyncio
import logging

import pytest

from genorch.config import GenOrchConfig
from genorch.errors import GenerationCancelled, ProviderError, RateLimitExceededError
from genorch.middleware.lock import lock_middleware
from genorch.middleware.storage import TrackerStorage
from genorch.provider import Provider, ProviderRegistry, generate
from genorch.types import GenerationOptions, ImageOutput, OutputKind, is_chunk_stream
from tests.conftest import GRAPHIC_TYPE


class RecordingBackend:
    """Vendor stand-in that records every input it receives."""

    def __init__(self) -> None:
        self.calls: list = []

    async def __call__(self, input, options):
        self.calls.append(input)
        return ImageOutput(f"https://cdn.example/{len(self.calls)}.png")


def make_provider(provider_id="vendor/image", generate_fn=None, **kwargs) -> Provider:
    return Provider(
        id=provider_id, kind=OutputKind.image, generate=generate_fn or RecordingBackend(), **kwargs,
    )


class TestProvider:
    @pytest.mark.asyncio
    async def test_pipeline_applies_middleware_in_order(self):
        log = []

        def tag(name):
            async def middleware(input, options, next):
                log.append(name)
                return await next(input, options)

            return middleware

        provider = make_provider(middleware=(tag("provider"),))
        run = provider.pipeline(extra=[tag("extra")])
        await run("cat", GenerationOptions())
        assert log == ["provider", "extra"]

    def test_supported_quick_actions(self):
        provider = make_provider(quick_actions={"ly.img.editImage": {"mapInput": "edit"}})
        assert provider.supported_quick_actions({"ly.img.editImage": False}) == {}
        assert provider.supported_quick_actions() == {"ly.img.editImage": {"mapInput": "edit"}}

    def test_configured_quick_actions(self):
        provider = make_provider(quick_actions={
            "ly.img.editImage": {"mapInput": "edit"},
            "ly.img.swapBackground": {"mapInput": "swap"},
        })
        config = GenOrchConfig(quick_actions={"ly.img.editImage": False, "ly.img.styleTransfer": True})

        assert provider.configured_quick_actions(config) == {
            "ly.img.swapBackground": {"mapInput": "swap"},
            "ly.img.styleTransfer": True,
        }
        assert provider.configured_quick_actions() == provider.supported_quick_actions()

    def test_label(self):
        assert make_provider().label == "vendor/image"
        assert make_provider(name="Vendor").label == "Vendor"


class TestProviderRegistry:
    def test_register_and_lookup(self):
        registry = ProviderRegistry()
        image = make_provider("a/image")
        video = Provider(id="a/video", kind=OutputKind.video, generate=image.generate)
        registry.register(image)
        registry.register(video)

        assert registry.get("a/image") is image
        assert registry.get("missing") is None
        assert registry.by_kind(OutputKind.video) == [video]
        assert registry.all() == [image, video]
        assert "a/image" in registry

    def test_unregister(self):
        registry = ProviderRegistry()
        unregister = registry.register(make_provider())
        unregister()
        assert len(registry) == 0
        unregister()

    def test_reregister_warns_and_stale_unregister_is_noop(self, caplog):
        registry = ProviderRegistry()
        first = make_provider()
        second = make_provider()
        unregister_first = registry.register(first)
        with caplog.at_level(logging.WARNING):
            registry.register(second)
        assert "already registered" in caplog.text

        unregister_first()
        assert registry.get("vendor/image") is second


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success(self):
        provider = make_provider()
        outcome = await generate(provider, "cat", GenerationOptions())
        assert outcome.status == "success"
        assert outcome.output == ImageOutput("https://cdn.example/1.png")
        await outcome.dispose()

    @pytest.mark.asyncio
    async def test_aborted_before_call(self):
        provider = make_provider()
        abort = asyncio.Event()
        abort.set()
        outcome = await generate(provider, "cat", GenerationOptions(abort_event=abort))
        assert outcome.aborted
        assert provider.generate.calls == []

    @pytest.mark.asyncio
    async def test_aborted_during_call(self):
        abort = asyncio.Event()

        async def slow(input, options):
            abort.set()
            return ImageOutput("late")

        outcome = await generate(make_provider(generate_fn=slow), "cat", GenerationOptions(abort_event=abort))
        assert outcome.status == "aborted"
        assert outcome.output is None

    @pytest.mark.asyncio
    async def test_cancellation_error_is_aborted(self):
        async def cancelled(input, options):
            raise GenerationCancelled()

        outcome = await generate(make_provider(generate_fn=cancelled), "cat", GenerationOptions())
        assert outcome.aborted

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def failing(input, options):
            raise ProviderError("vendor/image", "quota exhausted")

        with pytest.raises(ProviderError):
            await generate(make_provider(generate_fn=failing), "cat", GenerationOptions())

    @pytest.mark.asyncio
    async def test_rate_limit_from_config(self):
        config = GenOrchConfig.model_validate({"rate_limit": {"enabled": True, "max_requests": 2}})
        provider = make_provider()
        storage = TrackerStorage()

        for _ in range(2):
            outcome = await generate(provider, "cat", GenerationOptions(), config=config, storage=storage)
            assert outcome.status == "success"
        with pytest.raises(RateLimitExceededError):
            await generate(provider, "cat", GenerationOptions(), config=config, storage=storage)
        assert len(provider.generate.calls) == 2

    @pytest.mark.asyncio
    async def test_dry_run_from_config(self):
        config = GenOrchConfig.model_validate({"dry_run": {"enabled": True, "delay_ms": 0}})
        provider = make_provider()
        outcome = await generate(provider, {"prompt": "fox 64x32"}, GenerationOptions(), config=config)
        assert outcome.output.url.startswith("data:image/png;base64,")
        assert provider.generate.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_text_streams(self):
        config = GenOrchConfig.model_validate({"dry_run": {"enabled": True, "delay_ms": 0}})
        provider = Provider(id="vendor/text", kind=OutputKind.text, generate=make_provider().generate)
        outcome = await generate(provider, "write something", GenerationOptions(block_ids=[]), config=config)
        assert is_chunk_stream(outcome.output)

    @pytest.mark.asyncio
    async def test_debug_logging(self, caplog):
        config = GenOrchConfig(debug=True)
        with caplog.at_level(logging.INFO, logger="genorch.middleware.debug"):
            await generate(make_provider(), "cat", GenerationOptions(), config=config)
        assert "[vendor/image] Starting generation" in caplog.text

    @pytest.mark.asyncio
    async def test_lock_held_until_dispose(self, engine):
        block = engine.create_block(GRAPHIC_TYPE, parent=engine.page)
        provider = make_provider(middleware=(lock_middleware("Generation"),))

        outcome = await generate(provider, "cat", GenerationOptions(engine=engine, block_ids=[block]))
        assert engine.get_edit_mode() == "Generation"
        await outcome.dispose()
        assert engine.get_edit_mode() == "Transform"

    @pytest.mark.asyncio
    async def test_lock_from_config(self, engine):
        block = engine.create_block(GRAPHIC_TYPE, parent=engine.page)
        config = GenOrchConfig.model_validate({"lock": {"enabled": True, "edit_mode": "Vectorize"}})
        seen = []

        async def backend(input, options):
            seen.append((engine.get_edit_mode(), engine.is_always_on_top(block)))
            return ImageOutput("u")

        outcome = await generate(
            make_provider(generate_fn=backend), "cat",
            GenerationOptions(engine=engine, block_ids=[block]), config=config,
        )
        assert seen == [("Vectorize", True)]
        assert engine.get_edit_mode() == "Vectorize"

        await outcome.dispose()
        assert engine.get_edit_mode() == "Transform"
        assert not engine.is_always_on_top(block)

    @pytest.mark.asyncio
    async def test_lock_disabled_by_default(self, engine):
        block = engine.create_block(GRAPHIC_TYPE, parent=engine.page)

        async def backend(input, options):
            assert engine.get_edit_mode() == "Transform"
            return ImageOutput("u")

        outcome = await generate(
            make_provider(generate_fn=backend), "cat", GenerationOptions(engine=engine, block_ids=[block]),
        )
        assert outcome.status == "success"
