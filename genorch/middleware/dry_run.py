"""Dry-run middleware: placeholder outputs instead of provider calls.

Useful to exercise the whole pipeline (locks, rate limits, streaming
consumers) without paying for generations.

    - image: PNG data URI sized from ``WxH`` in the prompt (default 512x512)
    - video: a public sample clip
    - audio: sine tone WAV data URI, duration from input or prompt (default 3s)
    - text:  chunk stream of dummy text roughly as long as the original
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import math
import re
import wave
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from typing import Any

import numpy as np
from PIL import Image, ImageDraw

from genorch.middleware.base import Middleware, Next
from genorch.types import (
    AudioOutput,
    GenerationOptions,
    GenerationResult,
    ImageOutput,
    OutputKind,
    TextOutput,
    VideoOutput,
)

logger = logging.getLogger(__name__)

SAMPLE_VIDEO_URL = "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4"
DEFAULT_IMAGE_SIZE = (512, 512)
DEFAULT_AUDIO_SECONDS = 3.0
TONE_HZ = 220.0
SAMPLE_RATE = 44_100
TEXT_CHUNKS = 20
TEXT_CHUNK_DELAY = 0.1
TEXT_PROPERTY = "text/text"
DRY_RUN_PREFIX = "[DRY RUN - Dummy Text] "

_BASE_TEXTS = {
    "translation": "Ceci est un texte fictif traduit qui maintient la longueur approximative.",
    "professional": "Enhanced professional content with improved clarity and structure.",
    "casual": "Relaxed, friendly text that keeps things simple and approachable.",
    "formal": "Refined formal documentation that preserves original structure.",
    "humorous": "Amusing content that brings lighthearted fun to the text.",
    "improved": "Enhanced text that demonstrates better clarity and readability.",
    "custom": "Customized content reflecting the requested modifications.",
    "generated": "AI-generated content maintaining original length and structure.",
}
_VARIATIONS = (
    " Additional content continues with similar phrasing.",
    " Further elaboration maintains the established tone.",
    " Extended content preserves the original style.",
    " Continued text follows the same pattern.",
)


def _field(input: Any, name: str) -> Any:
    if isinstance(input, Mapping):
        return input.get(name)
    return getattr(input, name, None)


def _prompt(input: Any) -> str | None:
    prompt = _field(input, "prompt")
    return prompt if isinstance(prompt, str) else None


# ---------------------------------------------------------------------------
# Placeholder renderers
# ---------------------------------------------------------------------------


def placeholder_image_uri(width: int, height: int, label: str) -> str:
    """Render a black PNG with *label* and return it as a data URI."""
    img = Image.new("RGB", (width, height), (0, 0, 0))
    ImageDraw.Draw(img).text((8, height // 2), label[:80], fill=(255, 255, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def tone_wav_uri(frequency: float, duration: float, sample_rate: int = SAMPLE_RATE) -> str:
    """16-bit mono sine tone as a WAV data URI."""
    n = int(sample_rate * duration)
    t = np.arange(n, dtype=np.float64)
    pcm = np.sin(2 * math.pi * frequency * t / sample_rate)
    samples = np.round(np.clip(pcm, -1.0, 1.0) * 32767).astype("<i2")

    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(samples.tobytes())
    return "data:audio/wav;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def dummy_text(target_length: int, style: str) -> str:
    """Dummy text of exactly *target_length* characters (prefix included)."""
    if target_length <= len(DRY_RUN_PREFIX):
        return DRY_RUN_PREFIX[:target_length]
    remaining = target_length - len(DRY_RUN_PREFIX)
    base = _BASE_TEXTS.get(style, _BASE_TEXTS["generated"])
    if remaining <= len(base):
        return DRY_RUN_PREFIX + base[:remaining]

    content = base
    i = 0
    while len(content) < remaining:
        content += _VARIATIONS[i % len(_VARIATIONS)]
        i += 1
    return DRY_RUN_PREFIX + content[:remaining]


async def stream_text(
    text: str,
    options: GenerationOptions,
    delay: float = TEXT_CHUNK_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[TextOutput]:
    """Yield ~20 growing prefixes of *text*, stopping early on abort."""
    chunk = max(1, math.ceil(len(text) / TEXT_CHUNKS))
    length = 0
    while length < len(text):
        if options.aborted:
            return
        length = min(length + chunk, len(text))
        yield TextOutput(text=text[:length])
        if length < len(text):
            await sleep(delay)


# ---------------------------------------------------------------------------
# Outputs per kind
# ---------------------------------------------------------------------------


def _image_output(input: Any) -> ImageOutput:
    prompt = _prompt(input) or "AI Generated Image"
    width, height = DEFAULT_IMAGE_SIZE
    match = re.search(r"(\d+)x(\d+)", prompt)
    if match:
        width, height = int(match.group(1)), int(match.group(2))
    return ImageOutput(url=placeholder_image_uri(width, height, prompt))


def _audio_output(input: Any) -> AudioOutput:
    duration = DEFAULT_AUDIO_SECONDS
    value = _field(input, "duration")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        duration = float(value)
    else:
        prompt = _prompt(input)
        match = re.search(r"(\d+)\s*(?:seconds?|secs?|s)\b", prompt or "", re.IGNORECASE)
        if match:
            duration = float(match.group(1))
    return AudioOutput(url=tone_wav_uri(TONE_HZ, duration), duration=duration)


def _original_text(input: Any, options: GenerationOptions, block_ids: Sequence[int]) -> str:
    engine = options.engine
    if engine is not None and block_ids and engine.is_valid(block_ids[0]):
        text = engine.get_string(block_ids[0], TEXT_PROPERTY)
        if text:
            return text
    prompt = _prompt(input)
    if prompt:
        for pattern in (r'text:\s*"([^"]+)"', r'content:\s*"([^"]+)"', r'"([^"]+)"'):
            match = re.search(pattern, prompt, re.IGNORECASE)
            if match:
                return match.group(1)
    return ""


def _text_style(input: Any) -> str:
    if input is None or isinstance(input, str):
        return "generated"
    if isinstance(_field(input, "language"), str):
        return "translation"
    tone = _field(input, "type")
    if isinstance(tone, str):
        return tone
    if _field(input, "custom_prompt") is not None:
        return "custom"
    return "improved"


def dry_run_output(
    kind: OutputKind,
    input: Any,
    options: GenerationOptions,
    block_ids: Sequence[int] = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> GenerationResult:
    """Placeholder output for *kind*."""
    if kind == OutputKind.image:
        return _image_output(input)
    if kind == OutputKind.video:
        return VideoOutput(url=SAMPLE_VIDEO_URL)
    if kind == OutputKind.audio:
        return _audio_output(input)
    if kind == OutputKind.text:
        original = _original_text(input, options, block_ids)
        return stream_text(dummy_text(len(original) or 50, _text_style(input)), options, sleep=sleep)
    raise ValueError(f"Unsupported output kind for dry run: {kind}")


def dry_run_middleware(
    kind: OutputKind,
    enabled: bool = True,
    delay_ms: int = 2000,
    block_ids: Sequence[int] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Middleware:
    """Short-circuit generation with placeholders when *enabled*."""

    async def middleware(input: Any, options: GenerationOptions, next: Next) -> GenerationResult:
        if not enabled:
            return await next(input, options)
        logger.info("[DRY RUN] Requesting dummy %s generation with input: %r", kind.value, input)
        if delay_ms:
            await sleep(delay_ms / 1000.0)
        options.raise_if_aborted()
        targets = block_ids if block_ids is not None else options.resolve_block_ids()
        return dry_run_output(kind, input, options, targets, sleep=sleep)

    return middleware
