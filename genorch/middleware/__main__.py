"""CLI entrypoint for exercising the middleware pipeline.

Usage:
    python -m genorch.middleware dry-run <image|video|audio|text> [--prompt P]
                                 [--config config.yaml] [--repeat N]
                                 [--delay-ms MS] [--json]
    python -m genorch.middleware limits [--config config.yaml] [--reset] [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from genorch.config import GenOrchConfig
from genorch.errors import ProviderError, RateLimitExceededError
from genorch.middleware.storage import RequestTracker, storage_from_config
from genorch.provider import Provider, generate
from genorch.types import (
    AudioOutput,
    GenerationOptions,
    GenerationResult,
    OutputKind,
    TextOutput,
    is_chunk_stream,
)

console = Console()

DRY_RUN_PROVIDER_ID = "genorch/dry-run"


async def _no_provider(input: Any, options: GenerationOptions) -> GenerationResult:
    raise ProviderError(DRY_RUN_PROVIDER_ID, "dry-run provider has no backend")


async def _collect(result: GenerationResult) -> GenerationResult:
    """Drain a chunk stream, keeping its last chunk."""
    if not is_chunk_stream(result):
        return result
    last = None
    async for chunk in result:
        last = chunk
    return last


def _describe(output: GenerationResult | None) -> str:
    if output is None:
        return ""
    if isinstance(output, TextOutput):
        return f"{len(output.text)} chars: {output.text[:60]}"
    if isinstance(output, AudioOutput):
        return f"{output.duration:.1f}s {output.url[:48]}..."
    url = output.url
    return url if len(url) <= 64 else f"{url[:64]}..."


async def _run_dry_run(
    kind: OutputKind, prompt: str, config: GenOrchConfig, repeat: int
) -> list[dict]:
    provider = Provider(id=DRY_RUN_PROVIDER_ID, kind=kind, generate=_no_provider, name="Dry run")
    results = []
    for i in range(repeat):
        options = GenerationOptions(block_ids=[])
        entry: dict[str, Any] = {"call": i + 1}
        try:
            outcome = await generate(provider, {"prompt": prompt}, options, config=config)
        except RateLimitExceededError as e:
            entry.update(status="rate-limited", detail=str(e),
                         remaining_ms=round(e.info.remaining_time_ms))
        else:
            try:
                output = await _collect(outcome.output) if outcome.output is not None else None
            finally:
                await outcome.dispose()
            entry.update(status=outcome.status, kind=kind.value, detail=_describe(output))
        results.append(entry)
    return results


def _build_dry_run_table(results: list[dict]) -> Table:
    table = Table(title="Dry-run Calls", show_lines=False)
    table.add_column("Call", justify="right", width=6)
    table.add_column("Status", width=14)
    table.add_column("Detail")

    styles = {"success": "green", "rate-limited": "yellow", "aborted": "red"}
    for entry in results:
        style = styles.get(entry["status"], "white")
        table.add_row(str(entry["call"]), f"[{style}]{entry['status']}[/{style}]", entry.get("detail", ""))
    return table


def _build_limits_table(trackers: dict[str, RequestTracker]) -> Table:
    table = Table(title="Rate-limit Trackers")
    table.add_column("Key", style="cyan")
    table.add_column("Requests", justify="right", width=10)
    table.add_column("Last cleanup (ms)", justify="right")
    for key, tracker in sorted(trackers.items()):
        table.add_row(key, str(len(tracker.timestamps)), f"{tracker.last_cleanup:.0f}")
    return table


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_dry_run(args: argparse.Namespace, config: GenOrchConfig) -> int:
    config.dry_run.enabled = True
    if args.delay_ms is not None:
        config.dry_run.delay_ms = args.delay_ms
    kind = OutputKind(args.kind)

    results = asyncio.run(_run_dry_run(kind, args.prompt, config, args.repeat))

    if args.json:
        print(json.dumps({"kind": kind.value, "calls": results}, indent=2))
    else:
        succeeded = sum(1 for r in results if r["status"] == "success")
        lines = [
            f"[bold]Kind:[/bold] {kind.value}",
            f"[bold]Prompt:[/bold] {args.prompt}",
            f"[bold]Calls:[/bold] {len(results)} ({succeeded} succeeded)",
            f"[bold]Rate limit:[/bold] "
            + (
                f"{config.rate_limit.max_requests} per {config.rate_limit.time_window_ms} ms"
                if config.rate_limit.enabled else "disabled"
            ),
        ]
        console.print(Panel("\n".join(lines), title="Dry Run", border_style="green"))
        console.print(_build_dry_run_table(results))
    return 0


def _cmd_limits(args: argparse.Namespace, config: GenOrchConfig) -> int:
    storage = storage_from_config(config.rate_limit)

    if args.reset:
        removed = asyncio.run(storage.clear())
        if args.json:
            print(json.dumps({"removed": removed}, indent=2))
        else:
            console.print(f"[green]Removed {removed} tracker(s)[/green]")
        return 0

    trackers = asyncio.run(storage.items())
    if args.json:
        data = {
            "db_path": str(config.rate_limit.db_path()),
            "trackers": {
                key: {"count": len(t.timestamps), "lastCleanup": t.last_cleanup}
                for key, t in sorted(trackers.items())
            },
        }
        print(json.dumps(data, indent=2))
    else:
        console.print(f"[bold]Database:[/bold] {config.rate_limit.db_path()}")
        if not trackers:
            console.print("[dim]No trackers stored[/dim]")
        else:
            console.print(_build_limits_table(trackers))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Exercise the generation middleware pipeline.",
        prog="python -m genorch.middleware",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    dry = sub.add_parser("dry-run", help="Run a dry-run provider through the pipeline")
    dry.add_argument("kind", choices=[k.value for k in OutputKind], help="Output kind")
    dry.add_argument("--prompt", default="A placeholder 512x512 image", help="Prompt passed as input")
    dry.add_argument("--config", type=Path, default=None, help="genorch config YAML")
    dry.add_argument("--repeat", type=int, default=1, help="Number of calls (default: 1)")
    dry.add_argument("--delay-ms", type=int, default=None, help="Override simulated latency")
    dry.add_argument("--json", action="store_true", help="Output JSON summary")

    limits = sub.add_parser("limits", help="List or clear durable rate-limit trackers")
    limits.add_argument("--config", type=Path, default=None, help="genorch config YAML")
    limits.add_argument("--reset", action="store_true", help="Delete every tracker")
    limits.add_argument("--json", action="store_true", help="Output JSON summary")

    args = parser.parse_args(argv)

    if not args.json:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_time=True, show_path=False)],
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.config is not None and not args.config.is_file():
        console.print(f"[red]Error: {args.config} not found[/red]")
        return 1
    config = GenOrchConfig.from_yaml(args.config) if args.config else GenOrchConfig.default()

    if args.command == "dry-run":
        if args.repeat < 1:
            console.print("[red]Error: --repeat must be >= 1[/red]")
            return 1
        return _cmd_dry_run(args, config)
    return _cmd_limits(args, config)


if __name__ == "__main__":
    sys.exit(main())
