"""Configuration models for genorch.

Pydantic v2 models with sensible defaults, works without a config file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

STATE_DIR_ENV_VAR = "GENORCH_STATE_DIR"


class RateLimitConfig(BaseModel):
    """Configuration for the sliding-window rate limit middleware."""

    enabled: bool = Field(False, description="Add a rate limit middleware to every generation")
    max_requests: int = Field(10, ge=1, description="Requests allowed per time window")
    time_window_ms: int = Field(60_000, ge=1, description="Sliding window length in milliseconds")
    key: str = Field("global", description="Partition key shared by all calls")
    db_name: str = Field("genorch-rate-limits", description="Name of the durable tracker database")
    state_dir: Path | None = Field(
        None,
        description=(
            "Directory holding the durable tracker database. "
            f"Defaults to ${STATE_DIR_ENV_VAR} or ~/.cache/genorch."
        ),
    )
    durable: bool = Field(True, description="Persist trackers; False keeps them in memory only")

    def db_path(self) -> Path:
        """Resolve the location of the durable tracker database."""
        state_dir = self.state_dir
        if state_dir is None:
            env = os.environ.get(STATE_DIR_ENV_VAR)
            state_dir = Path(env) if env else Path.home() / ".cache" / "genorch"
        return state_dir / f"{self.db_name}.sqlite3"


class LockConfig(BaseModel):
    """Configuration for locking selection and edit mode during generation."""

    enabled: bool = Field(False, description="Lock the generation's blocks in every generate() run")
    edit_mode: str = Field("Generation", description="Edit mode forced while locked")
    pending: bool = Field(True, description="Show target blocks as pending while locked")
    always_on_top: bool = Field(True, description="Keep target blocks on top while locked")
    disable_clipping: bool = Field(True, description="Disable clipping of target parents while locked")
    automatically_unlock: bool = Field(
        False, description="Release the lock when the call returns instead of handing out unlock()"
    )
    locked: bool = Field(True, description="False runs the function without locking")


class ProcessingConfig(BaseModel):
    """Configuration for async fill processing."""

    progress_interval_ms: int = Field(100, ge=0, description="Minimum interval between progress writes")


class DryRunConfig(BaseModel):
    """Configuration for dry-run generation (no provider calls)."""

    enabled: bool = Field(False, description="Replace provider output with placeholders")
    delay_ms: int = Field(2000, ge=0, description="Simulated generation latency")


class GenOrchConfig(BaseModel):
    """Top-level configuration for genorch."""

    debug: bool = Field(False, description="Log every generation through a logging middleware")
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    dry_run: DryRunConfig = Field(default_factory=DryRunConfig)
    quick_actions: dict[str, Any] = Field(
        default_factory=dict,
        description="User overrides merged onto provider quick-action defaults",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> GenOrchConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    @classmethod
    def default(cls) -> GenOrchConfig:
        """Return configuration with all defaults."""
        return cls()
