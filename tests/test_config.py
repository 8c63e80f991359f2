"""Tests for genorch.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from genorch.config import (
    DryRunConfig,
    GenOrchConfig,
    LockConfig,
    ProcessingConfig,
    RateLimitConfig,
)


class TestRateLimitConfig:
    def test_defaults(self):
        cfg = RateLimitConfig()
        assert cfg.enabled is False
        assert cfg.max_requests == 10
        assert cfg.time_window_ms == 60_000
        assert cfg.key == "global"
        assert cfg.durable is True

    def test_invalid(self):
        with pytest.raises(ValidationError):
            RateLimitConfig(max_requests=0)
        with pytest.raises(ValidationError):
            RateLimitConfig(time_window_ms=0)

    def test_db_path_from_state_dir(self, tmp_path):
        cfg = RateLimitConfig(state_dir=tmp_path, db_name="limits")
        assert cfg.db_path() == tmp_path / "limits.sqlite3"

    def test_db_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GENORCH_STATE_DIR", str(tmp_path))
        assert RateLimitConfig().db_path() == tmp_path / "genorch-rate-limits.sqlite3"

    def test_db_path_default(self, monkeypatch):
        monkeypatch.delenv("GENORCH_STATE_DIR", raising=False)
        path = RateLimitConfig().db_path()
        assert path == Path.home() / ".cache" / "genorch" / "genorch-rate-limits.sqlite3"


class TestLockConfig:
    def test_defaults(self):
        cfg = LockConfig()
        assert cfg.edit_mode == "Generation"
        assert cfg.pending and cfg.always_on_top and cfg.disable_clipping and cfg.locked
        assert cfg.automatically_unlock is False
        assert cfg.enabled is False


class TestGenOrchConfig:
    def test_default(self):
        cfg = GenOrchConfig.default()
        assert isinstance(cfg.rate_limit, RateLimitConfig)
        assert isinstance(cfg.lock, LockConfig)
        assert isinstance(cfg.processing, ProcessingConfig)
        assert isinstance(cfg.dry_run, DryRunConfig)
        assert cfg.processing.progress_interval_ms == 100
        assert cfg.dry_run.delay_ms == 2000
        assert cfg.quick_actions == {}

    def test_from_yaml(self, tmp_path):
        yaml_path = tmp_path / "config.yaml"
        yaml_path.write_text(
            "debug: true\n"
            "rate_limit:\n  enabled: true\n  max_requests: 3\n"
            "quick_actions:\n  ly.img.editImage: false\n  ly.img.swapBackground:\n    label: Swap\n"
        )
        cfg = GenOrchConfig.from_yaml(yaml_path)
        assert cfg.debug is True
        assert cfg.rate_limit.enabled is True
        assert cfg.rate_limit.max_requests == 3
        # Other fields keep defaults
        assert cfg.rate_limit.time_window_ms == 60_000
        assert cfg.quick_actions == {"ly.img.editImage": False, "ly.img.swapBackground": {"label": "Swap"}}

    def test_from_empty_yaml(self, tmp_path):
        yaml_path = tmp_path / "empty.yaml"
        yaml_path.write_text("")
        cfg = GenOrchConfig.from_yaml(yaml_path)
        assert cfg.rate_limit.max_requests == 10
