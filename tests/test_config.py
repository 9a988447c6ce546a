"""Tests for config loading and saving."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from cellweave.config import CellweaveConfig, load_config, save_config


def test_defaults_when_missing(tmp_path: Path) -> None:
    with patch("cellweave.config._config_dir", return_value=tmp_path / "cfg"):
        config = load_config()
    assert config.undo.capture_timeout_ms == 500
    assert config.stale.mark_on_source_replace is False
    assert config.reconcile.append_orphans is False
    assert config.tombstones.ttl_days == 30


def test_save_then_load(tmp_path: Path) -> None:
    config = CellweaveConfig()
    config.reconcile.append_orphans = True
    config.undo.capture_timeout_ms = 1000
    with patch("cellweave.config._config_dir", return_value=tmp_path / "cfg"):
        save_config(config)
        loaded = load_config()
        assert (tmp_path / "cfg" / "snapshots").is_dir()
    assert loaded.reconcile.append_orphans is True
    assert loaded.undo.capture_timeout_ms == 1000
