"""Configuration management for cellweave."""

import json
from pathlib import Path

from pydantic import BaseModel


class UndoSettings(BaseModel):
    capture_timeout_ms: int = 500


class StaleSettings(BaseModel):
    mark_on_source_replace: bool = False


class ReconcileSettings(BaseModel):
    append_orphans: bool = False
    sort_orphans_by_id: bool = True
    repair_on_load: bool = False


class TombstoneSettings(BaseModel):
    ttl_days: int = 30


class CellweaveConfig(BaseModel):
    undo: UndoSettings = UndoSettings()
    stale: StaleSettings = StaleSettings()
    reconcile: ReconcileSettings = ReconcileSettings()
    tombstones: TombstoneSettings = TombstoneSettings()


def _config_dir() -> Path:
    return Path.home() / ".cellweave"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def snapshots_dir() -> Path:
    """Return the directory holding stored document snapshots."""
    return _config_dir() / "snapshots"


def ensure_dirs() -> None:
    """Create required cellweave directories."""
    _config_dir().mkdir(exist_ok=True)
    snapshots_dir().mkdir(exist_ok=True)


def load_config() -> CellweaveConfig:
    """Load config from ~/.cellweave/config.json, returning defaults if missing."""
    path = _config_path()
    if not path.exists():
        return CellweaveConfig()
    text = path.read_text()
    return CellweaveConfig.model_validate_json(text)


def save_config(config: CellweaveConfig) -> None:
    """Save config to ~/.cellweave/config.json."""
    ensure_dirs()
    path = _config_path()
    path.write_text(json.dumps(config.model_dump(), indent=2) + "\n")
