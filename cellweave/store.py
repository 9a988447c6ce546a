"""Snapshot store for notebook documents. Saves to ~/.cellweave/snapshots/{name}.ydoc.

A snapshot is the document's full update encoding, readable by any peer.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pycrdt import Doc

from cellweave.config import load_config
from cellweave.config import snapshots_dir as default_snapshots_dir
from cellweave.core import DiagCode, Result
from cellweave.quality.reconcile import ReconcileOptions
from cellweave.quality.repair import repair_notebook
from cellweave.quality.validation import validate_notebook
from cellweave.schema.bootstrap import ensure_notebook, get_root

logger = logging.getLogger("cellweave.store")

SNAPSHOT_SUFFIX = ".ydoc"
_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


def load_document(path: Path) -> Result[Doc]:
    """Read a snapshot file into a fresh document."""
    result: Result[Doc] = Result()
    if not path.exists():
        result.error(DiagCode.NOT_FOUND, f"Snapshot {path} not found")
        return result
    try:
        doc: Doc = Doc()
        doc.apply_update(path.read_bytes())
        result.data = doc
    except Exception as e:  # noqa: BLE001
        result.error(DiagCode.LOAD_ERROR, f"Failed to load snapshot: {e}")
    return result


def save_document(path: Path, doc: Doc) -> None:
    """Atomic write: write to .tmp, then rename."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_bytes(doc.get_update())
    tmp_path.rename(path)


class DocumentStore:
    """Named document snapshots in one directory."""

    def __init__(
        self,
        snapshots_dir: Path,
        *,
        repair_on_load: bool = False,
        reconcile_options: ReconcileOptions | None = None,
    ) -> None:
        self._snapshots_dir = snapshots_dir
        self._snapshots_dir.mkdir(parents=True, exist_ok=True)
        self._repair_on_load = repair_on_load
        self._reconcile_options = reconcile_options or ReconcileOptions()

    @property
    def snapshots_dir(self) -> Path:
        return self._snapshots_dir

    def path_for(self, name: str) -> Path:
        return self._snapshots_dir / f"{name}{SNAPSHOT_SUFFIX}"

    def list_names(self) -> list[str]:
        return sorted(path.stem for path in self._snapshots_dir.glob(f"*{SNAPSHOT_SUFFIX}"))

    def exists(self, name: str) -> bool:
        return bool(_NAME.match(name)) and self.path_for(name).exists()

    def save(self, name: str, doc: Doc) -> Result[Path]:
        result: Result[Path] = Result()
        if not _NAME.match(name):
            result.error(DiagCode.INVALID_NAME, f"Invalid snapshot name {name!r}")
            return result
        path = self.path_for(name)
        save_document(path, doc)
        logger.info("Saved snapshot %s (%d bytes)", name, path.stat().st_size)
        result.data = path
        return result

    def load(self, name: str, *, repair: bool | None = None) -> Result[Doc]:
        """Load a snapshot by name, optionally repairing it in memory.

        `repair` overrides the store-wide `repair_on_load` setting for this call.
        """
        if not _NAME.match(name):
            result: Result[Doc] = Result()
            result.error(DiagCode.INVALID_NAME, f"Invalid snapshot name {name!r}")
            return result
        result = load_document(self.path_for(name))
        if result.data is None:
            return result
        root = get_root(result.data)
        should_repair = self._repair_on_load if repair is None else repair
        if should_repair:
            ensure_notebook(result.data)
            report = repair_notebook(root, self._reconcile_options)
            if report.changed:
                result.info(DiagCode.REPAIRED, f"Repaired {len(report.issues_before)} issues on load")
        elif validate_notebook(root):
            result.warning(DiagCode.HAS_ISSUES, f"Snapshot {name} has structural issues", hint="Run `cellweave repair`")
        return result


_store: DocumentStore | None = None


def get_store(snapshots_dir: Path | None = None) -> DocumentStore:
    """Get the module-level singleton store."""
    global _store  # noqa: PLW0603
    if _store is None:
        if snapshots_dir is None:
            snapshots_dir = default_snapshots_dir()
        settings = load_config().reconcile
        options = ReconcileOptions(
            append_orphans=settings.append_orphans,
            sort_orphans_by_id=settings.sort_orphans_by_id,
        )
        _store = DocumentStore(snapshots_dir, repair_on_load=settings.repair_on_load, reconcile_options=options)
    return _store


def reset_store() -> None:
    """Reset the singleton (for testing)."""
    global _store  # noqa: PLW0603
    _store = None
