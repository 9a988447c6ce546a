"""A notebook document with its binder and undo history wired from config."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pycrdt import Doc, Map, Transaction

from cellweave.config import CellweaveConfig, load_config
from cellweave.history.tracker import NotebookUndoHistory
from cellweave.ops.clock import ClockSource
from cellweave.ops.tombstones import vacuum_tombstones
from cellweave.quality.auto_stale import AutoStaleBinder, enable_auto_stale
from cellweave.schema.bootstrap import ensure_notebook
from cellweave.schema.keys import NB_ID
from cellweave.schema.models import NotebookInit
from cellweave.schema.origins import USER_ACTION_ORIGIN
from cellweave.schema.transaction import run_commit_hooks, transact

logger = logging.getLogger("cellweave.session")

DAY_MS = 24 * 3600 * 1000


class NotebookSession:
    """Owns the observers attached to one local notebook document.

    Stale flags can only be written after a change commits, so local edits
    should go through `edit()` and peer updates through `apply_update()`.
    Code that writes to shared types directly (an editor binding) calls
    `flush()` once its edit is done.
    """

    def __init__(self, doc: Doc, init: NotebookInit | None = None, *, config: CellweaveConfig | None = None) -> None:
        self._config = config or load_config()
        self.doc = doc
        self.root: Map = ensure_notebook(doc, init)
        self.binder: AutoStaleBinder | None = enable_auto_stale(
            self.root, mark_on_replace=self._config.stale.mark_on_source_replace
        )
        self.history = NotebookUndoHistory(self.root, capture_timeout_ms=self._config.undo.capture_timeout_ms)
        logger.debug("Opened session for notebook %s", self.root.get(NB_ID))

    @property
    def tombstone_ttl_ms(self) -> int:
        return self._config.tombstones.ttl_days * DAY_MS

    def vacuum(self, clock: ClockSource) -> list[str]:
        return vacuum_tombstones(self.root, self.tombstone_ttl_ms, clock=clock)

    @contextmanager
    def edit(self, origin: Any = USER_ACTION_ORIGIN) -> Iterator[Transaction | None]:
        with transact(self.root, origin) as txn:
            yield txn

    def apply_update(self, update: bytes) -> None:
        """Merge a peer's update, then write the stale flags it caused."""
        self.doc.apply_update(update)
        self.flush()

    def flush(self) -> None:
        run_commit_hooks(self.root)

    def close(self) -> None:
        self.history.destroy()
        if self.binder is not None:
            self.binder.disable()
            self.binder = None
