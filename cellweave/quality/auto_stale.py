"""Mark outputs stale when their cell's source text is edited.

One observer is kept per live cell on the cell map itself, plus one on the
source text the cell currently holds. When the cell's `source` key changes
the text observer is moved to the new object inside that same callback, so an
edit to a replaced text can never reach the cell.

Observer callbacks cannot write to the document, so edited cell ids are
queued and written by a commit hook once the outermost `transact` block
exits, or by an explicit `flush()`. Edits that bypass `transact` (a peer
update, an editor writing to the text) only land through `flush()`;
`NotebookSession.apply_update` and `NotebookSession.flush` do that.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable
from typing import Any

from pycrdt import Doc, Map, MapEvent, Text, TextEvent

from cellweave.ops.execute import mark_cell_output_stale
from cellweave.schema.accessors import get_cell_map
from cellweave.schema.keys import CELL_SOURCE, NB_CELL_MAP
from cellweave.schema.origins import EXECUTION_ORIGIN, MAINT_ORIGIN
from cellweave.schema.transaction import add_commit_hook, document_of, transact

logger = logging.getLogger("cellweave.auto_stale")

_binders: weakref.WeakKeyDictionary[Doc, AutoStaleBinder] = weakref.WeakKeyDictionary()


class _TextBinding:
    __slots__ = ("subscription", "text", "token")

    def __init__(self, text: Text, subscription: Any, token: int) -> None:
        self.text = text
        self.subscription = subscription
        self.token = token

    def drop(self) -> None:
        self.text.unobserve(self.subscription)


class _CellBinding:
    __slots__ = ("cell", "source", "subscription")

    def __init__(self, cell: Map) -> None:
        self.cell = cell
        self.subscription: Any = None
        self.source: _TextBinding | None = None

    def drop(self) -> None:
        if self.source is not None:
            self.source.drop()
            self.source = None
        if self.subscription is not None:
            self.cell.unobserve(self.subscription)
            self.subscription = None


class AutoStaleBinder:
    def __init__(self, root: Map, *, mark_on_replace: bool = False, origin: Any = EXECUTION_ORIGIN) -> None:
        self._root = root
        self._mark_on_replace = mark_on_replace
        self._origin = origin
        self._cells: dict[str, _CellBinding] = {}
        self._table: Map | None = None
        self._table_subscription: Any = None
        self._remove_hook: Callable[[], None] | None = None
        self._pending: dict[str, None] = {}
        self._generation = 0

    @property
    def enabled(self) -> bool:
        return self._table is not None

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    def is_bound(self, cell_id: str) -> bool:
        binding = self._cells.get(cell_id)
        return binding is not None and binding.source is not None

    def enable(self) -> bool:
        """Start observing; returns False when the root has no document yet."""
        if self.enabled:
            return True
        if document_of(self._root) is None:
            return False
        table = self._root.get(NB_CELL_MAP)
        if not isinstance(table, Map):
            with transact(self._root, MAINT_ORIGIN):
                table = get_cell_map(self._root)
        self._table = table
        for cell_id in sorted(table.keys()):
            self._bind_cell(cell_id)
        self._table_subscription = table.observe(self._on_table_change)
        self._remove_hook = add_commit_hook(self._root, self.flush)
        logger.debug("Auto-stale enabled for %d cells", len(self._cells))
        return True

    def disable(self) -> None:
        if self._table is not None and self._table_subscription is not None:
            self._table.unobserve(self._table_subscription)
        for binding in self._cells.values():
            binding.drop()
        self._cells.clear()
        self._pending.clear()
        if self._remove_hook is not None:
            self._remove_hook()
        self._table = None
        self._table_subscription = None
        self._remove_hook = None
        doc = document_of(self._root)
        if doc is not None and _binders.get(doc) is self:
            del _binders[doc]

    def flush(self) -> list[str]:
        """Write queued stale flags; returns the ids actually marked."""
        if not self._pending:
            return []
        ids = list(self._pending)
        self._pending.clear()
        marked: list[str] = []
        with transact(self._root, self._origin):
            for cell_id in ids:
                if mark_cell_output_stale(self._root, cell_id, origin=self._origin):
                    marked.append(cell_id)
        if marked:
            logger.debug("Marked %d outputs stale", len(marked))
        return marked

    def _on_table_change(self, event: MapEvent) -> None:
        for cell_id, change in event.keys.items():
            action = change.get("action")
            if action in ("add", "update"):
                self._bind_cell(cell_id)
            elif action == "delete":
                self._unbind_cell(cell_id)
                self._pending.pop(cell_id, None)

    def _bind_cell(self, cell_id: str) -> None:
        self._unbind_cell(cell_id)
        cell = self._table.get(cell_id) if self._table is not None else None
        if not isinstance(cell, Map):
            return
        binding = _CellBinding(cell)

        def on_cell_change(event: MapEvent) -> None:
            if CELL_SOURCE in event.keys:
                self._rebind_source(cell_id, binding)

        binding.subscription = cell.observe(on_cell_change)
        binding.source = self._bind_text(cell_id, cell)
        self._cells[cell_id] = binding

    def _unbind_cell(self, cell_id: str) -> None:
        binding = self._cells.pop(cell_id, None)
        if binding is not None:
            binding.drop()

    def _rebind_source(self, cell_id: str, binding: _CellBinding) -> None:
        if self._cells.get(cell_id) is not binding:
            return
        if binding.source is not None:
            binding.source.drop()
        binding.source = self._bind_text(cell_id, binding.cell)
        logger.debug("Rebound source observer for %s", cell_id)
        if self._mark_on_replace and binding.source is not None:
            self._pending[cell_id] = None

    def _bind_text(self, cell_id: str, cell: Map) -> _TextBinding | None:
        text = cell.get(CELL_SOURCE)
        if not isinstance(text, Text):
            return None
        self._generation += 1
        token = self._generation

        def on_text_change(event: TextEvent) -> None:
            binding = self._cells.get(cell_id)
            if binding is None or binding.source is None or binding.source.token != token:
                return
            self._pending[cell_id] = None

        return _TextBinding(text, text.observe(on_text_change), token)


def enable_auto_stale(root: Map, *, mark_on_replace: bool = False) -> AutoStaleBinder | None:
    """Bind a document once; later calls return the existing binder."""
    doc = document_of(root)
    if doc is None:
        return None
    existing = _binders.get(doc)
    if existing is not None and existing.enabled:
        return existing
    binder = AutoStaleBinder(root, mark_on_replace=mark_on_replace)
    binder.enable()
    _binders[doc] = binder
    return binder
