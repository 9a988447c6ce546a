"""Linear, human-readable undo/redo history over the notebook undo manager.

The undo manager only exposes its stacks, so the tracker mirrors them with
lists of scope ids. Change events from the scoped containers are collected
while a transaction commits; when the document reports the transaction done,
the stack lengths tell whether it opened a new scope or was bundled into the
top one. Undo, redo and clear go through the tracker so the mirror moves the
same ids the manager moves. When a caller holding the manager moves the
stacks directly, the mirror is resynced on the next snapshot read or
committed transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from pycrdt import Map, UndoManager

from cellweave.history.describe import describe_event, describe_origin, new_id
from cellweave.history.models import (
    HistorySnapshot,
    OriginSummary,
    ScopeMeta,
    ScopeSummary,
    UndoChange,
    UndoTransaction,
)
from cellweave.history.undo import DEFAULT_CAPTURE_TIMEOUT_MS, create_notebook_undo_manager, undo_scopes
from cellweave.ops.clock import now_ms
from cellweave.schema.events import EventSource
from cellweave.schema.origins import USER_ACTION_ORIGIN, origin_of
from cellweave.schema.transaction import document_of, run_commit_hooks

logger = logging.getLogger("cellweave.history")

UNKNOWN_ORIGIN = OriginSummary(label="(unknown)", type="unknown")


def _summarize(meta: ScopeMeta) -> ScopeSummary:
    transactions = [tx.model_copy(deep=True) for tx in meta.transactions]
    return ScopeSummary(
        id=meta.id,
        created_at=meta.created_at,
        updated_at=meta.updated_at,
        origin=(meta.origin or UNKNOWN_ORIGIN).model_copy(),
        transaction_count=len(transactions),
        change_count=sum(tx.change_count for tx in transactions),
        transactions=transactions,
    )


class NotebookUndoHistory:
    def __init__(
        self,
        root: Map | None,
        *,
        manager: UndoManager | None = None,
        capture_timeout_ms: int = DEFAULT_CAPTURE_TIMEOUT_MS,
        tracked_origins: Iterable[Any] | None = None,
    ) -> None:
        tracked = list(tracked_origins) if tracked_origins is not None else [USER_ACTION_ORIGIN]
        self._root = root
        self._doc = document_of(root)
        self._tracked = set(tracked)
        if manager is None:
            manager = create_notebook_undo_manager(
                root, capture_timeout_ms=capture_timeout_ms, tracked_origins=tracked
            )
        self._manager = manager
        self._meta: dict[str, ScopeMeta] = {}
        self._undo_ids: list[str] = []
        self._redo_ids: list[str] = []
        self._pending: list[UndoChange] = []
        self._pending_origin: Any = None
        self._replaying = False
        self._out_of_sync = False
        self._listeners: EventSource[HistorySnapshot] = EventSource()
        self._subscriptions: list[tuple[Any, Any]] = []
        self._doc_subscription: Any = None

        if root is not None and self._doc is not None and self._manager is not None:
            for key, container in undo_scopes(root):
                self._subscriptions.append((container, container.observe_deep(self._scope_observer(key))))
            self._doc_subscription = self._doc.observe(self._on_transaction_end)
            self._sync_stacks()
        self._snapshot = self._build_snapshot()

    @property
    def attached(self) -> bool:
        return self._manager is not None

    def get_snapshot(self) -> HistorySnapshot:
        """Current snapshot, resynced first if the stacks moved behind the tracker."""
        self._resync()
        return self._snapshot

    def subscribe(self, listener: Callable[[HistorySnapshot], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def undo(self) -> bool:
        self._resync()
        return self._replay(lambda manager: manager.undo())

    def redo(self) -> bool:
        self._resync()
        return self._replay(lambda manager: manager.redo())

    def clear(self) -> None:
        if self._manager is None:
            return
        self._manager.clear()
        self._meta.clear()
        self._undo_ids.clear()
        self._redo_ids.clear()
        self._notify()

    def destroy(self) -> None:
        """Detach every observer and drop local subscribers."""
        for container, subscription in self._subscriptions:
            container.unobserve(subscription)
        self._subscriptions.clear()
        if self._doc is not None and self._doc_subscription is not None:
            self._doc.unobserve(self._doc_subscription)
            self._doc_subscription = None
        self._pending.clear()
        self._listeners.clear()
        self._manager = None

    def _replay(self, action: Callable[[UndoManager], bool]) -> bool:
        if self._manager is None:
            return False
        self._replaying = True
        try:
            done = action(self._manager)
        finally:
            self._replaying = False
            self._pending.clear()
            self._pending_origin = None
        self._sync_stacks()
        self._notify()
        run_commit_hooks(self._root)
        return done

    def _scope_observer(self, key: str) -> Callable[[list[Any], Any], None]:
        def on_events(events: list[Any], txn: Any) -> None:
            if self._replaying:
                return
            self._pending_origin = origin_of(txn)
            self._pending.extend(describe_event(event, key) for event in events)

        return on_events

    def _on_transaction_end(self, event: Any) -> None:
        changes, origin = self._pending, self._pending_origin
        self._pending = []
        self._pending_origin = None
        if self._replaying or self._manager is None:
            return
        lengths = self._stack_lengths()
        if lengths is None:
            self._out_of_sync = True
            return
        undo_len, redo_len = lengths
        if self._out_of_sync:
            self._out_of_sync = False
            self._sync_stacks()
        elif undo_len == len(self._undo_ids) + 1:
            meta = self._open_scope()
            self._undo_ids.append(meta.id)
            self._trim(self._redo_ids, redo_len)
            self._capture(meta, changes, origin)
        elif undo_len == len(self._undo_ids) and undo_len > 0 and changes and origin in self._tracked:
            self._capture(self._meta[self._undo_ids[-1]], changes, origin)
        elif undo_len != len(self._undo_ids) or redo_len != len(self._redo_ids):
            self._sync_stacks()
        else:
            return
        self._notify()

    def _open_scope(self) -> ScopeMeta:
        stamp = now_ms()
        meta = ScopeMeta(id=new_id("scope"), created_at=stamp, updated_at=stamp)
        self._meta[meta.id] = meta
        return meta

    def _capture(self, meta: ScopeMeta, changes: list[UndoChange], origin: Any) -> None:
        if not changes:
            return
        transaction = UndoTransaction(
            id=new_id("tx"),
            timestamp=now_ms(),
            origin=describe_origin(origin),
            change_count=len(changes),
            changes=changes,
        )
        meta.transactions.append(transaction)
        meta.updated_at = transaction.timestamp
        if meta.origin is None:
            meta.origin = transaction.origin

    def _trim(self, ids: list[str], length: int) -> None:
        while len(ids) > length:
            self._meta.pop(ids.pop(), None)

    def _stack_lengths(self) -> tuple[int, int] | None:
        """Undo and redo depths, or None while the manager is busy elsewhere."""
        if self._manager is None:
            return None
        try:
            return len(self._manager.undo_stack), len(self._manager.redo_stack)
        except RuntimeError as e:
            logger.debug("Undo stacks unreadable, deferring resync: %s", e)
            return None

    def _resync(self) -> None:
        lengths = self._stack_lengths()
        if lengths is None:
            return
        stale = self._out_of_sync or lengths != (len(self._undo_ids), len(self._redo_ids))
        self._out_of_sync = False
        if stale:
            self._sync_stacks()
            self._notify()

    def _sync_stacks(self) -> None:
        """Match the id mirrors to the manager's current stack lengths."""
        lengths = self._stack_lengths()
        if lengths is None:
            self._out_of_sync = True
            return
        undo_len, redo_len = lengths
        while len(self._undo_ids) > undo_len and len(self._redo_ids) < redo_len:
            self._redo_ids.append(self._undo_ids.pop())
        while len(self._redo_ids) > redo_len and len(self._undo_ids) < undo_len:
            self._undo_ids.append(self._redo_ids.pop())
        for ids, length in ((self._undo_ids, undo_len), (self._redo_ids, redo_len)):
            self._trim(ids, length)
            while len(ids) < length:
                ids.append(self._open_scope().id)

    def _build_snapshot(self) -> HistorySnapshot:
        return HistorySnapshot(
            undo=[_summarize(self._meta[i]) for i in reversed(self._undo_ids)],
            redo=[_summarize(self._meta[i]) for i in reversed(self._redo_ids)],
            can_undo=bool(self._undo_ids),
            can_redo=bool(self._redo_ids),
        )

    def _notify(self) -> None:
        self._snapshot = self._build_snapshot()
        logger.debug("Undo history: %d undo, %d redo", len(self._undo_ids), len(self._redo_ids))
        self._listeners.emit(self._snapshot)
