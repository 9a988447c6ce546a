"""Transaction helpers: origin-tagged blocks and post-commit hooks.

Observer callbacks run inside the committing transaction, which is read-only.
Work an observer wants to write back (stale flags) is registered as a commit
hook and runs once the outermost `transact` block has committed.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from pycrdt import Doc, Transaction

from cellweave.schema.origins import USER_ACTION_ORIGIN

logger = logging.getLogger("cellweave.transaction")


class _DocState:
    __slots__ = ("depth", "hooks", "running")

    def __init__(self) -> None:
        self.depth = 0
        self.hooks: list[Callable[[], None]] = []
        self.running = False


_states: weakref.WeakKeyDictionary[Doc, _DocState] = weakref.WeakKeyDictionary()


def _state(doc: Doc) -> _DocState:
    state = _states.get(doc)
    if state is None:
        state = _DocState()
        _states[doc] = state
    return state


def document_of(root: Any) -> Doc | None:
    """Return the document a shared type lives in, or None when detached."""
    if root is None:
        return None
    if isinstance(root, Doc):
        return root
    try:
        return root.doc
    except (AttributeError, RuntimeError):
        return None


@contextmanager
def transact(root: Any, origin: Any = None) -> Iterator[Transaction | None]:
    """Run a block inside one transaction on the root's document.

    Nested blocks join the outer transaction and keep its origin. Yields None
    without doing anything when the root is not attached to a document yet.
    """
    doc = document_of(root)
    if doc is None:
        yield None
        return
    state = _state(doc)
    outer = state.depth == 0
    if outer:
        try:
            txn = doc.transaction(origin=origin)
        except RuntimeError:
            # a transaction opened directly on the document is already active
            txn = doc.transaction()
            outer = False
    else:
        txn = doc.transaction()
    with txn:
        state.depth += 1
        try:
            yield txn
        finally:
            state.depth -= 1
    if outer:
        run_commit_hooks(doc)


@contextmanager
def with_user_action(root: Any) -> Iterator[Transaction | None]:
    """Shorthand for a block tagged as local user intent."""
    with transact(root, USER_ACTION_ORIGIN) as txn:
        yield txn


def add_commit_hook(root: Any, hook: Callable[[], None]) -> Callable[[], None]:
    """Register `hook` to run after each outermost `transact` block commits."""
    doc = document_of(root)
    if doc is None:
        return lambda: None
    hooks = _state(doc).hooks
    hooks.append(hook)

    def remove() -> None:
        if hook in hooks:
            hooks.remove(hook)

    return remove


def run_commit_hooks(root: Any) -> None:
    doc = document_of(root)
    if doc is None:
        return
    state = _state(doc)
    if state.running or state.depth > 0:
        return
    state.running = True
    try:
        for hook in list(state.hooks):
            hook()
    finally:
        state.running = False
