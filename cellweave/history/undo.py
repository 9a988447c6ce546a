"""Undo manager scoped to the notebook's structural containers.

Only user intent is captured; maintenance, vacuum and execution writes carry
their own origins and never enter the stack.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pycrdt import Array, Map, UndoManager

from cellweave.schema.keys import NB_CELL_MAP, NB_CELL_ORDER, NB_TOMBSTONE_META, NB_TOMBSTONES
from cellweave.schema.origins import USER_ACTION_ORIGIN
from cellweave.schema.transaction import document_of

UNDO_SCOPE_KEYS = (NB_CELL_ORDER, NB_CELL_MAP, NB_TOMBSTONES, NB_TOMBSTONE_META)

DEFAULT_CAPTURE_TIMEOUT_MS = 500


def undo_scopes(root: Map) -> list[tuple[str, Map | Array]]:
    scopes: list[tuple[str, Map | Array]] = []
    for key in UNDO_SCOPE_KEYS:
        container = root.get(key)
        if isinstance(container, (Map, Array)):
            scopes.append((key, container))
    return scopes


def create_notebook_undo_manager(
    root: Map | None,
    *,
    capture_timeout_ms: int = DEFAULT_CAPTURE_TIMEOUT_MS,
    tracked_origins: Iterable[Any] | None = None,
) -> UndoManager | None:
    """Build an undo manager over order, cells and tombstones.

    Returns None when the root is detached or has none of those containers.
    """
    if root is None or document_of(root) is None:
        return None
    scopes = [container for _, container in undo_scopes(root)]
    if not scopes:
        return None
    manager = UndoManager(scopes=scopes, capture_timeout_millis=capture_timeout_ms)
    for origin in tracked_origins if tracked_origins is not None else (USER_ACTION_ORIGIN,):
        manager.include_origin(origin)
    return manager
