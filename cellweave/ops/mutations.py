"""Insert, move and remove cells.

Each operation keeps `order`, `cellMap` and the tombstone log in agreement
inside a single transaction. A root that is None or not yet attached to a
document turns every operation into a no-op.
"""

from __future__ import annotations

import logging
from typing import Any

from pycrdt import Array, Map

from cellweave.ops.clock import SYSTEM_CLOCK, ClockSource
from cellweave.schema.accessors import get_cell_map, get_order, tombstone_meta_map, tombstones_map
from cellweave.schema.bootstrap import create_cell_map
from cellweave.schema.keys import (
    NB_CELL_MAP,
    NB_CELL_ORDER,
    NB_TOMBSTONE_META,
    NB_TOMBSTONES,
    TOMB_CLOCK,
    TOMB_DELETED_AT,
    TOMB_REASON,
)
from cellweave.schema.models import CellModel
from cellweave.schema.origins import USER_ACTION_ORIGIN
from cellweave.schema.transaction import document_of, transact

logger = logging.getLogger("cellweave.ops")


def _positions(order: Array, cell_id: str) -> list[int]:
    return [i for i, value in enumerate(order) if value == cell_id]


def _drop_from_order(order: Array, cell_id: str) -> int:
    positions = _positions(order, cell_id)
    for index in reversed(positions):
        del order[index]
    return len(positions)


def _clear_tombstone(root: Map, cell_id: str) -> None:
    for key in (NB_TOMBSTONES, NB_TOMBSTONE_META):
        container = root.get(key)
        if isinstance(container, Map) and cell_id in container:
            del container[cell_id]


def insert_cell(
    root: Map | None,
    cell: CellModel,
    index: int | None = None,
    *,
    origin: Any = USER_ACTION_ORIGIN,
) -> str | None:
    """Register `cell` and place its id in the order at `index`.

    `index` defaults to the end and is clamped to the order's bounds. When the
    id is already present, the stored cell is replaced and the id moves to
    `index`; a tombstone for the id is cleared so it is live again.
    """
    if root is None or document_of(root) is None:
        return None
    with transact(root, origin):
        cells = get_cell_map(root)
        order = get_order(root)
        replaced = cell.id in cells
        _drop_from_order(order, cell.id)
        cells[cell.id] = create_cell_map(cell)
        _clear_tombstone(root, cell.id)
        length = len(order)
        position = length if index is None else max(0, min(index, length))
        order.insert(position, cell.id)
    if replaced:
        logger.info("Replaced existing cell %s", cell.id)
    return cell.id


def move_cell(root: Map | None, cell_id: str, to_index: int, *, origin: Any = USER_ACTION_ORIGIN) -> bool:
    """Move a cell to `to_index`; returns False when nothing moved."""
    if root is None or document_of(root) is None:
        return False
    order = root.get(NB_CELL_ORDER)
    if not isinstance(order, Array):
        return False
    ids = order.to_py()
    if cell_id not in ids:
        return False
    current = ids.index(cell_id)
    target = max(0, min(to_index, len(ids) - 1))
    if target == current:
        return False
    with transact(root, origin):
        del order[current]
        order.insert(target, cell_id)
    return True


def remove_cell(
    root: Map | None,
    cell_id: str,
    *,
    reason: str | None = None,
    clock: ClockSource | None = None,
    origin: Any = USER_ACTION_ORIGIN,
) -> bool:
    """Drop a cell from order and table and record a tombstone for it.

    Output entries are left for reconciliation. Returns False without opening
    a transaction when the id is unknown to both order and table.
    """
    if root is None or document_of(root) is None:
        return False
    order = root.get(NB_CELL_ORDER)
    cells = root.get(NB_CELL_MAP)
    in_order = isinstance(order, Array) and cell_id in order.to_py()
    in_table = isinstance(cells, Map) and cell_id in cells
    if not in_order and not in_table:
        return False
    clock = clock or SYSTEM_CLOCK
    with transact(root, origin):
        _drop_from_order(get_order(root), cell_id)
        cells = get_cell_map(root)
        if cell_id in cells:
            del cells[cell_id]
        tombstones_map(root)[cell_id] = True
        meta: dict[str, object] = {TOMB_DELETED_AT: clock.now(), TOMB_CLOCK: clock.label.value}
        if reason is not None:
            meta[TOMB_REASON] = reason
        tombstone_meta_map(root)[cell_id] = Map(meta)
    logger.debug("Removed cell %s", cell_id)
    return True
