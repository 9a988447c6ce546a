"""Typed lookups of the notebook root's substructures.

The `get_*` container accessors create what is missing and must run inside a
transaction; `get_output_entry` and `list_cells` never write.
"""

from __future__ import annotations

import logging
from typing import Any

from pycrdt import Array, Map

from cellweave.schema.keys import (
    NB_CELL_MAP,
    NB_CELL_ORDER,
    NB_OUTPUTS,
    NB_TOMBSTONE_META,
    NB_TOMBSTONES,
    OUT_RUNNING,
    OUT_STALE,
)

logger = logging.getLogger("cellweave.schema")


def _ensure(root: Map, key: str, factory: type[Map] | type[Array]) -> Any:
    current = root.get(key)
    if isinstance(current, factory):
        return current
    if current is not None:
        logger.warning("Replacing %r under %r with an empty %s", type(current).__name__, key, factory.__name__)
    root[key] = factory()
    return root[key]


def get_order(root: Map) -> Array:
    return _ensure(root, NB_CELL_ORDER, Array)


def get_cell_map(root: Map) -> Map:
    return _ensure(root, NB_CELL_MAP, Map)


def get_outputs_map(root: Map) -> Map:
    return _ensure(root, NB_OUTPUTS, Map)


def tombstones_map(root: Map) -> Map:
    return _ensure(root, NB_TOMBSTONES, Map)


def tombstone_meta_map(root: Map) -> Map:
    return _ensure(root, NB_TOMBSTONE_META, Map)


def get_cell(root: Map, cell_id: str) -> Map | None:
    cells = root.get(NB_CELL_MAP)
    if not isinstance(cells, Map):
        return None
    cell = cells.get(cell_id)
    return cell if isinstance(cell, Map) else None


def list_cells(root: Map) -> list[Map]:
    """Cells in document order, skipping ids with no table entry."""
    order = root.get(NB_CELL_ORDER)
    if not isinstance(order, Array):
        return []
    result: list[Map] = []
    for cell_id in order:
        if not isinstance(cell_id, str):
            continue
        cell = get_cell(root, cell_id)
        if cell is not None:
            result.append(cell)
    return result


def get_output_entry(root: Map, cell_id: str) -> Map | None:
    outputs = root.get(NB_OUTPUTS)
    if not isinstance(outputs, Map):
        return None
    entry = outputs.get(cell_id)
    return entry if isinstance(entry, Map) else None


def ensure_output_entry(root: Map, cell_id: str) -> Map:
    """Return the output entry for a cell, creating it with default fields."""
    outputs = get_outputs_map(root)
    entry = outputs.get(cell_id)
    if isinstance(entry, Map):
        return entry
    outputs[cell_id] = Map({OUT_RUNNING: False, OUT_STALE: False})
    return outputs[cell_id]
