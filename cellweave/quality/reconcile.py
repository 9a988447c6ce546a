"""Repair divergence between the cell order and the cell table."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pycrdt import Array, Map
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from cellweave.schema.accessors import get_cell_map, get_order
from cellweave.schema.decode import SlotKind, peek
from cellweave.schema.keys import CELL_ID, NB_CELL_MAP, NB_CELL_ORDER, NB_TOMBSTONE_META, NB_TOMBSTONES
from cellweave.schema.origins import MAINT_ORIGIN
from cellweave.schema.transaction import document_of, transact

logger = logging.getLogger("cellweave.reconcile")


class DeleteRange(BaseModel):
    start: int
    len: int


class ReconcileOptions(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    append_orphans: bool = False
    sort_orphans_by_id: bool = True
    drop_tombstoned_from_order: bool = True
    drop_invalid_order_entries: bool = True
    fix_embedded_ids: bool = True
    clear_live_tombstones: bool = True


class NotebookReconcileReport(BaseModel):
    changed: bool = False
    previous_order_length: int = 0
    final_order_length: int = 0
    removed_missing_from_map: list[str] = Field(default_factory=list)
    removed_tombstoned: list[str] = Field(default_factory=list)
    removed_duplicates: list[str] = Field(default_factory=list)
    removed_invalid: list[str] = Field(default_factory=list)
    appended_orphans: list[str] = Field(default_factory=list)
    fixed_embedded_ids: list[str] = Field(default_factory=list)
    cleared_tombstones: list[str] = Field(default_factory=list)
    delete_ranges: list[DeleteRange] = Field(default_factory=list)


def merge_delete_indexes_to_ranges(indexes: Iterable[int]) -> list[DeleteRange]:
    """Collapse ascending positions into runs of strictly consecutive indexes.

    >>> [(r.start, r.len) for r in merge_delete_indexes_to_ranges([0, 2, 3, 5])]
    [(0, 1), (2, 2), (5, 1)]
    """
    ranges: list[DeleteRange] = []
    for index in sorted(set(indexes)):
        last = ranges[-1] if ranges else None
        if last is not None and index == last.start + last.len:
            last.len += 1
        else:
            ranges.append(DeleteRange(start=index, len=1))
    return ranges


def resolve_reconcile_options(partial: ReconcileOptions | dict[str, Any] | None = None) -> ReconcileOptions:
    if partial is None:
        return ReconcileOptions()
    if isinstance(partial, ReconcileOptions):
        return partial
    return ReconcileOptions.model_validate(partial)


def find_orphans_to_append(
    source_map: Any,
    kept: Iterable[str],
    tombstoned: Iterable[str],
    options: ReconcileOptions | dict[str, Any] | None = None,
) -> list[str]:
    """Keys of `source_map`, in its iteration order, neither kept nor tombstoned."""
    if not resolve_reconcile_options(options).append_orphans:
        return []
    kept_set = set(kept)
    tombstoned_set = set(tombstoned)
    return [key for key in source_map.keys() if key not in kept_set and key not in tombstoned_set]


def reconcile_notebook(
    root: Map | None, options: ReconcileOptions | dict[str, Any] | None = None
) -> NotebookReconcileReport:
    """Bring `order` back in line with `cellMap` in one maintenance transaction.

    Running it again without intervening edits reports `changed=False`.
    """
    opts = resolve_reconcile_options(options)
    report = NotebookReconcileReport()
    if root is None or document_of(root) is None:
        return report

    order_slot = peek(root, NB_CELL_ORDER)
    cells_slot = peek(root, NB_CELL_MAP)
    tombstones_slot = peek(root, NB_TOMBSTONES)
    replace_order = order_slot.kind not in (SlotKind.SEQUENCE, SlotKind.MISSING)
    replace_cells = cells_slot.kind not in (SlotKind.MAP, SlotKind.MISSING)

    before: list[Any] = order_slot.value.to_py() if order_slot.kind == SlotKind.SEQUENCE else []
    cells: Map | None = cells_slot.value if cells_slot.kind == SlotKind.MAP else None
    cell_ids = set(cells.keys()) if cells is not None else set()
    tombstoned: set[str] = set()
    if tombstones_slot.kind == SlotKind.MAP:
        tombstoned = {key for key, value in tombstones_slot.value.items() if value is True}

    if opts.clear_live_tombstones:
        report.cleared_tombstones = sorted(tombstoned & cell_ids)
        tombstoned -= cell_ids

    kept: list[str] = []
    seen: set[str] = set()
    delete_indexes: list[int] = []
    for index, value in enumerate(before):
        if not isinstance(value, str):
            report.removed_invalid.append(str(value))
        elif not value or value not in cell_ids:
            # dangling ids are kept as-is, outside duplicate tracking, unless dropped
            if not opts.drop_invalid_order_entries:
                kept.append(value)
                continue
            target = report.removed_invalid if not value else report.removed_missing_from_map
            target.append(value)
        elif value in seen:
            report.removed_duplicates.append(value)
        elif value in tombstoned and opts.drop_tombstoned_from_order:
            report.removed_tombstoned.append(value)
        else:
            seen.add(value)
            kept.append(value)
            continue
        delete_indexes.append(index)

    orphans = find_orphans_to_append(cells if cells is not None else {}, kept, tombstoned, opts)
    if opts.sort_orphans_by_id:
        orphans.sort()
    report.appended_orphans = orphans

    if opts.fix_embedded_ids and cells is not None:
        for cell_id in sorted(cell_ids):
            cell = cells.get(cell_id)
            if isinstance(cell, Map) and cell.get(CELL_ID) is not None and cell.get(CELL_ID) != cell_id:
                report.fixed_embedded_ids.append(cell_id)

    report.delete_ranges = merge_delete_indexes_to_ranges(delete_indexes)
    report.previous_order_length = len(before)
    report.final_order_length = len(kept) + len(orphans)
    report.changed = bool(
        replace_order
        or replace_cells
        or report.delete_ranges
        or orphans
        or report.fixed_embedded_ids
        or report.cleared_tombstones
    )
    if not report.changed:
        return report

    with transact(root, MAINT_ORIGIN):
        order: Array = get_order(root)
        table = get_cell_map(root)
        for span in reversed(report.delete_ranges):
            del order[span.start : span.start + span.len]
        if orphans:
            order.extend(orphans)
        for cell_id in report.fixed_embedded_ids:
            table[cell_id][CELL_ID] = cell_id
        for key in (NB_TOMBSTONES, NB_TOMBSTONE_META):
            container = root.get(key)
            if not isinstance(container, Map):
                continue
            for cell_id in report.cleared_tombstones:
                if cell_id in container:
                    del container[cell_id]

    logger.info(
        "Reconciled order: %d -> %d entries (%d removed, %d appended)",
        report.previous_order_length,
        report.final_order_length,
        len(delete_indexes),
        len(orphans),
    )
    return report
