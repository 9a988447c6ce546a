"""Remove orphaned and malformed output entries."""

from __future__ import annotations

import logging

from pycrdt import Map
from pydantic import BaseModel, Field

from cellweave.quality.validation import Issue, validate_notebook
from cellweave.schema.decode import SlotKind, entries, peek
from cellweave.schema.keys import NB_CELL_MAP, NB_OUTPUTS
from cellweave.schema.origins import MAINT_ORIGIN
from cellweave.schema.transaction import document_of, transact

logger = logging.getLogger("cellweave.reconcile")


class OutputsReconcileReport(BaseModel):
    changed: bool = False
    previous_count: int = 0
    final_count: int = 0
    removed_orphans: list[str] = Field(default_factory=list)
    removed_invalid: list[str] = Field(default_factory=list)
    deleted_count: int = 0
    validation_issues: list[Issue] | None = None


def reconcile_outputs(
    root: Map | None,
    *,
    remove_orphans: bool = True,
    remove_invalid: bool = True,
    validate_after: bool = False,
) -> OutputsReconcileReport:
    """Delete output entries that are not a Map or whose cell is gone.

    Entry contents (results, timestamps) are never rewritten. Both kinds of
    removal happen in one maintenance transaction.
    """
    report = OutputsReconcileReport()
    if root is None or document_of(root) is None:
        return report
    outputs_slot = peek(root, NB_OUTPUTS)
    if outputs_slot.kind != SlotKind.MAP:
        return report
    outputs: Map = outputs_slot.value
    cells_slot = peek(root, NB_CELL_MAP)
    live = set(cells_slot.value.keys()) if cells_slot.kind == SlotKind.MAP else set()

    for cell_id, slot in entries(outputs):
        if not cell_id or slot.kind != SlotKind.MAP:
            if remove_invalid:
                report.removed_invalid.append(cell_id)
        elif remove_orphans and cell_id not in live:
            report.removed_orphans.append(cell_id)

    report.previous_count = len(outputs)
    report.deleted_count = len(report.removed_orphans) + len(report.removed_invalid)
    report.changed = report.deleted_count > 0
    if report.changed:
        with transact(root, MAINT_ORIGIN):
            for cell_id in report.removed_invalid + report.removed_orphans:
                del outputs[cell_id]
        logger.info(
            "Removed %d orphaned and %d invalid outputs",
            len(report.removed_orphans),
            len(report.removed_invalid),
        )
    report.final_count = len(outputs)
    if validate_after:
        report.validation_issues = validate_notebook(root)
    return report
