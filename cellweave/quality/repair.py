"""One-call repair pass used on load and by the CLI."""

from __future__ import annotations

import logging
from typing import Any

from pycrdt import Map
from pydantic import BaseModel, Field

from cellweave.quality.reconcile import NotebookReconcileReport, ReconcileOptions, reconcile_notebook
from cellweave.quality.reconcile_outputs import OutputsReconcileReport, reconcile_outputs
from cellweave.quality.validation import Issue, validate_notebook

logger = logging.getLogger("cellweave.reconcile")


class RepairReport(BaseModel):
    notebook: NotebookReconcileReport
    outputs: OutputsReconcileReport
    issues_before: list[Issue] = Field(default_factory=list)
    issues_after: list[Issue] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.notebook.changed or self.outputs.changed


def repair_notebook(root: Map | None, options: ReconcileOptions | dict[str, Any] | None = None) -> RepairReport:
    """Validate, reconcile order and outputs, then validate again."""
    before = validate_notebook(root)
    notebook = reconcile_notebook(root, options)
    outputs = reconcile_outputs(root)
    after = validate_notebook(root)
    report = RepairReport(notebook=notebook, outputs=outputs, issues_before=before, issues_after=after)
    if report.changed:
        logger.info("Repaired notebook: %d issues before, %d after", len(before), len(after))
    return report
