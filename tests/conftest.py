"""Shared test helpers for cellweave tests."""

from __future__ import annotations

from collections.abc import Iterable

from pycrdt import Doc, Map

from cellweave.ops.mutations import insert_cell
from cellweave.schema.bootstrap import ensure_notebook
from cellweave.schema.models import CellKind, CellModel, NotebookInit
from cellweave.schema.origins import MAINT_ORIGIN


def make_cell(cell_id: str, source: str = "SELECT 1", kind: CellKind = CellKind.SQL) -> CellModel:
    return CellModel(id=cell_id, kind=kind, source=source)


def make_notebook(cell_ids: Iterable[str] = ()) -> Map:
    """A bootstrapped notebook root holding one SQL cell per id."""
    doc: Doc = Doc()
    root = ensure_notebook(doc, NotebookInit(id="nb_test", title="Test notebook"))
    for cell_id in cell_ids:
        insert_cell(root, make_cell(cell_id, source=f"SELECT '{cell_id}'"), origin=MAINT_ORIGIN)
    return root
