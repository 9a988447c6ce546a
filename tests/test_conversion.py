"""Tests for converting shared structures into plain models."""

from __future__ import annotations

from pycrdt import Doc

from cellweave.ops.execute import apply_execute_result_for_current_run, start_execute_cell
from cellweave.ops.mutations import insert_cell, remove_cell
from cellweave.schema.accessors import ensure_output_entry, get_cell, get_outputs_map
from cellweave.schema.bootstrap import ensure_notebook
from cellweave.schema.conversion import cell_to_model, notebook_to_model, output_to_model, outputs_to_model
from cellweave.schema.keys import CELL_KIND, OUT_RESULT
from cellweave.schema.models import CellKind, CellMetadata, CellModel, NotebookInit, QueryResult
from cellweave.schema.origins import MAINT_ORIGIN
from cellweave.schema.transaction import transact

from .conftest import make_notebook


def test_cell_roundtrips_through_the_document() -> None:
    root = make_notebook()
    cell = CellModel(
        id="c1",
        kind=CellKind.MARKDOWN,
        lang="md",
        source="# Title",
        metadata=CellMetadata(background_ddl=True),
    )
    insert_cell(root, cell)
    assert cell_to_model(get_cell(root, "c1")) == cell


def test_unknown_kind_reads_as_raw() -> None:
    root = make_notebook(["c1"])
    with transact(root, MAINT_ORIGIN):
        get_cell(root, "c1")[CELL_KIND] = "hologram"
    assert cell_to_model(get_cell(root, "c1")).kind == CellKind.RAW


def test_notebook_model() -> None:
    doc = Doc()
    root = ensure_notebook(
        doc,
        NotebookInit(id="nb_1", title="Sales", database_id="db_1", tags=["q3"], metadata={"owner": "ana"}),
    )
    insert_cell(root, CellModel(id="a", source="SELECT 1"))
    insert_cell(root, CellModel(id="b", source="SELECT 2"))
    remove_cell(root, "a")
    model = notebook_to_model(root)
    assert model.id == "nb_1"
    assert model.title == "Sales"
    assert model.database_id == "db_1"
    assert model.tags == ["q3"]
    assert model.metadata == {"owner": "ana"}
    assert [cell.id for cell in model.cells] == ["b"]
    assert model.tombstones == ["a"]


def test_output_model_after_execution() -> None:
    root = make_notebook(["c1"])
    start_execute_cell(root, "c1")
    apply_execute_result_for_current_run(
        root, "c1", QueryResult(columns=["n"], rows=[[1]], rows_affected=1)
    )
    outputs = outputs_to_model(root)
    output = outputs["c1"]
    assert output.running is False
    assert output.started_at is not None
    assert output.completed_at is not None
    assert output.result == QueryResult(columns=["n"], rows=[[1]], rows_affected=1)


def test_malformed_outputs_are_skipped_or_blanked() -> None:
    root = make_notebook(["c1", "c2"])
    with transact(root, MAINT_ORIGIN):
        get_outputs_map(root)["c2"] = "oops"
        ensure_output_entry(root, "c1")[OUT_RESULT] = {"columns": "nope"}
    outputs = outputs_to_model(root)
    assert list(outputs) == ["c1"]
    assert outputs["c1"].result is None


def test_output_model_of_empty_entry() -> None:
    root = make_notebook(["c1"])
    with transact(root, MAINT_ORIGIN):
        entry = ensure_output_entry(root, "c1")
    model = output_to_model(entry)
    assert model.running is False
    assert model.stale is False
    assert model.run_id is None
