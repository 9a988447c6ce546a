"""Tests for run state: start, apply result, mark stale."""

from __future__ import annotations

from cellweave.ops.execute import (
    apply_execute_result,
    apply_execute_result_for_current_run,
    mark_cell_output_stale,
    start_execute_cell,
)
from cellweave.schema.accessors import get_output_entry
from cellweave.schema.models import QueryResult

from .conftest import make_notebook

RESULT = QueryResult(columns=["a"], rows=[[1]], rows_affected=1)


def test_start_marks_running() -> None:
    root = make_notebook(["c1"])
    run_id = start_execute_cell(root, "c1", now=1_700_000_000_000)
    entry = get_output_entry(root, "c1")
    assert run_id is not None and run_id.startswith("run_")
    assert entry.get("running") is True
    assert entry.get("stale") is False
    assert entry.get("runId") == run_id
    assert entry.get("startedAt") == 1_700_000_000_000


def test_start_unknown_cell_does_nothing() -> None:
    root = make_notebook()
    assert start_execute_cell(root, "ghost") is None
    assert get_output_entry(root, "ghost") is None


def test_apply_matching_run() -> None:
    root = make_notebook(["c1"])
    run_id = start_execute_cell(root, "c1")
    assert apply_execute_result(root, "c1", RESULT, expected_run_id=run_id, completed_at=5) is True
    entry = get_output_entry(root, "c1")
    assert entry.get("running") is False
    assert entry.get("completedAt") == 5
    assert "runId" not in entry
    result = entry.get("result")
    assert result["columns"] == ["a"]
    assert result["rowsAffected"] == 1


def test_apply_rejects_other_run() -> None:
    root = make_notebook(["c1"])
    start_execute_cell(root, "c1")
    assert apply_execute_result(root, "c1", RESULT, expected_run_id="run_old") is False
    assert apply_execute_result(root, "c1", RESULT) is False
    assert get_output_entry(root, "c1").get("running") is True


def test_apply_rejects_expected_run_after_clear() -> None:
    root = make_notebook(["c1"])
    run_id = start_execute_cell(root, "c1")
    apply_execute_result(root, "c1", RESULT, expected_run_id=run_id)
    assert apply_execute_result(root, "c1", RESULT, expected_run_id=run_id) is False


def test_apply_ignoring_run_id() -> None:
    root = make_notebook(["c1"])
    start_execute_cell(root, "c1")
    assert apply_execute_result(root, "c1", RESULT, ignore_run_id=True, clear_run_id=False) is True
    assert "runId" in get_output_entry(root, "c1")


def test_apply_without_entry_creates_nothing() -> None:
    root = make_notebook(["c1"])
    assert apply_execute_result(root, "c1", RESULT, ignore_run_id=True) is False
    assert get_output_entry(root, "c1") is None


def test_apply_for_current_run() -> None:
    root = make_notebook(["c1"])
    assert apply_execute_result_for_current_run(root, "c1", RESULT) is False
    start_execute_cell(root, "c1")
    assert apply_execute_result_for_current_run(root, "c1", RESULT) is True
    assert get_output_entry(root, "c1").get("running") is False


def test_mark_stale_creates_entry_once() -> None:
    root = make_notebook(["c1"])
    assert mark_cell_output_stale(root, "c1") is True
    assert get_output_entry(root, "c1").to_py() == {"running": False, "stale": True}
    assert mark_cell_output_stale(root, "c1") is False


def test_mark_stale_skips_removed_cell() -> None:
    root = make_notebook()
    assert mark_cell_output_stale(root, "ghost") is False
    assert get_output_entry(root, "ghost") is None
