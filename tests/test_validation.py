"""Tests for notebook validation."""

from __future__ import annotations

from pycrdt import Array, Map

from cellweave.core import Severity
from cellweave.quality.validation import (
    OUTPUT_RULES,
    Issue,
    has_errors,
    register_output_rule,
    validate_notebook,
)
from cellweave.schema.accessors import (
    ensure_output_entry,
    get_cell,
    get_cell_map,
    get_order,
    get_outputs_map,
    tombstones_map,
)
from cellweave.schema.keys import CELL_ID, CELL_SOURCE, NB_CELL_MAP
from cellweave.schema.origins import MAINT_ORIGIN
from cellweave.schema.transaction import transact

from .conftest import make_notebook


def _codes(issues: list[Issue]) -> list[str]:
    return [issue.code for issue in issues]


def test_clean_notebook_has_no_issues() -> None:
    root = make_notebook(["a", "b"])
    assert validate_notebook(root) == []


def test_detached_root_returns_nothing() -> None:
    assert validate_notebook(None) == []
    assert validate_notebook(Map()) == []


def test_wrong_container_kind() -> None:
    root = make_notebook()
    with transact(root, MAINT_ORIGIN):
        root[NB_CELL_MAP] = Array(["x"])
    issues = validate_notebook(root)
    assert [(i.code, i.message) for i in issues] == [("CONTAINER_KIND", '"cellMap" is not a Map')]
    assert has_errors(issues)


def test_order_anomalies() -> None:
    root = make_notebook(["a", "b"])
    with transact(root, MAINT_ORIGIN):
        get_order(root).extend(["a", "ghost", ""])
    issues = validate_notebook(root)
    assert _codes(issues) == ["ORDER_DUPLICATE", "ORDER_MISSING_CELL", "ORDER_INVALID_ID"]
    assert issues[0].path == "order[2]"
    assert "order[0]" in issues[0].message


def test_unreferenced_and_mismatched_cells() -> None:
    root = make_notebook(["a", "b"])
    with transact(root, MAINT_ORIGIN):
        del get_order(root)[1]
        get_cell(root, "a")[CELL_ID] = "zzz"
    issues = validate_notebook(root)
    assert _codes(issues) == ["CELL_ID_MISMATCH", "CELL_UNREFERENCED"]
    assert not has_errors(issues)


def test_cell_record_and_source_kind() -> None:
    root = make_notebook(["a", "b"])
    with transact(root, MAINT_ORIGIN):
        get_cell_map(root)["a"] = "not a cell"
        get_cell(root, "b")[CELL_SOURCE] = "plain string"
    issues = validate_notebook(root)
    assert _codes(issues) == ["CELL_NOT_MAP", "CELL_SOURCE_KIND"]
    assert issues[1].path == "cellMap.b.source"


def test_live_and_tombstoned_cell() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        tombstones_map(root)["a"] = True
    codes = _codes(validate_notebook(root))
    assert "ORDER_TOMBSTONED" in codes
    assert "CELL_TOMBSTONED" in codes


def test_tombstone_without_entity_is_info() -> None:
    root = make_notebook()
    with transact(root, MAINT_ORIGIN):
        tombstones_map(root)["gone"] = True
    issues = validate_notebook(root)
    assert _codes(issues) == ["TOMBSTONE_NO_ENTITY"]
    assert issues[0].severity == Severity.INFO


def test_orphan_and_scalar_outputs() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        outputs = get_outputs_map(root)
        outputs["gone"] = Map({"running": False, "stale": False})
        outputs["a"] = "oops"
    messages = [i.message for i in validate_notebook(root)]
    assert messages == [
        'Output record for "a" is not a Map',
        'Output exists for "gone" but cellMap no longer contains this cell',
    ]


def test_output_field_types() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        entry = ensure_output_entry(root, "a")
        entry["running"] = "yes"
        entry["startedAt"] = "noon"
        entry["result"] = {"columns": [], "rows": "nope", "rowsAffected": 0}
    issues = validate_notebook(root)
    assert _codes(issues) == ["OUTPUT_FIELD_TYPE", "OUTPUT_FIELD_TYPE", "OUTPUT_RESULT_SHAPE"]
    assert issues[2].severity == Severity.ERROR


def test_result_error_must_be_string() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        entry = ensure_output_entry(root, "a")
        entry["result"] = {"columns": ["x"], "rows": [[1]], "rowsAffected": 1, "error": 5}
    issues = validate_notebook(root)
    assert [(i.code, i.path) for i in issues] == [("OUTPUT_RESULT_SHAPE", "outputs.a.result.error")]
    assert issues[0].severity == Severity.WARNING


def test_registered_rule_runs_and_failures_are_reported() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        ensure_output_entry(root, "a")

    def broken(cell_id: str, entry: Map) -> list[Issue]:
        raise ValueError("boom")

    register_output_rule(broken)
    register_output_rule(broken)
    try:
        assert OUTPUT_RULES.count(broken) == 1
        issues = validate_notebook(root)
        assert _codes(issues) == ["OUTPUT_RULE_FAILED"]
        assert "boom" in issues[0].message
    finally:
        OUTPUT_RULES.remove(broken)
