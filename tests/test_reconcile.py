"""Tests for order/cellMap reconciliation."""

from __future__ import annotations

from pycrdt import Map

from cellweave.quality.reconcile import (
    ReconcileOptions,
    find_orphans_to_append,
    merge_delete_indexes_to_ranges,
    reconcile_notebook,
    resolve_reconcile_options,
)
from cellweave.quality.validation import validate_notebook
from cellweave.schema.accessors import get_cell, get_cell_map, get_order, tombstones_map
from cellweave.schema.bootstrap import create_cell_map
from cellweave.schema.keys import CELL_ID
from cellweave.schema.origins import MAINT_ORIGIN
from cellweave.schema.transaction import transact

from .conftest import make_cell, make_notebook


def _ranges(indexes: list[int]) -> list[tuple[int, int]]:
    return [(r.start, r.len) for r in merge_delete_indexes_to_ranges(indexes)]


def test_merge_delete_indexes() -> None:
    assert _ranges([]) == []
    assert _ranges([1, 2, 3]) == [(1, 3)]
    assert _ranges([0, 2, 3, 5]) == [(0, 1), (2, 2), (5, 1)]


def test_find_orphans_to_append() -> None:
    source = {"a": 1, "b": 2, "c": 3}
    assert find_orphans_to_append(source, ["a"], ["b"], {"appendOrphans": True}) == ["c"]
    assert find_orphans_to_append(source, ["a"], ["b"]) == []


def test_resolve_accepts_camel_case() -> None:
    opts = resolve_reconcile_options({"appendOrphans": True, "sortOrphansById": False})
    assert opts.append_orphans is True
    assert opts.sort_orphans_by_id is False
    assert resolve_reconcile_options(None) == ReconcileOptions()


def test_detached_root_reports_no_change() -> None:
    report = reconcile_notebook(Map())
    assert report.changed is False


def test_corrupted_order_is_repaired() -> None:
    root = make_notebook(["c1", "c2", "c3"])
    with transact(root, MAINT_ORIGIN):
        order = get_order(root)
        del order[0:3]
        order.extend(["c1", "ghost", "c2", "c1", "c3"])
    report = reconcile_notebook(root)
    assert report.changed is True
    assert [(r.start, r.len) for r in report.delete_ranges] == [(1, 1), (3, 1)]
    assert report.removed_missing_from_map == ["ghost"]
    assert report.removed_duplicates == ["c1"]
    assert report.previous_order_length == 5
    assert report.final_order_length == 3
    assert get_order(root).to_py() == ["c1", "c2", "c3"]


def test_orphans_are_appended_when_enabled() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        table = get_cell_map(root)
        table["z"] = create_cell_map(make_cell("z"))
        table["m"] = create_cell_map(make_cell("m"))
    assert reconcile_notebook(root).changed is False

    report = reconcile_notebook(root, {"appendOrphans": True})
    assert report.appended_orphans == ["m", "z"]
    assert get_order(root).to_py() == ["a", "m", "z"]


def test_live_tombstone_is_cleared() -> None:
    root = make_notebook(["a", "b"])
    with transact(root, MAINT_ORIGIN):
        tombstones_map(root)["a"] = True
    report = reconcile_notebook(root)
    assert report.cleared_tombstones == ["a"]
    assert report.removed_tombstoned == []
    assert "a" not in tombstones_map(root)
    assert get_order(root).to_py() == ["a", "b"]


def test_live_tombstone_removed_from_order_when_not_cleared() -> None:
    root = make_notebook(["a", "b"])
    with transact(root, MAINT_ORIGIN):
        tombstones_map(root)["a"] = True
    report = reconcile_notebook(root, ReconcileOptions(clear_live_tombstones=False))
    assert report.removed_tombstoned == ["a"]
    assert get_order(root).to_py() == ["b"]


def test_embedded_ids_are_fixed() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        get_cell(root, "a")[CELL_ID] = "wrong"
    report = reconcile_notebook(root)
    assert report.fixed_embedded_ids == ["a"]
    assert get_cell(root, "a").get(CELL_ID) == "a"


def test_reconcile_is_idempotent() -> None:
    root = make_notebook(["a", "b"])
    with transact(root, MAINT_ORIGIN):
        get_order(root).extend(["b", "ghost"])
        tombstones_map(root)["a"] = True
    assert reconcile_notebook(root).changed is True
    second = reconcile_notebook(root)
    assert second.changed is False
    assert second.delete_ranges == []
    assert validate_notebook(root) == []


def test_kept_dangling_ids_are_not_reported_as_duplicates() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        get_order(root).extend(["ghost", "", "ghost"])
    report = reconcile_notebook(root, ReconcileOptions(drop_invalid_order_entries=False))
    assert report.changed is False
    assert report.removed_duplicates == []
    assert report.removed_missing_from_map == []
    assert report.removed_invalid == []
    assert get_order(root).to_py() == ["a", "ghost", "", "ghost"]


def test_dropped_dangling_duplicates_count_as_missing() -> None:
    root = make_notebook(["a"])
    with transact(root, MAINT_ORIGIN):
        get_order(root).extend(["ghost", "ghost"])
    report = reconcile_notebook(root)
    assert report.removed_missing_from_map == ["ghost", "ghost"]
    assert report.removed_duplicates == []
    assert get_order(root).to_py() == ["a"]
