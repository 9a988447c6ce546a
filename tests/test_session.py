"""Tests for config-driven notebook sessions."""

from __future__ import annotations

from pycrdt import Doc, Text

from cellweave.config import CellweaveConfig
from cellweave.ops.clock import ClockSource
from cellweave.ops.mutations import insert_cell, remove_cell
from cellweave.schema.accessors import get_cell, get_output_entry, tombstones_map
from cellweave.schema.bootstrap import get_root
from cellweave.schema.keys import CELL_SOURCE
from cellweave.schema.models import NotebookInit
from cellweave.schema.transaction import with_user_action
from cellweave.session import DAY_MS, NotebookSession

from .conftest import make_cell

T0 = 1_700_000_000_000


def test_session_wires_binder_and_history() -> None:
    config = CellweaveConfig()
    config.undo.capture_timeout_ms = 0
    session = NotebookSession(Doc(), NotebookInit(id="nb_s"), config=config)
    insert_cell(session.root, make_cell("c1"))
    with with_user_action(session.root):
        get_cell(session.root, "c1").get(CELL_SOURCE).insert(0, "-- ")

    assert get_output_entry(session.root, "c1").get("stale") is True
    assert len(session.history.get_snapshot().undo) == 2
    session.close()
    assert session.binder is None


def test_session_vacuum_uses_configured_ttl() -> None:
    config = CellweaveConfig()
    config.tombstones.ttl_days = 1
    session = NotebookSession(Doc(), config=config)
    assert session.tombstone_ttl_ms == DAY_MS
    insert_cell(session.root, make_cell("c1"))
    remove_cell(session.root, "c1", clock=ClockSource(lambda: T0, trusted=True))

    assert session.vacuum(ClockSource(lambda: T0 + DAY_MS // 2, trusted=True)) == []
    assert session.vacuum(ClockSource(lambda: T0 + DAY_MS, trusted=True)) == ["c1"]
    assert "c1" not in tombstones_map(session.root)
    session.close()


def _open(cell_ids: list[str]) -> NotebookSession:
    config = CellweaveConfig()
    config.undo.capture_timeout_ms = 0
    session = NotebookSession(Doc(), NotebookInit(id="nb_s"), config=config)
    for cell_id in cell_ids:
        insert_cell(session.root, make_cell(cell_id))
    return session


def test_direct_text_edit_is_written_on_flush() -> None:
    session = _open(["c1"])
    source: Text = get_cell(session.root, "c1").get(CELL_SOURCE)
    source.insert(0, "-- ")
    assert session.binder.pending == ["c1"]

    session.flush()
    assert get_output_entry(session.root, "c1").get("stale") is True
    assert session.binder.pending == []
    session.close()


def test_edit_block_marks_stale_on_exit() -> None:
    session = _open(["c1"])
    with session.edit():
        get_cell(session.root, "c1").get(CELL_SOURCE).insert(0, "-- ")
    assert get_output_entry(session.root, "c1").get("stale") is True
    assert session.binder.pending == []
    session.close()


def test_remote_update_marks_stale() -> None:
    session = _open(["c1", "c2"])
    peer = Doc()
    peer.apply_update(session.doc.get_update())
    get_cell(get_root(peer), "c1").get(CELL_SOURCE).insert(0, "-- remote\n")

    session.apply_update(peer.get_update(session.doc.get_state()))
    assert str(get_cell(session.root, "c1").get(CELL_SOURCE)).startswith("-- remote\n")
    assert get_output_entry(session.root, "c1").get("stale") is True
    entry = get_output_entry(session.root, "c2")
    assert entry is None or entry.get("stale") is not True
    assert session.binder.pending == []
    session.close()
