"""Run state of cell outputs: start, complete and invalidate."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pycrdt import Map

from cellweave.ops.clock import now_ms
from cellweave.schema.accessors import ensure_output_entry, get_cell, get_output_entry
from cellweave.schema.keys import (
    OUT_COMPLETED_AT,
    OUT_RESULT,
    OUT_RUN_ID,
    OUT_RUNNING,
    OUT_STALE,
    OUT_STARTED_AT,
)
from cellweave.schema.models import QueryResult
from cellweave.schema.origins import EXECUTION_ORIGIN
from cellweave.schema.transaction import document_of, transact

logger = logging.getLogger("cellweave.execute")


def generate_run_id() -> str:
    return "run_" + uuid.uuid4().hex[:12]


def _result_payload(result: QueryResult) -> dict[str, Any]:
    return result.model_dump(by_alias=True, exclude_none=True)


def start_execute_cell(root: Map | None, cell_id: str, *, now: int | None = None) -> str | None:
    """Mark a cell's output as running and return the new run id.

    Returns None when the cell is not live.
    """
    if root is None or document_of(root) is None or get_cell(root, cell_id) is None:
        return None
    run_id = generate_run_id()
    with transact(root, EXECUTION_ORIGIN):
        entry = ensure_output_entry(root, cell_id)
        entry[OUT_RUNNING] = True
        entry[OUT_STALE] = False
        entry[OUT_STARTED_AT] = now if now is not None else now_ms()
        entry[OUT_RUN_ID] = run_id
        if OUT_COMPLETED_AT in entry:
            del entry[OUT_COMPLETED_AT]
    logger.debug("Started run %s for cell %s", run_id, cell_id)
    return run_id


def apply_execute_result(
    root: Map | None,
    cell_id: str,
    result: QueryResult,
    *,
    expected_run_id: str | None = None,
    ignore_run_id: bool = False,
    clear_run_id: bool = True,
    completed_at: int | None = None,
) -> bool:
    """Write a finished result, replacing any previous one.

    Unless `ignore_run_id` is set, the write only lands when the entry's run
    id and `expected_run_id` are both present and equal, or both absent. No
    entry is created for a cell that never started.
    """
    if root is None or document_of(root) is None:
        return False
    entry = get_output_entry(root, cell_id)
    if entry is None:
        return False
    if not ignore_run_id:
        current = entry.get(OUT_RUN_ID)
        current = current if isinstance(current, str) and current else None
        if current != expected_run_id:
            logger.info("Discarding result for %s: run %s does not match %s", cell_id, expected_run_id, current)
            return False
    with transact(root, EXECUTION_ORIGIN):
        entry[OUT_RUNNING] = False
        entry[OUT_STALE] = False
        entry[OUT_COMPLETED_AT] = completed_at if completed_at is not None else now_ms()
        entry[OUT_RESULT] = _result_payload(result)
        if clear_run_id and OUT_RUN_ID in entry:
            del entry[OUT_RUN_ID]
    return True


def apply_execute_result_for_current_run(
    root: Map | None,
    cell_id: str,
    result: QueryResult,
    *,
    ignore_run_id: bool = False,
    clear_run_id: bool = True,
    completed_at: int | None = None,
) -> bool:
    """Apply a result against whatever run is currently recorded."""
    if root is None or document_of(root) is None:
        return False
    entry = get_output_entry(root, cell_id)
    current = entry.get(OUT_RUN_ID) if entry is not None else None
    if not current and not ignore_run_id:
        return False
    return apply_execute_result(
        root,
        cell_id,
        result,
        expected_run_id=current,
        ignore_run_id=ignore_run_id,
        clear_run_id=clear_run_id,
        completed_at=completed_at,
    )


def mark_cell_output_stale(root: Map | None, cell_id: str, *, origin: Any = EXECUTION_ORIGIN) -> bool:
    """Flag a live cell's output as stale, creating the entry if absent.

    Returns True only when something was written.
    """
    if root is None or document_of(root) is None or get_cell(root, cell_id) is None:
        return False
    entry = get_output_entry(root, cell_id)
    if entry is not None and entry.get(OUT_STALE) is True:
        return False
    with transact(root, origin):
        ensure_output_entry(root, cell_id)[OUT_STALE] = True
    return True
