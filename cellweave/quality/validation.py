"""Read-only structural validation of a notebook root.

`validate_notebook` never writes and never raises on malformed data: every
anomaly becomes an `Issue`, and one corrupt entry does not hide the others.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

from pycrdt import Map
from pydantic import BaseModel

from cellweave.core import Severity
from cellweave.schema.decode import Slot, SlotKind, classify, entries, is_number, peek
from cellweave.schema.keys import (
    CELL_ID,
    CELL_KIND,
    CELL_SOURCE,
    CONTAINER_KINDS,
    NB_CELL_MAP,
    NB_CELL_ORDER,
    NB_OUTPUTS,
    NB_TOMBSTONE_META,
    NB_TOMBSTONES,
    OUT_COMPLETED_AT,
    OUT_RESULT,
    OUT_RUNNING,
    OUT_STALE,
    OUT_STARTED_AT,
    TOMB_CLOCK,
    TOMB_DELETED_AT,
)
from cellweave.schema.models import TombstoneClock
from cellweave.schema.transaction import document_of

logger = logging.getLogger("cellweave.validation")


class Issue(BaseModel):
    severity: Severity
    code: str
    message: str
    path: str


OutputRule = Callable[[str, Map], list[Issue]]


def _issue(severity: Severity, code: str, path: str, message: str) -> Issue:
    return Issue(severity=severity, code=code, message=message, path=path)


def _type_name(value: Any) -> str:
    kind = classify(value)
    if kind != SlotKind.SCALAR:
        return kind.value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def check_run_flags(cell_id: str, entry: Map) -> list[Issue]:
    issues: list[Issue] = []
    for key in (OUT_RUNNING, OUT_STALE):
        value = entry.get(key)
        if value is not None and not isinstance(value, bool):
            issues.append(
                _issue(
                    Severity.WARNING,
                    "OUTPUT_FIELD_TYPE",
                    f"outputs.{cell_id}.{key}",
                    f'"{key}" should be boolean, got {_type_name(value)}',
                )
            )
    return issues


def check_timestamps(cell_id: str, entry: Map) -> list[Issue]:
    issues: list[Issue] = []
    for key in (OUT_STARTED_AT, OUT_COMPLETED_AT):
        value = entry.get(key)
        if value is not None and not is_number(value):
            issues.append(
                _issue(
                    Severity.WARNING,
                    "OUTPUT_FIELD_TYPE",
                    f"outputs.{cell_id}.{key}",
                    f'"{key}" should be number (timestamp), got {_type_name(value)}',
                )
            )
    return issues


def check_result_payload(cell_id: str, entry: Map) -> list[Issue]:
    raw = entry.get(OUT_RESULT)
    if raw is None:
        return []
    payload = raw.to_py() if isinstance(raw, Map) else raw
    path = f"outputs.{cell_id}.result"
    if (
        not isinstance(payload, dict)
        or not isinstance(payload.get("columns"), list)
        or not isinstance(payload.get("rows"), list)
        or not is_number(payload.get("rowsAffected"))
    ):
        return [_issue(Severity.ERROR, "OUTPUT_RESULT_SHAPE", path, f'Invalid query result structure for "{cell_id}"')]
    if "error" in payload and not isinstance(payload["error"], str):
        message = '"error" field should be string when present'
        return [_issue(Severity.WARNING, "OUTPUT_RESULT_SHAPE", f"{path}.error", message)]
    return []


OUTPUT_RULES: list[OutputRule] = [check_run_flags, check_timestamps, check_result_payload]


def register_output_rule(rule: OutputRule) -> None:
    """Add a structural check run against every well-formed output entry."""
    if rule not in OUTPUT_RULES:
        OUTPUT_RULES.append(rule)


def _container_issues(root: Map) -> tuple[list[Issue], dict[str, Slot]]:
    issues: list[Issue] = []
    slots: dict[str, Slot] = {}
    for key, expected in CONTAINER_KINDS.items():
        slot = peek(root, key)
        slots[key] = slot
        if slot.kind not in (SlotKind.MISSING, expected):
            issues.append(_issue(Severity.ERROR, "CONTAINER_KIND", key, f'"{key}" is not a {expected}'))
    return issues, slots


def _order_issues(order: Slot, cells: Slot, tombstoned: set[str]) -> list[Issue]:
    if order.kind != SlotKind.SEQUENCE:
        return []
    issues: list[Issue] = []
    seen: dict[str, int] = {}
    for index, cell_id in enumerate(order.value.to_py()):
        path = f"order[{index}]"
        if not isinstance(cell_id, str) or not cell_id:
            issues.append(_issue(Severity.ERROR, "ORDER_INVALID_ID", path, f"Invalid cell id at {path}"))
            continue
        if cell_id in seen:
            issues.append(
                _issue(
                    Severity.ERROR,
                    "ORDER_DUPLICATE",
                    path,
                    f'Duplicate cell id "{cell_id}" also present at order[{seen[cell_id]}]',
                )
            )
        else:
            seen[cell_id] = index
        if cells.kind != SlotKind.MAP or cell_id not in cells.value:
            issues.append(
                _issue(
                    Severity.ERROR,
                    "ORDER_MISSING_CELL",
                    path,
                    f'Cell id "{cell_id}" referenced by order but missing in cellMap',
                )
            )
        if cell_id in tombstoned:
            issues.append(
                _issue(
                    Severity.WARNING,
                    "ORDER_TOMBSTONED",
                    path,
                    f'Cell id "{cell_id}" appears in order but is marked tombstoned',
                )
            )
    return issues


def _cell_issues(cells: Slot, ordered: set[str], tombstoned: set[str]) -> list[Issue]:
    if cells.kind != SlotKind.MAP:
        return []
    issues: list[Issue] = []
    for cell_id, slot in entries(cells.value):
        path = f"cellMap.{cell_id}"
        if slot.kind != SlotKind.MAP:
            issues.append(_issue(Severity.ERROR, "CELL_NOT_MAP", path, f'Cell record for "{cell_id}" is not a Map'))
            continue
        cell = slot.value
        if cell_id not in ordered:
            issues.append(
                _issue(
                    Severity.WARNING,
                    "CELL_UNREFERENCED",
                    path,
                    f'Cell id "{cell_id}" exists in cellMap but not referenced by order',
                )
            )
        if not cell.get(CELL_KIND):
            issues.append(_issue(Severity.ERROR, "CELL_MISSING_KIND", path, f'Missing cell kind for "{cell_id}"'))
        embedded = cell.get(CELL_ID)
        if embedded is not None and embedded != cell_id:
            issues.append(
                _issue(
                    Severity.WARNING,
                    "CELL_ID_MISMATCH",
                    path,
                    f'cellMap key "{cell_id}" mismatches embedded id "{embedded}"',
                )
            )
        source = peek(cell, CELL_SOURCE)
        if source.kind not in (SlotKind.MISSING, SlotKind.TEXT):
            issues.append(
                _issue(
                    Severity.ERROR,
                    "CELL_SOURCE_KIND",
                    f"{path}.{CELL_SOURCE}",
                    f'Source of "{cell_id}" is not a Text',
                )
            )
        if cell_id in tombstoned:
            issues.append(
                _issue(
                    Severity.ERROR,
                    "CELL_TOMBSTONED",
                    path,
                    f'Cell id "{cell_id}" is live in cellMap but also tombstoned',
                )
            )
    return issues


def _tombstone_issues(tombstones: Slot, meta: Slot, cells: Slot) -> list[Issue]:
    issues: list[Issue] = []
    if meta.kind == SlotKind.MAP:
        for cell_id, slot in entries(meta.value):
            path = f"{NB_TOMBSTONE_META}.{cell_id}"
            if slot.kind != SlotKind.MAP:
                issues.append(
                    _issue(
                        Severity.WARNING,
                        "TOMBSTONE_META_KIND",
                        path,
                        f'Tombstone meta for "{cell_id}" is not a Map',
                    )
                )
                continue
            deleted_at = slot.value.get(TOMB_DELETED_AT)
            if deleted_at is not None and (not is_number(deleted_at) or math.isnan(deleted_at)):
                issues.append(
                    _issue(Severity.WARNING, "TOMBSTONE_DELETED_AT", path, f'Invalid deletedAt for "{cell_id}"')
                )
            clock = slot.value.get(TOMB_CLOCK)
            if clock is not None and clock not in (TombstoneClock.TRUSTED, TombstoneClock.LOCAL):
                issues.append(_issue(Severity.WARNING, "TOMBSTONE_CLOCK", path, f'Invalid clock tag for "{cell_id}"'))
    if tombstones.kind == SlotKind.MAP:
        for cell_id, slot in entries(tombstones.value):
            if slot.value is not True:
                continue
            if cells.kind != SlotKind.MAP or cell_id not in cells.value:
                issues.append(
                    _issue(
                        Severity.INFO,
                        "TOMBSTONE_NO_ENTITY",
                        f"{NB_TOMBSTONES}.{cell_id}",
                        f'Tombstone exists for "{cell_id}" but cellMap no longer has the entity',
                    )
                )
    return issues


def _output_issues(outputs: Slot, cells: Slot) -> list[Issue]:
    if outputs.kind != SlotKind.MAP:
        return []
    issues: list[Issue] = []
    for cell_id, slot in entries(outputs.value):
        path = f"outputs.{cell_id}"
        if not cell_id:
            issues.append(_issue(Severity.ERROR, "OUTPUT_INVALID_KEY", path, f'Invalid output key "{cell_id}"'))
            continue
        if cells.kind != SlotKind.MAP or cell_id not in cells.value:
            issues.append(
                _issue(
                    Severity.WARNING,
                    "OUTPUT_ORPHAN",
                    path,
                    f'Output exists for "{cell_id}" but cellMap no longer contains this cell',
                )
            )
        if slot.kind != SlotKind.MAP:
            issues.append(
                _issue(Severity.ERROR, "OUTPUT_NOT_MAP", path, f'Output record for "{cell_id}" is not a Map')
            )
            continue
        for rule in list(OUTPUT_RULES):
            try:
                issues.extend(rule(cell_id, slot.value))
            except Exception as e:  # noqa: BLE001
                logger.warning("Output rule %s failed on %s: %s", getattr(rule, "__name__", rule), cell_id, e)
                message = f'Output rule failed for "{cell_id}": {e}'
                issues.append(_issue(Severity.ERROR, "OUTPUT_RULE_FAILED", path, message))
    return issues


def validate_notebook(root: Map | None) -> list[Issue]:
    """Scan a notebook root and return every structural issue found."""
    if root is None or document_of(root) is None:
        return []
    issues, slots = _container_issues(root)
    order = slots[NB_CELL_ORDER]
    cells = slots[NB_CELL_MAP]
    tombstones = slots[NB_TOMBSTONES]

    tombstoned: set[str] = set()
    if tombstones.kind == SlotKind.MAP:
        tombstoned = {key for key, value in tombstones.value.items() if value is True}
    ordered: set[str] = set()
    if order.kind == SlotKind.SEQUENCE:
        ordered = {value for value in order.value.to_py() if isinstance(value, str)}

    issues.extend(_order_issues(order, cells, tombstoned))
    issues.extend(_cell_issues(cells, ordered, tombstoned))
    issues.extend(_tombstone_issues(tombstones, slots[NB_TOMBSTONE_META], cells))
    issues.extend(_output_issues(slots[NB_OUTPUTS], cells))
    return issues


def has_errors(issues: list[Issue]) -> bool:
    return any(issue.severity == Severity.ERROR for issue in issues)
