"""Human-readable summaries of transactions and their change events."""

from __future__ import annotations

import inspect
import re
import uuid
from typing import Any

from pycrdt import Array, ArrayEvent, Map, MapEvent, Text, TextEvent

from cellweave.history.models import OriginSummary, UndoChange
from cellweave.schema.keys import CELL_META, CELL_SOURCE, NB_CELL_MAP, NB_CELL_ORDER, NB_TOMBSTONE_META, NB_TOMBSTONES
from cellweave.schema.origins import USER_ACTION_ORIGIN, Origin

SEGMENT_LABELS = {
    NB_CELL_ORDER: "Order",
    NB_CELL_MAP: "Cells",
    NB_TOMBSTONES: "Tombstones",
    NB_TOMBSTONE_META: "Tombstone Meta",
    CELL_SOURCE: "Source",
    CELL_META: "Metadata",
}

ELLIPSIS = "…"
_WS = re.compile(r"\s+")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def describe_origin(origin: Any) -> OriginSummary:
    if origin is USER_ACTION_ORIGIN:
        return OriginSummary(label="USER_ACTION", type="symbol")
    if origin is None:
        return OriginSummary(label="(default)", type="null")
    if isinstance(origin, str):
        return OriginSummary(label=origin, type="string")
    if isinstance(origin, Origin):
        return OriginSummary(label=origin.description, type="symbol")
    if isinstance(origin, bool):
        return OriginSummary(label=str(origin).lower(), type="boolean")
    if isinstance(origin, (int, float)):
        return OriginSummary(label=str(origin), type="number")
    if inspect.isfunction(origin) or inspect.ismethod(origin) or inspect.isbuiltin(origin):
        name = getattr(origin, "__name__", "")
        return OriginSummary(label=name if name and name != "<lambda>" else "(fn)", type="function")
    ctor = type(origin).__name__
    tags = (getattr(origin, attr, None) for attr in ("type", "kind", "tag"))
    tag = next((value for value in tags if isinstance(value, str) and value), None)
    return OriginSummary(label=f"{ctor}:{tag}" if tag else ctor, type="object")


def format_segment(segment: str | int) -> str:
    if isinstance(segment, int):
        return f"#{segment}"
    return SEGMENT_LABELS.get(segment, segment)


def truncate(value: str, limit: int = 32) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 1] + ELLIPSIS


def _collapse(value: str) -> str:
    return _WS.sub(" ", value)


def format_inserted_value(value: Any) -> str:
    if isinstance(value, str):
        return truncate(_collapse(value))
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return f"[{len(value)} items]"
    if isinstance(value, Map):
        return "Map"
    if isinstance(value, Array):
        return "Array"
    if isinstance(value, Text):
        return "Text"
    if value is None:
        return "null"
    return type(value).__name__


def summarize_map_change(keys: dict[str, Any]) -> str:
    if not keys:
        return "map changed"
    parts = []
    for key, change in keys.items():
        action = change.get("action") if isinstance(change, dict) else None
        prefix = "+" if action == "add" else "~" if action == "update" else "-"
        parts.append(f"{prefix}{format_segment(key)}")
    return ", ".join(parts)


def summarize_array_change(delta: list[dict[str, Any]]) -> str:
    inserted = 0
    deleted = 0
    previews: list[str] = []
    for part in delta:
        insert = part.get("insert")
        if isinstance(insert, list):
            inserted += len(insert)
            for value in insert[:2]:
                if len(previews) < 3:
                    previews.append(format_inserted_value(value))
        elif isinstance(insert, str):
            inserted += 1
            if len(previews) < 3:
                previews.append(truncate(_collapse(insert)))
        deleted += part.get("delete") or 0

    bits = []
    if inserted:
        preview = ""
        if previews:
            more = ELLIPSIS if inserted > len(previews) else ""
            preview = f" ({' · '.join(previews)}{more})"
        bits.append(f"+{inserted}{preview}")
    if deleted:
        bits.append(f"-{deleted}")
    return ", ".join(bits) if bits else "order changed"


def summarize_text_change(delta: list[dict[str, Any]]) -> str:
    inserted = 0
    deleted = 0
    previews: list[str] = []
    for part in delta:
        insert = part.get("insert")
        if isinstance(insert, str):
            inserted += len(insert)
            if len(" ".join(previews)) < 48 and insert.strip():
                previews.append(truncate(_collapse(insert), 24))
        elif isinstance(insert, list):
            inserted += len(insert)
        deleted += part.get("delete") or 0

    bits = []
    if inserted:
        bits.append(f"+{inserted}")
    if deleted:
        bits.append(f"-{deleted}")
    if previews:
        bits.append(f"“{' · '.join(previews)}”")
    return " ".join(bits) if bits else "text changed"


def describe_event(event: Any, scope_key: str | None = None) -> UndoChange:
    """Summarize one change event, its path prefixed by the observed scope."""
    segments: list[str | int] = list(getattr(event, "path", None) or [])
    if scope_key is not None:
        segments.insert(0, scope_key)
    path = [format_segment(segment) for segment in segments]

    if isinstance(event, TextEvent):
        kind, description = "text", summarize_text_change(event.delta or [])
    elif isinstance(event, ArrayEvent):
        kind, description = "array", summarize_array_change(event.delta or [])
    elif isinstance(event, MapEvent):
        kind, description = "map", summarize_map_change(event.keys or {})
    else:
        kind, description = "unknown", "changed"

    target = " › ".join(path) if path else type(getattr(event, "target", None)).__name__
    return UndoChange(id=new_id("chg"), kind=kind, target=target, path=path, description=description)
