"""Closed classification of stored values.

Every read that needs to know what a slot holds goes through `classify` once,
so validation and repair branch on a tag rather than on ad hoc type checks.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pycrdt import Array, Map, Text
from pydantic import BaseModel


class SlotKind(StrEnum):
    MAP = "Map"
    SEQUENCE = "Array"
    TEXT = "Text"
    SCALAR = "Scalar"
    MISSING = "Missing"


class Slot(BaseModel):
    """A classified value read from a container key."""

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    kind: SlotKind
    value: Any = None


_MISSING = object()


def classify(value: Any) -> SlotKind:
    if value is _MISSING:
        return SlotKind.MISSING
    if isinstance(value, Map):
        return SlotKind.MAP
    if isinstance(value, Array):
        return SlotKind.SEQUENCE
    if isinstance(value, Text):
        return SlotKind.TEXT
    return SlotKind.SCALAR


def peek(container: Any, key: str) -> Slot:
    """Read `container[key]` without creating anything."""
    if not isinstance(container, Map) or key not in container:
        return Slot(kind=SlotKind.MISSING)
    value = container[key]
    return Slot(kind=classify(value), value=value)


def entries(container: Map) -> list[tuple[str, Slot]]:
    """Classify every entry of a map, keys sorted for stable reporting."""
    return [(key, Slot(kind=classify(value), value=value)) for key, value in sorted(container.items())]


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
