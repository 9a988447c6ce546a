"""Snapshot models of the undo history."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ChangeKind = Literal["map", "array", "text", "unknown"]


class OriginSummary(BaseModel):
    label: str
    type: str


class UndoChange(BaseModel):
    id: str
    kind: ChangeKind
    target: str
    path: list[str] = Field(default_factory=list)
    description: str


class UndoTransaction(BaseModel):
    id: str
    timestamp: int
    origin: OriginSummary
    change_count: int
    changes: list[UndoChange] = Field(default_factory=list)


class ScopeMeta(BaseModel):
    """Bookkeeping for one undo stack item, keyed by its own id."""

    id: str
    created_at: int
    updated_at: int
    origin: OriginSummary | None = None
    transactions: list[UndoTransaction] = Field(default_factory=list)


class ScopeSummary(BaseModel):
    id: str
    created_at: int
    updated_at: int
    origin: OriginSummary
    transaction_count: int
    change_count: int
    transactions: list[UndoTransaction] = Field(default_factory=list)


class HistorySnapshot(BaseModel):
    undo: list[ScopeSummary] = Field(default_factory=list)
    redo: list[ScopeSummary] = Field(default_factory=list)
    can_undo: bool = False
    can_redo: bool = False
