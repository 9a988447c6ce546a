"""Plain-data models of notebook entities.

These are detached snapshots: reading them never touches the document and
mutating them never writes back.
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def generate_cell_id() -> str:
    """Generate a cell ID: 'cell_' + 8 hex chars from uuid4."""
    return "cell_" + uuid.uuid4().hex[:8]


def generate_notebook_id() -> str:
    """Generate a notebook ID: 'nb_' + 12 hex chars from uuid4."""
    return "nb_" + uuid.uuid4().hex[:12]


class CellKind(StrEnum):
    SQL = "sql"
    MARKDOWN = "markdown"
    CODE = "code"
    CHART = "chart"
    RAW = "raw"


class TombstoneClock(StrEnum):
    TRUSTED = "trusted"
    LOCAL = "local"


class CellMetadata(BaseModel):
    model_config = {"populate_by_name": True}

    background_ddl: bool = Field(default=False, alias="backgroundDDL")


class CellModel(BaseModel):
    id: str = Field(default_factory=generate_cell_id)
    kind: CellKind = CellKind.SQL
    lang: str | None = None
    source: str = ""
    metadata: CellMetadata = Field(default_factory=CellMetadata)
    fingerprint: str | None = None
    executed_by: str | None = None


class QueryResult(BaseModel):
    model_config = {"populate_by_name": True}

    columns: list[str] = Field(default_factory=list)
    rows: list[Any] = Field(default_factory=list)
    rows_affected: float = Field(default=0, alias="rowsAffected")
    error: str | None = None


class OutputModel(BaseModel):
    running: bool = False
    stale: bool = False
    started_at: int | None = None
    completed_at: int | None = None
    run_id: str | None = None
    result: QueryResult | None = None


class TombstoneMeta(BaseModel):
    deleted_at: int | None = None
    reason: str | None = None
    clock: TombstoneClock | None = None


class NotebookInit(BaseModel):
    id: str | None = None
    title: str | None = None
    database_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    order: list[str] = Field(default_factory=list)


class NotebookModel(BaseModel):
    id: str
    title: str
    database_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    cells: list[CellModel] = Field(default_factory=list)
    tombstones: list[str] = Field(default_factory=list)
