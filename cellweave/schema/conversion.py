"""Read-only conversion of shared structures into plain models."""

from __future__ import annotations

import logging

from pycrdt import Array, Map, Text
from pydantic import ValidationError

from cellweave.schema.accessors import list_cells
from cellweave.schema.decode import is_number
from cellweave.schema.keys import (
    CELL_EXEC_BY,
    CELL_FINGERPRINT,
    CELL_ID,
    CELL_KIND,
    CELL_LANG,
    CELL_META,
    CELL_SOURCE,
    DEFAULT_TITLE,
    META_BACKGROUND_DDL,
    NB_DATABASE_ID,
    NB_ID,
    NB_METADATA,
    NB_OUTPUTS,
    NB_TAGS,
    NB_TITLE,
    NB_TOMBSTONES,
    OUT_COMPLETED_AT,
    OUT_RESULT,
    OUT_RUN_ID,
    OUT_RUNNING,
    OUT_STALE,
    OUT_STARTED_AT,
)
from cellweave.schema.models import CellKind, CellMetadata, CellModel, NotebookModel, OutputModel, QueryResult

logger = logging.getLogger("cellweave.schema")


def _kind(value: object) -> CellKind:
    try:
        return CellKind(value)
    except ValueError:
        return CellKind.RAW


def cell_to_model(cell: Map) -> CellModel:
    source = cell.get(CELL_SOURCE)
    meta = cell.get(CELL_META)
    background = meta.get(META_BACKGROUND_DDL) if isinstance(meta, Map) else None
    return CellModel(
        id=str(cell.get(CELL_ID, "")),
        kind=_kind(cell.get(CELL_KIND)),
        lang=cell.get(CELL_LANG) if isinstance(cell.get(CELL_LANG), str) else None,
        source=str(source) if isinstance(source, Text) else "",
        metadata=CellMetadata(background_ddl=background is True),
        fingerprint=cell.get(CELL_FINGERPRINT) if isinstance(cell.get(CELL_FINGERPRINT), str) else None,
        executed_by=cell.get(CELL_EXEC_BY) if isinstance(cell.get(CELL_EXEC_BY), str) else None,
    )


def output_to_model(entry: Map) -> OutputModel:
    def _ts(key: str) -> int | None:
        value = entry.get(key)
        return int(value) if is_number(value) else None

    result: QueryResult | None = None
    raw = entry.get(OUT_RESULT)
    if isinstance(raw, (Map, dict)):
        payload = raw.to_py() if isinstance(raw, Map) else raw
        try:
            result = QueryResult.model_validate(payload)
        except ValidationError:
            logger.warning("Ignoring malformed result payload")
    run_id = entry.get(OUT_RUN_ID)
    return OutputModel(
        running=entry.get(OUT_RUNNING) is True,
        stale=entry.get(OUT_STALE) is True,
        started_at=_ts(OUT_STARTED_AT),
        completed_at=_ts(OUT_COMPLETED_AT),
        run_id=run_id if isinstance(run_id, str) else None,
        result=result,
    )


def outputs_to_model(root: Map) -> dict[str, OutputModel]:
    """Snapshot every well-formed output entry, skipping the rest."""
    outputs = root.get(NB_OUTPUTS)
    if not isinstance(outputs, Map):
        return {}
    return {key: output_to_model(value) for key, value in outputs.items() if isinstance(value, Map)}


def notebook_to_model(root: Map) -> NotebookModel:
    tags = root.get(NB_TAGS)
    metadata = root.get(NB_METADATA)
    tombstones = root.get(NB_TOMBSTONES)
    database_id = root.get(NB_DATABASE_ID)
    return NotebookModel(
        id=str(root.get(NB_ID, "")),
        title=str(root.get(NB_TITLE, DEFAULT_TITLE)),
        database_id=database_id if isinstance(database_id, str) else None,
        tags=[t for t in tags.to_py() if isinstance(t, str)] if isinstance(tags, Array) else [],
        metadata=metadata.to_py() if isinstance(metadata, Map) else {},
        cells=[cell_to_model(cell) for cell in list_cells(root)],
        tombstones=sorted(tombstones.keys()) if isinstance(tombstones, Map) else [],
    )
