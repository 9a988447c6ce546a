"""FastAPI diagnostics server for stored notebook snapshots."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cellweave.config import load_config, snapshots_dir
from cellweave.core import DiagCode, Result
from cellweave.quality.reconcile import ReconcileOptions
from cellweave.quality.repair import repair_notebook
from cellweave.quality.validation import validate_notebook
from cellweave.schema.bootstrap import get_root
from cellweave.schema.conversion import notebook_to_model, outputs_to_model
from cellweave.store import get_store

logger = logging.getLogger("cellweave.server")

app = FastAPI(title="cellweave", version="0.1.0")


class ReconcileRequest(BaseModel):
    append_orphans: bool | None = None
    dry_run: bool = False


def _error_response(result: Result[Any]) -> JSONResponse:
    diag = result.diagnostics[0] if result.diagnostics else None
    code = diag.code if diag else "UNKNOWN"
    status = 404 if code in (DiagCode.NOT_FOUND, DiagCode.INVALID_NAME) else 422
    return JSONResponse(status_code=status, content={"error": diag.message if diag else "Load failed", "code": code})


@app.get("/api/health")
async def health() -> dict[str, Any]:
    store = get_store(snapshots_dir())
    return {"ok": True, "documents": len(store.list_names())}


@app.get("/api/documents")
async def list_documents() -> dict[str, Any]:
    store = get_store(snapshots_dir())
    return {"documents": store.list_names()}


@app.get("/api/documents/{name}")
async def get_document(name: str) -> Any:
    result = get_store(snapshots_dir()).load(name)
    if result.data is None:
        return _error_response(result)
    root = get_root(result.data)
    return {
        "notebook": notebook_to_model(root).model_dump(),
        "outputs": {key: value.model_dump() for key, value in outputs_to_model(root).items()},
        "diagnostics": [d.model_dump() for d in result.diagnostics],
    }


@app.get("/api/documents/{name}/issues")
async def get_issues(name: str) -> Any:
    result = get_store(snapshots_dir()).load(name, repair=False)
    if result.data is None:
        return _error_response(result)
    issues = validate_notebook(get_root(result.data))
    return {"issues": [issue.model_dump() for issue in issues]}


@app.post("/api/documents/{name}/reconcile")
async def reconcile_document(name: str, request: ReconcileRequest) -> Any:
    store = get_store(snapshots_dir())
    result = store.load(name, repair=False)
    if result.data is None:
        return _error_response(result)
    config = load_config()
    append = config.reconcile.append_orphans if request.append_orphans is None else request.append_orphans
    options = ReconcileOptions(append_orphans=append, sort_orphans_by_id=config.reconcile.sort_orphans_by_id)
    report = repair_notebook(get_root(result.data), options)
    if report.changed and not request.dry_run:
        store.save(name, result.data)
        logger.info("Reconciled and saved %s", name)
    return {"changed": report.changed, "saved": report.changed and not request.dry_run, "report": report.model_dump()}
