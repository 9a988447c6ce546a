"""Idempotent initialization of a notebook document."""

from __future__ import annotations

import logging

from pycrdt import Array, Doc, Map, Text

from cellweave.schema.accessors import (
    get_cell_map,
    get_order,
    get_outputs_map,
    tombstone_meta_map,
    tombstones_map,
)
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
    NB_TAGS,
    NB_TITLE,
    ROOT_NOTEBOOK_KEY,
    SCHEMA_META_KEY,
    SCHEMA_VERSION,
    SCHEMA_VERSION_KEY,
)
from cellweave.schema.models import CellModel, NotebookInit, generate_notebook_id
from cellweave.schema.origins import MAINT_ORIGIN
from cellweave.schema.transaction import transact

logger = logging.getLogger("cellweave.schema")


def get_root(doc: Doc) -> Map:
    return doc.get(ROOT_NOTEBOOK_KEY, type=Map)


def ensure_notebook(doc: Doc, init: NotebookInit | None = None) -> Map:
    """Create whatever the notebook root is missing and return it.

    Safe to call on every load: existing values are kept, new tags are merged
    in and order seeds are only appended when absent.
    """
    init = init or NotebookInit()
    with transact(doc, MAINT_ORIGIN):
        meta = doc.get(SCHEMA_META_KEY, type=Map)
        if SCHEMA_VERSION_KEY not in meta:
            meta[SCHEMA_VERSION_KEY] = SCHEMA_VERSION

        root = get_root(doc)
        if not isinstance(root.get(NB_ID), str):
            if init.id is None:
                logger.warning("Notebook has no id; minting one locally")
            root[NB_ID] = init.id or generate_notebook_id()
        if not isinstance(root.get(NB_TITLE), str):
            root[NB_TITLE] = init.title or DEFAULT_TITLE
        if init.database_id is not None and root.get(NB_DATABASE_ID) is None:
            root[NB_DATABASE_ID] = init.database_id

        tags = root.get(NB_TAGS)
        if not isinstance(tags, Array):
            root[NB_TAGS] = Array()
            tags = root[NB_TAGS]
        existing = set(tags.to_py() or [])
        for tag in init.tags:
            if tag not in existing:
                tags.append(tag)
                existing.add(tag)

        metadata = root.get(NB_METADATA)
        if not isinstance(metadata, Map):
            root[NB_METADATA] = Map()
            metadata = root[NB_METADATA]
        for key, value in init.metadata.items():
            if key not in metadata:
                metadata[key] = value

        get_cell_map(root)
        order = get_order(root)
        get_outputs_map(root)
        tombstones_map(root)
        tombstone_meta_map(root)

        present = set(order.to_py() or [])
        for cell_id in init.order:
            if cell_id not in present:
                order.append(cell_id)
                present.add(cell_id)
    return root


def create_cell_map(cell: CellModel) -> Map:
    """Build the shared map for a cell, ready to be integrated."""
    meta: dict[str, object] = {}
    if cell.metadata.background_ddl:
        meta[META_BACKGROUND_DDL] = True
    fields: dict[str, object] = {
        CELL_ID: cell.id,
        CELL_KIND: cell.kind.value,
        CELL_SOURCE: Text(cell.source),
        CELL_META: Map(meta),
    }
    if cell.lang is not None:
        fields[CELL_LANG] = cell.lang
    if cell.fingerprint is not None:
        fields[CELL_FINGERPRINT] = cell.fingerprint
    if cell.executed_by is not None:
        fields[CELL_EXEC_BY] = cell.executed_by
    return Map(fields)
