"""Key names stored on the document.

These strings are the on-document contract shared with every peer that has
ever written a notebook; renaming any of them orphans existing data.
"""

ROOT_NOTEBOOK_KEY = "rw-notebook-root"
SCHEMA_META_KEY = "schema-meta"
SCHEMA_VERSION_KEY = "version"
SCHEMA_VERSION = 1

NB_ID = "id"
NB_TITLE = "title"
NB_DATABASE_ID = "databaseId"
NB_TAGS = "tags"
NB_METADATA = "metadata"
NB_CELL_ORDER = "order"
NB_CELL_MAP = "cellMap"
NB_OUTPUTS = "outputs"
NB_TOMBSTONES = "tombstones"
NB_TOMBSTONE_META = "tombstoneMeta"

CELL_ID = "id"
CELL_KIND = "kind"
CELL_LANG = "language"
CELL_SOURCE = "source"
CELL_META = "metadata"
CELL_FINGERPRINT = "fingerprint"
CELL_EXEC_BY = "executedBy"

META_BACKGROUND_DDL = "backgroundDDL"

OUT_RUNNING = "running"
OUT_STALE = "stale"
OUT_STARTED_AT = "startedAt"
OUT_COMPLETED_AT = "completedAt"
OUT_RUN_ID = "runId"
OUT_RESULT = "result"

TOMB_DELETED_AT = "deletedAt"
TOMB_REASON = "reason"
TOMB_CLOCK = "clock"

DEFAULT_TITLE = "Untitled Notebook"

# Expected shape of each root-level container; validated, never assumed.
CONTAINER_KINDS = {
    NB_TAGS: "Array",
    NB_METADATA: "Map",
    NB_CELL_ORDER: "Array",
    NB_CELL_MAP: "Map",
    NB_OUTPUTS: "Map",
    NB_TOMBSTONES: "Map",
    NB_TOMBSTONE_META: "Map",
}
