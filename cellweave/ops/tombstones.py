"""Tombstone timestamps and vacuuming of expired tombstones."""

from __future__ import annotations

import logging
import math
from typing import Any

from pycrdt import Array, Map

from cellweave.ops.clock import DEFAULT_FUTURE_SKEW_MS, WALL_CLOCK_EPOCH_FLOOR_MS, ClockSource
from cellweave.schema.accessors import tombstone_meta_map, tombstones_map
from cellweave.schema.decode import is_number
from cellweave.schema.keys import (
    NB_CELL_MAP,
    NB_CELL_ORDER,
    NB_OUTPUTS,
    NB_TOMBSTONE_META,
    NB_TOMBSTONES,
    TOMB_CLOCK,
    TOMB_DELETED_AT,
    TOMB_REASON,
)
from cellweave.schema.models import TombstoneClock, TombstoneMeta
from cellweave.schema.origins import MAINT_ORIGIN, VACUUM_ORIGIN
from cellweave.schema.transaction import document_of, transact

logger = logging.getLogger("cellweave.tombstones")

DEFAULT_TOMBSTONE_TTL_MS = 30 * 24 * 3600 * 1000


def read_tombstone_meta(root: Map, cell_id: str) -> TombstoneMeta:
    """Read a tombstone's metadata, ignoring fields of the wrong type."""
    container = root.get(NB_TOMBSTONE_META)
    entry = container.get(cell_id) if isinstance(container, Map) else None
    if not isinstance(entry, Map):
        return TombstoneMeta()
    deleted_at = entry.get(TOMB_DELETED_AT)
    reason = entry.get(TOMB_REASON)
    clock = entry.get(TOMB_CLOCK)
    return TombstoneMeta(
        deleted_at=int(deleted_at) if is_number(deleted_at) and not math.isnan(deleted_at) else None,
        reason=reason if isinstance(reason, str) else None,
        clock=clock if clock in (TombstoneClock.TRUSTED, TombstoneClock.LOCAL) else None,
    )


def set_tombstone_timestamp(
    root: Map | None,
    cell_id: str,
    timestamp: int,
    *,
    reason: str | None = None,
    trusted: bool = True,
    origin: Any = MAINT_ORIGIN,
) -> bool:
    """Stamp a tombstone with a wall-clock deletion time.

    Timestamps before the wall-clock floor are rejected. The tombstone flag
    is set when it is missing.
    """
    if root is None or document_of(root) is None:
        return False
    if not is_number(timestamp) or math.isnan(timestamp) or timestamp < WALL_CLOCK_EPOCH_FLOOR_MS:
        return False
    with transact(root, origin):
        tombstones = tombstones_map(root)
        if tombstones.get(cell_id) is not True:
            tombstones[cell_id] = True
        meta = tombstone_meta_map(root)
        entry = meta.get(cell_id)
        if not isinstance(entry, Map):
            meta[cell_id] = Map()
            entry = meta[cell_id]
        entry[TOMB_DELETED_AT] = timestamp
        entry[TOMB_CLOCK] = (TombstoneClock.TRUSTED if trusted else TombstoneClock.LOCAL).value
        if reason is not None:
            entry[TOMB_REASON] = reason
    return True


def vacuum_tombstones(
    root: Map | None,
    ttl_ms: int = DEFAULT_TOMBSTONE_TTL_MS,
    *,
    clock: ClockSource | None = None,
    now: int | None = None,
    now_trusted: bool | None = None,
    max_future_skew_ms: int = DEFAULT_FUTURE_SKEW_MS,
) -> list[str]:
    """Permanently drop tombstones older than `ttl_ms`.

    Only tombstones stamped by a trusted clock qualify, and only when the
    current time is itself trusted. Stamps further in the future than
    `max_future_skew_ms` are kept. Ids still present in the order are kept.
    Returns the vacuumed ids.
    """
    if root is None or document_of(root) is None:
        return []
    tombstones = root.get(NB_TOMBSTONES)
    if not isinstance(tombstones, Map):
        return []
    if now is not None:
        now_value = now
        trusted_now = True if now_trusted is None else now_trusted
    elif clock is not None:
        now_value = clock.now()
        trusted_now = clock.trusted if now_trusted is None else now_trusted
    else:
        return []
    if not trusted_now:
        return []

    order = root.get(NB_CELL_ORDER)
    in_order = set(order.to_py()) if isinstance(order, Array) else set()
    expired: list[str] = []
    for cell_id in sorted(tombstones.keys()):
        if tombstones.get(cell_id) is not True or cell_id in in_order:
            continue
        meta = read_tombstone_meta(root, cell_id)
        if meta.clock != TombstoneClock.TRUSTED or meta.deleted_at is None or meta.deleted_at <= 0:
            continue
        if meta.deleted_at - now_value > max_future_skew_ms:
            continue
        if now_value - meta.deleted_at < ttl_ms:
            continue
        expired.append(cell_id)
    if not expired:
        return []

    with transact(root, VACUUM_ORIGIN):
        for key in (NB_CELL_MAP, NB_TOMBSTONE_META, NB_TOMBSTONES, NB_OUTPUTS):
            container = root.get(key)
            if not isinstance(container, Map):
                continue
            for cell_id in expired:
                if cell_id in container:
                    del container[cell_id]
    logger.info("Vacuumed %d tombstones", len(expired))
    return expired
