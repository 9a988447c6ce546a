"""Transaction origins and the echo-suppression predicate."""

from __future__ import annotations

from typing import Any


class Origin:
    """A named sentinel tagging a transaction with its cause.

    Compared and hashed by identity, so two origins with the same
    description are still different origins.
    """

    __slots__ = ("description",)

    def __init__(self, description: str) -> None:
        self.description = description

    def __repr__(self) -> str:
        return f"Origin({self.description})"


USER_ACTION_ORIGIN = Origin("USER_ACTION")
MAINT_ORIGIN = Origin("MAINTENANCE")
VACUUM_ORIGIN = Origin("VACUUM")
EXECUTION_ORIGIN = Origin("EXECUTION")


def origin_of(txn: Any) -> Any:
    """Return the origin of a transaction, or None when it carries none.

    Transactions replayed by the undo manager are tagged with an origin that
    was never registered from Python; those read as None.
    """
    if txn is None:
        return None
    try:
        return txn.origin
    except KeyError:
        return None


def should_ignore_by_origin(txn: Any) -> bool:
    """True when a transaction was written by local user intent.

    The reactive binding layer uses this to skip re-applying its own writes.
    """
    return origin_of(txn) is USER_ACTION_ORIGIN
