"""Typed snapshots of live sessions and processes."""

from .errors import CollaboratorUnavailableError, ProcessTableError, SessionListError
from .processes import (
    DEFAULT_MANAGED_FLAG,
    DESKTOP_HELPER_PATTERN,
    ProcessEntry,
    ProcessInventory,
    ProcessRecord,
    ProcessSnapshot,
    ProcessTable,
    PsutilProcessTable,
)
from .sessions import (
    SessionInventory,
    SessionManager,
    SessionRecord,
    SessionSnapshot,
    TmuxSessionManager,
)

__all__ = [
    "CollaboratorUnavailableError",
    "DEFAULT_MANAGED_FLAG",
    "DESKTOP_HELPER_PATTERN",
    "ProcessEntry",
    "ProcessInventory",
    "ProcessRecord",
    "ProcessSnapshot",
    "ProcessTable",
    "ProcessTableError",
    "PsutilProcessTable",
    "SessionInventory",
    "SessionListError",
    "SessionManager",
    "SessionRecord",
    "SessionSnapshot",
    "TmuxSessionManager",
]
