"""Audit event storage for fleetwarden."""

from .chroma import (
    DEFAULT_COLLECTION,
    AuditEvent,
    ChromaAuditStore,
    ChromaEventFeed,
    ChromaUnavailableError,
)

__all__ = [
    "AuditEvent",
    "ChromaAuditStore",
    "ChromaEventFeed",
    "ChromaUnavailableError",
    "DEFAULT_COLLECTION",
]
