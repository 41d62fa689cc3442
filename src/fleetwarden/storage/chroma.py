"""Session-death audit trail persisted in a ChromaDB collection.

Each event is one collection record: the JSON-encoded payload is the document
and the metadata carries the fields used for filtering (``event_type``,
``subject_id``, ``recorded_at``, ``sequence``) plus every scalar payload value.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from ..doctor.remediation import EventFeedError

DEFAULT_COLLECTION = "fleet_events"

_RESERVED_METADATA = ("event_type", "subject_id", "recorded_at", "sequence")


class ChromaUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class AuditEvent:
    """One recorded audit event."""

    id: str
    event_type: str
    subject_id: str
    sequence: int
    recorded_at: datetime
    payload: dict[str, Any]

    @property
    def reason(self) -> str | None:
        return self.payload.get("reason")

    @property
    def caller(self) -> str | None:
        return self.payload.get("caller")

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.id,
            "event_type": self.event_type,
            "subject": self.subject_id,
            "sequence": self.sequence,
            "recorded_at": self.recorded_at.isoformat(),
            "reason": self.reason,
            "caller": self.caller,
        }


def _where(**conditions: Any) -> dict[str, Any] | None:
    """Build a Chroma ``where`` clause; several conditions are joined with ``$and``."""

    clauses = [{key: value} for key, value in conditions.items() if value is not None]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaAuditStore:
    """Append-only audit events stored in a ChromaDB collection.

    ``sequence`` numbers events per subject. It is derived from the records
    already in the collection, so it keeps counting across processes; appends
    made during a health pass are serialized by the pass lock.
    """

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = DEFAULT_COLLECTION,
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._persistent_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._collection: CollectionProtocol | None = None

    @property
    def collection_name(self) -> str:
        return self._collection_name

    def _persistent_client(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install fleetwarden with its dependencies"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _records(self) -> CollectionProtocol:
        if self._collection is None:
            self._collection = self._client_factory().get_or_create_collection(self._collection_name)
        return self._collection

    def ping(self) -> bool:
        """Verify that the underlying collection can be opened."""

        self._records()
        return True

    def append(self, event_type: str, subject_id: str, payload: dict[str, Any]) -> AuditEvent:
        collection = self._records()
        existing = collection.get(where={"subject_id": subject_id})
        sequence = len(existing.get("ids") or []) + 1
        recorded_at = self._clock()

        metadata = {
            key: value
            for key, value in payload.items()
            if isinstance(value, (str, int, float, bool)) and key not in _RESERVED_METADATA
        }
        metadata.update(
            event_type=event_type,
            subject_id=subject_id,
            recorded_at=recorded_at.isoformat(),
            sequence=sequence,
        )
        event_id = f"{event_type}:{subject_id}:{uuid.uuid4().hex}"
        collection.add(
            documents=[json.dumps(payload, sort_keys=True)],
            metadatas=[metadata],
            ids=[event_id],
        )
        return AuditEvent(
            id=event_id,
            event_type=event_type,
            subject_id=subject_id,
            sequence=sequence,
            recorded_at=recorded_at,
            payload=dict(payload),
        )

    def events(
        self,
        *,
        subject_id: str | None = None,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEvent]:
        """Return matching events oldest first; ``limit`` keeps the most recent ones."""

        result = self._records().get(where=_where(event_type=event_type, subject_id=subject_id))
        events = [
            AuditEvent(
                id=event_id,
                event_type=str(metadata.get("event_type", "")),
                subject_id=str(metadata.get("subject_id", "")),
                sequence=int(metadata.get("sequence", 0)),
                recorded_at=datetime.fromisoformat(metadata["recorded_at"]),
                payload=json.loads(document) if document else {},
            )
            for event_id, document, metadata in zip(
                result.get("ids") or [], result.get("documents") or [], result.get("metadatas") or []
            )
        ]
        events.sort(key=lambda event: (event.recorded_at, event.sequence))
        if limit is not None and limit > 0:
            return events[-limit:]
        return events


class ChromaEventFeed:
    """Remediation audit feed backed by a ``ChromaAuditStore``."""

    def __init__(self, store: ChromaAuditStore) -> None:
        self._store = store

    @property
    def store(self) -> ChromaAuditStore:
        return self._store

    def log(self, event_type: str, subject_id: str, payload: dict[str, Any]) -> None:
        try:
            self._store.append(event_type, subject_id, payload)
        except Exception as exc:
            raise EventFeedError(f"Could not record {event_type} for {subject_id}: {exc}") from exc


__all__ = [
    "AuditEvent",
    "ChromaAuditStore",
    "ChromaEventFeed",
    "ChromaUnavailableError",
    "DEFAULT_COLLECTION",
]
