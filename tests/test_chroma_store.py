from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from fleetwarden.doctor import EventFeedError
from fleetwarden.storage import ChromaAuditStore, ChromaEventFeed


@dataclass
class _Record:
    document: str
    metadata: dict[str, Any]
    id: str


def _matches(metadata: dict[str, Any], where: dict[str, Any]) -> bool:
    if "$and" in where:
        return all(_matches(metadata, clause) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


class StubCollection:
    def __init__(self) -> None:
        self.records: list[_Record] = []

    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        for document, metadata, record_id in zip(documents, metadatas, ids):
            self.records.append(_Record(document=document, metadata=dict(metadata), id=record_id))

    def get(self, *, ids=None, where=None, limit=None):  # type: ignore[override]
        filtered = self.records
        if where:
            filtered = [record for record in filtered if _matches(record.metadata, where)]
        if limit is not None:
            filtered = filtered[:limit]
        return {
            "ids": [record.id for record in filtered],
            "documents": [record.document for record in filtered],
            "metadatas": [record.metadata for record in filtered],
        }


class StubClient:
    def __init__(self) -> None:
        self.collections = defaultdict(StubCollection)

    def get_or_create_collection(self, name: str) -> StubCollection:
        return self.collections[name]


class TickingClock:
    def __init__(self) -> None:
        self.now = datetime.fromisoformat("2025-01-01T00:00:00+00:00")

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def make_store(tmp_path: Path, client: StubClient | None = None) -> ChromaAuditStore:
    client = client or StubClient()
    return ChromaAuditStore(tmp_path, client_factory=lambda: client, clock=TickingClock())


def test_append_and_list_subject_events(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    event = store.append(
        "session_death",
        "gt-old-witness",
        {"reason": "orphan cleanup", "caller": "fleet health pass"},
    )

    assert event.subject_id == "gt-old-witness"
    assert event.sequence == 1

    events = store.events(subject_id="gt-old-witness")
    assert len(events) == 1
    assert events[0].id == event.id
    assert events[0].caller == "fleet health pass"
    assert events[0].payload == {"reason": "orphan cleanup", "caller": "fleet health pass"}
    assert events[0].to_dict()["recorded_at"] == "2025-01-01T00:00:01+00:00"


def test_sequence_continues_across_store_instances(tmp_path: Path) -> None:
    client = StubClient()

    make_store(tmp_path, client).append("session_death", "pid-400", {"reason": "first"})
    make_store(tmp_path, client).append("session_death", "pid-400", {"reason": "second"})
    make_store(tmp_path, client).append("session_death", "pid-401", {"reason": "other"})

    events = make_store(tmp_path, client).events(subject_id="pid-400")
    assert [(event.sequence, event.reason) for event in events] == [(1, "first"), (2, "second")]
    assert make_store(tmp_path, client).events(subject_id="pid-401")[0].sequence == 1


def test_events_filter_by_type_and_subject(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    store.append("session_death", "gt-a-nux", {"reason": "orphan cleanup"})
    store.append("note", "gt-a-nux", {"reason": "manual kill"})
    store.append("session_death", "gt-b-nux", {"reason": "orphan cleanup"})

    deaths = store.events(event_type="session_death")
    assert [event.subject_id for event in deaths] == ["gt-a-nux", "gt-b-nux"]

    filtered = store.events(event_type="session_death", subject_id="gt-a-nux")
    assert [(event.event_type, event.subject_id) for event in filtered] == [("session_death", "gt-a-nux")]


def test_events_limit_keeps_latest(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    for name in ("gt-a-nux", "gt-b-nux", "gt-c-nux"):
        store.append("session_death", name, {"reason": "orphan cleanup"})

    latest = store.events(limit=2)
    assert [event.subject_id for event in latest] == ["gt-b-nux", "gt-c-nux"]
    assert len(store.events(limit=0)) == 3


def test_payload_cannot_override_reserved_metadata(tmp_path: Path) -> None:
    client = StubClient()
    store = make_store(tmp_path, client)

    store.append("session_death", "gt-a-nux", {"subject_id": "gt-other", "sequence": 99})

    record = client.collections["fleet_events"].records[0]
    assert record.metadata["subject_id"] == "gt-a-nux"
    assert record.metadata["sequence"] == 1
    assert store.events(subject_id="gt-a-nux")[0].payload["subject_id"] == "gt-other"


def test_event_feed_records_scalar_payload_as_metadata(tmp_path: Path) -> None:
    client = StubClient()
    store = make_store(tmp_path, client)
    feed = ChromaEventFeed(store)

    feed.log(
        "session_death",
        "gt-old-witness",
        {"session": "gt-old-witness", "agent": "unknown", "reason": "orphan cleanup", "tags": ["x"]},
    )

    record = client.collections["fleet_events"].records[0]
    assert record.metadata["event_type"] == "session_death"
    assert record.metadata["reason"] == "orphan cleanup"
    assert "tags" not in record.metadata
    assert json.loads(record.document)["tags"] == ["x"]
    assert store.events(subject_id="gt-old-witness")[0].payload["tags"] == ["x"]


def test_event_feed_wraps_storage_failures(tmp_path: Path) -> None:
    def broken_factory():
        raise RuntimeError("disk full")

    feed = ChromaEventFeed(ChromaAuditStore(tmp_path, client_factory=broken_factory))

    with pytest.raises(EventFeedError, match="disk full"):
        feed.log("session_death", "gt-old-witness", {"reason": "orphan cleanup"})
