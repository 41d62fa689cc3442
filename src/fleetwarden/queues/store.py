"""Work item stores with atomic compare-and-swap on the assignee."""

from __future__ import annotations

import fcntl
import json
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from .models import WorkItem
from .protocol import QueueError, WorkItemNotFoundError

T = TypeVar("T")


class InMemoryWorkItemStore:
    """Process-local store guarded by a lock."""

    def __init__(self, items: list[WorkItem] | None = None) -> None:
        self._items: dict[str, WorkItem] = {item.id: item for item in (items or [])}
        self._lock = threading.Lock()

    def get(self, item_id: str) -> WorkItem:
        with self._lock:
            try:
                return self._items[item_id]
            except KeyError as exc:
                raise WorkItemNotFoundError(f"item {item_id} not found") from exc

    def add(self, item: WorkItem) -> WorkItem:
        with self._lock:
            if item.id in self._items:
                raise QueueError(f"item {item.id} already exists")
            self._items[item.id] = item
            return item

    def list_queue(self, queue_name: str) -> list[WorkItem]:
        with self._lock:
            return [item for item in self._items.values() if item.queue_name == queue_name]

    def compare_and_set_assignee(
        self, item_id: str, *, expected: str, new: str, status: str
    ) -> WorkItem | None:
        with self._lock:
            current = self._items.get(item_id)
            if current is None:
                raise WorkItemNotFoundError(f"item {item_id} not found")
            if current.assignee != expected:
                return None
            updated = current.with_assignee(new, status)
            self._items[item_id] = updated
            return updated


class JsonFileWorkItemStore:
    """Store persisted as a JSON document, shared between processes via flock."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _locked(self, fn: Callable[[dict[str, dict[str, Any]]], T], *, write: bool) -> T:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # "a+" creates a missing file and never truncates before the lock is held.
        with self._path.open("a+", encoding="utf-8") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX if write else fcntl.LOCK_SH)
            try:
                handle.seek(0)
                raw = handle.read()
                try:
                    document = json.loads(raw) if raw.strip() else {}
                except json.JSONDecodeError as exc:
                    raise QueueError(f"Work item store {self._path} is corrupt: {exc}") from exc
                items: dict[str, dict[str, Any]] = document.get("items", {})
                result = fn(items)
                if write:
                    handle.seek(0)
                    handle.truncate()
                    handle.write(json.dumps({"items": items}, indent=2, sort_keys=True))
                    handle.flush()
                return result
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    def get(self, item_id: str) -> WorkItem:
        def read(items: dict[str, dict[str, Any]]) -> WorkItem:
            if item_id not in items:
                raise WorkItemNotFoundError(f"item {item_id} not found")
            return WorkItem.from_dict(items[item_id])

        return self._locked(read, write=False)

    def add(self, item: WorkItem) -> WorkItem:
        def insert(items: dict[str, dict[str, Any]]) -> WorkItem:
            if item.id in items:
                raise QueueError(f"item {item.id} already exists")
            items[item.id] = item.to_dict()
            return item

        return self._locked(insert, write=True)

    def list_queue(self, queue_name: str) -> list[WorkItem]:
        def read(items: dict[str, dict[str, Any]]) -> list[WorkItem]:
            return [
                WorkItem.from_dict(data)
                for _, data in sorted(items.items())
                if data.get("queue_name") == queue_name
            ]

        return self._locked(read, write=False)

    def compare_and_set_assignee(
        self, item_id: str, *, expected: str, new: str, status: str
    ) -> WorkItem | None:
        def swap(items: dict[str, dict[str, Any]]) -> WorkItem | None:
            if item_id not in items:
                raise WorkItemNotFoundError(f"item {item_id} not found")
            current = WorkItem.from_dict(items[item_id])
            if current.assignee != expected:
                return None
            updated = current.with_assignee(new, status)
            items[item_id] = updated.to_dict()
            return updated

        return self._locked(swap, write=True)


__all__ = ["InMemoryWorkItemStore", "JsonFileWorkItemStore"]
