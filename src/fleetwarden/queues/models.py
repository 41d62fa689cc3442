"""Work item and queue definition models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from pydantic import BaseModel, Field, field_validator

QUEUE_SENTINEL_PREFIX = "queue:"

STATUS_OPEN = "open"
STATUS_IN_PROGRESS = "in_progress"
STATUS_CLOSED = "closed"


def queue_sentinel(queue_name: str) -> str:
    """Assignee value for an item sitting unclaimed in ``queue_name``."""

    return f"{QUEUE_SENTINEL_PREFIX}{queue_name}"


@dataclass(frozen=True, slots=True)
class WorkItem:
    id: str
    title: str
    assignee: str
    queue_name: str
    status: str = STATUS_OPEN

    @property
    def is_queue_item(self) -> bool:
        return bool(self.queue_name)

    @property
    def is_unclaimed(self) -> bool:
        return self.is_queue_item and self.assignee == queue_sentinel(self.queue_name)

    def with_assignee(self, assignee: str, status: str) -> "WorkItem":
        return replace(self, assignee=assignee, status=status)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkItem":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            assignee=str(data.get("assignee", "")),
            queue_name=str(data.get("queue_name", "")),
            status=str(data.get("status", STATUS_OPEN)),
        )


class QueueDefinition(BaseModel):
    """A named queue and the worker patterns allowed to claim from it."""

    name: str = Field(..., description="Queue name, e.g. 'work/gastown'.")
    description: str = Field(default="", description="Human-friendly purpose of the queue.")
    workers: list[str] = Field(
        default_factory=list,
        description="Worker patterns allowed to claim; an empty list allows nobody.",
    )

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Queue name must not be empty")
        return normalized

    @field_validator("workers", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value]
        raise TypeError("workers must be a pattern or a list of patterns")


__all__ = [
    "QUEUE_SENTINEL_PREFIX",
    "QueueDefinition",
    "STATUS_CLOSED",
    "STATUS_IN_PROGRESS",
    "STATUS_OPEN",
    "WorkItem",
    "queue_sentinel",
]
