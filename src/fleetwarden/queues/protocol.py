"""Claim and release protocol for queue-managed work items.

An item is created carrying the ``queue:<name>`` sentinel as its assignee.
Claiming swaps the sentinel for a worker identity in one compare-and-swap;
releasing swaps it back, and only the current holder may do so.
"""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

from ..patterns import is_eligible_worker
from .models import (
    QUEUE_SENTINEL_PREFIX,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    QueueDefinition,
    WorkItem,
    queue_sentinel,
)

logger = logging.getLogger(__name__)


class QueueError(RuntimeError):
    """Base class for queue protocol errors."""


class WorkItemNotFoundError(QueueError):
    """Raised when a work item id does not exist in the store."""


class UnknownQueueError(QueueError):
    """Raised when a queue has no definition."""


class NotEligibleError(QueueError):
    """Raised when a caller's identity matches none of a queue's worker patterns."""


class ClaimConflictError(QueueError):
    """Raised when an item stopped being unclaimed before the caller could take it."""


class ReleaseValidationError(QueueError):
    """Raised when a caller may not release an item."""


class NotAQueueMessageError(ReleaseValidationError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"item {item_id} is not a queue message (no queue label)")
        self.item_id = item_id


class NotClaimedError(ReleaseValidationError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"item {item_id} is not claimed (still in queue)")
        self.item_id = item_id


class ClaimedByOtherError(ReleaseValidationError):
    def __init__(self, item_id: str, holder: str, caller: str) -> None:
        super().__init__(f"item {item_id} was claimed by {holder}, not {caller}")
        self.item_id = item_id
        self.holder = holder
        self.caller = caller


class WorkItemStore(Protocol):
    """Persistence API the protocol relies on.

    ``compare_and_set_assignee`` must be atomic with respect to concurrent
    callers: it returns the updated item, or None when the current assignee
    is not ``expected``.
    """

    def get(self, item_id: str) -> WorkItem:
        ...

    def add(self, item: WorkItem) -> WorkItem:
        ...

    def list_queue(self, queue_name: str) -> list[WorkItem]:
        ...

    def compare_and_set_assignee(
        self, item_id: str, *, expected: str, new: str, status: str
    ) -> WorkItem | None:
        ...


def validate_release(item: WorkItem, caller: str) -> None:
    """Raise a ``ReleaseValidationError`` unless ``caller`` holds ``item``."""

    if not item.queue_name:
        raise NotAQueueMessageError(item.id)
    if item.assignee != caller:
        if item.assignee.startswith(QUEUE_SENTINEL_PREFIX):
            raise NotClaimedError(item.id)
        raise ClaimedByOtherError(item.id, item.assignee, caller)


class QueueCoordinator:
    """Applies the claim/release protocol against a work item store."""

    def __init__(self, store: WorkItemStore, queues: Mapping[str, QueueDefinition]) -> None:
        self._store = store
        self._queues = dict(queues)

    @property
    def queues(self) -> dict[str, QueueDefinition]:
        return dict(self._queues)

    def _require_eligible(self, queue_name: str, caller: str) -> None:
        definition = self._queues.get(queue_name)
        if definition is None:
            raise UnknownQueueError(f"queue {queue_name} is not defined")
        if not is_eligible_worker(caller, definition.workers):
            raise NotEligibleError(f"{caller or '<empty>'} is not eligible to claim from {queue_name}")

    def enqueue(self, item_id: str, title: str, queue_name: str) -> WorkItem:
        if queue_name not in self._queues:
            raise UnknownQueueError(f"queue {queue_name} is not defined")
        item = WorkItem(
            id=item_id,
            title=title,
            assignee=queue_sentinel(queue_name),
            queue_name=queue_name,
            status=STATUS_OPEN,
        )
        return self._store.add(item)

    def list_unclaimed(self, queue_name: str) -> list[WorkItem]:
        return [item for item in self._store.list_queue(queue_name) if item.is_unclaimed]

    def claim(self, item_id: str, caller: str, *, queue_name: str | None = None) -> WorkItem:
        """Claim one specific item; raises ``ClaimConflictError`` if it is taken."""

        item = self._store.get(item_id)
        if not item.queue_name:
            raise NotAQueueMessageError(item.id)
        if queue_name is not None and item.queue_name != queue_name:
            raise QueueError(f"item {item.id} belongs to queue {item.queue_name}, not {queue_name}")
        self._require_eligible(item.queue_name, caller)
        claimed = self._store.compare_and_set_assignee(
            item.id,
            expected=queue_sentinel(item.queue_name),
            new=caller,
            status=STATUS_IN_PROGRESS,
        )
        if claimed is None:
            raise ClaimConflictError(f"item {item.id} is no longer unclaimed")
        logger.info("Claimed work item", extra={"item_id": item.id, "queue": item.queue_name, "caller": caller})
        return claimed

    def claim_next(self, queue_name: str, caller: str) -> WorkItem | None:
        """Claim the first item still unclaimed in ``queue_name``.

        Losing a race for one item moves on to the next candidate rather than
        retrying it. Returns None when nothing is left to claim.
        """

        self._require_eligible(queue_name, caller)
        sentinel = queue_sentinel(queue_name)
        for candidate in self.list_unclaimed(queue_name):
            claimed = self._store.compare_and_set_assignee(
                candidate.id, expected=sentinel, new=caller, status=STATUS_IN_PROGRESS
            )
            if claimed is not None:
                logger.info(
                    "Claimed work item",
                    extra={"item_id": claimed.id, "queue": queue_name, "caller": caller},
                )
                return claimed
            logger.debug("Lost claim race", extra={"item_id": candidate.id, "caller": caller})
        return None

    def release(self, item_id: str, caller: str) -> WorkItem:
        """Return a claimed item to its queue; only the holder may do this."""

        item = self._store.get(item_id)
        validate_release(item, caller)
        released = self._store.compare_and_set_assignee(
            item.id,
            expected=caller,
            new=queue_sentinel(item.queue_name),
            status=STATUS_OPEN,
        )
        if released is None:
            validate_release(self._store.get(item_id), caller)
            raise ClaimConflictError(f"item {item.id} changed while being released")
        logger.info("Released work item", extra={"item_id": item.id, "queue": item.queue_name, "caller": caller})
        return released


__all__ = [
    "ClaimConflictError",
    "ClaimedByOtherError",
    "NotAQueueMessageError",
    "NotClaimedError",
    "NotEligibleError",
    "QueueCoordinator",
    "QueueError",
    "ReleaseValidationError",
    "UnknownQueueError",
    "WorkItemNotFoundError",
    "WorkItemStore",
    "validate_release",
]
