"""Queue-managed work items: models, definitions, stores and the claim protocol."""

from .loader import QueueLoadError, QueueLoader, load_queues
from .models import (
    QUEUE_SENTINEL_PREFIX,
    STATUS_CLOSED,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    QueueDefinition,
    WorkItem,
    queue_sentinel,
)
from .protocol import (
    ClaimConflictError,
    ClaimedByOtherError,
    NotAQueueMessageError,
    NotClaimedError,
    NotEligibleError,
    QueueCoordinator,
    QueueError,
    ReleaseValidationError,
    UnknownQueueError,
    WorkItemNotFoundError,
    WorkItemStore,
    validate_release,
)
from .store import InMemoryWorkItemStore, JsonFileWorkItemStore

__all__ = [
    "ClaimConflictError",
    "ClaimedByOtherError",
    "InMemoryWorkItemStore",
    "JsonFileWorkItemStore",
    "NotAQueueMessageError",
    "NotClaimedError",
    "NotEligibleError",
    "QUEUE_SENTINEL_PREFIX",
    "QueueCoordinator",
    "QueueDefinition",
    "QueueError",
    "QueueLoadError",
    "QueueLoader",
    "ReleaseValidationError",
    "STATUS_CLOSED",
    "STATUS_IN_PROGRESS",
    "STATUS_OPEN",
    "UnknownQueueError",
    "WorkItem",
    "WorkItemNotFoundError",
    "WorkItemStore",
    "load_queues",
    "queue_sentinel",
    "validate_release",
]
