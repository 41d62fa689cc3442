"""Fleet health checks: orphan classification and remediation."""

from .checks import CheckResult, CheckStatus, worst_status
from .health import (
    HealthCheckOptions,
    HealthPassResult,
    build_executor,
    build_reconciler,
    run_health_pass,
)
from .lock import HealthPassInProgressError, health_pass_lock
from .reconciler import (
    PROCESS_CHECK,
    SESSION_CHECK,
    ClassificationResult,
    FleetReconciler,
    HealthReport,
    classify_processes,
    classify_sessions,
    is_orphan_process,
)
from .remediation import (
    EventFeed,
    EventFeedError,
    RemediationError,
    RemediationExecutor,
    RemediationOutcome,
    StaleClassificationError,
    process_targets,
    session_targets,
)

__all__ = [
    "CheckResult",
    "CheckStatus",
    "ClassificationResult",
    "EventFeed",
    "EventFeedError",
    "FleetReconciler",
    "HealthCheckOptions",
    "HealthPassInProgressError",
    "HealthPassResult",
    "HealthReport",
    "PROCESS_CHECK",
    "RemediationError",
    "RemediationExecutor",
    "RemediationOutcome",
    "SESSION_CHECK",
    "StaleClassificationError",
    "build_executor",
    "build_reconciler",
    "classify_processes",
    "classify_sessions",
    "health_pass_lock",
    "is_orphan_process",
    "process_targets",
    "run_health_pass",
    "session_targets",
    "worst_status",
]
