"""Health pass orchestration: inventory, classify, then optionally remediate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..config import FleetSettings
from ..inventory import ProcessInventory, PsutilProcessTable, SessionInventory, TmuxSessionManager
from ..naming import deacon_session_name, mayor_session_name
from ..tmux import TmuxRunner
from .checks import CheckStatus, worst_status
from .lock import health_pass_lock
from .reconciler import FleetReconciler, HealthReport
from .remediation import EventFeed, RemediationExecutor, RemediationOutcome

logger = logging.getLogger(__name__)


class HealthCheckOptions(BaseModel):
    """Validated switches for one health command invocation."""

    fix: bool = False
    json_output: bool = False
    watch: bool = False
    interval: float = Field(default=2.0, description="Seconds between refreshes in watch mode.")

    @model_validator(mode="after")
    def _validate_combination(self) -> "HealthCheckOptions":
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval:g}")
        if self.watch and self.json_output:
            raise ValueError("--json and --watch cannot be used together")
        if self.watch and self.fix:
            raise ValueError("--fix and --watch cannot be used together")
        return self


@dataclass(slots=True)
class HealthPassResult:
    report: HealthReport
    outcome: RemediationOutcome | None = None

    @property
    def status(self) -> CheckStatus:
        return worst_status(self.report.results)

    def to_dict(self) -> dict[str, Any]:
        classification = self.report.classification
        payload: dict[str, Any] = {
            "status": self.status.value,
            "pass_id": classification.pass_id,
            "checks": [result.to_dict() for result in self.report.results],
            "valid_sessions": classification.valid_count,
            "orphan_sessions": list(classification.orphan_sessions),
            "orphaned_managed_pids": [proc.pid for proc in classification.orphaned_managed_processes],
            "orphaned_personal_pids": [proc.pid for proc in classification.orphaned_personal_processes],
        }
        if self.outcome is not None:
            payload["remediation"] = {
                "killed_sessions": list(self.outcome.killed_sessions),
                "killed_pids": list(self.outcome.killed_pids),
                "failures": [{"target": target, "error": error} for target, error in self.outcome.failures],
                "error": str(self.outcome.last_error) if self.outcome.last_error else None,
            }
        return payload


def run_health_pass(
    reconciler: FleetReconciler,
    options: HealthCheckOptions,
    executor: RemediationExecutor | None = None,
) -> HealthPassResult:
    """Run one serialized pass; remediate only when ``options.fix`` is set."""

    if options.fix and executor is None:
        raise ValueError("A remediation executor is required when fix is enabled")

    with health_pass_lock(reconciler.town_root):
        report = reconciler.reconcile()
        if not options.fix:
            return HealthPassResult(report=report)
        outcome = executor.remediate(report.classification)
        logger.info(
            "Remediation finished",
            extra={
                "pass_id": report.classification.pass_id,
                "killed_sessions": len(outcome.killed_sessions),
                "killed_pids": len(outcome.killed_pids),
                "failures": len(outcome.failures),
            },
        )
        return HealthPassResult(report=report, outcome=outcome)


def build_reconciler(settings: FleetSettings, runner: TmuxRunner | None = None) -> FleetReconciler:
    """Wire a reconciler to the real tmux and process table collaborators."""

    runner = runner or TmuxRunner(
        Path(settings.tmux_path) if settings.tmux_path else None,
        timeout=settings.tmux_timeout_seconds,
    )
    town = settings.resolved_town_name
    return FleetReconciler(
        town_root=settings.town_root,
        mayor_session=mayor_session_name(town, prefix=settings.session_prefix),
        deacon_session=deacon_session_name(town, prefix=settings.session_prefix),
        sessions=SessionInventory(TmuxSessionManager(runner)),
        processes=ProcessInventory(
            PsutilProcessTable(),
            worker_executables=settings.worker_executables,
            managed_flag=settings.managed_flag,
        ),
        prefix=settings.session_prefix,
    )


def build_executor(
    settings: FleetSettings,
    reconciler: FleetReconciler,
    feed: EventFeed,
) -> RemediationExecutor:
    """Wire an executor that kills through the reconciler's own collaborators."""

    return RemediationExecutor(
        sessions=reconciler.sessions.manager,
        processes=reconciler.processes.table,
        feed=feed,
        prefix=settings.session_prefix,
        max_age_seconds=settings.classification_max_age_seconds,
    )


__all__ = [
    "HealthCheckOptions",
    "HealthPassResult",
    "build_executor",
    "build_reconciler",
    "run_health_pass",
]
