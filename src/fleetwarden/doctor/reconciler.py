"""Classification of live sessions and worker processes against the fleet layout."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from ..inventory import (
    CollaboratorUnavailableError,
    ProcessInventory,
    ProcessRecord,
    SessionInventory,
    SessionListError,
    SessionSnapshot,
)
from ..naming import DEFAULT_PREFIX, is_fleet_session, parse_session_name
from ..rigs import Rig, discover_rigs
from .checks import CheckResult, CheckStatus

logger = logging.getLogger(__name__)

SESSION_CHECK = "orphan-sessions"
PROCESS_CHECK = "orphan-processes"
FIX_COMMAND = "fleet_doctor.py health --fix"


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Orphans found by one reconciliation pass.

    Handed to the remediation step as-is; it is never recomputed between the
    decision and the kill.
    """

    orphan_sessions: tuple[str, ...] = ()
    orphaned_managed_processes: tuple[ProcessRecord, ...] = ()
    orphaned_personal_processes: tuple[ProcessRecord, ...] = ()
    valid_count: int = 0
    inside_supervision_count: int = 0
    pass_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_orphans(self) -> bool:
        return bool(
            self.orphan_sessions or self.orphaned_managed_processes or self.orphaned_personal_processes
        )


@dataclass(slots=True)
class HealthReport:
    results: list[CheckResult]
    classification: ClassificationResult

    def result(self, name: str) -> CheckResult | None:
        return next((result for result in self.results if result.name == name), None)


def classify_sessions(
    sessions: Iterable[str],
    known_rigs: Iterable[str],
    *,
    mayor_session: str = "",
    deacon_session: str = "",
    prefix: str = DEFAULT_PREFIX,
) -> tuple[list[str], int]:
    """Return ``(orphans, valid_count)`` for the fleet sessions in ``sessions``."""

    rigs = set(known_rigs)
    orphans: list[str] = []
    valid = 0
    for session in sessions:
        if not session or not is_fleet_session(session, prefix=prefix):
            continue
        identity = parse_session_name(
            session,
            rigs,
            mayor_session=mayor_session,
            deacon_session=deacon_session,
            prefix=prefix,
        )
        if identity is None:
            orphans.append(session)
        else:
            valid += 1
    return orphans, valid


def session_check_result(orphans: list[str], valid_count: int) -> CheckResult:
    if not orphans:
        return CheckResult(
            name=SESSION_CHECK,
            status=CheckStatus.OK,
            message=f"All {valid_count} fleet sessions are valid",
        )
    return CheckResult(
        name=SESSION_CHECK,
        status=CheckStatus.WARNING,
        message=f"Found {len(orphans)} orphaned session(s)",
        details=[f"Orphan: {session}" for session in orphans],
        fix_hint=f"Run '{FIX_COMMAND}' to kill orphaned sessions",
    )


def is_orphan_process(
    proc: ProcessRecord, supervisor_pids: set[int], inventory: ProcessInventory
) -> bool:
    """A process is orphaned unless a supervisor PID appears among its ancestors.

    Whether the process is managed plays no part in this decision.
    """

    return inventory.find_supervisor_ancestor(proc.ppid, supervisor_pids) is None


def classify_processes(
    candidates: Iterable[ProcessRecord],
    supervisor_pids: set[int],
    inventory: ProcessInventory,
) -> tuple[int, list[ProcessRecord], list[ProcessRecord]]:
    """Return ``(inside_count, orphaned_managed, orphaned_personal)``."""

    inside = 0
    managed: list[ProcessRecord] = []
    personal: list[ProcessRecord] = []
    for proc in candidates:
        if not is_orphan_process(proc, supervisor_pids, inventory):
            inside += 1
        elif proc.is_managed:
            managed.append(proc)
        else:
            personal.append(proc)
    return inside, managed, personal


def process_check_result(
    inside: int,
    managed: list[ProcessRecord],
    personal: list[ProcessRecord],
    *,
    notes: Iterable[str] = (),
) -> CheckResult:
    if not managed and not personal:
        return CheckResult(
            name=PROCESS_CHECK,
            status=CheckStatus.OK,
            message=f"All {inside} worker processes are inside tmux",
            details=list(notes),
        )

    details: list[str] = []
    if managed:
        details.append(f"Orphaned managed processes ({len(managed)}):")
        details.extend(
            f"  PID {proc.pid}: {proc.command} (will be killed with --fix)" for proc in managed
        )
    if personal:
        if managed:
            details.append("")
        details.append(f"Personal sessions ({len(personal)}) - PROTECTED:")
        details.extend(
            f"  PID {proc.pid}: {proc.command} (personal session, not auto-fixed)" for proc in personal
        )
    details.extend(notes)

    message = f"Found {len(managed)} orphaned managed process(es) to fix"
    if personal:
        message += f", {len(personal)} personal session(s) reported but protected"

    return CheckResult(
        name=PROCESS_CHECK,
        status=CheckStatus.WARNING,
        message=message,
        details=details,
        fix_hint=f"Run '{FIX_COMMAND}' to kill orphaned managed processes" if managed else None,
    )


class FleetReconciler:
    """Builds inventories and classifies every fleet session and worker process."""

    def __init__(
        self,
        *,
        town_root: Path,
        mayor_session: str,
        deacon_session: str,
        sessions: SessionInventory,
        processes: ProcessInventory,
        prefix: str = DEFAULT_PREFIX,
        rig_finder: Callable[[Path], list[Rig]] = discover_rigs,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._town_root = Path(town_root)
        self._mayor_session = mayor_session
        self._deacon_session = deacon_session
        self._sessions = sessions
        self._processes = processes
        self._prefix = prefix
        self._rig_finder = rig_finder
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def town_root(self) -> Path:
        return self._town_root

    @property
    def sessions(self) -> SessionInventory:
        return self._sessions

    @property
    def processes(self) -> ProcessInventory:
        return self._processes

    def known_rigs(self) -> list[str]:
        return [rig.name for rig in self._rig_finder(self._town_root)]

    def reconcile(self) -> HealthReport:
        """Run one classification pass over sessions and processes."""

        taken_at = self._clock()
        try:
            snapshot = self._sessions.snapshot(include_panes=True)
        except SessionListError as exc:
            logger.warning("Could not list sessions", extra={"error": str(exc)})
            results = [
                CheckResult(
                    name=SESSION_CHECK,
                    status=CheckStatus.WARNING,
                    message="Could not list tmux sessions",
                    details=[str(exc)],
                ),
                CheckResult(
                    name=PROCESS_CHECK,
                    status=CheckStatus.WARNING,
                    message="Could not get tmux session info",
                    details=[str(exc)],
                ),
            ]
            return HealthReport(results=results, classification=ClassificationResult(taken_at=taken_at))

        session_result, orphans, valid = self._check_sessions(snapshot)
        process_result, inside, managed, personal = self._check_processes(snapshot)

        classification = ClassificationResult(
            orphan_sessions=tuple(orphans),
            orphaned_managed_processes=tuple(managed),
            orphaned_personal_processes=tuple(personal),
            valid_count=valid,
            inside_supervision_count=inside,
            taken_at=taken_at,
        )
        logger.info(
            "Reconciliation pass complete",
            extra={
                "pass_id": classification.pass_id,
                "orphan_sessions": len(orphans),
                "orphaned_managed": len(managed),
                "orphaned_personal": len(personal),
                "valid_sessions": valid,
            },
        )
        return HealthReport(results=[session_result, process_result], classification=classification)

    def _check_sessions(self, snapshot: SessionSnapshot) -> tuple[CheckResult, list[str], int]:
        fleet = snapshot.fleet_sessions(self._prefix)
        if not fleet:
            result = CheckResult(name=SESSION_CHECK, status=CheckStatus.OK, message="No tmux sessions found")
            return result, [], 0
        orphans, valid = classify_sessions(
            fleet,
            self.known_rigs(),
            mayor_session=self._mayor_session,
            deacon_session=self._deacon_session,
            prefix=self._prefix,
        )
        return session_check_result(orphans, valid), orphans, valid

    def _check_processes(
        self, sessions: SessionSnapshot
    ) -> tuple[CheckResult, int, list[ProcessRecord], list[ProcessRecord]]:
        try:
            snapshot = self._processes.snapshot()
        except CollaboratorUnavailableError as exc:
            logger.warning("Could not list worker processes", extra={"error": str(exc)})
            result = CheckResult(
                name=PROCESS_CHECK,
                status=CheckStatus.WARNING,
                message="Could not list worker processes",
                details=[str(exc)],
            )
            return result, 0, [], []

        notes = [
            f"Could not list panes for {session}: {error}"
            for session, error in sorted(sessions.pane_errors.items())
        ]
        candidates = self._processes.candidates(snapshot)
        if not candidates:
            result = CheckResult(
                name=PROCESS_CHECK, status=CheckStatus.OK, message="No worker processes found", details=notes
            )
            return _degrade_on_pane_errors(result, sessions), 0, [], []

        supervisors = self._processes.supervisor_pids(snapshot, sessions)
        inside, managed, personal = classify_processes(candidates, supervisors, self._processes)
        result = process_check_result(inside, managed, personal, notes=notes)
        return _degrade_on_pane_errors(result, sessions), inside, managed, personal


def _degrade_on_pane_errors(result: CheckResult, sessions: SessionSnapshot) -> CheckResult:
    """Downgrade an OK result when panes could not be listed for some sessions."""

    if result.status is CheckStatus.OK and sessions.pane_errors:
        result.status = CheckStatus.WARNING
        result.message = (
            f"{result.message}, but panes could not be listed for "
            f"{len(sessions.pane_errors)} session(s)"
        )
    return result


__all__ = [
    "ClassificationResult",
    "FleetReconciler",
    "HealthReport",
    "PROCESS_CHECK",
    "SESSION_CHECK",
    "classify_processes",
    "classify_sessions",
    "is_orphan_process",
    "process_check_result",
    "session_check_result",
]
