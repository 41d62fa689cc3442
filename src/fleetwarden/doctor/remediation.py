"""Best-effort cleanup of orphaned sessions and managed processes.

Every kill is preceded by a ``session_death`` audit event so that a later
investigation can see the termination was about to happen even if the kill
itself takes the pass down.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from ..inventory import CollaboratorUnavailableError, ProcessRecord, ProcessTable, SessionManager
from ..naming import DEFAULT_PREFIX, is_crew_session
from ..tmux import TmuxRunnerError
from .reconciler import ClassificationResult

logger = logging.getLogger(__name__)

SESSION_DEATH_EVENT = "session_death"
REMEDIATION_ACTOR = "fleet health pass"


class RemediationError(RuntimeError):
    """Base class for remediation errors."""


class StaleClassificationError(RemediationError):
    """Raised when a classification was already used or is too old to act on."""


class EventFeedError(RuntimeError):
    """Raised when an audit event cannot be appended."""


class EventFeed(Protocol):
    """Append-only audit feed."""

    def log(self, event_type: str, subject_id: str, payload: dict[str, Any]) -> None:
        ...


def session_death_payload(session: str, agent: str, reason: str, caller: str) -> dict[str, Any]:
    return {"session": session, "agent": agent, "reason": reason, "caller": caller}


@dataclass(slots=True)
class RemediationOutcome:
    """What one remediation call did."""

    killed_sessions: list[str] = field(default_factory=list)
    killed_pids: list[int] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)
    last_error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.last_error is None

    def merge(self, other: "RemediationOutcome") -> "RemediationOutcome":
        self.killed_sessions.extend(other.killed_sessions)
        self.killed_pids.extend(other.killed_pids)
        self.failures.extend(other.failures)
        if other.last_error is not None:
            self.last_error = other.last_error
        return self


def session_targets(classification: ClassificationResult, *, prefix: str = DEFAULT_PREFIX) -> list[str]:
    """Orphan sessions eligible for killing; crew sessions are never included."""

    return [
        session for session in classification.orphan_sessions if not is_crew_session(session, prefix=prefix)
    ]


def process_targets(classification: ClassificationResult) -> list[ProcessRecord]:
    """Orphaned processes eligible for killing; only managed processes qualify."""

    return [proc for proc in classification.orphaned_managed_processes if proc.is_managed]


class RemediationExecutor:
    """Consumes a classification and terminates the orphans it names."""

    def __init__(
        self,
        *,
        sessions: SessionManager,
        processes: ProcessTable,
        feed: EventFeed,
        prefix: str = DEFAULT_PREFIX,
        max_age_seconds: float = 60.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sessions = sessions
        self._processes = processes
        self._feed = feed
        self._prefix = prefix
        self._max_age_seconds = max_age_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._consumed: set[tuple[str, str]] = set()

    def remediate(self, classification: ClassificationResult) -> RemediationOutcome:
        outcome = self.fix_sessions(classification)
        return outcome.merge(self.fix_processes(classification))

    def fix_sessions(self, classification: ClassificationResult) -> RemediationOutcome:
        self._consume(classification, "sessions")
        outcome = RemediationOutcome()
        for session in session_targets(classification, prefix=self._prefix):
            self._audit(session, session_death_payload(session, "unknown", "orphan cleanup", REMEDIATION_ACTOR))
            try:
                self._sessions.kill_session(session)
            except (TmuxRunnerError, CollaboratorUnavailableError) as exc:
                logger.warning("Failed to kill orphan session", extra={"session": session, "error": str(exc)})
                outcome.failures.append((session, str(exc)))
                outcome.last_error = exc
                continue
            outcome.killed_sessions.append(session)
            logger.info("Killed orphan session", extra={"session": session})
        return outcome

    def fix_processes(self, classification: ClassificationResult) -> RemediationOutcome:
        self._consume(classification, "processes")
        outcome = RemediationOutcome()
        for proc in process_targets(classification):
            subject = proc.subject_id
            self._audit(
                subject, session_death_payload(subject, "unknown", "orphan process cleanup", REMEDIATION_ACTOR)
            )
            try:
                self._processes.kill(proc.pid)
            except CollaboratorUnavailableError as exc:
                logger.warning("Failed to kill orphan process", extra={"pid": proc.pid, "error": str(exc)})
                outcome.failures.append((subject, str(exc)))
                outcome.last_error = exc
                continue
            outcome.killed_pids.append(proc.pid)
            logger.info("Killed orphan process", extra={"pid": proc.pid, "command": proc.command})
        return outcome

    def _consume(self, classification: ClassificationResult, kind: str) -> None:
        key = (classification.pass_id, kind)
        if key in self._consumed:
            raise StaleClassificationError(
                f"Classification {classification.pass_id} was already used to fix {kind}"
            )
        age = (self._clock() - classification.taken_at).total_seconds()
        if age > self._max_age_seconds:
            raise StaleClassificationError(
                f"Classification {classification.pass_id} is {age:.0f}s old; re-run the health check"
            )
        self._consumed.add(key)

    def _audit(self, subject_id: str, payload: dict[str, Any]) -> None:
        try:
            self._feed.log(SESSION_DEATH_EVENT, subject_id, payload)
        except EventFeedError as exc:
            logger.warning("Could not record audit event", extra={"subject": subject_id, "error": str(exc)})


__all__ = [
    "EventFeed",
    "EventFeedError",
    "REMEDIATION_ACTOR",
    "RemediationError",
    "RemediationExecutor",
    "RemediationOutcome",
    "SESSION_DEATH_EVENT",
    "StaleClassificationError",
    "process_targets",
    "session_death_payload",
    "session_targets",
]
