"""Live session inventory backed by the tmux session manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Protocol

from ..naming import DEFAULT_PREFIX, is_fleet_session
from ..tmux import TmuxRunner, TmuxRunnerError
from ..tmux.utils import parse_lines, parse_pid_lines
from .errors import SessionListError

logger = logging.getLogger(__name__)

# tmux exits non-zero with one of these when no server is running.
_NO_SERVER_MARKERS = ("no server running", "error connecting to", "no sessions")


class SessionManager(Protocol):
    """Minimal session manager API used by the health checks."""

    def list_sessions(self) -> list[str]:
        ...

    def list_pane_pids(self, session: str) -> list[int]:
        ...

    def kill_session(self, session: str) -> None:
        ...


class TmuxSessionManager:
    """Session manager implemented on top of the tmux CLI."""

    def __init__(self, runner: TmuxRunner) -> None:
        self._runner = runner

    def list_sessions(self) -> list[str]:
        try:
            result = self._runner.list_sessions()
        except TmuxRunnerError as exc:
            raise SessionListError(str(exc)) from exc
        if not result.ok:
            if _is_no_server(result.stderr):
                return []
            raise SessionListError(
                result.stderr.strip() or f"tmux list-sessions exited with {result.returncode}"
            )
        return parse_lines(result.stdout)

    def list_pane_pids(self, session: str) -> list[int]:
        try:
            result = self._runner.list_panes(session)
        except TmuxRunnerError as exc:
            raise SessionListError(str(exc)) from exc
        if not result.ok:
            raise SessionListError(
                result.stderr.strip() or f"tmux list-panes -t {session} exited with {result.returncode}"
            )
        return parse_pid_lines(result.stdout)

    def kill_session(self, session: str) -> None:
        result = self._runner.kill_session(session)
        if not result.ok:
            raise TmuxRunnerError(
                result.stderr.strip() or f"tmux kill-session -t {session} exited with {result.returncode}"
            )


def _is_no_server(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _NO_SERVER_MARKERS)


@dataclass(frozen=True, slots=True)
class SessionRecord:
    name: str


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Session names observed at one point in time."""

    sessions: tuple[SessionRecord, ...]
    taken_at: datetime
    pane_pids: dict[str, tuple[int, ...]] = field(default_factory=dict)
    pane_errors: dict[str, str] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        return [record.name for record in self.sessions]

    def fleet_sessions(self, prefix: str = DEFAULT_PREFIX) -> list[str]:
        return [name for name in self.names if is_fleet_session(name, prefix=prefix)]


class SessionInventory:
    """Builds typed session snapshots from a session manager."""

    def __init__(
        self,
        manager: SessionManager,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._manager = manager
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def manager(self) -> SessionManager:
        return self._manager

    def snapshot(self, *, include_panes: bool = False) -> SessionSnapshot:
        """List live sessions, optionally with the shell PID of every pane.

        A session-list failure raises ``SessionListError``. A pane lookup
        failure for one session is recorded in ``pane_errors`` and the
        remaining sessions are still queried.
        """

        names = [name for name in self._manager.list_sessions() if name]
        pane_pids: dict[str, tuple[int, ...]] = {}
        pane_errors: dict[str, str] = {}
        if include_panes:
            for name in names:
                try:
                    pane_pids[name] = tuple(self._manager.list_pane_pids(name))
                except SessionListError as exc:
                    pane_errors[name] = str(exc)
                    logger.debug("Could not list panes", extra={"session": name, "error": str(exc)})
        return SessionSnapshot(
            sessions=tuple(SessionRecord(name=name) for name in names),
            taken_at=self._clock(),
            pane_pids=pane_pids,
            pane_errors=pane_errors,
        )


__all__ = [
    "SessionInventory",
    "SessionManager",
    "SessionRecord",
    "SessionSnapshot",
    "TmuxSessionManager",
]
