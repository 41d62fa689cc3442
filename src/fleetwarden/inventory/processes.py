"""Process table inventory and ancestry walking."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Callable, Iterable, Protocol

import psutil

from ..config import DEFAULT_WORKER_EXECUTABLES
from .errors import ProcessTableError
from .sessions import SessionSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MANAGED_FLAG = "--dangerously-skip-permissions"

# Desktop application helpers share an executable name with the CLI workers.
DESKTOP_HELPER_PATTERN = re.compile(r"(?i)(Claude\.app|claude-native|chrome-native)")

SUPERVISOR_EXECUTABLE = "tmux"


@dataclass(frozen=True, slots=True)
class ProcessEntry:
    """Raw process table row."""

    pid: int
    ppid: int
    command: str
    args: str


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """Candidate worker process."""

    pid: int
    ppid: int
    command: str
    full_args: str
    is_managed: bool

    @property
    def subject_id(self) -> str:
        return f"pid-{self.pid}"


class ProcessTable(Protocol):
    """Minimal process table API used by the health checks."""

    def snapshot(self) -> list[ProcessEntry]:
        ...

    def parent_of(self, pid: int) -> int:
        ...

    def kill(self, pid: int) -> None:
        ...


class PsutilProcessTable:
    """Process table backed by psutil."""

    def snapshot(self) -> list[ProcessEntry]:
        entries: list[ProcessEntry] = []
        try:
            for proc in psutil.process_iter(["pid", "ppid", "name", "cmdline"]):
                info = proc.info
                name = info.get("name") or ""
                cmdline = info.get("cmdline") or []
                entries.append(
                    ProcessEntry(
                        pid=int(info["pid"]),
                        ppid=int(info.get("ppid") or 0),
                        command=name,
                        args=" ".join(cmdline) if cmdline else name,
                    )
                )
        except psutil.Error as exc:
            raise ProcessTableError(f"Could not read process table: {exc}") from exc
        return entries

    def parent_of(self, pid: int) -> int:
        try:
            return psutil.Process(pid).ppid()
        except psutil.Error as exc:
            raise ProcessTableError(f"Could not read parent of pid {pid}: {exc}") from exc

    def kill(self, pid: int) -> None:
        try:
            psutil.Process(pid).terminate()
        except psutil.Error as exc:
            raise ProcessTableError(f"Could not terminate pid {pid}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class ProcessSnapshot:
    entries: tuple[ProcessEntry, ...]
    taken_at: datetime


def _is_supervisor_command(command: str) -> bool:
    return command == SUPERVISOR_EXECUTABLE or PurePath(command).name == SUPERVISOR_EXECUTABLE


class ProcessInventory:
    """Turns process table rows into worker candidates and supervisor PIDs."""

    def __init__(
        self,
        table: ProcessTable,
        *,
        worker_executables: Iterable[str] = DEFAULT_WORKER_EXECUTABLES,
        managed_flag: str = DEFAULT_MANAGED_FLAG,
        exclude_pattern: re.Pattern[str] = DESKTOP_HELPER_PATTERN,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._table = table
        self._worker_executables = frozenset(worker_executables)
        self._managed_flag = managed_flag
        self._exclude_pattern = exclude_pattern
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def table(self) -> ProcessTable:
        return self._table

    def snapshot(self) -> ProcessSnapshot:
        return ProcessSnapshot(entries=tuple(self._table.snapshot()), taken_at=self._clock())

    def is_managed(self, args: str) -> bool:
        return self._managed_flag in args

    def candidates(self, snapshot: ProcessSnapshot) -> list[ProcessRecord]:
        """Return worker CLI processes, excluding desktop helpers.

        Only the executable name is matched, so launcher shells whose
        arguments merely mention a worker CLI are not picked up.
        """

        records: list[ProcessRecord] = []
        for entry in snapshot.entries:
            if entry.command not in self._worker_executables:
                continue
            if self._exclude_pattern.search(entry.args):
                continue
            records.append(
                ProcessRecord(
                    pid=entry.pid,
                    ppid=entry.ppid,
                    command=entry.command,
                    full_args=entry.args,
                    is_managed=self.is_managed(entry.args),
                )
            )
        return records

    def supervisor_pids(self, snapshot: ProcessSnapshot, sessions: SessionSnapshot) -> set[int]:
        """PIDs of every tmux server process plus the shell PID of every pane."""

        pids = {entry.pid for entry in snapshot.entries if _is_supervisor_command(entry.command)}
        for pane_pids in sessions.pane_pids.values():
            pids.update(pane_pids)
        return pids

    def find_supervisor_ancestor(self, start_pid: int, supervisor_pids: set[int]) -> int | None:
        """Walk parent links from ``start_pid`` until a supervisor PID is found.

        Returns the supervisor PID, or None when the walk reaches PID 1, a
        parent lookup fails, or the chain revisits a PID.
        """

        current = start_pid
        visited: set[int] = set()
        while current > 1 and current not in visited:
            visited.add(current)
            if current in supervisor_pids:
                return current
            try:
                current = self._table.parent_of(current)
            except ProcessTableError as exc:
                logger.debug("Ancestry lookup failed", extra={"pid": current, "error": str(exc)})
                return None
        return None


__all__ = [
    "DEFAULT_MANAGED_FLAG",
    "DESKTOP_HELPER_PATTERN",
    "ProcessEntry",
    "ProcessInventory",
    "ProcessRecord",
    "ProcessSnapshot",
    "ProcessTable",
    "PsutilProcessTable",
]
