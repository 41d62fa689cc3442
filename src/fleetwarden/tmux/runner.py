"""Runner for the tmux CLI."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


class TmuxRunnerError(RuntimeError):
    """Base class for tmux runner errors."""


class TmuxNotFoundError(TmuxRunnerError):
    """Raised when the tmux executable cannot be located."""


class TmuxTimeoutError(TmuxRunnerError):
    """Raised when a tmux invocation exceeds its timeout."""


@dataclass(slots=True)
class TmuxExecutionResult:
    """Holds the outcome of a tmux CLI invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class TmuxRunner:
    """Execute tmux commands with a bounded runtime.

    The executable is located on first use, so a missing tmux surfaces as a
    ``TmuxNotFoundError`` from the invocation rather than from construction.
    """

    def __init__(self, executable: Path | None = None, *, timeout: float = 5.0) -> None:
        self._explicit_executable = executable
        self._executable_path: Path | None = None
        self._timeout = timeout

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise TmuxNotFoundError(f"tmux executable not found at {candidate}")

        binary = shutil.which("tmux")
        if binary is None:
            raise TmuxNotFoundError("tmux executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        if self._executable_path is None:
            self._executable_path = self._resolve_executable(self._explicit_executable)
        return self._executable_path

    @property
    def timeout(self) -> float:
        return self._timeout

    def list_sessions(self) -> TmuxExecutionResult:
        return self._invoke("list-sessions", "-F", "#{session_name}")

    def list_panes(self, session: str) -> TmuxExecutionResult:
        return self._invoke("list-panes", "-s", "-t", session, "-F", "#{pane_pid}")

    def kill_session(self, session: str) -> TmuxExecutionResult:
        return self._invoke("kill-session", "-t", session)

    def _invoke(self, *args: str) -> TmuxExecutionResult:
        cmd = [str(self.executable), *args]
        try:
            process = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise TmuxTimeoutError(
                f"tmux {' '.join(args)} timed out after {self._timeout:g}s"
            ) from exc
        except OSError as exc:
            raise TmuxRunnerError(f"tmux failed to start: {exc}") from exc
        return TmuxExecutionResult(
            args=tuple(cmd),
            returncode=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
        )


class FakeTmuxRunner(TmuxRunner):
    """Test double that replays canned tmux responses keyed by subcommand."""

    def __init__(  # type: ignore[override]
        self,
        responses: dict[str, Iterable[TmuxExecutionResult | Exception]] | None = None,
    ) -> None:
        self._responses = {key: list(values) for key, values in (responses or {}).items()}
        self._invocations: list[tuple[str, ...]] = []
        self._explicit_executable = None
        self._executable_path = Path("/tmp/fake-tmux")
        self._timeout = 1.0

    def _invoke(self, *args: str) -> TmuxExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        queue = self._responses.get(args[0]) if args else None
        if queue:
            response = queue.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return TmuxExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "FakeTmuxRunner",
    "TmuxExecutionResult",
    "TmuxNotFoundError",
    "TmuxRunner",
    "TmuxRunnerError",
    "TmuxTimeoutError",
]
