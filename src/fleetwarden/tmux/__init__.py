"""tmux session manager integration."""

from .runner import (
    FakeTmuxRunner,
    TmuxExecutionResult,
    TmuxNotFoundError,
    TmuxRunner,
    TmuxRunnerError,
    TmuxTimeoutError,
)

__all__ = [
    "FakeTmuxRunner",
    "TmuxExecutionResult",
    "TmuxNotFoundError",
    "TmuxRunner",
    "TmuxRunnerError",
    "TmuxTimeoutError",
]
