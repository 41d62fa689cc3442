"""Errors raised by inventory collaborators."""

from __future__ import annotations


class CollaboratorUnavailableError(RuntimeError):
    """Raised when an external listing (sessions, panes, processes) cannot be read."""


class SessionListError(CollaboratorUnavailableError):
    """Raised when the session manager cannot list sessions or panes."""


class ProcessTableError(CollaboratorUnavailableError):
    """Raised when the process table cannot be read."""


__all__ = ["CollaboratorUnavailableError", "ProcessTableError", "SessionListError"]
