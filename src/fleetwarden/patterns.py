"""Hierarchical worker-pattern matching used for queue authorization."""

from __future__ import annotations

from typing import Iterable

WILDCARD = "*"
SEPARATOR = "/"


def matches(pattern: str, caller: str) -> bool:
    """Return True if ``caller`` is covered by ``pattern``.

    ``rig/polecats/*`` covers exactly one further segment, so it matches
    ``rig/polecats/nux`` but not ``rig/polecats/sub/nux``.
    """

    if not pattern or not caller:
        return False
    if pattern == WILDCARD:
        return True
    if pattern.endswith(SEPARATOR + WILDCARD):
        prefix = pattern[: -len(WILDCARD)]
        if not caller.startswith(prefix):
            return False
        return SEPARATOR not in caller[len(prefix) :]
    return pattern == caller


def is_eligible_worker(caller: str, patterns: Iterable[str] | None) -> bool:
    """Default-deny check of ``caller`` against an allow-list of patterns."""

    if not patterns:
        return False
    return any(matches(pattern, caller) for pattern in patterns)


__all__ = ["SEPARATOR", "WILDCARD", "is_eligible_worker", "matches"]
