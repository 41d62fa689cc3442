"""Per-town lock that keeps health passes from overlapping."""

from __future__ import annotations

import fcntl
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

LOCK_PATH = Path(".fleetwarden") / "doctor.lock"


class HealthPassInProgressError(RuntimeError):
    """Raised when another health pass holds the town lock."""


@contextmanager
def health_pass_lock(town_root: Path) -> Iterator[Path]:
    """Hold an exclusive, non-blocking lock on the town for one pass."""

    path = Path(town_root) / LOCK_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a+", encoding="utf-8") as handle:
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise HealthPassInProgressError(
                f"Another health pass is already running for {town_root}"
            ) from exc
        try:
            yield path
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


__all__ = ["HealthPassInProgressError", "LOCK_PATH", "health_pass_lock"]
