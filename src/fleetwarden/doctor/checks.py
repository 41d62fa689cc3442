"""Health check result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CheckStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class CheckResult:
    """Outcome of a single health check."""

    name: str
    status: CheckStatus
    message: str
    details: list[str] = field(default_factory=list)
    fix_hint: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is CheckStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "details": list(self.details),
            "fix_hint": self.fix_hint,
        }


def worst_status(results: list[CheckResult]) -> CheckStatus:
    order = [CheckStatus.OK, CheckStatus.WARNING, CheckStatus.ERROR]
    if not results:
        return CheckStatus.OK
    return max((result.status for result in results), key=order.index)


__all__ = ["CheckResult", "CheckStatus", "worst_status"]
