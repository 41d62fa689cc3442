"""Rig discovery from the town directory layout."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .naming import Role

logger = logging.getLogger(__name__)

POLECATS_DIR = "polecats"
CREW_DIR = "crew"
SETTINGS_FILE = Path("settings") / "config.json"

# Town-level directories that are never rigs.
RESERVED_DIRS = {"mayor", "deacon", ".beads"}

_ROLE_DIRS = {
    Role.WITNESS: "witness",
    Role.REFINERY: "refinery",
    Role.POLECAT: POLECATS_DIR,
    Role.CREW: CREW_DIR,
}


class RoleToggle(BaseModel):
    enabled: bool = True


class RigSettings(BaseModel):
    """Optional per-rig settings read from ``settings/config.json``."""

    type: str = "rig-settings"
    version: int = 1
    refinery: RoleToggle = Field(default_factory=RoleToggle)


@dataclass(frozen=True, slots=True)
class Rig:
    name: str
    path: Path
    roles_present: frozenset[Role] = field(default_factory=frozenset)
    refinery_enabled: bool = True

    def has_role(self, role: Role) -> bool:
        return role in self.roles_present

    @property
    def disabled_roles(self) -> frozenset[Role]:
        if self.refinery_enabled:
            return frozenset()
        return frozenset({Role.REFINERY})


def load_rig_settings(rig_path: Path) -> RigSettings:
    """Load rig settings, returning defaults when the file is missing or invalid."""

    path = Path(rig_path) / SETTINGS_FILE
    if not path.is_file():
        return RigSettings()
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
        return RigSettings.model_validate(document or {})
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring unreadable rig settings", extra={"path": str(path), "error": str(exc)})
        return RigSettings()


def is_rig_dir(path: Path) -> bool:
    return (path / POLECATS_DIR).is_dir() or (path / CREW_DIR).is_dir()


def discover_rigs(town_root: Path) -> list[Rig]:
    """Return rigs found as immediate subdirectories of the town root."""

    root = Path(town_root)
    try:
        entries = sorted(root.iterdir())
    except OSError as exc:
        logger.warning("Could not scan town root", extra={"town_root": str(root), "error": str(exc)})
        return []

    rigs: list[Rig] = []
    for entry in entries:
        if not entry.is_dir() or entry.name.startswith(".") or entry.name in RESERVED_DIRS:
            continue
        if not is_rig_dir(entry):
            continue
        roles = frozenset(role for role, dirname in _ROLE_DIRS.items() if (entry / dirname).is_dir())
        settings = load_rig_settings(entry)
        rigs.append(
            Rig(
                name=entry.name,
                path=entry,
                roles_present=roles,
                refinery_enabled=settings.refinery.enabled,
            )
        )
    return rigs


__all__ = [
    "RESERVED_DIRS",
    "Rig",
    "RigSettings",
    "RoleToggle",
    "discover_rigs",
    "is_rig_dir",
    "load_rig_settings",
]
