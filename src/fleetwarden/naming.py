"""Session naming scheme for town, rig and worker sessions.

Canonical session names follow ``<prefix>-<scope>-<role>[-<name>]`` where the
scope is the town name for the mayor and deacon singletons and the rig name for
every other role. Worker identities used by the queue layer are ``/``-delimited
addresses derived from the same roles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

DEFAULT_PREFIX = "gt"


class Role(str, Enum):
    """Closed set of roles a fleet session can hold."""

    MAYOR = "mayor"
    DEACON = "deacon"
    WITNESS = "witness"
    REFINERY = "refinery"
    POLECAT = "polecat"
    CREW = "crew"

    @property
    def is_town_scoped(self) -> bool:
        return self in (Role.MAYOR, Role.DEACON)

    @property
    def is_named(self) -> bool:
        return self in (Role.POLECAT, Role.CREW)


# Trailing tokens that name a fixed per-rig role rather than a worker.
RIG_SINGLETON_ROLES = {Role.WITNESS.value: Role.WITNESS, Role.REFINERY.value: Role.REFINERY}


@dataclass(frozen=True, slots=True)
class SessionIdentity:
    """Role, scope and optional worker name recovered from a session name."""

    session: str
    role: Role
    scope: str
    name: str | None = None

    @property
    def address(self) -> str:
        return worker_address(self.role, self.scope, self.name)


def _require_name(role: Role, name: str | None) -> str:
    if not name:
        raise ValueError(f"{role.value} sessions require a worker name")
    return name


def session_name(role: Role, scope: str, name: str | None = None, *, prefix: str = DEFAULT_PREFIX) -> str:
    """Build the canonical session name for a role."""

    if not scope:
        raise ValueError("session scope must not be empty")
    if role is Role.MAYOR or role is Role.DEACON:
        return f"{prefix}-{scope}-{role.value}"
    if role is Role.WITNESS or role is Role.REFINERY:
        return f"{prefix}-{scope}-{role.value}"
    if role is Role.POLECAT:
        return f"{prefix}-{scope}-{_require_name(role, name)}"
    if role is Role.CREW:
        return f"{prefix}-{scope}-crew-{_require_name(role, name)}"
    raise ValueError(f"Unhandled role {role!r}")


def worker_address(role: Role, scope: str, name: str | None = None) -> str:
    """Return the ``/``-delimited worker identity for a role."""

    if role is Role.MAYOR or role is Role.DEACON:
        return f"{role.value}/"
    if role is Role.WITNESS or role is Role.REFINERY:
        return f"{scope}/{role.value}"
    if role is Role.POLECAT:
        return f"{scope}/polecats/{_require_name(role, name)}"
    if role is Role.CREW:
        return f"{scope}/crew/{_require_name(role, name)}"
    raise ValueError(f"Unhandled role {role!r}")


def mayor_session_name(town: str, *, prefix: str = DEFAULT_PREFIX) -> str:
    return session_name(Role.MAYOR, town, prefix=prefix)


def deacon_session_name(town: str, *, prefix: str = DEFAULT_PREFIX) -> str:
    return session_name(Role.DEACON, town, prefix=prefix)


def is_fleet_session(session: str, *, prefix: str = DEFAULT_PREFIX) -> bool:
    return session.startswith(f"{prefix}-")


def is_crew_session(session: str, *, prefix: str = DEFAULT_PREFIX) -> bool:
    """Return True if the name has the ``<prefix>-<rig>-crew-<name>`` shape.

    This is a structural check only; the rig segment is not compared against
    the known rigs.
    """

    parts = session.split("-")
    return len(parts) >= 4 and parts[0] == prefix and parts[2] == Role.CREW.value


def parse_session_name(
    session: str,
    known_rigs: Iterable[str],
    *,
    mayor_session: str = "",
    deacon_session: str = "",
    prefix: str = DEFAULT_PREFIX,
) -> SessionIdentity | None:
    """Map a fleet session name to its identity, or None if it is an orphan.

    Any trailing token after a known rig that is not witness or refinery is
    accepted as a polecat or crew member; live assignments are not consulted.
    """

    if mayor_session and session == mayor_session:
        return SessionIdentity(session=session, role=Role.MAYOR, scope=_town_scope(session, prefix))
    if deacon_session and session == deacon_session:
        return SessionIdentity(session=session, role=Role.DEACON, scope=_town_scope(session, prefix))

    parts = session.split("-", 2)
    if len(parts) < 3 or parts[0] != prefix:
        return None

    rig, token = parts[1], parts[2]
    if rig not in set(known_rigs):
        return None

    singleton = RIG_SINGLETON_ROLES.get(token)
    if singleton is not None:
        return SessionIdentity(session=session, role=singleton, scope=rig)
    if token.startswith(f"{Role.CREW.value}-") and len(token) > len(Role.CREW.value) + 1:
        return SessionIdentity(
            session=session, role=Role.CREW, scope=rig, name=token[len(Role.CREW.value) + 1 :]
        )
    return SessionIdentity(session=session, role=Role.POLECAT, scope=rig, name=token)


def _town_scope(session: str, prefix: str) -> str:
    body = session[len(prefix) + 1 :]
    return body.rsplit("-", 1)[0]


__all__ = [
    "DEFAULT_PREFIX",
    "RIG_SINGLETON_ROLES",
    "Role",
    "SessionIdentity",
    "deacon_session_name",
    "is_crew_session",
    "is_fleet_session",
    "mayor_session_name",
    "parse_session_name",
    "session_name",
    "worker_address",
]
