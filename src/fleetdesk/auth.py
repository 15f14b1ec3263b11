from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable


class Role(str, Enum):
    MEMBER = "MEMBER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


ROLE_HIERARCHY = {Role.MEMBER: 1, Role.MANAGER: 2, Role.ADMIN: 3}


@dataclass(frozen=True)
class Actor:
    id: str
    name: str
    role: Role


ActorProvider = Callable[[], Actor]


def has_role(actor: Actor, minimum: Role) -> bool:
    return ROLE_HIERARCHY[actor.role] >= ROLE_HIERARCHY[minimum]


def stub_actor_provider() -> Actor:
    """Development identity until a real login is wired in front of the service."""
    return Actor(id="stub-user-001", name="Administrator (dev)", role=Role.ADMIN)


def fixed_actor(actor: Actor) -> ActorProvider:
    return lambda: actor
