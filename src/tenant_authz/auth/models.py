from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    DIRECTOR = "director"
    ASSISTANT_DIRECTOR = "assistant_director"
    TEACHER = "teacher"
    ASSISTANT_TEACHER = "assistant_teacher"

    @classmethod
    def parse(cls, value: str) -> Role:
        """
        Canonical role lookup used everywhere a role string enters the system.

        "SuperAdmin", "superadmin" and "Assistant Director" / "assistant-director"
        all resolve to the same member. Raises ValueError for anything else.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"role must be a string, got {type(value).__name__}")
        key = value.strip().casefold().replace("-", "_").replace(" ", "_")
        return cls(key)


SUPER_ROLE = Role.SUPERADMIN


@dataclass(frozen=True)
class Principal:
    user_id: str
    tenant_id: str
    role: Role
    locations: frozenset[str]
    issued_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        if not self.tenant_id:
            raise ValueError("principal requires a tenant_id")
        if not self.user_id:
            raise ValueError("principal requires a user_id")
