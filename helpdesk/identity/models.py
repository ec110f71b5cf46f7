from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Supported roles."""

    SPECIALIST = "specialist"
    ENGINEER = "engineer"


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller, passed explicitly into every guarded operation."""

    user_id: int
    role: Role

    def has_role(self, role: Role) -> bool:
        return self.role is role


@dataclass(frozen=True, slots=True)
class Session:
    """Session record owned by the identity provider."""

    session_id: str
    user_id: int
    role: Role
    expires_at: datetime
