from __future__ import annotations

import uuid
from dataclasses import dataclass

from annonest.access.roles import is_manager_tier, role_rank


@dataclass(slots=True, frozen=True)
class AuthContext:
    """The resolved caller of a request: who they are, which org they act in, and their role."""

    user_id: uuid.UUID
    org_id: uuid.UUID
    role: str
    display_name: str | None = None
    correlation_id: str | None = None

    @property
    def rank(self) -> int:
        return role_rank(self.role)

    @property
    def is_manager(self) -> bool:
        return is_manager_tier(self.role)
