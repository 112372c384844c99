"""Role hierarchy and module visibility.

Both tables are read-only mappings built at import time. Callers go through the
query functions below; unknown roles rank 0 and see no modules.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType


class UserRole(StrEnum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    RESEARCHER = "researcher"
    ANNOTATOR = "annotator"
    QA = "qa"
    GUEST = "guest"


class ModuleId(StrEnum):
    DASHBOARD = "dashboard"
    NEST_ANNOTATE = "nest_annotate"
    DATA_NEST = "data_nest"
    EXTRACTION_ENGINE = "extraction_engine"
    CONTACT_INTELLIGENCE = "contact_intelligence"
    ADMIN_PANEL = "admin_panel"
    ORG_MANAGEMENT = "org_management"
    USER_MANAGEMENT = "user_management"
    LOCATION_DATA = "location_data"
    GUEST_PREVIEW = "guest_preview"


USER_ROLES: tuple[str, ...] = tuple(role.value for role in UserRole)

_MANAGER_TIER: frozenset[str] = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.MANAGER})

_MANAGER_MODULES = frozenset(
    {
        ModuleId.DASHBOARD,
        ModuleId.NEST_ANNOTATE,
        ModuleId.DATA_NEST,
        ModuleId.EXTRACTION_ENGINE,
        ModuleId.CONTACT_INTELLIGENCE,
        ModuleId.USER_MANAGEMENT,
        ModuleId.LOCATION_DATA,
    }
)

MODULE_ACCESS_BY_ROLE: Mapping[str, frozenset[ModuleId]] = MappingProxyType(
    {
        UserRole.SUPER_ADMIN: _MANAGER_MODULES | {ModuleId.ADMIN_PANEL, ModuleId.ORG_MANAGEMENT},
        UserRole.ADMIN: _MANAGER_MODULES | {ModuleId.ADMIN_PANEL},
        UserRole.MANAGER: _MANAGER_MODULES,
        UserRole.RESEARCHER: frozenset({ModuleId.DASHBOARD, ModuleId.NEST_ANNOTATE, ModuleId.DATA_NEST}),
        UserRole.ANNOTATOR: frozenset({ModuleId.DASHBOARD, ModuleId.NEST_ANNOTATE}),
        UserRole.QA: frozenset({ModuleId.DASHBOARD, ModuleId.NEST_ANNOTATE, ModuleId.DATA_NEST}),
        UserRole.GUEST: frozenset({ModuleId.GUEST_PREVIEW}),
    }
)

ROLE_HIERARCHY: Mapping[str, int] = MappingProxyType(
    {
        UserRole.SUPER_ADMIN: 100,
        UserRole.ADMIN: 80,
        UserRole.MANAGER: 60,
        UserRole.RESEARCHER: 40,
        UserRole.ANNOTATOR: 30,
        UserRole.QA: 30,
        UserRole.GUEST: 10,
    }
)


def role_rank(role: str) -> int:
    return ROLE_HIERARCHY.get(role, 0)


def module_access(role: str) -> frozenset[ModuleId]:
    """Modules visible to ``role``."""

    return MODULE_ACCESS_BY_ROLE.get(role, frozenset())


def can_manage_role(actor_role: str, target_role: str) -> bool:
    """True only when the actor strictly outranks the target.

    Peers of equal rank (including the actor's own role) can never be managed.
    """

    actor_rank = role_rank(actor_role)
    if actor_rank == 0:
        return False
    return actor_rank > role_rank(target_role)


def can_manage_users(role: str) -> bool:
    return role in _MANAGER_TIER


def is_manager_tier(role: str) -> bool:
    return can_manage_users(role)
