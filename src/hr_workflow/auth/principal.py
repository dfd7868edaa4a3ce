"""Caller identity and role set used by transition and delete checks."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ANY = "any"
    OWNER = "owner"
    DEPARTMENT_MANAGER = "department_manager"
    HRD_MANAGER = "hrd_manager"
    SUPER_ADMIN = "super_admin"


# Middleware groups guarding the server routes, by allowed role.
ROLE_GROUPS: dict[str, frozenset[Role]] = {
    "auth-manager": frozenset({Role.DEPARTMENT_MANAGER, Role.SUPER_ADMIN}),
    "auth-hrd": frozenset({Role.HRD_MANAGER, Role.SUPER_ADMIN}),
    "auth-admin": frozenset({Role.SUPER_ADMIN}),
}

# Role names as stored by the server side.
_ROLE_NAME_ALIASES: dict[str, Role] = {
    "superadmin": Role.SUPER_ADMIN,
    "super_admin": Role.SUPER_ADMIN,
    "hrd_manager": Role.HRD_MANAGER,
    "hrd": Role.HRD_MANAGER,
    "department_manager": Role.DEPARTMENT_MANAGER,
    "manager": Role.DEPARTMENT_MANAGER,
}


@dataclass(frozen=True)
class Principal:
    """
    Immutable role set of the acting user.

    Role flags are supplied by the authorization collaborator; nothing here
    decides who is a manager, it only answers questions about the flags.
    """

    user_id: int | str
    is_super_admin: bool = False
    is_hrd_manager: bool = False
    is_department_manager: bool = False
    managed_departments: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "managed_departments",
            frozenset(d.strip().lower() for d in self.managed_departments if d and d.strip()),
        )

    @property
    def roles(self) -> frozenset[Role]:
        roles = {Role.ANY}
        if self.is_super_admin:
            roles.add(Role.SUPER_ADMIN)
        if self.is_hrd_manager:
            roles.add(Role.HRD_MANAGER)
        if self.is_department_manager:
            roles.add(Role.DEPARTMENT_MANAGER)
        return frozenset(roles)

    def manages(self, department: str | None) -> bool:
        if not self.is_department_manager or not department:
            return False
        return department.strip().lower() in self.managed_departments

    def in_group(self, group: str) -> bool:
        """Check membership of a server-side middleware group such as ``auth-hrd``."""
        allowed = ROLE_GROUPS.get(group)
        if allowed is None:
            raise ValueError(f"Unknown role group: {group}")
        return bool(allowed & self.roles)

    @classmethod
    def from_user_roles(cls, payload: Mapping[str, Any]) -> "Principal":
        """Build from the ``userRoles`` payload the record service embeds in pages."""
        user_id = payload.get("userId")
        if user_id is None:
            raise ValueError("userRoles payload is missing userId")
        departments = payload.get("managedDepartments") or []
        return cls(
            user_id=user_id,
            is_super_admin=bool(payload.get("isSuperAdmin")),
            is_hrd_manager=bool(payload.get("isHrdManager")),
            is_department_manager=bool(payload.get("isDepartmentManager")),
            managed_departments=frozenset(str(d) for d in departments),
        )

    @classmethod
    def from_role_names(
        cls,
        user_id: int | str,
        role_names: Iterable[str],
        managed_departments: Iterable[str] = (),
    ) -> "Principal":
        """Build from server role names (``superadmin``, ``hrd_manager``, ...)."""
        roles: set[Role] = set()
        for name in role_names:
            role = _ROLE_NAME_ALIASES.get(name.strip().lower())
            if role is None:
                logger.warning("Ignoring unknown role name %r for user %s", name, user_id)
                continue
            roles.add(role)
        return cls(
            user_id=user_id,
            is_super_admin=Role.SUPER_ADMIN in roles,
            is_hrd_manager=Role.HRD_MANAGER in roles,
            is_department_manager=Role.DEPARTMENT_MANAGER in roles,
            managed_departments=frozenset(managed_departments),
        )
