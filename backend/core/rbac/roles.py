from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Tuple, Union

from django.db import models


class SystemRole(models.TextChoices):
    """Rôles système figés dans le code (non supprimables)."""

    SUPER_ADMIN = "super_admin", "Super Admin"
    ADMIN = "admin", "Admin"
    HR = "hr", "HR"
    MANAGER = "manager", "Manager"
    EMPLOYEE = "employee", "User"


SYSTEM_ROLE_DESCRIPTIONS = {
    SystemRole.SUPER_ADMIN: "Full system access including RBAC management",
    SystemRole.ADMIN: "Full access to users and settings, no RBAC management",
    SystemRole.HR: "Manages employees, profiles and activity logs",
    SystemRole.MANAGER: "Views and edits the users of the team",
    SystemRole.EMPLOYEE: "Default role, access to own dashboard and profile",
}

# Ordre croissant de privilège, utilisé pour qualifier promotion / rétrogradation.
ROLE_HIERARCHY: Tuple[str, ...] = (
    SystemRole.EMPLOYEE,
    SystemRole.MANAGER,
    SystemRole.HR,
    SystemRole.ADMIN,
    SystemRole.SUPER_ADMIN,
)

ELEVATED_ROLES = frozenset(
    {SystemRole.SUPER_ADMIN, SystemRole.ADMIN, SystemRole.HR, SystemRole.MANAGER}
)
ADMIN_ROLES: Tuple[str, ...] = (SystemRole.SUPER_ADMIN, SystemRole.ADMIN)
DEFAULT_ROLE = SystemRole.EMPLOYEE


@dataclass(frozen=True)
class SystemRoleRef:
    role: SystemRole

    @property
    def label(self) -> str:
        return str(self.role.value)

    def as_dict(self) -> dict:
        return {"type": "system", "value": self.label}


@dataclass(frozen=True)
class CustomRoleRef:
    id: uuid.UUID
    name: str = ""

    @property
    def label(self) -> str:
        return self.name

    def as_dict(self) -> dict:
        return {"type": "custom", "id": str(self.id), "name": self.name}


RoleRef = Union[SystemRoleRef, CustomRoleRef]


def system_ref(value: str) -> SystemRoleRef:
    return SystemRoleRef(SystemRole(value))


def parse_role_ref(data: Mapping[str, Any]) -> RoleRef:
    """Construit une référence de rôle depuis l'entrée étiquetée de l'API.

    Formats acceptés : {"type": "system", "value": "admin"} ou
    {"type": "custom", "id": "<uuid>"}. Lève ValueError sinon.
    """
    kind = data.get("type")
    if kind == "system":
        try:
            return SystemRoleRef(SystemRole(data.get("value")))
        except ValueError as exc:
            raise ValueError(f"Unknown system role: {data.get('value')!r}") from exc
    if kind == "custom":
        try:
            role_id = uuid.UUID(str(data.get("id")))
        except ValueError as exc:
            raise ValueError("Custom role id must be a UUID") from exc
        return CustomRoleRef(id=role_id, name=str(data.get("name") or ""))
    raise ValueError("Role type must be 'system' or 'custom'")


def suppress_default_role(refs: Iterable[RoleRef]) -> Tuple[RoleRef, ...]:
    """Retire `employee` dès qu'un rôle élevé est présent, ordre conservé."""
    refs = tuple(refs)
    elevated = any(
        isinstance(ref, SystemRoleRef) and ref.role in ELEVATED_ROLES for ref in refs
    )
    if not elevated:
        return refs
    return tuple(
        ref
        for ref in refs
        if not (isinstance(ref, SystemRoleRef) and ref.role == SystemRole.EMPLOYEE)
    )


def role_rank(ref: RoleRef) -> int:
    """Rang hiérarchique ; un rôle personnalisé se place au niveau employee."""
    if isinstance(ref, SystemRoleRef):
        return ROLE_HIERARCHY.index(ref.role)
    return 0
