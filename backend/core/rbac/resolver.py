from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Optional, Tuple

from django.db import DatabaseError
from django.db.models import Q

from core.rbac.roles import (
    CustomRoleRef,
    RoleRef,
    SystemRole,
    SystemRoleRef,
    suppress_default_role,
)

logger = logging.getLogger(__name__)

PermissionPair = Tuple[str, str]


@dataclass(frozen=True)
class RoleResolution:
    roles: Tuple[RoleRef, ...]
    failed: bool = False

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(ref.label for ref in self.roles)


@dataclass(frozen=True)
class PermissionSet:
    """Ensemble dédoublonné de couples (module, action)."""

    pairs: FrozenSet[PermissionPair] = field(default_factory=frozenset)
    unrestricted: bool = False

    def allows(self, module: str, action: str) -> bool:
        return self.unrestricted or (module, action) in self.pairs

    def as_list(self) -> List[dict]:
        return [
            {"module": module, "action": action} for module, action in sorted(self.pairs)
        ]


class RoleResolver:
    """Résout les rôles effectifs d'une identité à partir des affectations."""

    def resolve(self, user_id: Any) -> RoleResolution:
        try:
            assignments = self._assignments(user_id)
        except DatabaseError:
            logger.exception("Lecture des rôles impossible pour %s", user_id)
            return RoleResolution(roles=(), failed=True)

        refs: List[RoleRef] = []
        for assignment in assignments:
            ref = self._to_ref(assignment)
            if ref is not None and ref not in refs:
                refs.append(ref)
        return RoleResolution(roles=suppress_default_role(refs))

    @staticmethod
    def _assignments(user_id: Any) -> list:
        from identity.models import UserRoleAssignment

        return list(
            UserRoleAssignment.objects.filter(user_id=user_id)
            .select_related("custom_role")
            .order_by("assigned_at")
        )

    @staticmethod
    def _to_ref(assignment) -> Optional[RoleRef]:
        if assignment.role:
            return SystemRoleRef(SystemRole(assignment.role))
        custom_role = assignment.custom_role
        if custom_role is None or not custom_role.is_active:
            return None
        return CustomRoleRef(id=custom_role.id, name=custom_role.name)


class PermissionResolver:
    """Aplatit les octrois des rôles résolus en un PermissionSet."""

    def resolve(self, roles: Iterable[RoleRef]) -> PermissionSet:
        roles = tuple(roles)
        system_roles = [ref.role.value for ref in roles if isinstance(ref, SystemRoleRef)]
        if SystemRole.SUPER_ADMIN in system_roles:
            return PermissionSet(unrestricted=True)

        custom_ids = [ref.id for ref in roles if isinstance(ref, CustomRoleRef)]
        # Sans rôle système, les octrois employee servent de socle.
        if not system_roles:
            system_roles = [SystemRole.EMPLOYEE.value]

        from identity.models import RolePermissionGrant

        condition = Q(role__in=system_roles)
        if custom_ids:
            condition |= Q(custom_role_id__in=custom_ids)
        try:
            rows = RolePermissionGrant.objects.filter(condition).values_list(
                "permission__module", "permission__action"
            )
            return PermissionSet(pairs=frozenset(rows))
        except DatabaseError:
            logger.exception("Lecture des permissions impossible pour %s", roles)
            return PermissionSet()
