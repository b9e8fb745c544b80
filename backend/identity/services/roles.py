from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from django.db import IntegrityError, transaction
from django.db.models import Count

from core.errors import Conflict, InvalidInput, RecordNotFound
from core.rbac.roles import (
    SYSTEM_ROLE_DESCRIPTIONS,
    CustomRoleRef,
    RoleRef,
    SystemRole,
    SystemRoleRef,
)
from core.rbac.session import invalidate_session_cache
from identity.models import (
    ActionType,
    CustomRole,
    Permission,
    RolePermissionGrant,
    UserRoleAssignment,
)
from identity.services.activity import record_activity

logger = logging.getLogger(__name__)


def list_roles() -> List[Dict[str, Any]]:
    """Rôles système puis rôles personnalisés actifs, avec leur effectif."""
    system_counts = dict(
        UserRoleAssignment.objects.filter(role__isnull=False)
        .values_list("role")
        .annotate(total=Count("id"))
    )
    roles: List[Dict[str, Any]] = [
        {
            "type": "system",
            "value": role.value,
            "label": role.label,
            "description": SYSTEM_ROLE_DESCRIPTIONS[role],
            "userCount": system_counts.get(role.value, 0),
        }
        for role in SystemRole
    ]
    custom_roles = CustomRole.objects.filter(is_active=True).annotate(
        user_count=Count("assignments")
    )
    roles.extend(
        {
            "type": "custom",
            "id": str(role.id),
            "label": role.name,
            "description": role.description,
            "userCount": role.user_count,
        }
        for role in custom_roles
    )
    return roles


def _grants_for(ref: RoleRef):
    if isinstance(ref, SystemRoleRef):
        return RolePermissionGrant.objects.filter(role=ref.role.value)
    return RolePermissionGrant.objects.filter(custom_role_id=ref.id)


def granted_permission_ids(ref: RoleRef) -> Set[Any]:
    return set(_grants_for(ref).values_list("permission_id", flat=True))


def _resolve_permissions(permission_ids: Iterable[Any]) -> List[Permission]:
    wanted = set(permission_ids)
    permissions = list(Permission.objects.filter(pk__in=wanted))
    if len(permissions) != len(wanted):
        raise InvalidInput("Unknown permission id")
    return permissions


def set_role_permissions(
    ref: RoleRef, permission_ids: Iterable[Any], *, performed_by=None, request=None
) -> Dict[str, int]:
    """Aligne les octrois du rôle sur `permission_ids` (ajouts et retraits)."""
    if isinstance(ref, CustomRoleRef) and not CustomRole.objects.filter(pk=ref.id).exists():
        raise RecordNotFound("Custom role not found")
    wanted = {permission.pk for permission in _resolve_permissions(permission_ids)}

    with transaction.atomic():
        current = granted_permission_ids(ref)
        to_add = wanted - current
        to_remove = current - wanted
        if to_remove:
            _grants_for(ref).filter(permission_id__in=to_remove).delete()
        owner = (
            {"role": ref.role.value}
            if isinstance(ref, SystemRoleRef)
            else {"custom_role_id": ref.id}
        )
        RolePermissionGrant.objects.bulk_create(
            [RolePermissionGrant(permission_id=pk, **owner) for pk in to_add]
        )
        if to_add or to_remove:
            record_activity(
                performed_by=performed_by,
                action_type=ActionType.PERMISSION_UPDATED,
                description=f"Permissions updated for role {ref.label}",
                metadata={
                    "role": ref.as_dict(),
                    "added": len(to_add),
                    "removed": len(to_remove),
                },
                module="rbac",
                target=ref.label,
                request=request,
            )
    invalidate_session_cache()
    return {"added": len(to_add), "removed": len(to_remove)}


def _check_name(name: str, *, exclude_id=None) -> str:
    name = name.strip()
    if not name:
        raise InvalidInput("Role name is required")
    if name.lower() in {role.value for role in SystemRole}:
        raise Conflict("A system role already uses this name")
    existing = CustomRole.objects.filter(name__iexact=name)
    if exclude_id is not None:
        existing = existing.exclude(pk=exclude_id)
    if existing.exists():
        raise Conflict("A role with this name already exists")
    return name


def create_custom_role(
    *,
    name: str,
    description: str = "",
    responsibilities: str = "",
    rules: str = "",
    permission_ids: Optional[Iterable[Any]] = None,
    created_by=None,
    request=None,
) -> CustomRole:
    name = _check_name(name)
    permissions = _resolve_permissions(permission_ids or [])
    try:
        with transaction.atomic():
            role = CustomRole.objects.create(
                name=name,
                description=description,
                responsibilities=responsibilities,
                rules=rules,
                created_by=created_by,
            )
            RolePermissionGrant.objects.bulk_create(
                [RolePermissionGrant(custom_role=role, permission=p) for p in permissions]
            )
            record_activity(
                performed_by=created_by,
                action_type=ActionType.CUSTOM_ROLE_CREATED,
                description=f"Custom role {name} created",
                metadata={"role_id": str(role.id), "permissions": len(permissions)},
                module="rbac",
                target=name,
                request=request,
            )
    except IntegrityError as exc:
        raise Conflict("A role with this name already exists") from exc
    return role


def update_custom_role(
    role: CustomRole,
    *,
    changes: Dict[str, Any],
    permission_ids: Optional[Iterable[Any]] = None,
    performed_by=None,
    request=None,
) -> CustomRole:
    if "name" in changes:
        changes["name"] = _check_name(changes["name"], exclude_id=role.pk)
    with transaction.atomic():
        for field, value in changes.items():
            setattr(role, field, value)
        role.save()
        if permission_ids is not None:
            set_role_permissions(
                CustomRoleRef(id=role.id, name=role.name),
                permission_ids,
                performed_by=performed_by,
                request=request,
            )
        record_activity(
            performed_by=performed_by,
            action_type=ActionType.CUSTOM_ROLE_UPDATED,
            description=f"Custom role {role.name} updated",
            metadata={"role_id": str(role.id), "fields": sorted(changes)},
            module="rbac",
            target=role.name,
            request=request,
        )
    invalidate_session_cache()
    return role


def delete_custom_role(role: CustomRole, *, performed_by=None, request=None) -> None:
    """Supprime un rôle personnalisé non affecté, octrois compris."""
    if UserRoleAssignment.objects.filter(custom_role=role).exists():
        raise Conflict("This role is still assigned to users")
    name, role_id = role.name, str(role.id)
    with transaction.atomic():
        RolePermissionGrant.objects.filter(custom_role=role).delete()
        role.delete()
        record_activity(
            performed_by=performed_by,
            action_type=ActionType.CUSTOM_ROLE_DELETED,
            description=f"Custom role {name} deleted",
            metadata={"role_id": role_id},
            module="rbac",
            target=name,
            request=request,
        )
    invalidate_session_cache()
    logger.info("Rôle personnalisé %s supprimé", name)
