from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from core.errors import Conflict, RecordNotFound
from core.rbac.roles import (
    DEFAULT_ROLE,
    CustomRoleRef,
    RoleRef,
    SystemRole,
    SystemRoleRef,
    role_rank,
)
from core.rbac.session import invalidate_session_cache
from identity.models import (
    ActionType,
    CustomRole,
    Profile,
    SignupMethod,
    UserRoleAssignment,
    UserSettings,
)
from identity.services.accounts import email_in_use
from identity.services.activity import notify, record_activity

logger = logging.getLogger(__name__)


def get_user(user_id: Any):
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        raise RecordNotFound("User not found")
    return user


def create_user(*, email: str, password: str, full_name: str, created_by=None, request=None):
    """Crée une identité confirmée, son profil et le rôle par défaut."""
    email = email.strip().lower()
    if email_in_use(email):
        raise Conflict("A user with this email address already exists")

    with transaction.atomic():
        user = get_user_model()(username=email, email=email, is_active=True)
        user.set_password(password)
        user.save()
        Profile.objects.update_or_create(
            user=user,
            defaults={
                "full_name": full_name.strip(),
                "email": email,
                "signup_method": SignupMethod.ADMIN,
                "password_set": True,
                "email_verified": True,
                "is_active": True,
            },
        )
        UserRoleAssignment.objects.get_or_create(
            user=user, defaults={"role": DEFAULT_ROLE, "assigned_by": created_by}
        )
        record_activity(
            user=user,
            performed_by=created_by,
            action_type=ActionType.USER_CREATED,
            description=f"User {email} created by an administrator",
            metadata={"email": email, "full_name": full_name},
            module="users",
            target=email,
            request=request,
        )
    logger.info("Utilisateur %s créé par %s", email, getattr(created_by, "pk", None))
    return user


def delete_user(*, user_id: Any, performed_by=None, request=None) -> None:
    """Supprime définitivement l'identité, ses rôles, son profil et ses préférences."""
    user = get_user(user_id)
    email = user.email
    with transaction.atomic():
        UserRoleAssignment.objects.filter(user=user).delete()
        Profile.objects.filter(user=user).delete()
        UserSettings.objects.filter(user=user).delete()
        user.delete()
        record_activity(
            performed_by=performed_by,
            action_type=ActionType.USER_DELETED,
            description=f"User {email} permanently deleted",
            metadata={"user_id": str(user_id), "email": email},
            module="users",
            target=email,
            request=request,
        )
    invalidate_session_cache(user_id)
    logger.warning("Utilisateur %s supprimé par %s", email, getattr(performed_by, "pk", None))


def set_active(*, user, is_active: bool, performed_by=None, request=None) -> Profile:
    """Active ou désactive le profil ; le profil n'est jamais supprimé ici."""
    profile = Profile.objects.filter(user=user).first()
    if profile is None:
        raise RecordNotFound("Profile not found")
    if profile.is_active == is_active:
        return profile
    profile.is_active = is_active
    profile.save(update_fields=["is_active", "updated_at"])
    state = "activated" if is_active else "deactivated"
    record_activity(
        user=user,
        performed_by=performed_by,
        action_type=ActionType.USER_STATUS_CHANGED,
        description=f"User account {state}",
        metadata={"is_active": is_active},
        module="users",
        target=profile.email,
        request=request,
    )
    return profile


def update_profile(
    *, user, changes: Dict[str, Any], performed_by=None, request=None
) -> Profile:
    """Met à jour les champs éditables d'un profil et notifie l'intéressé."""
    profile = Profile.objects.filter(user=user).first()
    if profile is None:
        raise RecordNotFound("Profile not found")

    is_active = changes.pop("is_active", None)
    changed = {}
    for field, value in changes.items():
        if getattr(profile, field) != value:
            changed[field] = value
            setattr(profile, field, value)
    if changed:
        profile.save()
        self_edit = performed_by is not None and performed_by.pk == user.pk
        record_activity(
            user=user,
            performed_by=performed_by,
            action_type=ActionType.PROFILE_UPDATED if self_edit else ActionType.USER_UPDATED,
            description=f"Updated fields: {', '.join(sorted(changed))}",
            metadata={"fields": sorted(changed)},
            module="profile" if self_edit else "users",
            target=profile.email,
            request=request,
        )
        if not self_edit:
            notify(
                user,
                title="Account updated",
                message="Your account details have been updated by an administrator.",
            )
    if is_active is not None:
        profile = set_active(
            user=user, is_active=is_active, performed_by=performed_by, request=request
        )
    return profile


def _ref_for(assignment: Optional[UserRoleAssignment]) -> Optional[RoleRef]:
    if assignment is None:
        return None
    if assignment.role:
        return SystemRoleRef(SystemRole(assignment.role))
    return CustomRoleRef(id=assignment.custom_role_id, name=assignment.custom_role.name)


def assign_role(
    *, user, role: RoleRef, assigned_by=None, request=None
) -> Tuple[Optional[RoleRef], RoleRef]:
    """Remplace l'affectation unique de l'identité par `role`.

    Retourne (ancien rôle, nouveau rôle). Le cache de session de l'identité
    est invalidé.
    """
    if isinstance(role, CustomRoleRef):
        custom_role = CustomRole.objects.filter(pk=role.id, is_active=True).first()
        if custom_role is None:
            raise RecordNotFound("Custom role not found")
        role = CustomRoleRef(id=custom_role.id, name=custom_role.name)
        values = {"role": None, "custom_role": custom_role}
    else:
        values = {"role": role.role.value, "custom_role": None}

    with transaction.atomic():
        current = UserRoleAssignment.objects.select_for_update().filter(user=user).first()
        previous = _ref_for(current)
        if previous == role:
            return previous, role
        UserRoleAssignment.objects.update_or_create(
            user=user,
            defaults={**values, "assigned_by": assigned_by, "assigned_at": timezone.now()},
        )

        if previous is None:
            direction = "assigned"
        elif role_rank(role) > role_rank(previous):
            direction = "promoted"
        elif role_rank(role) < role_rank(previous):
            direction = "demoted"
        else:
            direction = "changed"
        previous_label = previous.label if previous else None
        record_activity(
            user=user,
            performed_by=assigned_by,
            action_type=ActionType.ROLE_CHANGED if previous else ActionType.ROLE_ASSIGNED,
            description=f"Role {direction}: {previous_label or '-'} -> {role.label}",
            metadata={
                "old_role": previous_label,
                "new_role": role.label,
                "change_type": direction,
            },
            module="rbac",
            target=user.email,
            request=request,
        )
        notify(
            user,
            title="Role updated",
            message=f"Your role has been changed to {role.label}.",
        )
    invalidate_session_cache(user.pk)
    return previous, role
