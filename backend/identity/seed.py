from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from django.contrib.auth import get_user_model
from django.db import transaction

from core.rbac.roles import SystemRole

MODULES: Tuple[str, ...] = (
    "dashboard",
    "profile",
    "users",
    "rbac",
    "activity_logs",
    "settings",
)
CRUD_ACTIONS: Tuple[str, ...] = ("view", "create", "edit", "delete")

PERMISSION_CATALOG: List[Tuple[str, str, str]] = [
    (module, action, f"{action.capitalize()} {module.replace('_', ' ')}")
    for module in MODULES
    for action in CRUD_ACTIONS
] + [
    ("users", "manage", "Full user management access"),
    ("rbac", "manage", "Full RBAC management access"),
]


def _matrix(modules: Iterable[str], actions: Iterable[str]) -> List[Tuple[str, str]]:
    return [(module, action) for module in modules for action in actions]


ALL_PERMISSIONS = [(module, action) for module, action, _ in PERMISSION_CATALOG]

DEFAULT_GRANTS: Dict[str, List[Tuple[str, str]]] = {
    SystemRole.SUPER_ADMIN: list(ALL_PERMISSIONS),
    SystemRole.ADMIN: [pair for pair in ALL_PERMISSIONS if pair != ("rbac", "manage")],
    SystemRole.HR: _matrix(
        ("dashboard", "profile", "users", "activity_logs"), ("view", "edit", "create")
    ),
    SystemRole.MANAGER: _matrix(("dashboard", "profile", "users"), ("view", "edit")),
    SystemRole.EMPLOYEE: _matrix(("dashboard", "profile"), ("view", "edit")),
}


def seed_permissions(permission_model=None, grant_model=None) -> Tuple[int, int]:
    """Crée le catalogue et les octrois par défaut, sans doublon.

    Les modèles sont injectables pour être appelés depuis une migration.
    Retourne (permissions créées, octrois créés).
    """
    if permission_model is None or grant_model is None:
        from identity.models import Permission, RolePermissionGrant

        permission_model = permission_model or Permission
        grant_model = grant_model or RolePermissionGrant

    created_permissions = 0
    created_grants = 0
    by_pair = {}
    for module, action, description in PERMISSION_CATALOG:
        permission, created = permission_model.objects.get_or_create(
            module=module, action=action, defaults={"description": description}
        )
        by_pair[(module, action)] = permission
        created_permissions += int(created)

    for role, pairs in DEFAULT_GRANTS.items():
        for pair in pairs:
            _, created = grant_model.objects.get_or_create(
                role=str(role), permission=by_pair[pair]
            )
            created_grants += int(created)
    return created_permissions, created_grants


@transaction.atomic
def seed_super_admin(
    *, email: str, password: str, full_name: Optional[str] = None
):
    """Crée (ou promeut) un compte super_admin utilisable pour la première connexion."""
    from identity.models import Profile, SignupMethod, UserRoleAssignment

    user_model = get_user_model()
    user = user_model.objects.filter(email__iexact=email).first()
    if user is None:
        user = user_model(username=email, email=email, is_staff=True)
    user.is_active = True
    user.set_password(password)
    user.save()

    Profile.objects.update_or_create(
        user=user,
        defaults={
            "full_name": full_name or email.split("@")[0],
            "email": email,
            "signup_method": SignupMethod.ADMIN,
            "password_set": True,
            "email_verified": True,
            "is_active": True,
        },
    )
    UserRoleAssignment.objects.update_or_create(
        user=user,
        defaults={"role": SystemRole.SUPER_ADMIN, "custom_role": None},
    )
    return user
