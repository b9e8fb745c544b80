from __future__ import annotations

from typing import Dict, Optional

from django.http import HttpRequest
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import SAFE_METHODS, BasePermission

from core.rbac.roles import SystemRole

METHOD_ACTIONS: Dict[str, str] = {
    "GET": "view",
    "HEAD": "view",
    "POST": "create",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
}


def session_gate(request: HttpRequest):
    """Gate de la session courante, ou None si l'identité est inconnue."""
    context = getattr(request, "session_context", None)
    if context is None or context.user is None:
        return None
    return context.gate


def _require_gate(request: HttpRequest):
    """Comme session_gate, mais un jeton dont l'identité est supprimée ou
    désactivée est refusé en 401."""
    gate = session_gate(request)
    if gate is None and getattr(request, "session_context", None) is not None:
        raise AuthenticationFailed("Invalid token")
    return gate


class SessionPermission(BasePermission):
    """Exige un SessionContext valide injecté par le middleware."""

    def has_permission(self, request: HttpRequest, view) -> bool:  # type: ignore[override]
        if request.method == "OPTIONS":
            return True
        return _require_gate(request) is not None


class ModulePermission(SessionPermission):
    """Vérifie (module, action) ; l'action dérive de la méthode HTTP.

    Une vue peut imposer l'action via `permission_action` ou restreindre
    l'écriture à un rôle via `write_role`.
    """

    module: Optional[str] = None
    write_role: Optional[str] = None

    def has_permission(self, request: HttpRequest, view) -> bool:  # type: ignore[override]
        if request.method == "OPTIONS":
            return True
        gate = _require_gate(request)
        if gate is None:
            return False
        module = getattr(view, "permission_module", None) or self.module
        action = getattr(view, "permission_action", None) or METHOD_ACTIONS.get(
            request.method, "view"
        )
        if self.write_role and request.method not in SAFE_METHODS:
            return gate.has_role(self.write_role)
        return bool(module) and gate.has_permission(module, action)


class UsersPermission(ModulePermission):
    module = "users"


class RbacPermission(ModulePermission):
    module = "rbac"


class CustomRolePermission(ModulePermission):
    """Lecture avec rbac.view, écriture réservée au super_admin."""

    module = "rbac"
    write_role = SystemRole.SUPER_ADMIN

