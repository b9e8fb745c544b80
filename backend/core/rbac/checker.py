from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.rbac.roles import ADMIN_ROLES, SystemRole


@dataclass(frozen=True)
class ActionDecision:
    allowed: bool
    reason: str = ""


class AuthorizationGate:
    """Vérifie permissions et rôles à partir d'un SessionContext."""

    def __init__(self, context):
        self._context = context

    def has_permission(self, module: str, action: str) -> bool:
        if SystemRole.SUPER_ADMIN in self._context.labels:
            return True
        return self._context.permissions.allows(module, action)

    def has_role(self, *candidates: str) -> bool:
        labels = set(self._context.labels)
        return any(str(candidate) in labels for candidate in candidates)

    def is_admin(self) -> bool:
        return self.has_role(*ADMIN_ROLES)

    def decision(
        self, *, module: str, action: str, role: Optional[str] = None
    ) -> ActionDecision:
        if role is not None and not self.has_role(role):
            return ActionDecision(allowed=False, reason=f"Role '{role}' required")
        if not self.has_permission(module, action):
            return ActionDecision(
                allowed=False, reason=f"Permission '{module}.{action}' required"
            )
        return ActionDecision(allowed=True)
