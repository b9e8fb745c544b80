from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache

from core.rbac.resolver import PermissionResolver, PermissionSet, RoleResolution, RoleResolver
from core.rbac.roles import CustomRoleRef, RoleRef, SystemRole, SystemRoleRef

logger = logging.getLogger(__name__)

_VERSION_KEY = "rbac:version"


def _cache_version() -> int:
    version = cache.get(_VERSION_KEY)
    if version is None:
        cache.add(_VERSION_KEY, 1, timeout=None)
        version = cache.get(_VERSION_KEY, 1)
    return int(version)


def _cache_key(user_id: Any) -> str:
    return f"rbac:{_cache_version()}:{user_id}"


def invalidate_session_cache(user_id: Any = None) -> None:
    """Invalide le contexte mis en cache d'une identité, ou de toutes.

    À appeler après toute mutation de rôles ou d'octrois.
    """
    if user_id is not None:
        cache.delete(_cache_key(user_id))
        return
    try:
        cache.incr(_VERSION_KEY)
    except ValueError:
        cache.set(_VERSION_KEY, 2, timeout=None)


def _serialize(resolution: RoleResolution, permissions: PermissionSet) -> Dict[str, Any]:
    return {
        "roles": [ref.as_dict() for ref in resolution.roles],
        "pairs": sorted(permissions.pairs),
        "unrestricted": permissions.unrestricted,
    }


def _deserialize(payload: Dict[str, Any]) -> Tuple[Tuple[RoleRef, ...], PermissionSet]:
    roles = []
    for item in payload["roles"]:
        if item["type"] == "system":
            roles.append(SystemRoleRef(SystemRole(item["value"])))
        else:
            roles.append(CustomRoleRef(id=uuid.UUID(item["id"]), name=item.get("name", "")))
    permissions = PermissionSet(
        pairs=frozenset(tuple(pair) for pair in payload["pairs"]),
        unrestricted=payload["unrestricted"],
    )
    return tuple(roles), permissions


class SessionContext:
    """Contexte d'autorisation d'une requête authentifiée.

    Les rôles et permissions sont résolus paresseusement puis mis en cache
    par identité ; `refresh()` force une nouvelle résolution.
    """

    def __init__(
        self,
        user_id: Any,
        claims: Optional[Dict[str, Any]] = None,
        role_resolver: Optional[RoleResolver] = None,
        permission_resolver: Optional[PermissionResolver] = None,
    ):
        self.user_id = user_id
        self.claims = claims or {}
        self._role_resolver = role_resolver or RoleResolver()
        self._permission_resolver = permission_resolver or PermissionResolver()
        self._roles: Optional[Tuple[RoleRef, ...]] = None
        self._permissions: Optional[PermissionSet] = None
        self._user = None
        self.degraded = False

    @property
    def user(self):
        """Identité active du jeton ; None si supprimée ou désactivée."""
        if self._user is None:
            users = get_user_model().objects.filter(pk=self.user_id, is_active=True)
            if settings.AUTH_BLOCK_INACTIVE_PROFILES:
                users = users.exclude(profile__is_active=False)
            self._user = users.first()
        return self._user

    @property
    def roles(self) -> Tuple[RoleRef, ...]:
        self._load()
        return self._roles or ()

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(ref.label for ref in self.roles)

    @property
    def permissions(self) -> PermissionSet:
        self._load()
        return self._permissions or PermissionSet()

    @property
    def gate(self):
        from core.rbac.checker import AuthorizationGate

        return AuthorizationGate(self)

    def invalidate(self) -> None:
        invalidate_session_cache(self.user_id)
        self._roles = None
        self._permissions = None

    def refresh(self) -> "SessionContext":
        self.invalidate()
        self._load()
        return self

    def _load(self) -> None:
        if self._roles is not None:
            return
        key = _cache_key(self.user_id)
        cached = cache.get(key)
        if cached is not None:
            self._roles, self._permissions = _deserialize(cached)
            return

        resolution = self._role_resolver.resolve(self.user_id)
        self._roles = resolution.roles
        self.degraded = resolution.failed
        if resolution.failed:
            # Rien n'est mis en cache : la prochaine requête retentera.
            self._permissions = PermissionSet()
            logger.warning("Contexte RBAC dégradé pour %s", self.user_id)
            return
        permissions = self._permission_resolver.resolve(resolution.roles)
        self._permissions = permissions
        cache.set(key, _serialize(resolution, permissions), settings.RBAC_CACHE_SECONDS)
