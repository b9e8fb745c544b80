from __future__ import annotations

from django.apps import AppConfig


class IdentityConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "identity"
    label = "identity"
    verbose_name = "Identity & RBAC"

    def ready(self) -> None:
        from core import signals  # noqa: F401
