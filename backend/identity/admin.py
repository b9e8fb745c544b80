from __future__ import annotations

import logging
from typing import List, Tuple

from django.contrib import admin, messages
from django.db.models import QuerySet

from core.rbac.roles import SystemRole
from core.rbac.session import invalidate_session_cache

from .models import (
    ActivityLog,
    CustomRole,
    Notification,
    OtpVerification,
    Permission,
    Profile,
    RolePermissionGrant,
    UserRoleAssignment,
)

logger = logging.getLogger(__name__)


class AssignedRoleFilter(admin.SimpleListFilter):
    title = "rôle"
    parameter_name = "assigned_role"

    def lookups(self, request, model_admin) -> List[Tuple[str, str]]:  # type: ignore[override]
        return list(SystemRole.choices)

    def queryset(self, request, queryset: QuerySet[Profile]) -> QuerySet[Profile]:
        value = self.value()
        if not value:
            return queryset
        return queryset.filter(user__role_assignment__role=value)


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("email", "full_name", "signup_method", "is_active", "last_sign_in")
    search_fields = ("email", "full_name", "contact_number", "employee_id")
    list_filter = ("is_active", "signup_method", AssignedRoleFilter)
    readonly_fields = ("created_at", "updated_at", "last_sign_in")
    actions = ["deactivate_profiles"]

    def deactivate_profiles(self, request, queryset: QuerySet[Profile]) -> None:
        count = queryset.update(is_active=False)
        logger.warning("%s profil(s) désactivé(s) depuis l'admin", count)
        self.message_user(
            request, f"{count} profil(s) désactivé(s).", level=messages.WARNING
        )

    deactivate_profiles.short_description = "Désactiver les profils sélectionnés"


class GrantInline(admin.TabularInline):
    model = RolePermissionGrant
    extra = 0
    autocomplete_fields = ("permission",)
    fields = ("permission", "created_at")
    readonly_fields = ("created_at",)


@admin.register(CustomRole)
class CustomRoleAdmin(admin.ModelAdmin):
    list_display = ("name", "is_active", "created_by", "created_at")
    search_fields = ("name", "description")
    list_filter = ("is_active",)
    inlines = (GrantInline,)

    def save_related(self, request, form, formsets, change) -> None:
        super().save_related(request, form, formsets, change)
        invalidate_session_cache()


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ("module", "action", "description")
    search_fields = ("module", "action")
    list_filter = ("module",)


@admin.register(UserRoleAssignment)
class UserRoleAssignmentAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "custom_role", "assigned_by", "assigned_at")
    search_fields = ("user__email", "custom_role__name")
    list_filter = ("role",)
    readonly_fields = ("assigned_at",)

    def save_model(self, request, obj, form, change) -> None:
        super().save_model(request, obj, form, change)
        invalidate_session_cache(obj.user_id)


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action_type", "module", "target", "status", "user")
    search_fields = ("description", "target", "user__email")
    list_filter = ("action_type", "module", "status")

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OtpVerification)
class OtpVerificationAdmin(admin.ModelAdmin):
    list_display = ("email", "flow", "attempts", "verified", "expires_at", "created_at")
    search_fields = ("email",)
    list_filter = ("flow", "verified")
    exclude = ("otp_code",)


admin.site.register(Notification)
