from __future__ import annotations

import uuid

from auditlog.registry import auditlog
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.rbac.roles import SystemRole

User = settings.AUTH_USER_MODEL


class SignupMethod(models.TextChoices):
    MANUAL = "manual", "Manual"
    ADMIN = "admin", "Created by an administrator"
    SSO = "sso", "Single sign-on"


class Profile(models.Model):
    """profiles - Fiche employé rattachée à une identité d'authentification."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    full_name = models.CharField(max_length=100)
    email = models.EmailField(max_length=255)
    email_verified = models.BooleanField(default=False)
    password_set = models.BooleanField(default=False)
    is_sso = models.BooleanField(default=False)
    signup_method = models.CharField(
        max_length=16, choices=SignupMethod.choices, default=SignupMethod.MANUAL
    )
    is_active = models.BooleanField(default=True)
    last_sign_in = models.DateTimeField(null=True, blank=True)
    contact_number = models.CharField(max_length=32, blank=True)
    gender = models.CharField(max_length=32, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    address = models.TextField(blank=True)
    profile_picture_url = models.URLField(blank=True)
    employee_id = models.CharField(max_length=64, blank=True)
    department = models.CharField(max_length=128, blank=True)
    position = models.CharField(max_length=128, blank=True)
    join_date = models.DateField(null=True, blank=True)
    location = models.CharField(max_length=128, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "profiles"
        ordering = ("full_name",)

    def __str__(self) -> str:
        return f"{self.full_name} <{self.email}>"


class CustomRole(models.Model):
    """custom_roles - Rôles définis à l'exécution par un super_admin."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    responsibilities = models.TextField(blank=True)
    rules = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "custom_roles"
        ordering = ("name",)

    def __str__(self) -> str:
        return self.name


class UserRoleAssignment(models.Model):
    """user_roles - Rôle unique (système ou personnalisé) d'une identité."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        User, on_delete=models.CASCADE, related_name="role_assignment"
    )
    role = models.CharField(
        max_length=32, choices=SystemRole.choices, null=True, blank=True
    )
    custom_role = models.ForeignKey(
        CustomRole,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="assignments",
    )
    assigned_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    assigned_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "user_roles"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(role__isnull=False, custom_role__isnull=True)
                    | Q(role__isnull=True, custom_role__isnull=False)
                ),
                name="user_role_exactly_one",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} -> {self.role or self.custom_role}"


class Permission(models.Model):
    """permissions - Catalogue des couples (module, action)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    module = models.CharField(max_length=64)
    action = models.CharField(max_length=32)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "permissions"
        ordering = ("module", "action")
        constraints = [
            models.UniqueConstraint(
                fields=("module", "action"), name="permission_module_action_unique"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.module}.{self.action}"


class RolePermissionGrant(models.Model):
    """role_permissions - Octroi d'une permission à un rôle système ou personnalisé."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    role = models.CharField(
        max_length=32, choices=SystemRole.choices, null=True, blank=True
    )
    custom_role = models.ForeignKey(
        CustomRole,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="grants",
    )
    permission = models.ForeignKey(
        Permission, on_delete=models.CASCADE, related_name="grants"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "role_permissions"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(role__isnull=False, custom_role__isnull=True)
                    | Q(role__isnull=True, custom_role__isnull=False)
                ),
                name="role_grant_exactly_one",
            ),
            models.UniqueConstraint(
                fields=("role", "permission"),
                condition=Q(role__isnull=False),
                name="role_grant_system_unique",
            ),
            models.UniqueConstraint(
                fields=("custom_role", "permission"),
                condition=Q(custom_role__isnull=False),
                name="role_grant_custom_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.role or self.custom_role} : {self.permission}"


class OtpFlow(models.TextChoices):
    SIGNUP = "signup", "Signup"
    FORGOT_PASSWORD = "forgot_password", "Forgot password"
    EMAIL_CHANGE = "email_change", "Email change"


class OtpVerification(models.Model):
    """otp_verifications - Codes à usage unique, jamais écrasés."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(max_length=255, db_index=True)
    otp_code = models.CharField(max_length=6)
    flow = models.CharField(
        max_length=32, choices=OtpFlow.choices, default=OtpFlow.SIGNUP
    )
    attempts = models.PositiveIntegerField(default=0)
    verified = models.BooleanField(default=False)
    consumed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "otp_verifications"
        get_latest_by = "created_at"

    def __str__(self) -> str:
        return f"{self.email} ({self.flow})"


class EmailChangeStatus(models.TextChoices):
    PENDING_CURRENT = "pending_current", "Waiting for current email code"
    PENDING_NEW = "pending_new", "Waiting for new email code"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class EmailChangeRequest(models.Model):
    """Demande de changement d'email en deux vérifications."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="email_change_requests"
    )
    current_email = models.EmailField(max_length=255)
    new_email = models.EmailField(max_length=255)
    status = models.CharField(
        max_length=32,
        choices=EmailChangeStatus.choices,
        default=EmailChangeStatus.PENDING_CURRENT,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "email_change_requests"

    def __str__(self) -> str:
        return f"{self.current_email} -> {self.new_email} [{self.status}]"


class ActionType(models.TextChoices):
    LOGIN = "login"
    LOGOUT = "logout"
    FAILED_LOGIN = "failed_login"
    SIGNUP = "signup"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_STATUS_CHANGED = "user_status_changed"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_CHANGED = "role_changed"
    PERMISSION_UPDATED = "permission_updated"
    PROFILE_UPDATED = "profile_updated"
    EMAIL_CHANGED = "email_changed"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    OTP_VERIFICATION = "otp_verification"
    OTP_RESEND = "otp_resend"
    FORGOT_EMAIL = "forgot_email"
    FORGOT_PASSWORD = "forgot_password"
    CUSTOM_ROLE_CREATED = "custom_role_created"
    CUSTOM_ROLE_UPDATED = "custom_role_updated"
    CUSTOM_ROLE_DELETED = "custom_role_deleted"


class ActivityLog(models.Model):
    """activity_logs - Journal applicatif en ajout seul.

    L'identifiant auto-incrémenté sert de signal d'ordre causal.
    """

    id = models.BigAutoField(primary_key=True)
    user = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="activity_logs",
    )
    performed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    action_type = models.CharField(max_length=64, choices=ActionType.choices)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    module = models.CharField(max_length=64, default="auth")
    target = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, default="success")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "activity_logs"
        ordering = ("-id",)

    def __str__(self) -> str:
        return f"{self.action_type} {self.target}".strip()


class Notification(models.Model):
    """notifications - Message in-app destiné à un utilisateur."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="notifications"
    )
    type = models.CharField(max_length=32, default="info")
    title = models.CharField(max_length=255)
    message = models.TextField()
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "notifications"
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return self.title


class UserSettings(models.Model):
    """user_settings - Préférences de notification."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        User, on_delete=models.CASCADE, related_name="notification_settings"
    )
    portal_notifications = models.BooleanField(default=True)
    email_notifications = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "user_settings"

    def __str__(self) -> str:
        return f"settings:{self.user_id}"


auditlog.register(Profile)
auditlog.register(CustomRole)
auditlog.register(UserRoleAssignment)
auditlog.register(RolePermissionGrant)
