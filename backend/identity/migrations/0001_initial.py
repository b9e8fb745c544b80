from __future__ import annotations

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

SYSTEM_ROLE_CHOICES = [
    ("super_admin", "Super Admin"),
    ("admin", "Admin"),
    ("hr", "HR"),
    ("manager", "Manager"),
    ("employee", "User"),
]

ACTION_TYPE_CHOICES = [
    ("login", "Login"),
    ("logout", "Logout"),
    ("failed_login", "Failed Login"),
    ("signup", "Signup"),
    ("user_created", "User Created"),
    ("user_updated", "User Updated"),
    ("user_deleted", "User Deleted"),
    ("user_status_changed", "User Status Changed"),
    ("role_assigned", "Role Assigned"),
    ("role_changed", "Role Changed"),
    ("permission_updated", "Permission Updated"),
    ("profile_updated", "Profile Updated"),
    ("email_changed", "Email Changed"),
    ("password_changed", "Password Changed"),
    ("password_reset", "Password Reset"),
    ("otp_verification", "Otp Verification"),
    ("otp_resend", "Otp Resend"),
    ("forgot_email", "Forgot Email"),
    ("forgot_password", "Forgot Password"),
    ("custom_role_created", "Custom Role Created"),
    ("custom_role_updated", "Custom Role Updated"),
    ("custom_role_deleted", "Custom Role Deleted"),
]

EXACTLY_ONE_ROLE = models.Q(
    models.Q(("custom_role__isnull", True), ("role__isnull", False)),
    models.Q(("custom_role__isnull", False), ("role__isnull", True)),
    _connector="OR",
)


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Profile",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("full_name", models.CharField(max_length=100)),
                ("email", models.EmailField(max_length=255)),
                ("email_verified", models.BooleanField(default=False)),
                ("password_set", models.BooleanField(default=False)),
                ("is_sso", models.BooleanField(default=False)),
                (
                    "signup_method",
                    models.CharField(
                        max_length=16,
                        choices=[("manual", "Manual"), ("admin", "Created by an administrator"), ("sso", "Single sign-on")],
                        default="manual",
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("last_sign_in", models.DateTimeField(null=True, blank=True)),
                ("contact_number", models.CharField(max_length=32, blank=True)),
                ("gender", models.CharField(max_length=32, blank=True)),
                ("date_of_birth", models.DateField(null=True, blank=True)),
                ("address", models.TextField(blank=True)),
                ("profile_picture_url", models.URLField(blank=True)),
                ("employee_id", models.CharField(max_length=64, blank=True)),
                ("department", models.CharField(max_length=128, blank=True)),
                ("position", models.CharField(max_length=128, blank=True)),
                ("join_date", models.DateField(null=True, blank=True)),
                ("location", models.CharField(max_length=128, blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "profiles", "ordering": ("full_name",)},
        ),
        migrations.CreateModel(
            name="CustomRole",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                ("description", models.TextField(blank=True)),
                ("responsibilities", models.TextField(blank=True)),
                ("rules", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "custom_roles", "ordering": ("name",)},
        ),
        migrations.CreateModel(
            name="UserRoleAssignment",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("role", models.CharField(max_length=32, choices=SYSTEM_ROLE_CHOICES, null=True, blank=True)),
                ("assigned_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="role_assignment",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "custom_role",
                    models.ForeignKey(
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="identity.customrole",
                    ),
                ),
                (
                    "assigned_by",
                    models.ForeignKey(
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "user_roles",
                "constraints": [
                    models.CheckConstraint(condition=EXACTLY_ONE_ROLE, name="user_role_exactly_one"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Permission",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("module", models.CharField(max_length=64)),
                ("action", models.CharField(max_length=32)),
                ("description", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "permissions",
                "ordering": ("module", "action"),
                "constraints": [
                    models.UniqueConstraint(fields=("module", "action"), name="permission_module_action_unique"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RolePermissionGrant",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("role", models.CharField(max_length=32, choices=SYSTEM_ROLE_CHOICES, null=True, blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "custom_role",
                    models.ForeignKey(
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="grants",
                        to="identity.customrole",
                    ),
                ),
                (
                    "permission",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="grants",
                        to="identity.permission",
                    ),
                ),
            ],
            options={
                "db_table": "role_permissions",
                "constraints": [
                    models.CheckConstraint(condition=EXACTLY_ONE_ROLE, name="role_grant_exactly_one"),
                    models.UniqueConstraint(
                        fields=("role", "permission"),
                        condition=models.Q(("role__isnull", False)),
                        name="role_grant_system_unique",
                    ),
                    models.UniqueConstraint(
                        fields=("custom_role", "permission"),
                        condition=models.Q(("custom_role__isnull", False)),
                        name="role_grant_custom_unique",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OtpVerification",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("email", models.EmailField(max_length=255, db_index=True)),
                ("otp_code", models.CharField(max_length=6)),
                (
                    "flow",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("signup", "Signup"),
                            ("forgot_password", "Forgot password"),
                            ("email_change", "Email change"),
                        ],
                        default="signup",
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("verified", models.BooleanField(default=False)),
                ("consumed_at", models.DateTimeField(null=True, blank=True)),
                ("expires_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, db_index=True)),
            ],
            options={"db_table": "otp_verifications", "get_latest_by": "created_at"},
        ),
        migrations.CreateModel(
            name="EmailChangeRequest",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("current_email", models.EmailField(max_length=255)),
                ("new_email", models.EmailField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("pending_current", "Waiting for current email code"),
                            ("pending_new", "Waiting for new email code"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending_current",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="email_change_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "email_change_requests"},
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("action_type", models.CharField(max_length=64, choices=ACTION_TYPE_CHOICES)),
                ("description", models.TextField()),
                ("metadata", models.JSONField(default=dict, blank=True)),
                ("module", models.CharField(max_length=64, default="auth")),
                ("target", models.CharField(max_length=255, blank=True)),
                ("status", models.CharField(max_length=16, default="success")),
                ("ip_address", models.GenericIPAddressField(null=True, blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="activity_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "activity_logs", "ordering": ("-id",)},
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("type", models.CharField(max_length=32, default="info")),
                ("title", models.CharField(max_length=255)),
                ("message", models.TextField()),
                ("read", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notifications",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "notifications", "ordering": ("-created_at",)},
        ),
        migrations.CreateModel(
            name="UserSettings",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("portal_notifications", models.BooleanField(default=True)),
                ("email_notifications", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notification_settings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "user_settings"},
        ),
    ]
