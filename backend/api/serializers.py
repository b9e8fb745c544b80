from __future__ import annotations

from django.core.validators import RegexValidator
from rest_framework import serializers

from core.rbac.roles import parse_role_ref
from identity.models import (
    ActivityLog,
    CustomRole,
    Notification,
    OtpFlow,
    Permission,
    Profile,
)

EMAIL_ERRORS = {
    "invalid": "Invalid email format",
    "required": "Email is required",
    "blank": "Email is required",
    "max_length": "Email must be less than 255 characters",
}
PASSWORD_ERRORS = {
    "required": "Password is required",
    "blank": "Password is required",
    "min_length": "Password must be at least 8 characters",
    "max_length": "Password must be less than 100 characters",
}
OTP_ERRORS = {
    "required": "OTP is required",
    "blank": "OTP is required",
    "min_length": "OTP must be 6 digits",
    "max_length": "OTP must be 6 digits",
    "invalid": "OTP must be 6 digits",
}

full_name_validator = RegexValidator(
    r"^[a-zA-Z\s'-]+$",
    "Name can only contain letters, spaces, hyphens, and apostrophes",
)


def email_field(**kwargs) -> serializers.EmailField:
    return serializers.EmailField(max_length=255, error_messages=EMAIL_ERRORS, **kwargs)


def password_field(**kwargs) -> serializers.CharField:
    return serializers.CharField(
        min_length=8,
        max_length=100,
        trim_whitespace=False,
        error_messages=PASSWORD_ERRORS,
        **kwargs,
    )


def otp_field() -> serializers.RegexField:
    return serializers.RegexField(
        r"^\d{6}$", min_length=6, max_length=6, error_messages=OTP_ERRORS
    )


class CheckUserSerializer(serializers.Serializer):
    email = email_field()


class SendOtpSerializer(serializers.Serializer):
    email = email_field()
    flow = serializers.ChoiceField(
        choices=OtpFlow.choices,
        default=OtpFlow.SIGNUP,
        error_messages={"invalid_choice": "Invalid OTP flow"},
    )


class VerifyOtpSerializer(serializers.Serializer):
    email = email_field()
    otp = otp_field()
    fullName = serializers.CharField(
        max_length=100,
        required=False,
        allow_blank=True,
        validators=[full_name_validator],
        error_messages={"max_length": "Name must be less than 100 characters"},
    )
    password = password_field(required=False)


class OtpOnlySerializer(serializers.Serializer):
    email = email_field()
    otp = otp_field()


class ResetPasswordOtpSerializer(OtpOnlySerializer):
    password = password_field()


class ForgotEmailSerializer(serializers.Serializer):
    searchBy = serializers.ChoiceField(
        choices=("phone", "name"),
        error_messages={
            "invalid_choice": "Invalid search type",
            "required": "Invalid search type",
        },
    )
    value = serializers.CharField(
        max_length=255, error_messages={"blank": "Search value is required"}
    )


class CreateUserSerializer(serializers.Serializer):
    email = email_field()
    password = password_field()
    full_name = serializers.CharField(
        min_length=1,
        max_length=100,
        validators=[full_name_validator],
        error_messages={
            "required": "Full name is required",
            "blank": "Full name is required",
            "max_length": "Name must be less than 100 characters",
        },
    )


class DeleteUserSerializer(serializers.Serializer):
    userId = serializers.IntegerField(
        error_messages={"required": "User ID is required", "invalid": "Invalid user ID"}
    )


class UpdateEmailSerializer(serializers.Serializer):
    userId = serializers.IntegerField(
        error_messages={"required": "User ID is required", "invalid": "Invalid user ID"}
    )
    newEmail = email_field()
    oldEmail = email_field()


class SignInSerializer(serializers.Serializer):
    email = email_field()
    password = serializers.CharField(
        trim_whitespace=False, error_messages={"required": "Password is required"}
    )


class EmailChangeStartSerializer(serializers.Serializer):
    newEmail = email_field()


class OtpCodeSerializer(serializers.Serializer):
    otp = otp_field()


class RoleRefField(serializers.Field):
    """Rôle étiqueté : {"type": "system", "value": ...} ou {"type": "custom", "id": ...}."""

    def to_internal_value(self, data):
        if not isinstance(data, dict):
            raise serializers.ValidationError("Role must be an object with a 'type'")
        try:
            return parse_role_ref(data)
        except ValueError as exc:
            raise serializers.ValidationError(str(exc)) from exc

    def to_representation(self, value):
        return value.as_dict()


class AssignRoleSerializer(serializers.Serializer):
    role = RoleRefField()


class PermissionIdsSerializer(serializers.Serializer):
    permissionIds = serializers.ListField(child=serializers.UUIDField(), allow_empty=True)


class PermissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Permission
        fields = ["id", "module", "action", "description"]


class CustomRoleSerializer(serializers.ModelSerializer):
    permissionIds = serializers.ListField(
        child=serializers.UUIDField(), required=False, write_only=True
    )
    permissions = serializers.SerializerMethodField()

    class Meta:
        model = CustomRole
        fields = [
            "id",
            "name",
            "description",
            "responsibilities",
            "rules",
            "is_active",
            "created_at",
            "updated_at",
            "permissionIds",
            "permissions",
        ]
        read_only_fields = ["id", "created_at", "updated_at", "permissions"]
        extra_kwargs = {"name": {"validators": []}}

    def get_permissions(self, obj: CustomRole):
        return [
            {"module": grant.permission.module, "action": grant.permission.action}
            for grant in obj.grants.select_related("permission")
        ]


class ProfileSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source="user_id", read_only=True)
    role = serializers.SerializerMethodField()

    class Meta:
        model = Profile
        fields = [
            "id",
            "userId",
            "full_name",
            "email",
            "email_verified",
            "password_set",
            "signup_method",
            "is_active",
            "last_sign_in",
            "contact_number",
            "gender",
            "date_of_birth",
            "address",
            "profile_picture_url",
            "employee_id",
            "department",
            "position",
            "join_date",
            "location",
            "role",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "email",
            "email_verified",
            "password_set",
            "signup_method",
            "last_sign_in",
            "created_at",
            "updated_at",
        ]
        extra_kwargs = {"full_name": {"validators": [full_name_validator]}}

    def get_role(self, obj: Profile):
        assignment = getattr(obj.user, "role_assignment", None)
        if assignment is None:
            return None
        if assignment.role:
            return {"type": "system", "value": assignment.role}
        return {
            "type": "custom",
            "id": str(assignment.custom_role_id),
            "name": assignment.custom_role.name,
        }


class ActivityLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = ActivityLog
        fields = [
            "id",
            "user",
            "performed_by",
            "action_type",
            "description",
            "metadata",
            "module",
            "target",
            "status",
            "ip_address",
            "created_at",
        ]


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "type", "title", "message", "read", "created_at"]
        read_only_fields = fields

