from __future__ import annotations

from typing import Optional

from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import (
    action,
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response

from core.decorators import require_role
from core.errors import Forbidden, ServiceError, validation_details
from core.rbac.resolver import RoleResolver
from core.rbac.roles import ADMIN_ROLES, SystemRole
from identity.models import Profile
from identity.services import accounts, users

from .permissions import UsersPermission, session_gate
from .serializers import (
    AssignRoleSerializer,
    CheckUserSerializer,
    CreateUserSerializer,
    DeleteUserSerializer,
    ForgotEmailSerializer,
    ProfileSerializer,
    UpdateEmailSerializer,
)

@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def check_user(request: Request) -> Response:
    """POST /api/check-user/ : indique si un compte existe pour cet email."""
    serializer = CheckUserSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return Response(
        accounts.lookup_account(serializer.validated_data["email"]),
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def forgot_email(request: Request) -> Response:
    """POST /api/forgot-email/ : retrouve l'email par téléphone ou par nom."""
    serializer = ForgotEmailSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    email = accounts.recover_email(
        search_by=serializer.validated_data["searchBy"],
        value=serializer.validated_data["value"],
        request=request,
    )
    return Response({"email": email}, status=status.HTTP_200_OK)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@require_role(*ADMIN_ROLES, message="Forbidden: Admin access required")
def create_user(request: Request) -> Response:
    """POST /api/create-user/ : création d'un compte par un administrateur."""
    serializer = CreateUserSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    user = users.create_user(
        email=data["email"],
        password=data["password"],
        full_name=data["full_name"],
        created_by=request.session_context.user,
        request=request,
    )
    return Response(
        {
            "user": {
                "id": user.pk,
                "email": user.email,
                "user_metadata": {"full_name": data["full_name"]},
            }
        },
        status=status.HTTP_200_OK,
    )


def _failure(message: str, **extra) -> Response:
    return Response({"success": False, "error": message, **extra}, status=status.HTTP_200_OK)


def _caller(request: Request):
    """Identité appelante ou message d'échec, pour les handlers toujours-200."""
    context = getattr(request, "session_context", None)
    if context is None:
        return None, "Invalid token" if request.token_error else "Unauthorized"
    if context.user is None:
        return None, "Invalid token"
    return context, None


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def delete_user(request: Request) -> Response:
    """POST /api/delete-user/ : répond toujours 200, avec `success`."""
    context, error = _caller(request)
    if error:
        return _failure(error)
    if not context.gate.is_admin():
        return _failure("Forbidden: Admin access required")

    serializer = DeleteUserSerializer(data=request.data)
    if not serializer.is_valid():
        return _failure("Invalid input", details=validation_details(serializer.errors))
    if serializer.validated_data["userId"] == context.user.pk:
        return _failure("You cannot delete your own account")

    try:
        users.delete_user(
            user_id=serializer.validated_data["userId"],
            performed_by=context.user,
            request=request,
        )
    except ServiceError as exc:
        return _failure(str(exc.detail))
    return Response({"success": True}, status=status.HTTP_200_OK)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def update_email(request: Request) -> Response:
    """POST /api/update-email/ : soi-même ou administrateur ; toujours 200."""
    context, error = _caller(request)
    if error:
        return _failure(error)

    serializer = UpdateEmailSerializer(data=request.data)
    if not serializer.is_valid():
        return _failure("Invalid input", details=validation_details(serializer.errors))
    data = serializer.validated_data

    if str(context.user.pk) != str(data["userId"]) and not context.gate.is_admin():
        return _failure("Forbidden: you can only update your own email")

    try:
        target = users.get_user(data["userId"])
        accounts.apply_email_change(
            user=target,
            old_email=data["oldEmail"],
            new_email=data["newEmail"],
            performed_by=context.user,
            request=request,
        )
    except ServiceError as exc:
        return _failure(str(exc.detail))
    return Response(
        {"success": True, "user": {"id": target.pk, "email": target.email}},
        status=status.HTTP_200_OK,
    )


class UserViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """Administration des comptes : liste, édition, rôle, désactivation."""

    serializer_class = ProfileSerializer
    permission_classes = [UsersPermission]
    permission_action: Optional[str] = None
    lookup_field = "user_id"
    http_method_names = ["get", "patch", "put", "post", "options", "head"]

    def get_queryset(self):
        queryset = Profile.objects.select_related(
            "user", "user__role_assignment", "user__role_assignment__custom_role"
        )
        search = self.request.query_params.get("search")
        if search:
            queryset = queryset.filter(
                Q(full_name__icontains=search) | Q(email__icontains=search)
            )
        return queryset.order_by("full_name")

    def perform_update(self, serializer):
        changes = dict(serializer.validated_data)
        profile = users.update_profile(
            user=serializer.instance.user,
            changes=changes,
            performed_by=self.request.session_context.user,
            request=self.request,
        )
        serializer.instance = profile

    @action(detail=True, methods=["put"], url_path="role")
    def role(self, request: Request, user_id=None) -> Response:
        profile = self.get_object()
        if profile.user_id == request.session_context.user.pk:
            raise Forbidden("You cannot change your own role")
        serializer = AssignRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_role = serializer.validated_data["role"]
        gate = session_gate(request)
        target_roles = set(RoleResolver().resolve(profile.user_id).labels)
        if SystemRole.SUPER_ADMIN in {new_role.label, *target_roles} and not gate.has_role(
            SystemRole.SUPER_ADMIN
        ):
            raise Forbidden("Only a super admin can grant or revoke the super_admin role")
        previous, current = users.assign_role(
            user=profile.user,
            role=new_role,
            assigned_by=request.session_context.user,
            request=request,
        )
        return Response(
            {
                "previous": previous.as_dict() if previous else None,
                "role": current.as_dict(),
            },
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"], url_path="deactivate", permission_action="delete")
    def deactivate(self, request: Request, user_id=None) -> Response:
        profile = self.get_object()
        if profile.user_id == request.session_context.user.pk:
            raise Forbidden("You cannot deactivate your own account")
        profile = users.set_active(
            user=profile.user,
            is_active=False,
            performed_by=request.session_context.user,
            request=request,
        )
        return Response(ProfileSerializer(profile).data, status=status.HTTP_200_OK)

