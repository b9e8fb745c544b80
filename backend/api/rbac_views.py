from __future__ import annotations

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.request import Request
from rest_framework.response import Response

from core.decorators import require_permission
from core.errors import InvalidInput
from core.rbac.roles import CustomRoleRef, SystemRole, SystemRoleRef
from identity.models import ActivityLog, CustomRole, Notification, Permission
from identity.services import roles as role_service

from .mixins import OwnRecordsMixin
from .permissions import CustomRolePermission, RbacPermission, SessionPermission
from .serializers import (
    ActivityLogSerializer,
    CustomRoleSerializer,
    NotificationSerializer,
    PermissionIdsSerializer,
    PermissionSerializer,
)


@api_view(["GET"])
@permission_classes([SessionPermission])
def my_authorization(request: Request) -> Response:
    """GET /api/me/authorization/ : rôles et permissions effectifs de l'appelant."""
    context = request.session_context
    if request.query_params.get("refresh") == "1":
        context.refresh()
    gate = context.gate
    return Response(
        {
            "userId": context.user.pk,
            "roles": list(context.labels),
            "permissions": context.permissions.as_list(),
            "unrestricted": context.permissions.unrestricted,
            "isAdmin": gate.is_admin(),
        },
        status=status.HTTP_200_OK,
    )


@api_view(["GET"])
@permission_classes([SessionPermission])
@require_permission("rbac", "view")
def permission_catalog(request: Request) -> Response:
    """GET /api/permissions/ : catalogue (module, action)."""
    permissions = Permission.objects.order_by("module", "action")
    return Response(PermissionSerializer(permissions, many=True).data)


@api_view(["GET"])
@permission_classes([SessionPermission])
@require_permission("rbac", "view")
def role_list(request: Request) -> Response:
    """GET /api/roles/ : rôles système et personnalisés actifs."""
    return Response(role_service.list_roles())


def _permission_payload(ref) -> dict:
    ids = role_service.granted_permission_ids(ref)
    permissions = Permission.objects.filter(pk__in=ids).order_by("module", "action")
    return {
        "role": ref.as_dict(),
        "permissions": PermissionSerializer(permissions, many=True).data,
    }


@api_view(["GET", "PUT"])
@permission_classes([RbacPermission])
def system_role_permissions(request: Request, role: str) -> Response:
    """GET|PUT /api/roles/system/<role>/permissions/"""
    try:
        ref = SystemRoleRef(SystemRole(role))
    except ValueError as exc:
        raise InvalidInput(f"Unknown system role: {role}") from exc

    if request.method == "PUT":
        serializer = PermissionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role_service.set_role_permissions(
            ref,
            serializer.validated_data["permissionIds"],
            performed_by=request.session_context.user,
            request=request,
        )
    return Response(_permission_payload(ref))


class CustomRoleViewSet(viewsets.ModelViewSet):
    """CRUD des rôles personnalisés ; écriture réservée au super_admin."""

    serializer_class = CustomRoleSerializer
    permission_classes = [CustomRolePermission]
    queryset = CustomRole.objects.all().order_by("name")

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        permission_ids = data.pop("permissionIds", [])
        data.pop("is_active", None)
        serializer.instance = role_service.create_custom_role(
            **data,
            permission_ids=permission_ids,
            created_by=self.request.session_context.user,
            request=self.request,
        )

    def perform_update(self, serializer):
        data = dict(serializer.validated_data)
        permission_ids = data.pop("permissionIds", None)
        serializer.instance = role_service.update_custom_role(
            serializer.instance,
            changes=data,
            permission_ids=permission_ids,
            performed_by=self.request.session_context.user,
            request=self.request,
        )

    def perform_destroy(self, instance):
        role_service.delete_custom_role(
            instance, performed_by=self.request.session_context.user, request=self.request
        )

    @action(detail=True, methods=["get", "put"], url_path="permissions")
    def permissions(self, request: Request, pk=None) -> Response:
        role = self.get_object()
        ref = CustomRoleRef(id=role.id, name=role.name)
        if request.method == "PUT":
            serializer = PermissionIdsSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            role_service.set_role_permissions(
                ref,
                serializer.validated_data["permissionIds"],
                performed_by=request.session_context.user,
                request=request,
            )
        return Response(_permission_payload(ref))


class ActivityLogViewSet(OwnRecordsMixin, viewsets.ReadOnlyModelViewSet):
    """Journal d'activité ; sans activity_logs.view, seules ses propres lignes."""

    serializer_class = ActivityLogSerializer
    permission_classes = [SessionPermission]
    global_permission = ("activity_logs", "view")

    def get_queryset(self):
        queryset = ActivityLog.objects.all()
        params = self.request.query_params
        if params.get("action_type"):
            queryset = queryset.filter(action_type=params["action_type"])
        if params.get("module"):
            queryset = queryset.filter(module=params["module"])
        return self.filter_for_caller(queryset).order_by("-id")


class NotificationViewSet(OwnRecordsMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = NotificationSerializer
    permission_classes = [SessionPermission]

    def get_queryset(self):
        return self.filter_for_caller(Notification.objects.all()).order_by("-created_at")

    @action(detail=True, methods=["post"], url_path="read")
    def mark_read(self, request: Request, pk=None) -> Response:
        notification = self.get_object()
        if not notification.read:
            notification.read = True
            notification.save(update_fields=["read"])
        return Response(NotificationSerializer(notification).data)
