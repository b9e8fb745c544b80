from __future__ import annotations

from django.urls import include, path
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework import permissions
from rest_framework.routers import DefaultRouter

from .auth import obtain_token, refresh_session
from .otp_views import (
    email_change_request,
    email_change_verify_current,
    email_change_verify_new,
    reset_password_otp,
    send_otp,
    verify_otp,
    verify_otp_forgot,
)
from .rbac_views import (
    ActivityLogViewSet,
    CustomRoleViewSet,
    NotificationViewSet,
    my_authorization,
    permission_catalog,
    role_list,
    system_role_permissions,
)
from .user_views import (
    UserViewSet,
    check_user,
    create_user,
    delete_user,
    forgot_email,
    update_email,
)

router = DefaultRouter()
router.register(r"users", UserViewSet, basename="users")
router.register(r"custom-roles", CustomRoleViewSet, basename="custom-roles")
router.register(r"activity-logs", ActivityLogViewSet, basename="activity-logs")
router.register(r"notifications", NotificationViewSet, basename="notifications")

schema_view = get_schema_view(
    openapi.Info(
        title="Workforce Access API",
        default_version="v1",
        description="Authentification OTP, administration des comptes et RBAC.",
    ),
    public=True,
    permission_classes=[permissions.AllowAny],
)

urlpatterns = [
    path("token/", obtain_token, name="obtain-token"),
    path("auth/refresh-session/", refresh_session, name="refresh-session"),
    path("check-user/", check_user, name="check-user"),
    path("send-otp/", send_otp, name="send-otp"),
    path("verify-otp/", verify_otp, name="verify-otp"),
    path("verify-otp-forgot/", verify_otp_forgot, name="verify-otp-forgot"),
    path("reset-password-otp/", reset_password_otp, name="reset-password-otp"),
    path("forgot-email/", forgot_email, name="forgot-email"),
    path("create-user/", create_user, name="create-user"),
    path("delete-user/", delete_user, name="delete-user"),
    path("update-email/", update_email, name="update-email"),
    path("email-change/request/", email_change_request, name="email-change-request"),
    path(
        "email-change/verify-current/",
        email_change_verify_current,
        name="email-change-verify-current",
    ),
    path("email-change/verify-new/", email_change_verify_new, name="email-change-verify-new"),
    path("me/authorization/", my_authorization, name="my-authorization"),
    path("permissions/", permission_catalog, name="permission-catalog"),
    path("roles/", role_list, name="role-list"),
    path(
        "roles/system/<str:role>/permissions/",
        system_role_permissions,
        name="system-role-permissions",
    ),
    path("swagger/", schema_view.with_ui("swagger", cache_timeout=0), name="swagger-ui"),
    path("redoc/", schema_view.with_ui("redoc", cache_timeout=0), name="redoc"),
    path("", include(router.urls)),
]
