from __future__ import annotations

import logging

from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from core.errors import error_body
from core.rbac.session import SessionContext
from identity.models import ActionType, Profile
from identity.services.accounts import find_user_by_email
from identity.services.activity import record_activity

from .permissions import SessionPermission
from .serializers import SignInSerializer

logger = logging.getLogger(__name__)


def _issue_tokens(user, context: SessionContext) -> dict:
    """Crée le couple access/refresh avec les rôles résolus en claims."""
    roles = list(context.labels)
    refresh = RefreshToken.for_user(user)
    refresh["email"] = user.email
    refresh["roles"] = roles

    access = refresh.access_token
    access["email"] = user.email
    access["roles"] = roles
    return {"access": str(access), "refresh": str(refresh), "roles": roles}


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def obtain_token(request: Request) -> Response:
    """
    Endpoint de login : POST /api/token/
    Accepte {email, password} et retourne {access, refresh, roles}.
    """
    serializer = SignInSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    email = serializer.validated_data["email"].lower()
    password = serializer.validated_data["password"]

    user = find_user_by_email(email)
    if user is None or not user.is_active or not user.check_password(password):
        record_activity(
            user=user,
            action_type=ActionType.FAILED_LOGIN,
            description="Failed sign-in attempt",
            metadata={"email": email},
            status="failed",
            target=email,
            request=request,
        )
        return Response(
            error_body("Invalid login credentials"),
            status=status.HTTP_401_UNAUTHORIZED,
        )

    profile = Profile.objects.filter(user=user).first()
    if profile is not None and not profile.is_active:
        if settings.AUTH_BLOCK_INACTIVE_PROFILES:
            record_activity(
                user=user,
                action_type=ActionType.FAILED_LOGIN,
                description="Sign-in refused: account deactivated",
                metadata={"email": email, "reason": "inactive"},
                status="failed",
                target=email,
                request=request,
            )
            return Response(
                error_body("Account is deactivated"), status=status.HTTP_403_FORBIDDEN
            )
        logger.warning("Connexion d'un profil désactivé autorisée : %s", email)

    if profile is not None:
        profile.last_sign_in = timezone.now()
        profile.save(update_fields=["last_sign_in"])

    context = SessionContext(user_id=user.pk).refresh()
    record_activity(
        user=user,
        performed_by=user,
        action_type=ActionType.LOGIN,
        description="User signed in",
        metadata={"email": email, "roles": list(context.labels)},
        target=email,
        request=request,
    )
    return Response(_issue_tokens(user, context), status=status.HTTP_200_OK)


@api_view(["POST"])
@permission_classes([SessionPermission])
def refresh_session(request: Request) -> Response:
    """
    POST /api/auth/refresh-session/
    Invalide le contexte RBAC mis en cache et réémet un jeton avec les rôles à jour.
    """
    context = request.session_context.refresh()
    payload = _issue_tokens(context.user, context)
    payload["permissions"] = context.permissions.as_list()
    payload["unrestricted"] = context.permissions.unrestricted
    return Response(payload, status=status.HTTP_200_OK)
