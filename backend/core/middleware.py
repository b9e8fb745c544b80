from __future__ import annotations

from typing import Optional

from django.http import HttpRequest
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from core.rbac.session import SessionContext


def _bearer_token(request: HttpRequest) -> Optional[str]:
    """Extraire le jeton `Bearer` de l'en-tête Authorization."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header.replace("Bearer ", "", 1).strip()


def client_ip(request: HttpRequest) -> Optional[str]:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.META.get("REMOTE_ADDR") or None


class SessionContextMiddleware:
    """Valide le jeton d'accès et attache un SessionContext paresseux.

    Un jeton absent ou invalide ne bloque pas la requête : chaque vue décide
    de la réponse (401, ou 200 avec success=false).
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request: HttpRequest):
        request.session_context = None
        request.token_error = None
        request.jwt_payload = None

        token = _bearer_token(request)
        if token is None:
            return self.get_response(request)
        if not token:
            request.token_error = "Token manquant."
            return self.get_response(request)

        try:
            access = AccessToken(token)
        except TokenError as exc:
            request.token_error = str(exc)
            return self.get_response(request)

        payload = dict(access.payload)
        user_id = payload.get(api_settings.USER_ID_CLAIM)
        if user_id is None:
            request.token_error = "Token sans identité."
            return self.get_response(request)

        request.jwt_payload = payload
        request.session_context = SessionContext(user_id=user_id, claims=payload)
        return self.get_response(request)
