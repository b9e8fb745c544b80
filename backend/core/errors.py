from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceError(APIException):
    """Erreur applicative rendue sous la forme {"error": ..., "code": ...}."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
    default_code = "internal"

    def __init__(self, detail: Optional[str] = None, code: Optional[str] = None, **extra: Any):
        super().__init__(detail=detail, code=code)
        self.extra: Dict[str, Any] = extra


class InvalidInput(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"
    default_code = "invalid_input"


class RecordNotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
    default_code = "not_found"


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"
    default_code = "conflict"


class Unauthorized(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"
    default_code = "unauthorized"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"
    default_code = "forbidden"


class OtpNotFound(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid or expired OTP"
    default_code = "otp_not_found"


class OtpExpired(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "OTP has expired. Please request a new one."
    default_code = "otp_expired"


class OtpLocked(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Too many failed attempts. Please request a new OTP."
    default_code = "too_many_attempts"


class OtpAlreadyUsed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "This OTP has already been used. Please request a new one."
    default_code = "otp_already_used"


class OtpMismatch(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "otp_mismatch"

    def __init__(self, attempts_remaining: int):
        super().__init__(
            f"Incorrect OTP. {attempts_remaining} attempts remaining.",
            attemptsRemaining=attempts_remaining,
        )
        self.attempts_remaining = attempts_remaining


def _flatten_messages(detail: Any) -> List[str]:
    if isinstance(detail, dict):
        messages: List[str] = []
        for value in detail.values():
            messages.extend(_flatten_messages(value))
        return messages
    if isinstance(detail, (list, tuple)):
        messages = []
        for value in detail:
            messages.extend(_flatten_messages(value))
        return messages
    return [str(detail)]


def validation_details(errors: Any) -> str:
    """Concatène les messages de validation DRF avec ", "."""
    return ", ".join(_flatten_messages(errors))


def error_body(message: str, *, details: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    body.update(extra)
    return body


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """Rend toutes les erreurs DRF sous la forme {"error": ...}."""
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        response.data = error_body("Invalid input", details=validation_details(exc.detail))
    elif isinstance(exc, ServiceError):
        response.data = error_body(str(exc.detail), code=exc.get_codes(), **exc.extra)
    elif isinstance(exc, APIException):
        response.data = error_body(str(exc.detail), code=exc.get_codes())
    elif isinstance(response.data, dict) and "detail" in response.data:
        response.data = error_body(str(response.data["detail"]))

    if response.status_code >= 500:
        logger.error("Erreur serveur %s : %s", type(exc).__name__, exc)
    return response
