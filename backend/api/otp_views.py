from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response

from identity.services import accounts, otp

from .permissions import SessionPermission
from .serializers import (
    EmailChangeStartSerializer,
    OtpCodeSerializer,
    OtpOnlySerializer,
    ResetPasswordOtpSerializer,
    SendOtpSerializer,
    VerifyOtpSerializer,
)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def send_otp(request: Request) -> Response:
    """POST /api/send-otp/ : émet un code pour {email, flow}."""
    serializer = SendOtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    record = otp.request_otp(data["email"], data["flow"], request=request)
    return Response(
        {
            "success": True,
            "message": "OTP sent successfully",
            "expiresAt": record.expires_at.isoformat(),
        },
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def verify_otp(request: Request) -> Response:
    """POST /api/verify-otp/ : vérifie le code ; avec `password`, termine l'inscription."""
    serializer = VerifyOtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    if not data.get("password"):
        accounts.confirm_otp(data["email"], data["otp"])
        return Response(
            {"success": True, "message": "OTP verified successfully"},
            status=status.HTTP_200_OK,
        )

    user = accounts.complete_signup(
        email=data["email"],
        code=data["otp"],
        password=data["password"],
        full_name=data.get("fullName"),
        request=request,
    )
    return Response(
        {
            "success": True,
            "message": "Account created successfully",
            "userId": user.pk,
        },
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def verify_otp_forgot(request: Request) -> Response:
    """POST /api/verify-otp-forgot/ : première étape du mot de passe oublié."""
    serializer = OtpOnlySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    accounts.confirm_otp(
        serializer.validated_data["email"], serializer.validated_data["otp"]
    )
    return Response(
        {"success": True, "message": "OTP verified successfully"},
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def reset_password_otp(request: Request) -> Response:
    """POST /api/reset-password-otp/ : remplace le mot de passe après OTP."""
    serializer = ResetPasswordOtpSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    accounts.reset_password(
        email=data["email"], code=data["otp"], password=data["password"], request=request
    )
    return Response(
        {"success": True, "message": "Password reset successfully"},
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@permission_classes([SessionPermission])
def email_change_request(request: Request) -> Response:
    """POST /api/email-change/request/ : code envoyé à l'adresse actuelle."""
    serializer = EmailChangeStartSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    change = accounts.start_email_change(
        user=request.session_context.user,
        new_email=serializer.validated_data["newEmail"],
        request=request,
    )
    return Response(
        {"success": True, "status": change.status, "sentTo": change.current_email},
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@permission_classes([SessionPermission])
def email_change_verify_current(request: Request) -> Response:
    """POST /api/email-change/verify-current/ : code de l'adresse actuelle."""
    serializer = OtpCodeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    change = accounts.confirm_current_email(
        user=request.session_context.user,
        code=serializer.validated_data["otp"],
        request=request,
    )
    return Response(
        {"success": True, "status": change.status, "sentTo": change.new_email},
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@permission_classes([SessionPermission])
def email_change_verify_new(request: Request) -> Response:
    """POST /api/email-change/verify-new/ : code de la nouvelle adresse."""
    serializer = OtpCodeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    change = accounts.confirm_new_email(
        user=request.session_context.user,
        code=serializer.validated_data["otp"],
        request=request,
    )
    return Response(
        {"success": True, "status": change.status, "email": change.new_email},
        status=status.HTTP_200_OK,
    )

