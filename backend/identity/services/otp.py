"""Cycle de vie des codes OTP : émission, vérification, consommation.

Une ligne est créée à chaque émission ; les lignes précédentes ne sont ni
écrasées ni supprimées. Seule la plus récente pour un email est vérifiée.
"""
from __future__ import annotations

import logging
import secrets
import smtplib
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.crypto import constant_time_compare

from core.errors import (
    OtpAlreadyUsed,
    OtpExpired,
    OtpLocked,
    OtpMismatch,
    OtpNotFound,
    ServiceError,
)
from identity.models import ActionType, OtpFlow, OtpVerification
from identity.services.activity import record_activity

logger = logging.getLogger(__name__)

OTP_LENGTH = 6

_SUBJECTS = {
    OtpFlow.SIGNUP: "Your verification code",
    OtpFlow.FORGOT_PASSWORD: "Your password reset code",
    OtpFlow.EMAIL_CHANGE: "Confirm your email change",
}


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


def ttl_for(flow: str) -> timedelta:
    minutes = settings.OTP_TTL_MINUTES.get(flow, settings.OTP_TTL_MINUTES["signup"])
    return timedelta(minutes=minutes)


def max_attempts() -> int:
    return settings.OTP_MAX_ATTEMPTS


def _send_code(email: str, code: str, flow: str, ttl: timedelta) -> None:
    minutes = int(ttl.total_seconds() // 60)
    message = (
        f"Your verification code is {code}.\n"
        f"It expires in {minutes} minute{'s' if minutes != 1 else ''}. "
        "If you did not request it, you can ignore this email."
    )
    html_message = (
        f"<p>Your verification code is:</p><h2>{code}</h2>"
        f"<p>It expires in {minutes} minutes.</p>"
    )
    try:
        send_mail(
            subject=_SUBJECTS.get(flow, "Your verification code"),
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
            html_message=html_message,
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Envoi de l'OTP à %s impossible", email)
        raise ServiceError("Failed to send OTP email") from exc


def request_otp(email: str, flow: str = OtpFlow.SIGNUP, *, request=None) -> OtpVerification:
    """Émet un nouveau code pour `email`, l'envoie et journalise l'envoi."""
    email = email.strip().lower()
    now = timezone.now()
    ttl = ttl_for(flow)
    record = OtpVerification.objects.create(
        email=email,
        otp_code=generate_code(),
        flow=flow,
        created_at=now,
        expires_at=now + ttl,
    )
    _send_code(email, record.otp_code, flow, ttl)

    if flow == OtpFlow.FORGOT_PASSWORD:
        action_type, description = ActionType.FORGOT_PASSWORD, "Password reset code requested"
    else:
        action_type, description = ActionType.OTP_RESEND, "Verification code sent"
    record_activity(
        action_type=action_type,
        description=description,
        metadata={"email": email, "flow": flow},
        module="auth",
        target=email,
        request=request,
    )
    logger.info("OTP %s émis pour %s", flow, email)
    return record


def latest_otp(email: str) -> Optional[OtpVerification]:
    return (
        OtpVerification.objects.filter(email__iexact=email.strip())
        .order_by("-created_at")
        .first()
    )


def verify_otp(email: str, code: str, *, now=None) -> OtpVerification:
    """Vérifie `code` contre la ligne la plus récente de `email`.

    Ordre des contrôles : absence, expiration, verrouillage, comparaison.
    Un échec de comparaison incrémente `attempts` de façon atomique et cet
    incrément est conservé même si l'appel échoue.
    """
    now = now or timezone.now()
    mismatch: Optional[OtpMismatch] = None
    with transaction.atomic():
        record = (
            OtpVerification.objects.select_for_update()
            .filter(email__iexact=email.strip())
            .order_by("-created_at")
            .first()
        )
        if record is None:
            raise OtpNotFound()
        if now > record.expires_at:
            raise OtpExpired()
        limit = max_attempts()
        if record.attempts >= limit:
            logger.warning("OTP verrouillé pour %s", record.email)
            raise OtpLocked()
        if not constant_time_compare(record.otp_code, str(code).strip()):
            OtpVerification.objects.filter(pk=record.pk).update(
                attempts=F("attempts") + 1
            )
            mismatch = OtpMismatch(max(0, limit - (record.attempts + 1)))
        elif not record.verified:
            record.verified = True
            record.save(update_fields=["verified"])
    if mismatch is not None:
        raise mismatch
    return record


def ensure_unconsumed(record: OtpVerification) -> None:
    if record.consumed_at is not None:
        raise OtpAlreadyUsed()


def consume(record: OtpVerification) -> None:
    """Marque le code comme consommé ; à appeler dans la transaction du flux."""
    updated = OtpVerification.objects.filter(
        pk=record.pk, consumed_at__isnull=True
    ).update(consumed_at=timezone.now())
    if not updated:
        raise OtpAlreadyUsed()
    record.consumed_at = timezone.now()


def purge_expired(*, before=None) -> int:
    """Supprime les codes expirés ; retourne le nombre de lignes supprimées."""
    before = before or timezone.now()
    deleted, _ = OtpVerification.objects.filter(expires_at__lt=before).delete()
    return deleted
