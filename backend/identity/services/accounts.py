"""Flux composés déclenchés par un OTP : inscription, mot de passe oublié,
changement d'email.

Chaque flux vérifie d'abord le code (l'incrément des tentatives est validé
immédiatement), puis applique ses effets et consomme le code dans une seule
transaction.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q

from core.errors import Conflict, Forbidden, InvalidInput, RecordNotFound
from core.rbac.roles import DEFAULT_ROLE
from identity.models import (
    ActionType,
    EmailChangeRequest,
    EmailChangeStatus,
    OtpFlow,
    Profile,
    SignupMethod,
    UserRoleAssignment,
)
from identity.services import otp
from identity.services.activity import notify, record_activity

logger = logging.getLogger(__name__)


def find_user_by_email(email: str):
    return get_user_model().objects.filter(email__iexact=email.strip()).first()


def email_in_use(email: str, *, exclude_user_id=None) -> bool:
    users = get_user_model().objects.filter(
        Q(email__iexact=email) | Q(username__iexact=email)
    )
    profiles = Profile.objects.filter(email__iexact=email)
    if exclude_user_id is not None:
        users = users.exclude(pk=exclude_user_id)
        profiles = profiles.exclude(user_id=exclude_user_id)
    return users.exists() or profiles.exists()


def complete_signup(
    *, email: str, code: str, password: str, full_name: Optional[str] = None, request=None
):
    """Vérifie le code puis crée (ou met à jour) l'identité et son profil.

    Un compte désactivé par un administrateur n'est jamais réactivé ici.
    """
    record = otp.verify_otp(email, code)
    otp.ensure_unconsumed(record)
    email = email.strip().lower()

    user_model = get_user_model()
    user = find_user_by_email(email)
    if user is None:
        if user_model.objects.filter(username__iexact=email).exists():
            raise Conflict("This email is already in use by another account")
    elif not user.is_active or Profile.objects.filter(user=user, is_active=False).exists():
        raise Forbidden("Account is deactivated")

    with transaction.atomic():
        otp.consume(record)
        if user is None:
            user = user_model(username=email, email=email)
        user.set_password(password)
        user.save()

        name = (full_name or "").strip() or email.split("@")[0]
        Profile.objects.update_or_create(
            user=user,
            defaults={
                "full_name": name[:100],
                "email": email,
                "signup_method": SignupMethod.MANUAL,
                "password_set": True,
                "email_verified": True,
            },
        )
        UserRoleAssignment.objects.get_or_create(user=user, defaults={"role": DEFAULT_ROLE})
        record_activity(
            user=user,
            performed_by=user,
            action_type=ActionType.SIGNUP,
            description="User signed up with email verification",
            metadata={"email": email, "signup_method": SignupMethod.MANUAL},
            target=email,
            request=request,
        )
    logger.info("Inscription terminée pour %s", email)
    return user


def confirm_otp(email: str, code: str) -> None:
    """Vérification simple, sans effet de bord autre que l'état du code."""
    otp.verify_otp(email, code)


def reset_password(*, email: str, code: str, password: str, request=None):
    """Revérifie le code de réinitialisation puis remplace le mot de passe."""
    record = otp.verify_otp(email, code)
    otp.ensure_unconsumed(record)
    user = find_user_by_email(email)
    if user is None:
        raise InvalidInput("User not found")

    with transaction.atomic():
        otp.consume(record)
        user.set_password(password)
        user.save(update_fields=["password"])
        Profile.objects.filter(user=user).update(password_set=True)
        record_activity(
            user=user,
            performed_by=user,
            action_type=ActionType.PASSWORD_RESET,
            description="Password reset via OTP",
            metadata={"email": user.email, "reset_method": "otp"},
            target=user.email,
            request=request,
        )
    return user


def apply_email_change(*, user, old_email: str, new_email: str, performed_by=None, request=None):
    """Remplace l'email de l'identité et du profil, puis journalise et notifie."""
    new_email = new_email.strip().lower()
    if email_in_use(new_email, exclude_user_id=user.pk):
        raise Conflict("This email is already in use by another account")

    with transaction.atomic():
        if user.get_username().lower() == (user.email or "").lower():
            user.username = new_email
        user.email = new_email
        user.save(update_fields=["username", "email"])
        Profile.objects.filter(user=user).update(email=new_email, email_verified=True)
        record_activity(
            user=user,
            performed_by=performed_by or user,
            action_type=ActionType.EMAIL_CHANGED,
            description=f"Email changed from {old_email} to {new_email}",
            metadata={"old_email": old_email, "new_email": new_email},
            module="profile",
            target=new_email,
            request=request,
        )
        notify(
            user,
            type="info",
            title="Email updated",
            message=f"Your email address has been changed to {new_email}.",
        )
    return user


def start_email_change(*, user, new_email: str, request=None) -> EmailChangeRequest:
    """Ouvre une demande et envoie un code à l'adresse actuelle."""
    new_email = new_email.strip().lower()
    current_email = (user.email or "").lower()
    if new_email == current_email:
        raise InvalidInput("New email must be different from the current email")
    if email_in_use(new_email, exclude_user_id=user.pk):
        raise Conflict("This email is already in use by another account")

    with transaction.atomic():
        EmailChangeRequest.objects.filter(
            user=user,
            status__in=(EmailChangeStatus.PENDING_CURRENT, EmailChangeStatus.PENDING_NEW),
        ).update(status=EmailChangeStatus.CANCELLED)
        change = EmailChangeRequest.objects.create(
            user=user, current_email=current_email, new_email=new_email
        )
    otp.request_otp(current_email, OtpFlow.EMAIL_CHANGE, request=request)
    return change


def _pending_change(user, status: str) -> EmailChangeRequest:
    change = (
        EmailChangeRequest.objects.filter(user=user, status=status)
        .order_by("-created_at")
        .first()
    )
    if change is None:
        raise RecordNotFound("No pending email change request")
    return change


def confirm_current_email(*, user, code: str, request=None) -> EmailChangeRequest:
    """Valide le code de l'adresse actuelle ; n'altère jamais l'email du profil."""
    change = _pending_change(user, EmailChangeStatus.PENDING_CURRENT)
    record = otp.verify_otp(change.current_email, code)
    otp.ensure_unconsumed(record)
    with transaction.atomic():
        otp.consume(record)
        change.status = EmailChangeStatus.PENDING_NEW
        change.save(update_fields=["status", "updated_at"])
    otp.request_otp(change.new_email, OtpFlow.EMAIL_CHANGE, request=request)
    return change


def confirm_new_email(*, user, code: str, request=None) -> EmailChangeRequest:
    """Valide le code de la nouvelle adresse et applique le changement."""
    change = _pending_change(user, EmailChangeStatus.PENDING_NEW)
    record = otp.verify_otp(change.new_email, code)
    otp.ensure_unconsumed(record)
    with transaction.atomic():
        otp.consume(record)
        apply_email_change(
            user=user,
            old_email=change.current_email,
            new_email=change.new_email,
            performed_by=user,
            request=request,
        )
        change.status = EmailChangeStatus.COMPLETED
        change.save(update_fields=["status", "updated_at"])
    return change


def users_matching(search_by: str, value: str):
    value = value.strip()
    if search_by == "phone":
        return Profile.objects.filter(contact_number=value)
    if search_by == "name":
        return Profile.objects.filter(full_name__icontains=value)
    raise InvalidInput("Invalid search type")


def recover_email(*, search_by: str, value: str, request=None) -> str:
    """Retrouve l'email d'un compte par téléphone ou par nom."""
    profile = users_matching(search_by, value).order_by("created_at").first()
    if profile is None:
        raise RecordNotFound("No account found")
    record_activity(
        user=profile.user,
        action_type=ActionType.FORGOT_EMAIL,
        description=f"Email lookup by {search_by}",
        metadata={"search_by": search_by},
        target=profile.email,
        request=request,
    )
    return profile.email


def lookup_account(email: str) -> dict:
    """Résumé public d'un compte pour l'écran de connexion."""
    profile = (
        Profile.objects.select_related("user")
        .filter(Q(email__iexact=email.strip()) | Q(user__email__iexact=email.strip()))
        .first()
    )
    if profile is None:
        return {"exists": False}
    return {
        "exists": True,
        "userId": profile.user_id,
        "fullName": profile.full_name,
        "signupMethod": profile.signup_method,
        "isActive": profile.is_active,
    }
