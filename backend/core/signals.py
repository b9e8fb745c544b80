from __future__ import annotations

import logging
import smtplib

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db.models.signals import post_save
from django.dispatch import receiver

from core.rbac.roles import DEFAULT_ROLE
from identity.models import Notification, Profile, UserRoleAssignment, UserSettings

logger = logging.getLogger(__name__)


@receiver(post_save, sender=get_user_model())
def provision_account_records(sender, instance, created: bool, **kwargs) -> None:
    """Crée profil, rôle par défaut et préférences pour toute nouvelle identité."""
    if not created or kwargs.get("raw"):
        return
    email = instance.email or instance.get_username()
    Profile.objects.get_or_create(
        user=instance,
        defaults={
            "full_name": (instance.get_full_name() or email.split("@")[0])[:100],
            "email": email,
        },
    )
    UserRoleAssignment.objects.get_or_create(
        user=instance, defaults={"role": DEFAULT_ROLE}
    )
    UserSettings.objects.get_or_create(user=instance)


@receiver(post_save, sender=Notification)
def email_notification(sender, instance: Notification, created: bool, **kwargs) -> None:
    """Relaye la notification par email si l'utilisateur l'a activé."""
    if not created or kwargs.get("raw"):
        return
    prefs = UserSettings.objects.filter(user_id=instance.user_id).first()
    if prefs is None or not prefs.email_notifications:
        return
    recipient = (
        Profile.objects.filter(user_id=instance.user_id)
        .values_list("email", flat=True)
        .first()
    )
    if not recipient:
        return
    try:
        send_mail(
            subject=instance.title,
            message=instance.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError):
        logger.exception("Envoi de la notification %s impossible", instance.pk)
