from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import DatabaseError, transaction

from core.middleware import client_ip
from identity.models import ActivityLog, Notification

logger = logging.getLogger(__name__)


def record_activity(
    *,
    action_type: str,
    description: str,
    user=None,
    performed_by=None,
    metadata: Optional[Dict[str, Any]] = None,
    module: str = "auth",
    target: str = "",
    status: str = "success",
    request=None,
) -> Optional[ActivityLog]:
    """Ajoute une ligne au journal d'activité, sans jamais lever.

    L'écriture se fait dans un savepoint : appelée depuis une transaction,
    un échec ne l'invalide pas.
    """
    try:
        with transaction.atomic():
            return ActivityLog.objects.create(
                user=user,
                performed_by=performed_by,
                action_type=action_type,
                description=description,
                metadata=metadata or {},
                module=module,
                target=target or "",
                status=status,
                ip_address=client_ip(request) if request is not None else None,
            )
    except DatabaseError:
        logger.exception("Journal d'activité non écrit (%s)", action_type)
        return None


def notify(user, *, title: str, message: str, type: str = "info") -> Optional[Notification]:
    """Crée une notification in-app, sans jamais lever."""
    try:
        with transaction.atomic():
            return Notification.objects.create(
                user=user, type=type, title=title, message=message
            )
    except DatabaseError:
        logger.exception("Notification non créée pour %s", getattr(user, "pk", user))
        return None
