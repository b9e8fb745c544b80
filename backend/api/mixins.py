from __future__ import annotations

from typing import Optional

from django.db.models import QuerySet


class OwnRecordsMixin:
    """Restreint un queryset aux lignes de l'appelant, sauf permission de lecture globale.

    Les vues déclarent `owner_field` et, optionnellement, `global_permission`
    sous la forme (module, action).
    """

    owner_field = "user"
    global_permission: Optional[tuple] = None

    def filter_for_caller(self, queryset: QuerySet) -> QuerySet:
        context = getattr(self.request, "session_context", None)
        if context is None or context.user is None:
            return queryset.none()
        if self.global_permission and context.gate.has_permission(*self.global_permission):
            return queryset
        return queryset.filter(**{self.owner_field: context.user})
