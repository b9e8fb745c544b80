from __future__ import annotations

import os

from django.core.management.base import BaseCommand, CommandError

from core.rbac.session import invalidate_session_cache
from identity.seed import seed_permissions, seed_super_admin


class Command(BaseCommand):
    help = "Crée le catalogue de permissions, les octrois par défaut et un super_admin."

    def add_arguments(self, parser) -> None:
        parser.add_argument("--admin-email", default=os.getenv("SUPER_ADMIN_EMAIL"))
        parser.add_argument("--admin-password", default=os.getenv("SUPER_ADMIN_PASSWORD"))
        parser.add_argument("--admin-name", default=os.getenv("SUPER_ADMIN_NAME"))

    def handle(self, *args, **options) -> None:
        permissions, grants = seed_permissions()
        invalidate_session_cache()
        self.stdout.write(
            self.style.SUCCESS(
                f"Catalogue RBAC : {permissions} permission(s), {grants} octroi(s) créés."
            )
        )

        email = options.get("admin_email")
        if not email:
            return
        password = options.get("admin_password")
        if not password:
            raise CommandError("--admin-password est requis avec --admin-email.")
        user = seed_super_admin(
            email=email, password=password, full_name=options.get("admin_name")
        )
        invalidate_session_cache(user.pk)
        self.stdout.write(self.style.SUCCESS(f"super_admin prêt : {user.email}"))
