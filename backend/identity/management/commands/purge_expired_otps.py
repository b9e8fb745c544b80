from __future__ import annotations

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from identity.services.otp import purge_expired


class Command(BaseCommand):
    help = "Supprime les codes OTP expirés."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--grace-minutes",
            type=int,
            default=0,
            help="Conserver les codes expirés depuis moins de N minutes.",
        )

    def handle(self, *args, **options) -> None:
        cutoff = timezone.now() - timedelta(minutes=options["grace_minutes"])
        deleted = purge_expired(before=cutoff)
        self.stdout.write(self.style.SUCCESS(f"{deleted} code(s) OTP supprimé(s)."))
