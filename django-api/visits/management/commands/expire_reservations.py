"""Release reservations whose visit date passed without a check-in."""

import logging
from datetime import date

from django.core.management.base import BaseCommand
from django.utils import timezone

from visits.services import django_services

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Release capacity held by reserved slots dated before today."

    def add_arguments(self, parser):
        parser.add_argument(
            "--today",
            help="Treat this ISO date as today (defaults to the local date).",
        )

    def handle(self, *args, **options):
        today = timezone.localdate()
        if options["today"]:
            today = date.fromisoformat(options["today"])
        expired = django_services().allocator.expire_stale(today)
        logger.info("expire_reservations released %s reservations", len(expired))
        self.stdout.write(f"Released {len(expired)} stale reservations")
