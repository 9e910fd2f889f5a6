"""Management command to redeliver pending entitlement grants."""

from __future__ import annotations

from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from refbonus.conf import refbonus_settings
from refbonus.services import EntitlementService


class Command(BaseCommand):
    """
    Push owed EntitlementGrant rows to the external entitlement service.

    Picks PENDING and FAILED grants that are below the attempt cap, oldest
    first, and delivers them one by one. Safe to run repeatedly (e.g. from cron).
    """

    help = (
        "Redeliver pending or failed entitlement grants to the external entitlement "
        "service. Grants that reached REFBONUS_ENTITLEMENT_MAX_ATTEMPTS are skipped."
    )

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only show the grants that would be delivered.",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=0,
            help="Limit the number of grants to process (0 = no limit).",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        dry_run: bool = options["dry_run"]
        limit: int = options["limit"]

        if not refbonus_settings.entitlement_enabled:
            self.stderr.write(
                self.style.ERROR("REFBONUS_ENTITLEMENT_URL is not set; nothing can be delivered.")
            )
            return

        if dry_run:
            count = 0
            for grant in EntitlementService.pending(limit):
                self.stdout.write(
                    f"[DRY] Deliver grant={grant.pk} uid={grant.uid!r} duration={grant.duration!r} "
                    f"attempts={grant.attempts}"
                )
                count += 1
            self.stdout.write(self.style.SUCCESS(f"Done. Would deliver: {count}."))
            return

        stats = EntitlementService.retry_pending(limit=limit)
        self.stdout.write(
            self.style.SUCCESS(f"Done. Sent: {stats['sent']}, failed: {stats['failed']}.")
        )
