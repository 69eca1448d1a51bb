from django.core.management.base import BaseCommand

from notifications.services import deliver_pending_notifications


class Command(BaseCommand):
    help = "Deliver queued notification intents and retry failed ones that are due."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of intents to process in this run.",
        )

    def handle(self, *args, **options):
        result = deliver_pending_notifications(limit=max(int(options.get("limit") or 100), 1))
        self.stdout.write(
            self.style.SUCCESS(
                f"scanned={result.scanned} sent={result.sent} "
                f"failed={result.failed} skipped={result.skipped}"
            )
        )
