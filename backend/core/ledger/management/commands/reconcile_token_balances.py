from django.core.management.base import BaseCommand, CommandError

from accounts.models import City
from ledger.services import reconcile_balances


class Command(BaseCommand):
    help = (
        "Verify that every cached token balance equals the sum of its completed ledger "
        "entries. Default is dry-run."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--city",
            default=None,
            help="City code to reconcile. All cities when omitted.",
        )
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Rewrite diverging cached balances from the ledger.",
        )
        parser.add_argument(
            "--fail-on-drift",
            action="store_true",
            help="Exit with an error when any divergence is found.",
        )

    def handle(self, *args, **options):
        city = None
        city_code = options.get("city")
        if city_code:
            city = City.objects.filter(code=city_code.strip().lower()).first()
            if city is None:
                raise CommandError(f"Unknown city '{city_code}'.")

        result = reconcile_balances(city=city, apply_changes=options.get("apply", False))
        mode = "APPLY" if options.get("apply") else "DRY-RUN"
        for divergence in result.divergences:
            self.stdout.write(
                f"user_id={divergence.user_id} username={divergence.username} "
                f"cached={divergence.cached_balance} ledger={divergence.ledger_balance}"
            )

        summary = (
            f"[{mode}] scanned={result.scanned} divergences={len(result.divergences)} "
            f"repaired={result.repaired}"
        )
        if result.divergences and options.get("fail_on_drift"):
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
