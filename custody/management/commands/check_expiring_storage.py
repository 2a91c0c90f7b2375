from django.core.management.base import BaseCommand

from custody.workflows.expiry_scanner import sweep_expiring_storage


class Command(BaseCommand):
    help = "Notify requesters about stored samples close to expiry"

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Lookahead window in days (defaults to STORAGE_EXPIRY_LOOKAHEAD_DAYS)",
        )

    def handle(self, *args, **options):
        summary = sweep_expiring_storage(days=options["days"])
        self.stdout.write(
            self.style.SUCCESS(
                "Expiring: {expiring}, requesters: {requesters}, "
                "notified: {notified}, failed: {failed}".format(**summary)
            )
        )
