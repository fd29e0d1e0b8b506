import datetime

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from clinic.services.booking import build_booking_service


class Command(BaseCommand):
    help = "Mark SCHEDULED/CONFIRMED appointments whose start time has passed as NO_SHOW."

    def add_arguments(self, parser):
        parser.add_argument(
            "--date",
            help="Only appointments strictly before this day (YYYY-MM-DD). Defaults to now in TIME_ZONE.",
        )

    def handle(self, *args, **opts):
        if opts.get("date"):
            try:
                day = datetime.date.fromisoformat(opts["date"])
            except ValueError:
                raise CommandError(f"Invalid --date {opts['date']!r}, expected YYYY-MM-DD.") from None
            cutoff_time = None
        else:
            now = timezone.localtime()
            day, cutoff_time = now.date(), now.time().replace(second=0, microsecond=0)

        marked = build_booking_service().sweep_no_shows(day, cutoff_time)
        self.stdout.write(self.style.SUCCESS(f"Marked {len(marked)} appointment(s) as NO_SHOW."))
