import time

from django.core.management.base import BaseCommand, CommandError

from api.db import get_db
from api.errors import StoreError
from api.inventory import WatchlistMatcher
from api.notifications import WatchlistAlerter


class Command(BaseCommand):
    help = (
        "Watch hospital inventory and alert seekers whose watchlist entries become available. "
        "Follows watchlist changes and runs until interrupted."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--user",
            action="append",
            default=[],
            help="Only watch for this seeker id (repeatable).",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Deliver the current matches, then unsubscribe and exit.",
        )
        parser.add_argument(
            "--tick",
            type=float,
            default=1.0,
            help="Seconds between liveness checks while running. Default: 1.0",
        )

    def handle(self, *args, **options):
        store = get_db()
        matcher = WatchlistMatcher(store, lambda seeker_id: WatchlistAlerter(store, seeker_id), options["user"])
        try:
            matcher.start()
        except StoreError as exc:
            raise CommandError(f"Could not load watchlists: {exc}") from exc

        try:
            if not matcher.watches:
                self.stdout.write(self.style.WARNING("No active watchlist entries; nothing to watch yet."))
            for seeker_id, watch in sorted(matcher.watches.items()):
                self.stdout.write(f"Watching {len(watch.watchlist)} watchlist item(s) for seeker {seeker_id}")

            if options["once"]:
                return

            self.stdout.write(self.style.SUCCESS("Matcher running. Ctrl+C to stop."))
            while True:
                time.sleep(options["tick"])
        except KeyboardInterrupt:
            self.stdout.write("Stopping matcher")
        finally:
            closed = matcher.close()
            self.stdout.write(self.style.SUCCESS(f"Closed {closed} seeker watch(es)."))
