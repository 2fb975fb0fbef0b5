"""
Management command to reset the per-day delivery counters.
Schedule it at midnight (cron or a task scheduler).
"""
from django.core.management.base import BaseCommand
from backend.delivery.dispatch import reset_daily_counters


class Command(BaseCommand):
    help = "Resets daily_deliveries and daily_amount for every delivery person"

    def handle(self, *args, **options):
        updated = reset_daily_counters()
        self.stdout.write(self.style.SUCCESS(f"Daily counters reset for {updated} delivery persons"))
