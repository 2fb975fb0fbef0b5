"""
Management command to distribute pending orders to online callers.
Meant to be scheduled (cron) every few minutes during working hours.
"""
from django.core.management.base import BaseCommand
from backend.orders.distribution import auto_distribute_orders


class Command(BaseCommand):
    help = "Distributes pending unassigned orders among online callers"

    def handle(self, *args, **options):
        result = auto_distribute_orders()
        if result.get('skipped'):
            self.stdout.write(self.style.WARNING(result['message']))
            return
        self.stdout.write(self.style.SUCCESS(result['message']))
        if result['distributed']:
            self.stdout.write(f"Online callers: {result['online_callers']}")
            self.stdout.write(f"Orders per caller: {result['orders_per_caller']}")
            self.stdout.write(f"Remainder to top performer: {result['remainder']}")
