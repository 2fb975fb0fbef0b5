"""
Management command to import clients from a CSV file
"""
import os
from django.core.management.base import BaseCommand, CommandError
from backend.clients.csv_import import import_clients


class Command(BaseCommand):
    help = "Imports clients from a CSV file (separator and headers are detected)"

    def add_arguments(self, parser):
        parser.add_argument('csv_file', type=str, help='Path to the CSV file')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate and report without creating clients',
        )
        parser.add_argument(
            '--campaign-group',
            type=str,
            default='',
            help='Campaign group assigned to the imported clients (e.g. Group-C-3)',
        )

    def handle(self, *args, **options):
        csv_file = options['csv_file']
        if not os.path.exists(csv_file):
            raise CommandError(f"CSV file not found at {csv_file}")

        with open(csv_file, 'r', encoding='utf-8-sig') as f:
            content = f.read()

        self.stdout.write(self.style.SUCCESS("=" * 60))
        self.stdout.write(self.style.SUCCESS("IMPORTING CLIENTS FROM CSV"))
        self.stdout.write(self.style.SUCCESS("=" * 60))
        self.stdout.write(f"CSV File: {csv_file}")

        summary = import_clients(content, dry_run=options['dry_run'], campaign_group=options['campaign_group'])

        for row in summary['invalid']:
            self.stdout.write(self.style.WARNING(f"  Row {row['row']}: {row['error']}"))
        for duplicate in summary['duplicates']:
            rows = ', '.join(str(r) for r in duplicate['rows'])
            self.stdout.write(self.style.WARNING(f"  Phone {duplicate['phone']} repeated on rows {rows}"))

        self.stdout.write(f"Valid rows: {summary['valid']}")
        self.stdout.write(f"Invalid rows: {len(summary['invalid'])}")
        self.stdout.write(f"Already in database: {summary['existing']}")
        if summary['dry_run']:
            self.stdout.write(self.style.WARNING(f"Dry run: {summary['to_create']} clients would be created"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Created: {summary['created']} clients"))
