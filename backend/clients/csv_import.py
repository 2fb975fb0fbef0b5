"""
Client CSV import with separator detection and header aliases
"""
import csv
import io
import logging

from django.db import transaction

from backend.core.cache_signals import suspend_cache_signals
from backend.core.cache_utils import invalidate_segments_cache
from .models import Client
from .phone import normalize_phone

logger = logging.getLogger(__name__)

# CSV header (lowercased) -> Client field
COLUMN_ALIASES = {
    'nom': 'full_name',
    'name': 'full_name',
    'full_name': 'full_name',
    'fullname': 'full_name',
    'nom_complet': 'full_name',
    'client': 'full_name',
    'nom client': 'full_name',
    'nom du client': 'full_name',

    'telephone': 'phone',
    'téléphone': 'phone',
    'phone': 'phone',
    'tel': 'phone',
    'mobile': 'phone',
    'numero': 'phone',
    'numéro': 'phone',
    'contact': 'phone',

    'ville': 'city',
    'city': 'city',
    'localite': 'city',
    'localité': 'city',

    'zone': 'zone',
    'quartier': 'zone',
    'commune': 'zone',
    'secteur': 'zone',

    'adresse': 'address',
    'address': 'address',
    'lieu': 'address',

    'notes': 'notes',
    'note': 'notes',
    'commentaire': 'notes',
    'commentaires': 'notes',
    'remarque': 'notes',
    'observation': 'notes',
}

OPTIONAL_FIELDS = ['city', 'zone', 'address', 'notes']


def detect_separator(first_line):
    """Tab if it dominates, otherwise whichever of ';' and ',' is more frequent"""
    semicolons = first_line.count(';')
    commas = first_line.count(',')
    tabs = first_line.count('\t')
    if tabs > semicolons and tabs > commas:
        return '\t'
    return ';' if semicolons > commas else ','


def map_columns(headers):
    """Map column index -> Client field for recognised headers"""
    mapping = {}
    for index, header in enumerate(headers):
        normalized = header.lower().strip().replace('"', '').replace("'", '')
        field = COLUMN_ALIASES.get(normalized)
        if field:
            mapping[index] = field
    return mapping


def parse_clients_csv(content):
    """
    Parse and validate CSV content.

    Returns a dict with ``valid`` (client dicts, phone normalized),
    ``invalid`` (row number, raw data, error) and ``duplicates``
    (phones appearing on several rows of the file).
    """
    content = content.lstrip('\ufeff')
    lines = [line for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        return {'valid': [], 'invalid': [], 'duplicates': []}

    separator = detect_separator(lines[0])
    rows = list(csv.reader(io.StringIO('\n'.join(lines)), delimiter=separator, skipinitialspace=True))
    headers = [h.strip() for h in rows[0]]
    mapping = map_columns(headers)

    mapped_fields = set(mapping.values())
    if 'full_name' not in mapped_fields or 'phone' not in mapped_fields:
        return {
            'valid': [],
            'invalid': [{
                'row': 0,
                'data': {'headers': ', '.join(headers)},
                'error': 'Missing required columns: name and phone',
            }],
            'duplicates': [],
        }

    valid = []
    invalid = []
    rows_by_phone = {}

    for row_number, values in enumerate(rows[1:], start=2):
        raw = {header: (values[idx].strip() if idx < len(values) else '') for idx, header in enumerate(headers)}
        record = {}
        for idx, field in mapping.items():
            value = values[idx].strip() if idx < len(values) else ''
            if value:
                record[field] = value

        if not record.get('full_name'):
            invalid.append({'row': row_number, 'data': raw, 'error': 'Missing name'})
            continue
        if not record.get('phone'):
            invalid.append({'row': row_number, 'data': raw, 'error': 'Missing phone'})
            continue

        phone = normalize_phone(record['phone'])
        if not phone:
            invalid.append({'row': row_number, 'data': raw, 'error': f"Invalid phone: {record['phone']}"})
            continue

        rows_by_phone.setdefault(phone, []).append(row_number)
        client = {'full_name': record['full_name'], 'phone': phone}
        for field in OPTIONAL_FIELDS:
            client[field] = record.get(field, '')
        valid.append(client)

    duplicates = [
        {'phone': phone, 'rows': row_numbers}
        for phone, row_numbers in rows_by_phone.items()
        if len(row_numbers) > 1
    ]
    return {'valid': valid, 'invalid': invalid, 'duplicates': duplicates}


def import_clients(content, dry_run=False, campaign_group=''):
    """
    Import clients from CSV content.

    Phones already in the database are skipped, as are later rows
    repeating a phone seen earlier in the file.
    """
    parsed = parse_clients_csv(content)

    seen = set()
    candidates = []
    for client in parsed['valid']:
        if client['phone'] in seen:
            continue
        seen.add(client['phone'])
        candidates.append(client)

    existing = set(
        Client.objects.filter(phone__in=[c['phone'] for c in candidates]).values_list('phone', flat=True)
    )
    to_create = [c for c in candidates if c['phone'] not in existing]

    summary = {
        'total_rows': len(parsed['valid']) + len(parsed['invalid']),
        'valid': len(parsed['valid']),
        'invalid': parsed['invalid'],
        'duplicates': parsed['duplicates'],
        'existing': len(existing),
        'to_create': len(to_create),
        'created': 0,
        'dry_run': dry_run,
        'preview': to_create[:10],
    }
    if dry_run or not to_create:
        return summary

    with suspend_cache_signals(), transaction.atomic():
        created = Client.objects.bulk_create([
            Client(campaign_group=campaign_group, **client) for client in to_create
        ])
    invalidate_segments_cache()

    summary['created'] = len(created)
    logger.info(f"Client import: {len(created)} created, {len(existing)} existing skipped, {len(parsed['invalid'])} invalid rows")
    return summary
