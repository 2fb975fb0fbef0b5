"""
Test suite for Clients module
Tests: Phone normalization, client CRUD, CSV import, campaign segments
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.clients.csv_import import parse_clients_csv, import_clients, detect_separator
from backend.clients.models import Client
from backend.clients.phone import normalize_phone, format_phone, phone_validation_error
from backend.clients.segmentation import (
    client_activity, matches_segment, compute_segments, get_clients_for_segment, estimate_recipients
)
from backend.core.permissions import ROLE_CALLER, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class PhoneTests(TestCase):
    """Test phone normalization"""

    def test_accepted_formats(self):
        for raw in ['0102030405', '+225 0102030405', '00225 01 02 03 04 05', '225-01-02-03-04-05']:
            self.assertEqual(normalize_phone(raw), '0102030405', raw)

    def test_invalid_prefix(self):
        self.assertEqual(normalize_phone('0902030405'), '')
        self.assertIn('Invalid prefix', phone_validation_error('0902030405'))

    def test_wrong_length(self):
        self.assertIn('10 digits', phone_validation_error('01020304'))

    def test_format_phone(self):
        self.assertEqual(format_phone('0707070707'), '07 07 07 07 07')
        self.assertEqual(format_phone('abc'), 'abc')


class ClientApiTests(TestCase):
    """Test client endpoints"""

    def setUp(self):
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.caller)

    def test_create_client_normalizes_phone(self):
        response = self.client.post('/api/v1/clients/', {'full_name': 'Koffi Yao', 'phone': '+225 07 11 22 33 44'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['phone'], '0711223344')
        self.assertEqual(response.data['phone_display'], '07 11 22 33 44')

    def test_duplicate_phone_rejected_after_normalization(self):
        TestDataFactory.create_client(phone='0711223344')
        response = self.client.post('/api/v1/clients/', {'full_name': 'Other', 'phone': '00225 0711223344'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_search_by_phone(self):
        TestDataFactory.create_client(full_name='Adjoua', phone='0511111111')
        TestDataFactory.create_client(full_name='Bamba', phone='0522222222')
        response = self.client.get('/api/v1/clients/', {'search': '05111'})
        self.assertEqual([c['full_name'] for c in response.data], ['Adjoua'])

    def test_caller_cannot_delete(self):
        client = TestDataFactory.create_client()
        response = self.client.delete(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_client_with_orders_not_deleted(self):
        client = TestDataFactory.create_client()
        TestDataFactory.create_order(client=client)
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_SUPERVISOR))
        response = self.client.delete(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_client_orders_history(self):
        client = TestDataFactory.create_client()
        TestDataFactory.create_order(client=client)
        TestDataFactory.create_order(client=client)
        response = self.client.get(f'/api/v1/clients/{client.id}/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['orders']), 2)


class CsvImportTests(TestCase):
    """Test CSV parsing and import"""

    CSV = "Nom;Téléphone;Ville\nAwa Kone;07 01 02 03 04;Abidjan\nJean;12345;Bouaké\n;0505050505;Yamoussoukro\nAwa bis;+2250701020304;Abidjan\n"

    def test_detect_separator(self):
        self.assertEqual(detect_separator('a;b;c'), ';')
        self.assertEqual(detect_separator('a,b,c'), ',')
        self.assertEqual(detect_separator('a\tb\tc'), '\t')

    def test_parse_reports_invalid_and_duplicates(self):
        parsed = parse_clients_csv(self.CSV)
        self.assertEqual(len(parsed['valid']), 2)
        self.assertEqual([row['row'] for row in parsed['invalid']], [3, 4])
        self.assertEqual(parsed['duplicates'], [{'phone': '0701020304', 'rows': [2, 5]}])

    def test_missing_required_columns(self):
        parsed = parse_clients_csv("ville,zone\nAbidjan,Cocody\n")
        self.assertEqual(parsed['invalid'][0]['row'], 0)

    def test_dry_run_creates_nothing(self):
        summary = import_clients(self.CSV, dry_run=True)
        self.assertEqual(summary['to_create'], 1)
        self.assertEqual(Client.objects.count(), 0)

    def test_import_skips_existing_phones(self):
        TestDataFactory.create_client(phone='0701020304')
        summary = import_clients("name,phone\nNew One,0101010101\nKnown,0701020304\n", campaign_group='Group-C-1')
        self.assertEqual(summary['created'], 1)
        self.assertEqual(summary['existing'], 1)
        self.assertEqual(Client.objects.get(phone='0101010101').campaign_group, 'Group-C-1')

    def test_import_endpoint(self):
        api = AuthenticatedAPIClient()
        api.authenticate_user(TestDataFactory.create_user(role=ROLE_SUPERVISOR))
        response = api.post('/api/v1/clients/import/', {'content': "name,phone\nNew One,0101010101\n"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created'], 1)


class SegmentationTests(TestCase):
    """Test campaign segments"""

    def setUp(self):
        cache.clear()
        self.now = timezone.now()
        self.product = TestDataFactory.create_product(name='Moringa')
        self.loyal = TestDataFactory.create_client(full_name='Loyal')
        for _ in range(3):
            TestDataFactory.create_order(client=self.loyal, product=self.product, status='delivered')
        self.canceller = TestDataFactory.create_client(full_name='Canceller', campaign_group='Group-C-2')
        TestDataFactory.create_order(client=self.canceller, product=self.product, status='cancelled')
        self.dormant = TestDataFactory.create_client(full_name='Dormant')
        TestDataFactory.create_order(client=self.dormant, status='delivered', created_at=self.now - timedelta(days=200))

    def test_client_activity(self):
        orders = [
            {'status': 'delivered', 'created_at': self.now, 'total_amount': Decimal('60000')},
            {'status': 'delivered', 'created_at': self.now, 'total_amount': Decimal('50000')},
        ]
        activity = client_activity(orders, self.now)
        self.assertEqual(activity['delivered_count'], 2)
        self.assertTrue(matches_segment('vip', activity, self.now))
        self.assertFalse(matches_segment('regular', activity, self.now))

    def test_client_without_orders_is_new_and_inactive(self):
        activity = client_activity([], self.now)
        self.assertTrue(matches_segment('new', activity, self.now))
        self.assertTrue(matches_segment('inactive_30', activity, self.now))
        self.assertFalse(matches_segment('lost', activity, self.now))

    def test_segments_overlap(self):
        counts = {segment['id']: segment['count'] for segment in compute_segments(now=self.now)}
        self.assertEqual(counts['all'], 3)
        self.assertEqual(counts['regular'], 1)
        self.assertEqual(counts['cancelled'], 1)
        self.assertEqual(counts['lost'], 1)
        self.assertEqual(counts['campaign_group:Group-C-2'], 1)
        self.assertEqual(counts[f'product:{self.product.id}'], 2)
        self.assertEqual(counts[f'product_cancelled:{self.product.id}'], 1)

    def test_clients_for_segment(self):
        self.assertEqual([c['full_name'] for c in get_clients_for_segment('regular')], ['Loyal'])
        self.assertEqual(len(get_clients_for_segment('unknown-segment')), 3)
        self.assertEqual(get_clients_for_segment('product:abc'), [])

    def test_estimate_recipients(self):
        segments = [{'id': 'a', 'count': 10}, {'id': 'b', 'count': 4}, {'id': 'c', 'count': 20}]
        self.assertEqual(estimate_recipients(['a', 'b'], [], segments=segments), 14)
        self.assertEqual(estimate_recipients(['a'], ['c'], segments=segments), 0)

    def test_segment_csv_export(self):
        api = AuthenticatedAPIClient()
        api.authenticate_user(TestDataFactory.create_user(role=ROLE_SUPERVISOR))
        response = api.get('/api/v1/segments/regular/clients/', {'export': 'csv'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv; charset=utf-8')
        self.assertIn('Loyal', response.content.decode())

    def test_frequency_uses_trailing_window(self):
        returning = TestDataFactory.create_client(full_name='Returning')
        for _ in range(3):
            TestDataFactory.create_order(client=returning, status='delivered', created_at=self.now - timedelta(days=100))
        TestDataFactory.create_order(client=returning, status='delivered', created_at=self.now - timedelta(days=10))

        counts = {segment['id']: segment['count'] for segment in compute_segments(now=self.now)}
        self.assertEqual(counts['frequent'], 1)
        self.assertEqual(counts['occasional'], 2)
        self.assertEqual([c['full_name'] for c in get_clients_for_segment('frequent', now=self.now)], ['Loyal'])

    def test_inactivity_cutoffs(self):
        seventy_days = client_activity(
            [{'status': 'delivered', 'created_at': self.now - timedelta(days=70), 'total_amount': Decimal('5000')}],
            self.now
        )
        self.assertTrue(matches_segment('inactive_30', seventy_days, self.now))
        self.assertTrue(matches_segment('inactive_60', seventy_days, self.now))
        self.assertFalse(matches_segment('inactive_90', seventy_days, self.now))

        forty_five_days = client_activity(
            [{'status': 'delivered', 'created_at': self.now - timedelta(days=45), 'total_amount': Decimal('5000')}],
            self.now
        )
        self.assertTrue(matches_segment('inactive_30', forty_five_days, self.now))
        self.assertFalse(matches_segment('inactive_60', forty_five_days, self.now))

    def test_clients_without_orders_only_count_as_inactive_30(self):
        TestDataFactory.create_client(full_name='Silent')
        counts = {segment['id']: segment['count'] for segment in compute_segments(now=self.now)}
        self.assertEqual(counts['inactive_30'], 2)
        self.assertEqual(counts['inactive_60'], 1)
        self.assertEqual(counts['inactive_90'], 1)
        self.assertEqual(counts['lost'], 1)
        for segment_id in ('inactive_30', 'inactive_60', 'inactive_90', 'lost'):
            self.assertEqual(len(get_clients_for_segment(segment_id, now=self.now)), counts[segment_id])

    def test_campaign_groups_sorted_numerically(self):
        TestDataFactory.create_client(campaign_group='Group-C-10')
        TestDataFactory.create_client(campaign_group='Walk-in')
        group_ids = [segment['id'] for segment in compute_segments(now=self.now) if segment['category'] == 'group']
        self.assertEqual(group_ids, [
            'campaign_group:Group-C-2', 'campaign_group:Group-C-10', 'campaign_group:Walk-in'
        ])

    def test_inactive_products_have_no_segment(self):
        retired = TestDataFactory.create_product(name='Retired', is_active=False)
        TestDataFactory.create_order(client=self.loyal, product=retired, status='cancelled')
        segment_ids = {segment['id'] for segment in compute_segments(now=self.now)}
        self.assertNotIn(f'product:{retired.id}', segment_ids)
        self.assertNotIn(f'product_cancelled:{retired.id}', segment_ids)
        self.assertIn(f'product:{self.product.id}', segment_ids)

    def test_recipients_endpoint_exclusion_wins(self):
        api = AuthenticatedAPIClient()
        api.authenticate_user(TestDataFactory.create_user(role=ROLE_SUPERVISOR))
        response = api.post('/api/v1/segments/recipients/', {
            'selected': ['all', 'regular'], 'excluded': ['regular']
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_recipients'], 2)

        response = api.post('/api/v1/segments/recipients/', {
            'selected': ['regular'], 'excluded': ['all']
        }, format='json')
        self.assertEqual(response.data['total_recipients'], 0)
