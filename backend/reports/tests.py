"""
Test suite for Reports module
Tests: Dashboard summary, caller performance, delivery performance
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.core.permissions import ROLE_CALLER, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.orders.models import Order


class ReportsTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.supervisor)


class DashboardSummaryTests(ReportsTestCase):
    """Test the supervisor dashboard"""

    def test_counts_by_status(self):
        TestDataFactory.create_order(status='pending')
        TestDataFactory.create_order(status='delivered', delivered_at=timezone.now())
        TestDataFactory.create_order(status='cancelled')

        response = self.client.get('/api/v1/reports/dashboard/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['orders']['total'], 3)
        self.assertEqual(response.data['orders']['by_status']['delivered'], 1)
        self.assertEqual(response.data['orders']['by_status']['in_transit'], 0)
        self.assertEqual(response.data['orders']['delivery_rate'], 33.3)
        self.assertEqual(Decimal(response.data['revenue']['delivered_total']), Decimal('5000.00'))

    def test_orders_outside_period_ignored(self):
        TestDataFactory.create_order(created_at=timezone.now() - timedelta(days=60))
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['orders']['total'], 0)
        self.assertEqual(response.data['orders']['delivery_rate'], 0)

    def test_new_order_invalidates_cached_summary(self):
        self.client.get('/api/v1/reports/dashboard/')
        TestDataFactory.create_order()
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['orders']['total'], 1)

    def test_summary_is_cached(self):
        order = TestDataFactory.create_order()
        self.client.get('/api/v1/reports/dashboard/')
        # Queryset updates skip the invalidation signals
        Order.objects.filter(pk=order.pk).update(status='cancelled')
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['orders']['by_status']['pending'], 1)

    def test_follow_ups_and_agents(self):
        TestDataFactory.create_follow_up(scheduled_at=timezone.now() - timedelta(hours=2))
        TestDataFactory.create_follow_up()
        TestDataFactory.create_delivery_person(status='available')
        TestDataFactory.create_delivery_person(status='busy')

        response = self.client.get('/api/v1/reports/dashboard/')

        self.assertEqual(response.data['pending_follow_ups'], 2)
        self.assertEqual(response.data['overdue_follow_ups'], 1)
        self.assertEqual(response.data['delivery_persons'], {'available': 1, 'busy': 1})

    def test_invalid_date(self):
        response = self.client.get('/api/v1/reports/dashboard/', {'date_from': '01/02/2026'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_caller_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_CALLER))
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PerformanceReportTests(ReportsTestCase):
    """Test caller and delivery agent rankings"""

    def test_caller_performance(self):
        alice = TestDataFactory.create_user(username='alice', role=ROLE_CALLER)
        bob = TestDataFactory.create_user(username='bob', role=ROLE_CALLER)
        TestDataFactory.create_order(status='delivered', assigned_to=bob)
        TestDataFactory.create_order(status='cancelled', assigned_to=bob)
        TestDataFactory.create_order(status='confirmed', assigned_to=alice)

        response = self.client.get('/api/v1/reports/callers/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        callers = response.data['callers']
        self.assertEqual([row['username'] for row in callers], ['bob', 'alice'])
        self.assertEqual(callers[0]['assigned'], 2)
        self.assertEqual(callers[0]['conversion_rate'], 50.0)
        self.assertEqual(callers[1]['confirmed'], 1)
        self.assertEqual(callers[1]['conversion_rate'], 0)

    def test_delivery_performance(self):
        agent = TestDataFactory.create_delivery_person()
        idle = TestDataFactory.create_delivery_person()
        TestDataFactory.create_order(status='delivered', delivery_person=agent, delivered_at=timezone.now())
        TestDataFactory.create_order(status='in_transit', delivery_person=agent)

        response = self.client.get('/api/v1/reports/delivery/')

        rows = response.data['delivery_persons']
        self.assertEqual(rows[0]['delivery_person_id'], agent.id)
        self.assertEqual(rows[0]['delivered_count'], 1)
        self.assertEqual(Decimal(rows[0]['delivered_amount']), Decimal('5000.00'))
        self.assertEqual(rows[0]['in_progress'], 1)
        self.assertEqual(rows[1]['delivery_person_id'], idle.id)
        self.assertEqual(Decimal(rows[1]['delivered_amount']), Decimal('0'))

    def test_delivery_performance_respects_period(self):
        agent = TestDataFactory.create_delivery_person()
        TestDataFactory.create_order(status='delivered', delivery_person=agent,
                                     delivered_at=timezone.now() - timedelta(days=45))
        response = self.client.get('/api/v1/reports/delivery/')
        self.assertEqual(response.data['delivery_persons'][0]['delivered_count'], 0)
