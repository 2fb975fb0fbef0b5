"""
Test suite for Delivery module
Tests: Delivery agent profiles, dispatch queue, candidate ranking, assignment, workload balancing,
daily counters
"""
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from backend.clients.segmentation import get_segments
from backend.core.cache_utils import SEGMENTS_CACHE_PREFIX, make_cache_key
from backend.core.models import AuditLog
from backend.core.permissions import ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.delivery.dispatch import (
    dispatch_queue, dispatch_candidates, assign_delivery_person, balance_by_workload, reset_daily_counters
)
from backend.delivery.models import DeliveryPerson


class DispatchTests(TestCase):
    """Test dispatch queue and candidate ranking"""

    def setUp(self):
        self.idle = TestDataFactory.create_delivery_person(status='available', zone='Cocody')
        self.loaded = TestDataFactory.create_delivery_person(status='busy', zone='Yopougon')
        self.offline = TestDataFactory.create_delivery_person(status='offline')
        self.inactive = TestDataFactory.create_delivery_person(status='available', is_active=False)
        TestDataFactory.create_order(status='confirmed', delivery_person=self.loaded)
        TestDataFactory.create_order(status='in_transit', delivery_person=self.loaded)
        TestDataFactory.create_order(status='delivered', delivery_person=self.idle)

    def test_queue_contains_confirmed_unassigned_oldest_first(self):
        first = TestDataFactory.create_order(status='confirmed')
        second = TestDataFactory.create_order(status='confirmed')
        TestDataFactory.create_order(status='pending')
        self.assertEqual(list(dispatch_queue()), [first, second])

    def test_candidates_sorted_by_workload(self):
        candidates = dispatch_candidates()
        self.assertEqual(candidates, [self.idle, self.loaded])
        self.assertEqual([c.pending_count for c in candidates], [0, 2])

    def test_candidates_zone_filter(self):
        self.assertEqual(dispatch_candidates(zone='yopougon'), [self.loaded])

    def test_ties_keep_id_order(self):
        other = TestDataFactory.create_delivery_person(status='available')
        candidates = dispatch_candidates()
        self.assertEqual(candidates[:2], [self.idle, other])

    def test_assign_is_audited(self):
        order = TestDataFactory.create_order(status='confirmed')
        assign_delivery_person(order, self.idle)
        order.refresh_from_db()
        self.assertEqual(order.delivery_person, self.idle)
        self.assertTrue(AuditLog.objects.filter(action='assign_delivery', object_id=str(order.pk)).exists())

    def test_reassign_last_write_wins(self):
        order = TestDataFactory.create_order(status='confirmed')
        assign_delivery_person(order, self.idle)
        assign_delivery_person(order, self.loaded)
        order.refresh_from_db()
        self.assertEqual(order.delivery_person, self.loaded)

    def test_assign_drops_cached_segments(self):
        cache.clear()
        order = TestDataFactory.create_order(status='confirmed')
        get_segments()
        summary_key = make_cache_key(SEGMENTS_CACHE_PREFIX, 'summary')
        self.assertIsNotNone(cache.get(summary_key))

        assign_delivery_person(order, self.idle)
        self.assertIsNone(cache.get(summary_key))


class BalanceByWorkloadTests(TestCase):
    """Test the greedy assignment plan"""

    def setUp(self):
        self.a = TestDataFactory.create_delivery_person()
        self.b = TestDataFactory.create_delivery_person()

    def test_orders_go_to_least_loaded(self):
        plan = balance_by_workload(['o1', 'o2', 'o3', 'o4'], [(self.a, 2), (self.b, 0)])
        self.assertEqual(plan[self.b.pk], ['o1', 'o2', 'o3'])
        self.assertEqual(plan[self.a.pk], ['o4'])

    def test_no_candidates(self):
        self.assertEqual(balance_by_workload(['o1'], []), {})


class DeliveryApiTests(TestCase):
    """Test delivery endpoints and permissions"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.agent_user = TestDataFactory.create_user(role=ROLE_DELIVERY)
        self.agent = TestDataFactory.create_delivery_person(user=self.agent_user, status='offline')
        self.client = AuthenticatedAPIClient()

    def test_agent_toggles_own_status(self):
        self.client.authenticate_user(self.agent_user)
        response = self.client.post('/api/v1/delivery/me/status/', {'status': 'available'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.agent.refresh_from_db()
        self.assertEqual(self.agent.status, 'available')

    def test_invalid_status_rejected(self):
        self.client.authenticate_user(self.agent_user)
        response = self.client.post('/api/v1/delivery/me/status/', {'status': 'sleeping'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_my_stock(self):
        product = TestDataFactory.create_product()
        TestDataFactory.give_delivery_stock(self.agent, product, 4)
        self.client.authenticate_user(self.agent_user)
        response = self.client.get('/api/v1/delivery/me/stock/')
        self.assertEqual(response.data[0]['quantity'], 4)

    def test_caller_cannot_see_dispatch_board(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_CALLER))
        response = self.client.get('/api/v1/dispatch/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_dispatch_board_and_assign(self):
        self.agent.status = 'available'
        self.agent.save()
        order = TestDataFactory.create_order(status='confirmed')
        self.client.authenticate_user(self.supervisor)

        board = self.client.get('/api/v1/dispatch/')
        self.assertEqual(board.status_code, status.HTTP_200_OK)
        self.assertEqual([o['id'] for o in board.data['orders']], [order.id])
        self.assertEqual(board.data['candidates'][0]['pending_count'], 0)

        response = self.client.post('/api/v1/dispatch/assign/', {
            'order_id': order.id, 'delivery_person_id': self.agent.id
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['delivery_person'], self.agent.id)

    def test_assign_inactive_agent_rejected(self):
        self.agent.is_active = False
        self.agent.save()
        order = TestDataFactory.create_order(status='confirmed')
        self.client.authenticate_user(self.supervisor)
        response = self.client.post('/api/v1/dispatch/assign/', {
            'order_id': order.id, 'delivery_person_id': self.agent.id
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_delivery_person(self):
        user = TestDataFactory.create_user(role=ROLE_DELIVERY)
        self.client.authenticate_user(self.supervisor)
        response = self.client.post('/api/v1/delivery-persons/', {'user': user.id, 'zone': 'Plateau'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(DeliveryPerson.objects.filter(user=user).exists())


class DailyCounterTests(TestCase):
    """Test the midnight reset of per-day agent counters"""

    def setUp(self):
        self.worked = TestDataFactory.create_delivery_person()
        self.worked.daily_deliveries = 3
        self.worked.daily_amount = Decimal('5000.00')
        self.worked.save()
        self.idle = TestDataFactory.create_delivery_person()

    def test_reset_zeroes_counters(self):
        self.assertEqual(reset_daily_counters(), 1)
        self.worked.refresh_from_db()
        self.assertEqual(self.worked.daily_deliveries, 0)
        self.assertEqual(self.worked.daily_amount, Decimal('0.00'))

    def test_management_command(self):
        out = StringIO()
        call_command('reset_daily_deliveries', stdout=out)
        self.assertIn('Daily counters reset for 1 delivery persons', out.getvalue())
        self.assertFalse(DeliveryPerson.objects.filter(daily_deliveries__gt=0).exists())
