"""
Test suite for Agent module
Tests: Instruction parsing, console operations, instruction history
"""
from datetime import timedelta
from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.agent.actions import performance_score, score_label
from backend.agent.intents import parse_instruction, normalize
from backend.agent.models import AIInstruction
from backend.agent.runner import run_instruction
from backend.clients.segmentation import get_segments
from backend.core.permissions import ROLE_CALLER, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockAlert
from backend.orders.models import Order, FollowUp


class IntentParsingTests(TestCase):
    """Test keyword rules for console instructions"""

    def test_normalize_strips_accents(self):
        self.assertEqual(normalize('  Crée des RELANCES  '), 'cree des relances')

    def test_help(self):
        self.assertEqual(parse_instruction('aide'), ('help', {}))
        self.assertEqual(parse_instruction(''), ('help', {}))
        self.assertEqual(parse_instruction('bonjour'), ('help', {}))

    def test_distribute_orders(self):
        self.assertEqual(parse_instruction('Distribue les commandes en attente'),
                         ('distribute_orders', {'filter_status': 'pending'}))

    def test_distribute_to_delivery_with_zone(self):
        self.assertEqual(parse_instruction('Envoie les commandes aux livreurs zone Cocody'),
                         ('distribute_to_delivery', {'zones': ['Cocody']}))

    def test_create_followups(self):
        action, params = parse_instruction('Crée des relances paiement pour les commandes de plus de 3 jours')
        self.assertEqual(action, 'create_followups')
        self.assertEqual(params, {'followup_type': 'partial_payment', 'days_since_order': 3})

    def test_stock_alerts(self):
        self.assertEqual(parse_instruction('Quels produits sont en rupture de stock ?'),
                         ('stock_alerts', {'action': 'list'}))
        self.assertEqual(parse_instruction('Create stock alerts under 5 units'),
                         ('stock_alerts', {'action': 'alert', 'threshold': 5}))

    def test_performance_and_plan(self):
        self.assertEqual(parse_instruction('Fais un bilan de performance'), ('global_performance', {}))
        self.assertEqual(parse_instruction("Plan d'action pour la semaine"), ('action_plan', {'period': 'week'}))

    def test_client_analysis(self):
        self.assertEqual(parse_instruction('Analyse les clients VIP avec 5 commandes'),
                         ('client_analysis', {'segment': 'vip', 'min_orders': 5}))


class ConsoleOperationTests(TestCase):
    """Test the console operations end to end"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)

    def test_distribute_orders_round_robin(self):
        first = TestDataFactory.create_user(role=ROLE_CALLER)
        second = TestDataFactory.create_user(role=ROLE_CALLER)
        for _ in range(3):
            TestDataFactory.create_order(status='pending')

        instruction = run_instruction('distribute pending orders', self.supervisor)

        self.assertEqual(instruction.status, 'completed')
        self.assertEqual(instruction.affected_count, 3)
        self.assertEqual(Order.objects.filter(assigned_to=first).count(), 2)
        self.assertEqual(Order.objects.filter(assigned_to=second).count(), 1)
        self.assertEqual(instruction.execution_logs.count(), 3)

    def test_distribute_to_delivery_balances_workload(self):
        busy_day = TestDataFactory.create_delivery_person(status='available')
        busy_day.daily_deliveries = 5
        busy_day.save()
        fresh = TestDataFactory.create_delivery_person(status='available')
        for _ in range(2):
            TestDataFactory.create_order(status='confirmed')

        instruction = run_instruction('send confirmed orders to delivery drivers', self.supervisor)

        self.assertEqual(instruction.affected_count, 2)
        self.assertEqual(Order.objects.filter(delivery_person=fresh, status='in_transit').count(), 2)

    def test_distribute_to_delivery_zone_filter(self):
        TestDataFactory.create_delivery_person(status='available')
        TestDataFactory.create_order(status='confirmed', client=TestDataFactory.create_client(zone='Cocody'))
        TestDataFactory.create_order(status='confirmed', client=TestDataFactory.create_client(zone='Yopougon'))
        instruction = run_instruction('dispatch to delivery zone cocody', self.supervisor)
        self.assertEqual(instruction.affected_count, 1)

    def test_distribute_to_delivery_refreshes_segments(self):
        cache.clear()
        TestDataFactory.create_delivery_person(status='available')
        TestDataFactory.create_order(status='confirmed')
        counts = {segment['id']: segment['count'] for segment in get_segments()}
        self.assertEqual(counts['confirmed_paid'], 1)

        run_instruction('send confirmed orders to delivery drivers', self.supervisor)

        counts = {segment['id']: segment['count'] for segment in get_segments()}
        self.assertEqual(counts['confirmed_paid'], 0)

    def test_create_followups_skips_orders_with_pending_one(self):
        old = timezone.now() - timedelta(days=5)
        covered = TestDataFactory.create_order(status='pending', created_at=old)
        TestDataFactory.create_follow_up(order=covered)
        TestDataFactory.create_order(status='pending', created_at=old)
        TestDataFactory.create_order(status='pending')

        instruction = run_instruction('create reminder follow-ups for orders older than 3 days', self.supervisor)

        self.assertEqual(instruction.affected_count, 1)
        self.assertEqual(FollowUp.objects.filter(status='pending').count(), 2)

    def test_stock_alerts_created(self):
        TestDataFactory.create_product(name='Low', stock=2)
        TestDataFactory.create_product(name='Medium', stock=4)
        TestDataFactory.create_product(name='Plenty', stock=40)

        instruction = run_instruction('create stock alerts under 5', self.supervisor)

        self.assertEqual(instruction.affected_count, 2)
        self.assertEqual(StockAlert.objects.get(product__name='Low').severity, 'critical')
        self.assertEqual(StockAlert.objects.get(product__name='Medium').severity, 'warning')

    def test_stock_list_changes_nothing(self):
        TestDataFactory.create_product(name='Low', stock=2)
        instruction = run_instruction('which products are low in stock', self.supervisor)
        self.assertIn('Low', instruction.result['message'])
        self.assertFalse(StockAlert.objects.exists())

    def test_performance_score(self):
        snapshot = {'delivery_rate': 90, 'critical_products': [], 'pending': 3}
        self.assertEqual(performance_score(snapshot), 97)
        self.assertEqual(score_label(97), 'Excellent')
        self.assertEqual(score_label(45), 'Needs improvement')

    def test_failure_is_recorded(self):
        with mock.patch.dict('backend.agent.runner.HANDLERS', {'help': mock.Mock(side_effect=RuntimeError('boom'))}):
            instruction = run_instruction('help', self.supervisor)
        self.assertEqual(instruction.status, 'failed')
        self.assertEqual(instruction.error_message, 'boom')


class InstructionApiTests(TestCase):
    """Test the console endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_SUPERVISOR))

    def test_run_and_fetch_instruction(self):
        response = self.client.post('/api/v1/agent/instructions/', {'instruction': 'help'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['action'], 'help')

        detail = self.client.get(f"/api/v1/agent/instructions/{response.data['instruction_id']}/")
        self.assertEqual(detail.data['status'], 'completed')
        self.assertEqual(detail.data['execution_logs'], [])

    def test_history_filters(self):
        AIInstruction.objects.create(instruction='auto', instruction_type='auto_distribution', status='completed')
        AIInstruction.objects.create(instruction='help', instruction_type='custom', action='help', status='completed')
        response = self.client.get('/api/v1/agent/instructions/', {'instruction_type': 'auto_distribution'})
        self.assertEqual(len(response.data), 1)

    def test_caller_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_CALLER))
        response = self.client.post('/api/v1/agent/instructions/', {'instruction': 'help'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
