"""
Test suite for Orders module
Tests: Order creation, status workflow, visibility, payments, follow-ups, caller distribution
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import PermissionDenied, ValidationError

from backend.agent.models import AIInstruction
from backend.core.models import UserPresence, AuditLog
from backend.core.permissions import ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockMovement
from backend.orders.distribution import within_distribution_hours, plan_distribution, auto_distribute_orders
from backend.orders.models import Order, FollowUp, Payment
from backend.orders.services import (
    generate_order_number, create_order, update_order_status, record_payment, update_payment_status,
    visible_orders, recalculate_client_stats
)

IN_HOURS = datetime(2026, 3, 2, 10, 0, tzinfo=dt_timezone.utc)


class OrderModelTests(TestCase):
    """Test order amounts and numbering"""

    def test_total_defaults_to_unit_price_times_quantity(self):
        order = TestDataFactory.create_order(quantity=3, unit_price=Decimal('2000.00'))
        self.assertEqual(order.total_amount, Decimal('6000.00'))
        self.assertEqual(order.amount_due, Decimal('6000.00'))

    def test_amount_due_never_negative(self):
        order = TestDataFactory.create_order(unit_price=Decimal('1000.00'), amount_paid=Decimal('1500.00'))
        self.assertEqual(order.amount_due, Decimal('0.00'))

    def test_order_number_format(self):
        number = generate_order_number()
        self.assertTrue(number.startswith(f"CMD-{timezone.now():%Y%m%d}-"))
        self.assertEqual(len(number.split('-')[-1]), 6)


class OrderServiceTests(TestCase):
    """Test the order lifecycle services"""

    def setUp(self):
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.product = TestDataFactory.create_product(price=Decimal('5000.00'))
        self.client_obj = TestDataFactory.create_client(address='Rue 12, Cocody')

    def test_create_uses_product_price_and_snapshots_client(self):
        order = create_order({'client': self.client_obj, 'product': self.product, 'quantity': 2}, user=self.caller)
        self.assertEqual(order.unit_price, Decimal('5000.00'))
        self.assertEqual(order.total_amount, Decimal('10000.00'))
        self.assertEqual(order.client_phone, self.client_obj.phone)
        self.assertEqual(order.delivery_address, 'Rue 12, Cocody')
        self.assertEqual(order.status, 'pending')

    def test_create_auto_assigns_first_available_agent(self):
        TestDataFactory.create_delivery_person(status='offline')
        available = TestDataFactory.create_delivery_person(status='available')
        order = create_order({'client': self.client_obj, 'product': self.product, 'quantity': 1})
        self.assertEqual(order.delivery_person, available)

    def test_create_without_auto_assign(self):
        TestDataFactory.create_delivery_person(status='available')
        order = create_order({'client': self.client_obj, 'product': self.product, 'quantity': 1},
                             auto_assign_delivery=False)
        self.assertIsNone(order.delivery_person)

    def test_cancel_requires_reason(self):
        order = TestDataFactory.create_order(client=self.client_obj)
        with self.assertRaises(ValidationError):
            update_order_status(order, 'cancelled', self.caller)
        order = update_order_status(order, 'cancelled', self.caller, reason='Client unreachable')
        self.assertEqual(order.cancellation_reason, 'Client unreachable')

    def test_report_stores_reason_and_date(self):
        order = TestDataFactory.create_order(client=self.client_obj)
        later = timezone.now() + timedelta(days=3)
        order = update_order_status(order, 'reported', self.caller, reason='Travelling', scheduled_at=later)
        self.assertEqual(order.report_reason, 'Travelling')
        self.assertEqual(order.scheduled_at, later)

    def test_invalid_status(self):
        order = TestDataFactory.create_order(client=self.client_obj)
        with self.assertRaises(ValidationError):
            update_order_status(order, 'lost', self.caller)

    def test_delivery_agent_limited_statuses(self):
        agent = TestDataFactory.create_delivery_person()
        order = TestDataFactory.create_order(client=self.client_obj, status='confirmed', delivery_person=agent)
        with self.assertRaises(PermissionDenied):
            update_order_status(order, 'cancelled', agent.user, reason='No')
        order = update_order_status(order, 'in_transit', agent.user)
        self.assertEqual(order.status, 'in_transit')

    def test_delivered_updates_agent_counters_stock_and_client_stats(self):
        agent = TestDataFactory.create_delivery_person()
        TestDataFactory.give_delivery_stock(agent, self.product, 5)
        order = TestDataFactory.create_order(client=self.client_obj, product=self.product, quantity=2,
                                             status='in_transit', delivery_person=agent)
        order = update_order_status(order, 'delivered', agent.user)

        self.assertIsNotNone(order.delivered_at)
        agent.refresh_from_db()
        self.assertEqual(agent.daily_deliveries, 1)
        self.assertEqual(agent.daily_amount, Decimal('10000.00'))
        self.assertEqual(agent.stock_items.get(product=self.product).quantity, 3)
        self.assertTrue(StockMovement.objects.filter(order=order, movement_type='sale').exists())
        self.client_obj.refresh_from_db()
        self.assertEqual(self.client_obj.total_orders, 1)
        self.assertEqual(self.client_obj.total_spent, Decimal('10000.00'))

    def test_delivery_without_carried_stock_leaves_stock_alone(self):
        agent = TestDataFactory.create_delivery_person()
        order = TestDataFactory.create_order(client=self.client_obj, product=self.product,
                                             status='in_transit', delivery_person=agent)
        update_order_status(order, 'delivered', agent.user)
        self.assertFalse(StockMovement.objects.filter(order=order).exists())

    @override_settings(ORDER_SYNC_WEBHOOK_URL='https://shop.example.com/hooks/crm')
    def test_confirm_triggers_sync_after_commit(self):
        order = TestDataFactory.create_order(client=self.client_obj)
        with mock.patch('backend.integrations.sync.requests.post') as post:
            post.return_value.ok = True
            post.return_value.status_code = 200
            with self.captureOnCommitCallbacks(execute=True):
                update_order_status(order, 'confirmed', self.caller)
        post.assert_called_once()
        self.assertEqual(post.call_args.kwargs['json']['order']['order_number'], order.order_number)

    def test_status_change_is_audited(self):
        order = TestDataFactory.create_order(client=self.client_obj)
        update_order_status(order, 'confirmed', self.caller)
        log = AuditLog.objects.get(action='status_change', object_id=str(order.id))
        self.assertEqual(log.changes['status'], {'old': 'pending', 'new': 'confirmed'})

    def test_client_stats_segment(self):
        for _ in range(3):
            TestDataFactory.create_order(client=self.client_obj, status='delivered', unit_price=Decimal('1000.00'))
        recalculate_client_stats(self.client_obj)
        self.assertEqual(self.client_obj.segment, 'regular')

        self.client_obj.segment = 'problematic'
        self.client_obj.save()
        recalculate_client_stats(self.client_obj)
        self.assertEqual(self.client_obj.segment, 'problematic')


class PaymentServiceTests(TestCase):
    """Test payment recording and status transitions"""

    def setUp(self):
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)

    def test_payment_on_pending_order_confirms_it(self):
        order = TestDataFactory.create_order(unit_price=Decimal('10000.00'))
        record_payment(order, Decimal('2000.00'), method='mobile_money', user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.status, 'confirmed')
        self.assertEqual(order.amount_paid, Decimal('2000.00'))
        self.assertEqual(order.amount_due, Decimal('8000.00'))

    def test_partial_then_settled(self):
        order = TestDataFactory.create_order(unit_price=Decimal('10000.00'), status='delivered')
        record_payment(order, Decimal('4000.00'), user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.status, 'partial')

        record_payment(order, Decimal('6000.00'), user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.status, 'delivered')
        self.assertEqual(order.amount_due, Decimal('0.00'))

    def test_pending_payment_does_not_change_amounts(self):
        order = TestDataFactory.create_order(unit_price=Decimal('10000.00'))
        record_payment(order, Decimal('2000.00'), status='pending', user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.amount_paid, Decimal('0.00'))
        self.assertEqual(order.status, 'pending')

    def test_completing_pending_payment_settles_order(self):
        order = TestDataFactory.create_order(unit_price=Decimal('5000.00'), status='delivered')
        payment = record_payment(order, Decimal('5000.00'), status='pending', user=self.caller)
        update_payment_status(payment, 'completed', user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.amount_paid, Decimal('5000.00'))
        self.assertEqual(order.amount_due, Decimal('0.00'))
        self.assertEqual(order.status, 'delivered')

    def test_refunding_completed_payment_reopens_balance(self):
        order = TestDataFactory.create_order(unit_price=Decimal('10000.00'), status='delivered')
        record_payment(order, Decimal('4000.00'), user=self.caller)
        payment = record_payment(order, Decimal('6000.00'), user=self.caller)
        update_payment_status(payment, 'refunded', user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.amount_paid, Decimal('4000.00'))
        self.assertEqual(order.amount_due, Decimal('6000.00'))
        self.assertEqual(order.status, 'partial')

    def test_same_payment_status_is_a_no_op(self):
        order = TestDataFactory.create_order(unit_price=Decimal('5000.00'), status='delivered')
        payment = record_payment(order, Decimal('5000.00'), user=self.caller)
        update_payment_status(payment, 'completed', user=self.caller)
        order.refresh_from_db()
        self.assertEqual(order.amount_paid, Decimal('5000.00'))

    def test_invalid_payment_status(self):
        order = TestDataFactory.create_order()
        payment = record_payment(order, Decimal('1000.00'), status='pending', user=self.caller)
        with self.assertRaises(ValidationError):
            update_payment_status(payment, 'lost', user=self.caller)


class OrderApiTests(TestCase):
    """Test order endpoints and visibility"""

    def setUp(self):
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.other_caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.client = AuthenticatedAPIClient()
        self.product = TestDataFactory.create_product(price=Decimal('5000.00'))
        self.customer = TestDataFactory.create_client()

    def test_create_order(self):
        self.client.authenticate_user(self.caller)
        response = self.client.post('/api/v1/orders/', {
            'client': self.customer.id, 'product': self.product.id, 'quantity': 2
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_amount'], '10000.00')
        self.assertEqual(response.data['status'], 'pending')

    def test_create_without_product_needs_price(self):
        self.client.authenticate_user(self.caller)
        response = self.client.post('/api/v1/orders/', {'client': self.customer.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inactive_product_rejected(self):
        self.product.is_active = False
        self.product.save()
        self.client.authenticate_user(self.caller)
        response = self.client.post('/api/v1/orders/', {'client': self.customer.id, 'product': self.product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delivery_agent_cannot_create(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_DELIVERY))
        response = self.client.post('/api/v1/orders/', {'client': self.customer.id, 'product': self.product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_caller_sees_only_assigned_orders(self):
        mine = TestDataFactory.create_order(assigned_to=self.caller)
        theirs = TestDataFactory.create_order(assigned_to=self.other_caller)
        self.client.authenticate_user(self.caller)
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], mine.id)
        self.assertEqual(self.client.get(f'/api/v1/orders/{theirs.id}/').status_code, status.HTTP_404_NOT_FOUND)

    def test_delivery_agent_sees_own_orders(self):
        agent = TestDataFactory.create_delivery_person()
        TestDataFactory.create_order(delivery_person=agent)
        TestDataFactory.create_order()
        self.assertEqual(visible_orders(agent.user).count(), 1)

    def test_supervisor_list_paginated_and_filtered(self):
        for _ in range(3):
            TestDataFactory.create_order(status='pending')
        TestDataFactory.create_order(status='cancelled')
        self.client.authenticate_user(self.supervisor)
        response = self.client.get('/api/v1/orders/', {'status': 'pending', 'limit': 2})
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response.data['next'], 2)

    def test_patch_quantity_recomputes_total(self):
        order = TestDataFactory.create_order(product=self.product, assigned_to=self.caller)
        self.client.authenticate_user(self.caller)
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'quantity': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_amount'], '15000.00')

    def test_status_endpoint_requires_reason_for_cancel(self):
        order = TestDataFactory.create_order(assigned_to=self.caller)
        self.client.authenticate_user(self.caller)
        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'status': 'cancelled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/orders/{order.id}/status/',
                                    {'status': 'cancelled', 'reason': 'Wrong number'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['cancellation_reason'], 'Wrong number')

    def test_delete_only_pending_or_cancelled(self):
        delivered = TestDataFactory.create_order(status='delivered')
        pending = TestDataFactory.create_order(status='pending')
        self.client.authenticate_user(self.supervisor)
        self.assertEqual(self.client.delete(f'/api/v1/orders/{delivered.id}/').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.delete(f'/api/v1/orders/{pending.id}/').status_code, status.HTTP_204_NO_CONTENT)

    def test_assign_caller(self):
        order = TestDataFactory.create_order()
        self.client.authenticate_user(self.supervisor)
        response = self.client.post(f'/api/v1/orders/{order.id}/assign-caller/', {'assigned_to': self.caller.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['assigned_to'], self.caller.id)

    def test_record_payment_endpoint(self):
        order = TestDataFactory.create_order(assigned_to=self.caller, unit_price=Decimal('5000.00'))
        self.client.authenticate_user(self.caller)
        response = self.client.post(f'/api/v1/orders/{order.id}/payments/',
                                    {'amount': '5000.00', 'method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(f'/api/v1/orders/{order.id}/payments/', {'amount': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_pending_payments(self):
        TestDataFactory.create_order(assigned_to=self.caller, unit_price=Decimal('5000.00'))
        TestDataFactory.create_order(assigned_to=self.caller, unit_price=Decimal('5000.00'), status='cancelled')
        TestDataFactory.create_order(assigned_to=self.caller, unit_price=Decimal('5000.00'), amount_paid=Decimal('5000.00'))
        self.client.authenticate_user(self.caller)
        response = self.client.get('/api/v1/payments/pending/')
        self.assertEqual(len(response.data), 1)

    def test_caller_sees_orders_they_created(self):
        self.client.authenticate_user(self.caller)
        response = self.client.post('/api/v1/orders/', {
            'client': self.customer.id, 'product': self.product.id
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['assigned_to'])
        order_id = response.data['id']

        self.assertEqual(self.client.get(f'/api/v1/orders/{order_id}/').status_code, status.HTTP_200_OK)
        listing = self.client.get('/api/v1/orders/')
        self.assertEqual(listing.data['count'], 1)
        self.assertEqual(listing.data['results'][0]['id'], order_id)

        self.client.authenticate_user(self.other_caller)
        self.assertEqual(self.client.get(f'/api/v1/orders/{order_id}/').status_code, status.HTTP_404_NOT_FOUND)

    def test_payment_status_endpoint_updates_order(self):
        order = TestDataFactory.create_order(unit_price=Decimal('5000.00'), status='delivered')
        payment = record_payment(order, Decimal('5000.00'), status='pending', user=self.caller)
        self.client.authenticate_user(self.supervisor)
        response = self.client.patch(f'/api/v1/payments/{payment.id}/status/', {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        order.refresh_from_db()
        self.assertEqual(order.amount_due, Decimal('0.00'))

        response = self.client.patch(f'/api/v1/payments/{payment.id}/status/', {'status': 'bogus'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Payment.objects.get(pk=payment.pk).status, 'completed')

    def test_pagination_rejects_non_integer_and_clamps_limit(self):
        TestDataFactory.create_order()
        TestDataFactory.create_order()
        self.client.authenticate_user(self.supervisor)
        response = self.client.get('/api/v1/orders/', {'limit': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/orders/', {'page': 'x'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/v1/orders/', {'limit': 0})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['page_size'], 1)
        self.assertEqual(len(response.data['results']), 1)

        response = self.client.get('/api/v1/orders/', {'limit': 1, 'page': 99})
        self.assertEqual(response.data['page'], 2)


class FollowUpTests(TestCase):
    """Test follow-up scheduling"""

    def setUp(self):
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.caller)
        self.order = TestDataFactory.create_order(assigned_to=self.caller)

    def _payload(self, **overrides):
        payload = {
            'client': self.order.client_id,
            'order': self.order.id,
            'type': 'reminder',
            'scheduled_at': (timezone.now() + timedelta(days=1)).isoformat(),
        }
        payload.update(overrides)
        return payload

    def test_create_defaults_assignee(self):
        response = self.client.post('/api/v1/follow-ups/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['assigned_to'], self.caller.id)

    def test_one_pending_follow_up_per_order(self):
        TestDataFactory.create_follow_up(order=self.order)
        response = self.client.post('/api/v1/follow-ups/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_order_must_belong_to_client(self):
        other_client = TestDataFactory.create_client()
        response = self.client.post('/api/v1/follow-ups/', self._payload(client=other_client.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_complete(self):
        follow_up = TestDataFactory.create_follow_up(order=self.order, assigned_to=self.caller)
        response = self.client.post(f'/api/v1/follow-ups/{follow_up.id}/complete/', {'notes': 'Called back'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        response = self.client.post(f'/api/v1/follow-ups/{follow_up.id}/complete/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_due_filter(self):
        TestDataFactory.create_follow_up(order=self.order, assigned_to=self.caller,
                                         scheduled_at=timezone.now() - timedelta(hours=1))
        TestDataFactory.create_follow_up(client=self.order.client, assigned_to=self.caller)
        response = self.client.get('/api/v1/follow-ups/', {'due': 'true'})
        self.assertEqual(len(response.data), 1)


class DistributionTests(TestCase):
    """Test automatic distribution of pending orders to online callers"""

    def setUp(self):
        cache.clear()
        self.best = TestDataFactory.create_user(role=ROLE_CALLER)
        self.other = TestDataFactory.create_user(role=ROLE_CALLER)
        for caller in (self.best, self.other):
            UserPresence.objects.create(user=caller, role='caller', last_seen_at=timezone.now())
        TestDataFactory.create_order(status='delivered', assigned_to=self.best)

    def test_distribution_window(self):
        self.assertTrue(within_distribution_hours(IN_HOURS))
        self.assertTrue(within_distribution_hours(IN_HOURS.replace(hour=15, minute=45)))
        self.assertFalse(within_distribution_hours(IN_HOURS.replace(hour=15, minute=46)))
        self.assertFalse(within_distribution_hours(IN_HOURS.replace(hour=6, minute=59)))

    def test_plan_gives_remainder_to_top_performer(self):
        plan = plan_distribution([1, 2, 3, 4, 5], ['a', 'b'])
        self.assertEqual(plan, [(1, 'a'), (2, 'a'), (3, 'b'), (4, 'b'), (5, 'a')])

    def test_outside_hours_skips(self):
        TestDataFactory.create_order(status='pending')
        result = auto_distribute_orders(now=IN_HOURS.replace(hour=20))
        self.assertTrue(result['skipped'])
        self.assertFalse(Order.objects.filter(status='pending', assigned_to__isnull=False).exists())

    def test_distributes_and_logs_instruction(self):
        orders = [TestDataFactory.create_order(status='pending') for _ in range(3)]
        result = auto_distribute_orders(now=IN_HOURS)

        self.assertEqual(result['distributed'], 3)
        self.assertEqual(result['orders_per_caller'], 1)
        self.assertEqual(result['remainder'], 1)
        assigned = {order.id: Order.objects.get(pk=order.id).assigned_to for order in orders}
        self.assertEqual(list(assigned.values()).count(self.best), 2)

        instruction = AIInstruction.objects.get(pk=result['instruction_id'])
        self.assertEqual(instruction.instruction_type, 'auto_distribution')
        self.assertEqual(instruction.execution_logs.count(), 3)

    def test_offline_callers_ignored(self):
        UserPresence.objects.all().update(last_seen_at=timezone.now() - timedelta(minutes=10))
        TestDataFactory.create_order(status='pending')
        result = auto_distribute_orders(now=IN_HOURS)
        self.assertEqual(result['distributed'], 0)

    def test_management_command(self):
        TestDataFactory.create_order(status='pending')
        with mock.patch('backend.orders.management.commands.auto_distribute_orders.auto_distribute_orders') as run:
            run.return_value = {'success': True, 'distributed': 0, 'message': 'No pending orders to distribute'}
            call_command('auto_distribute_orders', stdout=StringIO())
        run.assert_called_once()
