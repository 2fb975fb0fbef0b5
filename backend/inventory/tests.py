"""
Test suite for Inventory module
Tests: Threshold alerts, transfers with delivery agents, supply request workflow
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import PermissionDenied, ValidationError

from backend.core.models import AuditLog
from backend.core.permissions import ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockAlert, StockMovement, SupplyRequest
from backend.inventory.services import (
    StockError, classify_stock, evaluate_stock_alert, upsert_threshold, open_alerts, get_thresholds,
    adjust_warehouse_stock, transfer_stock_to_delivery, transfer_stock_from_delivery,
    create_supply_request, review_supply_request, fulfill_supply_request, cancel_supply_request
)


class StockAlertTests(TestCase):
    """Test alert evaluation against thresholds"""

    def setUp(self):
        self.product = TestDataFactory.create_product(stock=50)

    def test_classify_stock(self):
        self.assertEqual(classify_stock(2, 10, 3), 'critical')
        self.assertEqual(classify_stock(3, 10, 3), 'critical')
        self.assertEqual(classify_stock(10, 10, 3), 'warning')
        self.assertIsNone(classify_stock(11, 10, 3))

    def test_default_thresholds(self):
        self.assertEqual(get_thresholds(self.product, 'warehouse'), (10, 3))
        upsert_threshold(self.product, 'warehouse', 20, 5)
        self.assertEqual(get_thresholds(self.product, 'warehouse'), (20, 5))

    def test_upsert_replaces_threshold(self):
        upsert_threshold(self.product, 'warehouse', 20, 5)
        upsert_threshold(self.product, 'warehouse', 30, 8)
        self.assertEqual(self.product.stock_thresholds.count(), 1)
        self.assertEqual(get_thresholds(self.product, 'warehouse'), (30, 8))

    def test_existing_alert_is_updated_not_duplicated(self):
        evaluate_stock_alert(self.product, 'warehouse', 8)
        alert = evaluate_stock_alert(self.product, 'warehouse', 2)
        self.assertEqual(StockAlert.objects.filter(product=self.product).count(), 1)
        self.assertEqual(alert.severity, 'critical')
        self.assertEqual(alert.current_quantity, 2)
        self.assertEqual(alert.threshold, 3)

    def test_alert_closed_when_stock_recovers(self):
        evaluate_stock_alert(self.product, 'warehouse', 2)
        self.assertIsNone(evaluate_stock_alert(self.product, 'warehouse', 40))
        alert = StockAlert.objects.get(product=self.product)
        self.assertTrue(alert.is_acknowledged)
        self.assertIsNone(alert.acknowledged_by)

    def test_open_alerts_critical_first(self):
        other = TestDataFactory.create_product()
        warning = evaluate_stock_alert(self.product, 'warehouse', 8)
        critical = evaluate_stock_alert(other, 'warehouse', 1)
        self.assertEqual(list(open_alerts()), [critical, warning])

    def test_delivery_person_alerts_are_separate(self):
        agent = TestDataFactory.create_delivery_person()
        evaluate_stock_alert(self.product, 'warehouse', 2)
        evaluate_stock_alert(self.product, 'delivery_person', 1, agent)
        self.assertEqual(list(open_alerts('delivery_person').values_list('delivery_person', flat=True)), [agent.id])


class StockTransferTests(TestCase):
    """Test warehouse and delivery agent stock moves"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.product = TestDataFactory.create_product(stock=20)
        self.agent = TestDataFactory.create_delivery_person()

    def test_transfer_to_delivery(self):
        item = transfer_stock_to_delivery(self.product, self.agent, 8, user=self.supervisor)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 12)
        self.assertEqual(item.quantity, 8)
        self.assertTrue(StockMovement.objects.filter(movement_type='transfer_to_delivery', quantity=8).exists())
        self.assertTrue(AuditLog.objects.filter(action='stock_transfer').exists())

    def test_transfer_insufficient_warehouse_stock(self):
        with self.assertRaises(StockError):
            transfer_stock_to_delivery(self.product, self.agent, 21)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 20)

    def test_transfer_back_from_delivery(self):
        TestDataFactory.give_delivery_stock(self.agent, self.product, 5)
        item = transfer_stock_from_delivery(self.product, self.agent, 5)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 25)
        self.assertEqual(item.quantity, 0)
        alert = StockAlert.objects.get(product=self.product, alert_type='delivery_person')
        self.assertEqual(alert.severity, 'critical')

    def test_transfer_back_more_than_carried(self):
        TestDataFactory.give_delivery_stock(self.agent, self.product, 2)
        with self.assertRaises(StockError):
            transfer_stock_from_delivery(self.product, self.agent, 3)

    def test_adjust_warehouse_stock_never_negative(self):
        with self.assertRaises(StockError):
            adjust_warehouse_stock(self.product, -21)

    def test_transfer_endpoint(self):
        api = AuthenticatedAPIClient()
        api.authenticate_user(self.supervisor)
        response = api.post('/api/v1/stock/transfer/', {
            'product': self.product.id, 'delivery_person': self.agent.id, 'quantity': 4
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['warehouse_stock'], 16)
        self.assertEqual(response.data['delivery_stock'], 4)

        response = api.post('/api/v1/stock/transfer/', {
            'product': self.product.id, 'delivery_person': self.agent.id, 'quantity': 10,
            'direction': 'from_delivery'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class StockApiTests(TestCase):
    """Test alert and threshold endpoints"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.supervisor)
        self.product = TestDataFactory.create_product(stock=50)

    def test_alert_list_counts(self):
        evaluate_stock_alert(self.product, 'warehouse', 1)
        evaluate_stock_alert(TestDataFactory.create_product(), 'warehouse', 9)
        response = self.client.get('/api/v1/stock/alerts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['critical_count'], 1)
        self.assertEqual(response.data['warning_count'], 1)
        self.assertEqual(response.data['results'][0]['severity'], 'critical')

    def test_acknowledge(self):
        alert = evaluate_stock_alert(self.product, 'warehouse', 1)
        response = self.client.post(f'/api/v1/stock/alerts/{alert.id}/acknowledge/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['acknowledged_by'], self.supervisor.id)
        response = self.client.post(f'/api/v1/stock/alerts/{alert.id}/acknowledge/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_threshold_validation(self):
        response = self.client.post('/api/v1/stock/thresholds/', {
            'product': self.product.id, 'location_type': 'warehouse',
            'warning_threshold': 5, 'critical_threshold': 8
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_threshold_upsert_endpoint(self):
        payload = {'product': self.product.id, 'location_type': 'warehouse', 'warning_threshold': 20, 'critical_threshold': 5}
        self.assertEqual(self.client.post('/api/v1/stock/thresholds/', payload, format='json').status_code, status.HTTP_200_OK)
        payload['warning_threshold'] = 25
        self.assertEqual(self.client.post('/api/v1/stock/thresholds/', payload, format='json').status_code, status.HTTP_200_OK)
        response = self.client.get('/api/v1/stock/thresholds/', {'product': self.product.id})
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['warning_threshold'], 25)

    def test_caller_cannot_see_alerts(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_CALLER))
        self.assertEqual(self.client.get('/api/v1/stock/alerts/').status_code, status.HTTP_403_FORBIDDEN)


class SupplyRequestTests(TestCase):
    """Test the supply request workflow"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.agent = TestDataFactory.create_delivery_person()
        self.product = TestDataFactory.create_product(stock=30)

    def test_delivery_request_uses_requester_profile(self):
        supply_request = create_supply_request(self.product, self.agent.user, 'delivery_person', 5)
        self.assertEqual(supply_request.delivery_person, self.agent)

    def test_delivery_request_without_profile_rejected(self):
        with self.assertRaises(ValidationError):
            create_supply_request(self.product, self.supervisor, 'delivery_person', 5)

    def test_fulfill_requires_approval(self):
        supply_request = create_supply_request(self.product, self.agent.user, 'delivery_person', 5)
        with self.assertRaises(ValidationError):
            fulfill_supply_request(supply_request, self.supervisor)

    def test_approve_and_fulfill_transfers_approved_quantity(self):
        supply_request = create_supply_request(self.product, self.agent.user, 'delivery_person', 10)
        review_supply_request(supply_request, 'approved', self.supervisor, quantity_approved=6)
        supply_request = fulfill_supply_request(supply_request, self.supervisor)

        self.assertEqual(supply_request.status, 'fulfilled')
        self.assertIsNotNone(supply_request.fulfilled_at)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 24)
        self.assertEqual(self.agent.stock_items.get(product=self.product).quantity, 6)

    def test_warehouse_request_books_stock_in(self):
        supply_request = create_supply_request(self.product, self.supervisor, 'warehouse', 15)
        review_supply_request(supply_request, 'approved', self.supervisor)
        fulfill_supply_request(supply_request, self.supervisor)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 45)
        self.assertTrue(StockMovement.objects.filter(movement_type='in', quantity=15).exists())

    def test_review_only_pending(self):
        supply_request = create_supply_request(self.product, self.supervisor, 'warehouse', 15)
        review_supply_request(supply_request, 'rejected', self.supervisor, notes='Budget')
        with self.assertRaises(ValidationError):
            review_supply_request(supply_request, 'approved', self.supervisor)

    def test_cancel_by_requester_only(self):
        supply_request = create_supply_request(self.product, self.agent.user, 'delivery_person', 5)
        stranger = TestDataFactory.create_user(role=ROLE_DELIVERY)
        with self.assertRaises(PermissionDenied):
            cancel_supply_request(supply_request, stranger)
        supply_request = cancel_supply_request(supply_request, self.agent.user)
        self.assertEqual(supply_request.status, 'rejected')
        self.assertEqual(supply_request.notes, 'Cancelled by requester')

    def test_api_workflow(self):
        api = AuthenticatedAPIClient()
        api.authenticate_user(self.agent.user)
        response = api.post('/api/v1/supply-requests/', {
            'product': self.product.id, 'requester_type': 'delivery_person', 'quantity_requested': 4
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        request_id = response.data['id']

        api.authenticate_user(self.supervisor)
        response = api.post(f'/api/v1/supply-requests/{request_id}/review/', {'decision': 'approved'}, format='json')
        self.assertEqual(response.data['status'], 'approved')
        response = api.post(f'/api/v1/supply-requests/{request_id}/fulfill/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(SupplyRequest.objects.get(pk=request_id).status, 'fulfilled')

    def test_fulfill_with_insufficient_stock(self):
        supply_request = create_supply_request(self.product, self.agent.user, 'delivery_person', 40)
        review_supply_request(supply_request, 'approved', self.supervisor)
        api = AuthenticatedAPIClient()
        api.authenticate_user(self.supervisor)
        response = api.post(f'/api/v1/supply-requests/{supply_request.id}/fulfill/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        supply_request.refresh_from_db()
        self.assertEqual(supply_request.status, 'approved')
