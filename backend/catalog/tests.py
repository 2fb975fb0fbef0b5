"""
Test suite for Catalog module
Tests: Product CRUD, filters, stock adjustments
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from backend.catalog.models import Product
from backend.core.models import AuditLog
from backend.core.permissions import ROLE_CALLER, ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockMovement, StockAlert


class ProductTests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.caller = TestDataFactory.create_user(role=ROLE_CALLER)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.supervisor)

    def test_create_product(self):
        response = self.client.post('/api/v1/products/', {'name': 'Moringa Tea', 'price': '3500.00', 'stock': 20}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='create').exists())

    def test_negative_price_rejected(self):
        response = self.client.post('/api/v1/products/', {'name': 'Broken', 'price': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_caller_can_list_but_not_create(self):
        TestDataFactory.create_product()
        self.client.authenticate_user(self.caller)
        self.assertEqual(self.client.get('/api/v1/products/').status_code, status.HTTP_200_OK)
        response = self.client.post('/api/v1/products/', {'name': 'Nope', 'price': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_search_filter(self):
        TestDataFactory.create_product(name='Shea Butter Cream')
        TestDataFactory.create_product(name='Ginger Juice')
        response = self.client.get('/api/v1/products/', {'search': 'shea cream'})
        self.assertEqual([p['name'] for p in response.data], ['Shea Butter Cream'])

    def test_low_and_out_of_stock_filters(self):
        TestDataFactory.create_product(name='Low', stock=2)
        TestDataFactory.create_product(name='Empty', stock=0)
        TestDataFactory.create_product(name='Plenty', stock=100)
        low = self.client.get('/api/v1/products/', {'low_stock': 'true'})
        empty = self.client.get('/api/v1/products/', {'out_of_stock': 'true'})
        self.assertEqual([p['name'] for p in low.data], ['Low'])
        self.assertEqual([p['name'] for p in empty.data], ['Empty'])

    def test_patch_ignores_stock(self):
        product = TestDataFactory.create_product(stock=10)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'stock': 999, 'price': '6000.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.stock, 10)
        self.assertEqual(product.price, Decimal('6000.00'))

    def test_delete_product_with_orders_deactivates(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_order(product=product)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertFalse(product.is_active)

    def test_delete_unused_product(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.id).exists())


class StockAdjustmentTests(TestCase):
    """Test warehouse stock adjustments"""

    def setUp(self):
        self.supervisor = TestDataFactory.create_user(role=ROLE_SUPERVISOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.supervisor)
        self.product = TestDataFactory.create_product(stock=20)

    def test_adjust_records_movement(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': -5, 'reason': 'Damaged'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock'], 15)
        movement = StockMovement.objects.get(product=self.product)
        self.assertEqual(movement.quantity, -5)
        self.assertEqual(movement.movement_type, 'adjustment')

    def test_adjust_below_zero_rejected(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': -21}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 20)

    def test_zero_adjustment_rejected(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_adjust_to_low_stock_raises_alert(self):
        self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': -18}, format='json')
        alert = StockAlert.objects.get(product=self.product, is_acknowledged=False)
        self.assertEqual(alert.severity, 'critical')
