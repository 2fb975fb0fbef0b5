"""
Test suite for Integrations module
Tests: Order webhook (payload shapes, validation, signature, throttling), outbound sync, embed form
"""
import hashlib
import hmac
import json
from decimal import Decimal
from unittest import mock

import requests
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from backend.clients.models import Client
from backend.core.models import AuditLog
from backend.core.permissions import ROLE_SUPERVISOR
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.integrations.sync import send_order_confirmed
from backend.integrations.webhook import (
    WebhookRateThrottle, extract_order_fields, sanitize_string, verify_signature
)
from backend.orders.models import Order

WEBHOOK_URL = '/api/v1/webhook/orders/'
SYNC_URL = 'https://shop.example.com/hooks/crm'


class WebhookPayloadTests(TestCase):
    """Test payload mapping and sanitizing helpers"""

    def test_form_builder_fields(self):
        fields = extract_order_fields({
            'name': 'Awa Kone', 'phone': '0701020304', 'address': 'Cocody',
            'product_name': 'Moringa', 'quantity': '2', 'unit_price': '5000',
        })
        self.assertEqual(fields['client_name'], 'Awa Kone')
        self.assertEqual(fields['product_name'], 'Moringa')
        self.assertEqual(fields['quantity'], '2')

    def test_woocommerce_fields(self):
        fields = extract_order_fields({
            'id': 981,
            'billing_first_name': 'Jean', 'billing_last_name': 'Yao',
            'billing_phone': '+225 05 11 22 33 44',
            'billing_address_1': 'Rue 1', 'billing_address_2': 'Porte 4', 'billing_city': 'Abidjan',
            'line_items': [{'name': 'Shea Butter', 'quantity': 3, 'price': '2500'}],
            'total': '7500',
        })
        self.assertEqual(fields['client_name'], 'Jean Yao')
        self.assertEqual(fields['address'], 'Rue 1, Porte 4')
        self.assertEqual(fields['product_name'], 'Shea Butter')
        self.assertEqual(fields['quantity'], 3)
        self.assertEqual(fields['notes'], 'Web order #981')
        self.assertEqual(fields['external_order_id'], '981')

    def test_elementor_fields(self):
        fields = extract_order_fields({'form': {'fields': {'phone': {'value': '0701020304'}, 'product_name': {'value': 'Tea'}}}})
        self.assertEqual(fields['phone'], '0701020304')
        self.assertEqual(fields['product_name'], 'Tea')

    def test_sanitize_string(self):
        self.assertEqual(sanitize_string('<script>javascript:alert(1)</script>'), 'scriptalert(1)/script')
        self.assertEqual(sanitize_string('img onerror=x'), 'img x')
        self.assertEqual(sanitize_string(None), '')

    def test_verify_signature(self):
        body = b'{"phone": "0701020304"}'
        digest = hmac.new(b'secret', body, hashlib.sha256).hexdigest()
        self.assertTrue(verify_signature(body, digest, 'secret'))
        self.assertTrue(verify_signature(body, f'sha256={digest}', 'secret'))
        self.assertFalse(verify_signature(body, 'deadbeef', 'secret'))
        self.assertFalse(verify_signature(body, '', 'secret'))


class WebhookOrderTests(TestCase):
    """Test the anonymous order webhook"""

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.product = TestDataFactory.create_product(name='Moringa Powder', price=Decimal('4500.00'))
        self.payload = {
            'name': 'Awa Kone',
            'phone': '+225 07 01 02 03 04',
            'address': 'Cocody Angre',
            'product_name': 'moringa',
            'quantity': 2,
        }

    def test_creates_client_and_pending_order(self):
        TestDataFactory.create_delivery_person(status='available')
        response = self.client.post(WEBHOOK_URL, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])

        order = Order.objects.get(pk=response.data['order']['id'])
        self.assertEqual(order.status, 'pending')
        self.assertEqual(order.product, self.product)
        self.assertEqual(order.total_amount, Decimal('9000.00'))
        self.assertIsNone(order.delivery_person)
        self.assertEqual(order.client.phone, '0701020304')
        self.assertTrue(AuditLog.objects.filter(action='webhook_order').exists())

    def test_existing_client_is_reused(self):
        client = TestDataFactory.create_client(phone='0701020304')
        response = self.client.post(WEBHOOK_URL, self.payload, format='json')
        self.assertEqual(response.data['client_id'], client.id)
        self.assertEqual(Client.objects.count(), 1)

    def test_unknown_product_needs_price(self):
        self.payload.update({'product_name': 'Unknown Gadget', 'unit_price': '1200'})
        response = self.client.post(WEBHOOK_URL, self.payload, format='json')
        order = Order.objects.get(pk=response.data['order']['id'])
        self.assertIsNone(order.product)
        self.assertEqual(order.total_amount, Decimal('2400.00'))

    def test_invalid_payloads(self):
        for overrides in ({'phone': 'call me'}, {'quantity': 1001}, {'product_name': ''}, {'unit_price': '2000000'}):
            payload = dict(self.payload, **overrides)
            response = self.client.post(WEBHOOK_URL, payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, overrides)
            self.assertFalse(response.data['success'])
        self.assertEqual(Order.objects.count(), 0)

    @override_settings(WEBHOOK_SECRET='s3cret')
    def test_signature_required_when_secret_set(self):
        body = json.dumps(self.payload).encode()
        response = self.client.post(WEBHOOK_URL, body, content_type='application/json',
                                    HTTP_X_WEBHOOK_SIGNATURE='bad')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

        signature = hmac.new(b's3cret', body, hashlib.sha256).hexdigest()
        response = self.client.post(WEBHOOK_URL, body, content_type='application/json',
                                    HTTP_X_WEBHOOK_SIGNATURE=f'sha256={signature}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_rate_limited(self):
        with mock.patch.object(WebhookRateThrottle, 'rate', '2/min', create=True):
            codes = [self.client.post(WEBHOOK_URL, self.payload, format='json').status_code for _ in range(3)]
        # Saving an order invalidates cached segments but keeps the request history
        self.assertEqual(codes, [status.HTTP_200_OK, status.HTTP_200_OK, status.HTTP_429_TOO_MANY_REQUESTS])
        self.assertEqual(Order.objects.count(), 2)


class OrderSyncTests(TestCase):
    """Test the outbound order_confirmed notification"""

    def setUp(self):
        self.order = TestDataFactory.create_order(status='confirmed')

    @override_settings(ORDER_SYNC_WEBHOOK_URL='')
    def test_skipped_without_url(self):
        self.assertTrue(send_order_confirmed(self.order.id)['skipped'])

    @override_settings(ORDER_SYNC_WEBHOOK_URL=SYNC_URL)
    def test_skipped_when_not_confirmed(self):
        order = TestDataFactory.create_order(status='pending')
        with mock.patch('backend.integrations.sync.requests.post') as post:
            result = send_order_confirmed(order.id)
        self.assertEqual(result['reason'], 'Order not confirmed')
        post.assert_not_called()

    @override_settings(ORDER_SYNC_WEBHOOK_URL=SYNC_URL)
    def test_sends_payload(self):
        with mock.patch('backend.integrations.sync.requests.post') as post:
            post.return_value.ok = True
            post.return_value.status_code = 200
            result = send_order_confirmed(self.order.id)
        self.assertTrue(result['sent'])
        payload = post.call_args.kwargs['json']
        self.assertEqual(payload['event'], 'order_confirmed')
        self.assertEqual(payload['client']['phone'], self.order.client.phone)

    @override_settings(ORDER_SYNC_WEBHOOK_URL=SYNC_URL)
    def test_network_failure_is_reported_not_raised(self):
        with mock.patch('backend.integrations.sync.requests.post', side_effect=requests.exceptions.ConnectionError('down')):
            result = send_order_confirmed(self.order.id)
        self.assertFalse(result['sent'])
        self.assertIn('down', result['error'])

    @override_settings(ORDER_SYNC_WEBHOOK_URL=SYNC_URL)
    def test_error_status_reported(self):
        with mock.patch('backend.integrations.sync.requests.post') as post:
            post.return_value.ok = False
            post.return_value.status_code = 500
            post.return_value.text = 'boom'
            result = send_order_confirmed(self.order.id)
        self.assertEqual(result, {'sent': False, 'webhook_status': 500})

    @override_settings(ORDER_SYNC_WEBHOOK_URL='')
    def test_manual_resend_endpoint(self):
        api = AuthenticatedAPIClient()
        api.authenticate_user(TestDataFactory.create_user(role=ROLE_SUPERVISOR))
        response = api.post(f'/api/v1/integrations/orders/{self.order.id}/sync/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['skipped'])


class EmbedFormTests(TestCase):
    """Test the embeddable order form configuration"""

    def test_defaults_and_products(self):
        TestDataFactory.create_product(name='In stock', stock=3)
        TestDataFactory.create_product(name='Sold out', stock=0)
        response = APIClient().get('/api/v1/embed/order-form/', {'color': 'red', 'price': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['color'], '#8B5CF6')
        self.assertIsNone(response.data['price'])
        self.assertEqual([p['name'] for p in response.data['products']], ['In stock'])
        self.assertTrue(response.data['webhook_url'].endswith(WEBHOOK_URL))

    def test_custom_color_and_price(self):
        response = APIClient().get('/api/v1/embed/order-form/', {'color': '#112233', 'price': '2500', 'brand': 'Bio'})
        self.assertEqual(response.data['color'], '#112233')
        self.assertEqual(response.data['price'], 2500.0)
        self.assertEqual(response.data['brand'], 'Bio')
