"""
Outbound order sync: notify the storefront when an order is confirmed.
Failures are logged and reported in the return value, never raised.
"""
import logging

import requests
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

SYNC_SOURCE = 'callcenter-crm'


def build_order_confirmed_payload(order):
    client = order.client
    product = order.product
    return {
        'event': 'order_confirmed',
        'source': SYNC_SOURCE,
        'sent_at': timezone.now().isoformat(),
        'order': {
            'order_id': order.id,
            'order_number': order.order_number,
            'status': order.status,
            'quantity': order.quantity,
            'unit_price': str(order.unit_price),
            'total_amount': str(order.total_amount),
            'delivery_address': order.delivery_address,
            'delivery_notes': order.delivery_notes,
            'confirmed_at': timezone.now().isoformat(),
        },
        'client': {
            'id': client.id,
            'full_name': client.full_name,
            'phone': client.phone or order.client_phone,
            'phone_secondary': client.phone_secondary,
            'address': client.address,
            'city': client.city,
        },
        'product': {
            'id': product.id if product else None,
            'name': product.name if product else None,
            'price': str(product.price) if product else None,
        },
    }


def send_order_confirmed(order_id):
    """POST the ``order_confirmed`` event for ``order_id`` if a URL is configured"""
    from backend.orders.models import Order

    url = settings.ORDER_SYNC_WEBHOOK_URL
    if not url:
        logger.debug("ORDER_SYNC_WEBHOOK_URL not configured, skipping order sync")
        return {'sent': False, 'skipped': True, 'reason': 'Sync URL not configured'}

    order = Order.objects.select_related('client', 'product').filter(pk=order_id).first()
    if order is None:
        logger.warning(f"Order {order_id} not found for sync")
        return {'sent': False, 'error': 'Order not found'}
    if order.status != 'confirmed':
        logger.info(f"Order {order.order_number} status is {order.status}, skipping sync")
        return {'sent': False, 'skipped': True, 'reason': 'Order not confirmed'}

    try:
        response = requests.post(url, json=build_order_confirmed_payload(order),
                                 timeout=settings.ORDER_SYNC_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.error(f"Order sync failed for {order.order_number}: {str(e)}")
        return {'sent': False, 'error': str(e)}

    if not response.ok:
        logger.error(f"Order sync for {order.order_number} returned {response.status_code}: {response.text[:500]}")
        return {'sent': False, 'webhook_status': response.status_code}

    logger.info(f"Order {order.order_number} synced ({response.status_code})")
    return {'sent': True, 'webhook_status': response.status_code}
