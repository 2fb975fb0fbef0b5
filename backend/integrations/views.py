import logging
import re

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes, throttle_classes
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.urls import reverse
from backend.catalog.models import Product
from backend.clients.models import Client
from backend.core.permissions import IsSupervisor
from backend.core.utils import create_audit_log
from backend.orders.models import Order
from backend.orders.services import create_order
from .sync import send_order_confirmed
from .webhook import WebhookOrderSerializer, WebhookRateThrottle, extract_order_fields, verify_signature

logger = logging.getLogger(__name__)

DEFAULT_BRAND_COLOR = '#8B5CF6'
HEX_COLOR = re.compile(r'^#[0-9A-Fa-f]{6}$')


def _find_product(product_name):
    products = Product.objects.filter(is_active=True)
    return (products.filter(name__iexact=product_name).first()
            or products.filter(name__icontains=product_name).order_by('name').first())


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([WebhookRateThrottle])
def webhook_orders(request):
    """Create a pending order from a form builder or storefront payload"""
    # The raw body must be read before request.data consumes the stream
    raw_body = request.body
    if settings.WEBHOOK_SECRET:
        signature = request.headers.get('X-Webhook-Signature', '')
        if not verify_signature(raw_body, signature, settings.WEBHOOK_SECRET):
            logger.warning("Webhook rejected: invalid signature")
            return Response({'success': False, 'error': 'Invalid signature'}, status=status.HTTP_401_UNAUTHORIZED)

    if not isinstance(request.data, dict):
        return Response({'success': False, 'error': 'Payload must be an object'},
                        status=status.HTTP_400_BAD_REQUEST)

    serializer = WebhookOrderSerializer(data=extract_order_fields(request.data))
    if not serializer.is_valid():
        logger.warning(f"Webhook payload rejected: {serializer.errors}")
        return Response({'success': False, 'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    with transaction.atomic():
        client = Client.objects.filter(phone=data['phone']).first()
        if client is None:
            client = Client.objects.create(
                full_name=data['client_name'],
                phone=data['phone'],
                address=data['address'],
                city=data['city'],
                notes='Imported from web order',
            )
            logger.info(f"Webhook created client {client.id}")

        product = _find_product(data['product_name'])
        unit_price = data.get('unit_price') or (product.price if product else 0)
        order = create_order(
            {
                'client': client,
                'product': product,
                'quantity': data['quantity'],
                'unit_price': unit_price,
                'total_amount': data.get('total_amount') or unit_price * data['quantity'],
                'delivery_address': data['address'] or client.address,
                'delivery_notes': data['notes'],
            },
            auto_assign_delivery=False,
        )

    create_audit_log(
        request=request,
        action='webhook_order',
        model_name='Order',
        object_id=order.id,
        object_name=client.full_name,
        object_reference=order.order_number,
        changes={'product_name': data['product_name'], 'external_order_id': data.get('external_order_id')}
    )
    return Response({
        'success': True,
        'message': 'Order created successfully',
        'order': {'id': order.id, 'order_number': order.order_number},
        'client_id': client.id,
        'external_order_id': data.get('external_order_id'),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def order_sync(request, pk):
    """Resend the confirmation event for a confirmed order"""
    order = get_object_or_404(Order, pk=pk)
    return Response(send_order_confirmed(order.pk))


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def embed_order_form(request):
    """Configuration for the standalone order form page"""
    color = request.query_params.get('color') or DEFAULT_BRAND_COLOR
    if not HEX_COLOR.match(color):
        color = DEFAULT_BRAND_COLOR

    price = request.query_params.get('price')
    try:
        price = float(price) if price else None
    except ValueError:
        price = None

    products = Product.objects.filter(is_active=True, stock__gt=0).order_by('name')
    return Response({
        'product': request.query_params.get('product') or None,
        'price': price,
        'color': color,
        'brand': request.query_params.get('brand', ''),
        'webhook_url': request.build_absolute_uri(reverse('webhook-orders')),
        'products': [{'id': p.id, 'name': p.name, 'price': str(p.price)} for p in products],
    })
