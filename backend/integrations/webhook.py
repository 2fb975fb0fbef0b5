"""
Inbound order webhook payloads.

Form builders post flat fields (``name``, ``phone``, ``address``,
``product_name``, ``unit_price``, ``quantity``, ``notes``); e-commerce
platforms post WooCommerce-style ``billing_*`` fields and ``line_items``.
``extract_order_fields`` maps both onto one flat dict which
``WebhookOrderSerializer`` then validates.
"""
import hashlib
import hmac
import logging
import re

from rest_framework import serializers
from rest_framework.throttling import SimpleRateThrottle

from backend.clients.phone import normalize_phone

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^[0-9+\s()\-]{8,20}$')
MAX_QUANTITY = 1000
MAX_UNIT_PRICE = 1000000
MAX_TOTAL_AMOUNT = 10000000

_ANGLE_BRACKETS = re.compile(r'[<>]')
_JS_PROTOCOL = re.compile(r'javascript:', re.IGNORECASE)
_EVENT_HANDLER = re.compile(r'on\w+=', re.IGNORECASE)


class WebhookRateThrottle(SimpleRateThrottle):
    """Per-IP limit for the anonymous webhook (``webhook`` rate)"""
    scope = 'webhook'

    def get_cache_key(self, request, view):
        return self.cache_format % {'scope': self.scope, 'ident': self.get_ident(request)}


def sanitize_string(value):
    """Strip markup and script fragments from free text"""
    if value is None:
        return ''
    value = _ANGLE_BRACKETS.sub('', str(value))
    value = _JS_PROTOCOL.sub('', value)
    value = _EVENT_HANDLER.sub('', value)
    return value.strip()


def verify_signature(raw_body, signature, secret):
    """HMAC-SHA256 of the raw body, hex encoded, optionally ``sha256=`` prefixed"""
    if not signature:
        return False
    if signature.startswith('sha256='):
        signature = signature[len('sha256='):]
    expected = hmac.new(secret.encode('utf-8'), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def _flatten_form_fields(body):
    # Elementor style: {"fields": {"phone": {"value": "..."}}} or {"form": {"fields": {...}}}
    fields = body.get('fields')
    if not isinstance(fields, dict) and isinstance(body.get('form'), dict):
        fields = body['form'].get('fields')
    if not isinstance(fields, dict):
        return body
    merged = dict(body)
    for key, value in fields.items():
        if isinstance(value, dict):
            value = value.get('value')
        merged.setdefault(key, value)
    return merged


def _first(body, *keys):
    for key in keys:
        value = body.get(key)
        if value not in (None, ''):
            return value
    return None


def extract_order_fields(body):
    """Map any supported payload shape onto the flat webhook fields"""
    body = _flatten_form_fields(body)
    line_items = body.get('line_items') or []
    line_item = line_items[0] if isinstance(line_items, list) and line_items and isinstance(line_items[0], dict) else {}

    if body.get('billing_first_name'):
        client_name = f"{body['billing_first_name']} {body.get('billing_last_name') or ''}".strip()
    else:
        client_name = _first(body, 'client_name', 'customer_name', 'name')

    if body.get('billing_address_1'):
        address = body['billing_address_1']
        if body.get('billing_address_2'):
            address = f"{address}, {body['billing_address_2']}"
    else:
        address = _first(body, 'address', 'client_address')

    external_order_id = _first(body, 'id', 'order_id', 'order_number')
    notes = _first(body, 'customer_note', 'order_notes', 'notes')
    if notes is None and external_order_id is not None:
        notes = f"Web order #{external_order_id}"

    return {
        'client_name': client_name,
        'phone': _first(body, 'billing_phone', 'phone', 'client_phone'),
        'address': address,
        'city': _first(body, 'billing_city', 'city', 'client_city'),
        'product_name': _first(line_item, 'name') or _first(body, 'product_name', 'product'),
        'quantity': _first(line_item, 'quantity') or _first(body, 'quantity') or 1,
        'unit_price': _first(line_item, 'price') or _first(body, 'unit_price', 'price'),
        'total_amount': _first(body, 'total', 'order_total', 'total_amount'),
        'notes': notes,
        'external_order_id': str(external_order_id) if external_order_id is not None else None,
    }


class WebhookOrderSerializer(serializers.Serializer):
    client_name = serializers.CharField(min_length=2, max_length=200, required=False, allow_null=True)
    phone = serializers.CharField(max_length=20)
    address = serializers.CharField(max_length=500, required=False, allow_null=True, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_null=True, allow_blank=True)
    product_name = serializers.CharField(min_length=1, max_length=200)
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY, default=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, max_value=MAX_UNIT_PRICE,
                                          required=False, allow_null=True)
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0,
                                            max_value=MAX_TOTAL_AMOUNT, required=False, allow_null=True)
    notes = serializers.CharField(max_length=1000, required=False, allow_null=True, allow_blank=True)
    external_order_id = serializers.CharField(max_length=100, required=False, allow_null=True)

    def validate_phone(self, value):
        if not PHONE_PATTERN.match(value):
            raise serializers.ValidationError("Invalid phone number.")
        cleaned = re.sub(r'[\s()\-]', '', value)
        return normalize_phone(cleaned) or cleaned

    def validate(self, data):
        for field in ('client_name', 'address', 'city', 'product_name', 'notes'):
            data[field] = sanitize_string(data.get(field))
        if not data['product_name']:
            raise serializers.ValidationError({'product_name': 'Product name is required.'})
        data['client_name'] = data['client_name'] or 'Web client'
        return data
