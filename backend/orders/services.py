"""
Order lifecycle services shared by the API views, the webhook and the
instruction console.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from backend.core.permissions import ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR, get_user_roles, has_role
from backend.core.utils import create_audit_log
from .models import Order, Payment

logger = logging.getLogger(__name__)

# Statuses a delivery agent may set on the orders they carry
DELIVERY_STATUSES = ['in_transit', 'delivered', 'partial', 'reported']
REASON_REQUIRED_STATUSES = ['cancelled', 'reported']

VIP_MIN_DELIVERED = 5
REGULAR_MIN_DELIVERED = 3
INACTIVE_AFTER_DAYS = 90


def generate_order_number():
    """CMD-YYYYMMDD-XXXXXX, unique across orders"""
    prefix = f"CMD-{timezone.now().strftime('%Y%m%d')}-"
    order_number = f"{prefix}{uuid.uuid4().hex[:6].upper()}"
    while Order.objects.filter(order_number=order_number).exists():
        order_number = f"{prefix}{uuid.uuid4().hex[:6].upper()}"
    return order_number


def visible_orders(user):
    """
    Orders ``user`` may see: supervisors see everything, callers the orders
    they created or that are assigned to them, delivery agents the orders on
    their delivery profile.
    """
    queryset = Order.objects.select_related('client', 'product', 'assigned_to', 'delivery_person__user')
    if has_role(user, ROLE_SUPERVISOR):
        return queryset

    roles = get_user_roles(user)
    scope = Q(pk__in=[])
    if ROLE_CALLER in roles:
        scope |= Q(assigned_to=user) | Q(created_by=user)
    if ROLE_DELIVERY in roles:
        scope |= Q(delivery_person__user=user)
    return queryset.filter(scope)


def _stored_segment(delivered_count, total_spent, last_order_at, now):
    if delivered_count >= VIP_MIN_DELIVERED or total_spent >= settings.CRM['VIP_SPENT_THRESHOLD']:
        return 'vip'
    if delivered_count >= REGULAR_MIN_DELIVERED:
        return 'regular'
    if last_order_at and last_order_at < now - timedelta(days=INACTIVE_AFTER_DAYS):
        return 'inactive'
    return 'new'


def recalculate_client_stats(client):
    """
    Recompute ``total_orders`` and ``total_spent`` from delivered orders and
    refresh the stored segment. A client flagged problematic keeps the flag.
    """
    stats = client.orders.aggregate(
        delivered_count=Count('id', filter=Q(status='delivered')),
        delivered_total=Sum('total_amount', filter=Q(status='delivered')),
    )
    last_order = client.orders.order_by('-created_at').values_list('created_at', flat=True).first()

    client.total_orders = stats['delivered_count'] or 0
    client.total_spent = stats['delivered_total'] or Decimal('0.00')
    update_fields = ['total_orders', 'total_spent', 'updated_at']
    if client.segment != 'problematic':
        client.segment = _stored_segment(client.total_orders, client.total_spent, last_order, timezone.now())
        update_fields.append('segment')
    client.save(update_fields=update_fields)
    return client


def first_available_delivery_person():
    from backend.delivery.models import DeliveryPerson
    return DeliveryPerson.objects.filter(is_active=True, status='available').order_by('id').first()


@transaction.atomic
def create_order(validated_data, user=None, request=None, auto_assign_delivery=True):
    """
    Create an order from serializer data.

    The client's phone is snapshotted on the order and, unless told
    otherwise, the first active available delivery agent is attached.
    """
    client = validated_data['client']
    product = validated_data.get('product')
    if product and not validated_data.get('unit_price'):
        validated_data['unit_price'] = product.price

    order = Order(order_number=generate_order_number(), created_by=user, **validated_data)
    if not order.client_phone:
        order.client_phone = client.phone
    if not order.delivery_address:
        order.delivery_address = client.address
    if auto_assign_delivery and order.delivery_person_id is None:
        order.delivery_person = first_available_delivery_person()
    order.save()

    recalculate_client_stats(client)
    create_audit_log(
        request=request,
        user=user,
        action='create',
        model_name='Order',
        object_id=order.id,
        object_name=client.full_name,
        object_reference=order.order_number,
        changes={'total_amount': str(order.total_amount), 'status': order.status}
    )
    logger.info(f"Order {order.order_number} created for client {client.id}")
    return order


def _schedule_confirmation_sync(order):
    from backend.integrations.sync import send_order_confirmed
    order_id = order.pk
    transaction.on_commit(lambda: send_order_confirmed(order_id))


def _record_delivery(order):
    from backend.delivery.models import DeliveryPerson
    from backend.inventory.services import record_delivery_sale

    if order.delivery_person_id:
        DeliveryPerson.objects.filter(pk=order.delivery_person_id).update(
            daily_deliveries=F('daily_deliveries') + 1,
            daily_amount=F('daily_amount') + order.total_amount,
        )
        record_delivery_sale(order)


@transaction.atomic
def update_order_status(order, new_status, user, reason='', scheduled_at=None, amount_paid=None, request=None):
    """
    Move ``order`` to ``new_status``.

    Raises ``ValidationError`` for an unknown status or a missing reason and
    ``PermissionDenied`` when a delivery agent sets a status outside
    ``DELIVERY_STATUSES``.
    """
    valid_statuses = [choice[0] for choice in Order.STATUS_CHOICES]
    if new_status not in valid_statuses:
        raise ValidationError({'status': f"Invalid status. Must be one of: {', '.join(valid_statuses)}"})

    if not has_role(user, ROLE_CALLER, ROLE_SUPERVISOR) and new_status not in DELIVERY_STATUSES:
        raise PermissionDenied(f"Delivery agents can only set: {', '.join(DELIVERY_STATUSES)}")

    reason = (reason or '').strip()
    if new_status in REASON_REQUIRED_STATUSES and not reason:
        raise ValidationError({'reason': f"A reason is required to set the order {new_status}."})

    order = Order.objects.select_for_update().get(pk=order.pk)
    old_status = order.status
    order.status = new_status

    if new_status == 'delivered':
        order.delivered_at = timezone.now()
    elif new_status == 'cancelled':
        order.cancellation_reason = reason
    elif new_status == 'reported':
        order.report_reason = reason
        if scheduled_at:
            order.scheduled_at = scheduled_at

    if amount_paid is not None:
        order.amount_paid = amount_paid
    order.save()

    if new_status == 'delivered' and old_status != 'delivered':
        _record_delivery(order)
    if new_status == 'confirmed' and old_status != 'confirmed':
        _schedule_confirmation_sync(order)

    recalculate_client_stats(order.client)
    create_audit_log(
        request=request,
        user=user,
        action='status_change',
        model_name='Order',
        object_id=order.id,
        object_name=order.client.full_name,
        object_reference=order.order_number,
        changes={'status': {'old': old_status, 'new': new_status}, 'reason': reason}
    )
    logger.info(f"Order {order.order_number} status {old_status} -> {new_status}")
    return order


def _apply_payment_amount(order, delta):
    """
    Add ``delta`` (negative for a reversal) to ``amount_paid`` and move the
    order through the settlement statuses. Returns the previous status.
    """
    old_status = order.status
    order.amount_paid = max(order.amount_paid + Decimal(delta), Decimal('0.00'))
    remaining = order.total_amount - order.amount_paid
    if order.status in ('delivered', 'partial'):
        order.status = 'partial' if remaining > 0 else 'delivered'
    elif order.status in ('pending', 'reported') and delta > 0:
        order.status = 'confirmed'
    order.save()

    if order.status == 'confirmed' and old_status != 'confirmed':
        _schedule_confirmation_sync(order)
    return old_status


@transaction.atomic
def record_payment(order, amount, method='cash', status='completed', reference='', notes='', user=None, request=None):
    """
    Record a payment on ``order``.

    Completed payments raise ``amount_paid``. A pending or reported order
    becomes confirmed; a delivered order with money still due becomes
    partial, and a partial order that is settled becomes delivered.
    """
    order = Order.objects.select_for_update().get(pk=order.pk)
    payment = Payment.objects.create(
        order=order,
        amount=amount,
        method=method,
        status=status,
        reference=reference or '',
        notes=notes or '',
        created_by=user,
    )

    if status == 'completed':
        _apply_payment_amount(order, payment.amount)

    create_audit_log(
        request=request,
        user=user,
        action='payment_add',
        model_name='Order',
        object_id=order.id,
        object_reference=order.order_number,
        changes={'amount': str(payment.amount), 'method': method, 'status': status,
                 'amount_paid': str(order.amount_paid), 'amount_due': str(order.amount_due)}
    )
    logger.info(f"Payment of {payment.amount} recorded on order {order.order_number}")
    return payment


@transaction.atomic
def update_payment_status(payment, new_status, user=None, request=None):
    """
    Change a payment's status, crediting the order when the payment becomes
    completed and debiting it when a completed payment is failed or refunded.
    """
    valid_statuses = [choice[0] for choice in Payment.STATUS_CHOICES]
    if new_status not in valid_statuses:
        raise ValidationError({'status': f"Invalid status. Must be one of: {', '.join(valid_statuses)}"})

    payment = Payment.objects.select_for_update().get(pk=payment.pk)
    order = Order.objects.select_for_update().get(pk=payment.order_id)
    old_status = payment.status
    if old_status == new_status:
        return payment

    payment.status = new_status
    payment.save(update_fields=['status'])

    if new_status == 'completed':
        _apply_payment_amount(order, payment.amount)
    elif old_status == 'completed':
        _apply_payment_amount(order, -payment.amount)

    create_audit_log(
        request=request,
        user=user,
        action='status_change',
        model_name='Payment',
        object_id=payment.id,
        object_reference=order.order_number,
        changes={'status': {'old': old_status, 'new': new_status},
                 'amount_paid': str(order.amount_paid), 'amount_due': str(order.amount_due)}
    )
    logger.info(f"Payment {payment.id} on order {order.order_number} {old_status} -> {new_status}")
    return payment
