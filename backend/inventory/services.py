"""
Stock services: warehouse adjustments, transfers with delivery agents,
threshold alerts and supply request workflow.

Every change to a stock quantity goes through this module so that a
``StockMovement`` is recorded and alerts are re-evaluated.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from backend.core.permissions import is_supervisor
from backend.core.utils import create_audit_log
from .models import StockThreshold, StockAlert, StockMovement, SupplyRequest

logger = logging.getLogger(__name__)


class StockError(Exception):
    """Raised when a stock operation would leave a negative quantity"""


def get_thresholds(product, location_type):
    """``(warning, critical)`` for a product and location type"""
    threshold = StockThreshold.objects.filter(product=product, location_type=location_type).first()
    if threshold:
        return threshold.warning_threshold, threshold.critical_threshold
    return settings.CRM['DEFAULT_LOW_STOCK_THRESHOLD'], settings.CRM['DEFAULT_CRITICAL_STOCK_THRESHOLD']


def classify_stock(quantity, warning, critical):
    if quantity <= critical:
        return 'critical'
    if quantity <= warning:
        return 'warning'
    return None


def evaluate_stock_alert(product, alert_type, quantity, delivery_person=None):
    """
    Open, update or close the alert for one product and location.

    Returns the open alert, or ``None`` when stock is above the warning
    threshold.
    """
    warning, critical = get_thresholds(product, alert_type)
    severity = classify_stock(quantity, warning, critical)
    existing = StockAlert.objects.filter(
        product=product, alert_type=alert_type, delivery_person=delivery_person, is_acknowledged=False
    ).order_by('-created_at')

    if severity is None:
        closed = existing.update(is_acknowledged=True, acknowledged_at=timezone.now())
        if closed:
            logger.info(f"Closed {closed} stock alert(s) for product {product.id} ({alert_type})")
        return None

    threshold = critical if severity == 'critical' else warning
    alert = existing.first()
    if alert:
        alert.severity = severity
        alert.threshold = threshold
        alert.current_quantity = quantity
        alert.save(update_fields=['severity', 'threshold', 'current_quantity', 'updated_at'])
    else:
        alert = StockAlert.objects.create(
            product=product,
            alert_type=alert_type,
            delivery_person=delivery_person,
            threshold=threshold,
            current_quantity=quantity,
            severity=severity,
        )
        logger.warning(f"{severity.capitalize()} stock for product {product.id} ({alert_type}): {quantity} left")
    return alert


def refresh_stock_alerts(product, delivery_person=None):
    """Re-evaluate the warehouse alert and, if given, the agent's alert"""
    from backend.delivery.models import DeliveryPersonStock

    evaluate_stock_alert(product, 'warehouse', product.stock)
    if delivery_person is not None:
        item = DeliveryPersonStock.objects.filter(delivery_person=delivery_person, product=product).first()
        evaluate_stock_alert(product, 'delivery_person', item.quantity if item else 0, delivery_person)


def upsert_threshold(product, location_type, warning_threshold, critical_threshold):
    threshold, _ = StockThreshold.objects.update_or_create(
        product=product,
        location_type=location_type,
        defaults={'warning_threshold': warning_threshold, 'critical_threshold': critical_threshold},
    )
    return threshold


def open_alerts(alert_type=None):
    """Unacknowledged alerts, critical first then newest first"""
    from django.db.models import Case, IntegerField, Value, When

    queryset = StockAlert.objects.filter(is_acknowledged=False).select_related('product', 'delivery_person__user')
    if alert_type:
        queryset = queryset.filter(alert_type=alert_type)
    return queryset.annotate(
        severity_rank=Case(
            When(severity='critical', then=Value(0)),
            When(severity='warning', then=Value(1)),
            default=Value(2),
            output_field=IntegerField(),
        )
    ).order_by('severity_rank', '-created_at')


def acknowledge_alert(alert, user):
    alert.is_acknowledged = True
    alert.acknowledged_by = user
    alert.acknowledged_at = timezone.now()
    alert.save(update_fields=['is_acknowledged', 'acknowledged_by', 'acknowledged_at', 'updated_at'])
    return alert


def _lock_product(product):
    from backend.catalog.models import Product
    return Product.objects.select_for_update().get(pk=product.pk)


def _lock_delivery_stock(product, delivery_person):
    from backend.delivery.models import DeliveryPersonStock
    item, _ = DeliveryPersonStock.objects.get_or_create(delivery_person=delivery_person, product=product)
    return DeliveryPersonStock.objects.select_for_update().get(pk=item.pk)


@transaction.atomic
def adjust_warehouse_stock(product, delta, reason='', user=None, movement_type='adjustment'):
    """Add ``delta`` (may be negative) to the warehouse stock"""
    product = _lock_product(product)
    new_stock = product.stock + delta
    if new_stock < 0:
        raise StockError(f"Insufficient warehouse stock: {product.stock} available, {-delta} requested")

    product.stock = new_stock
    product.save(update_fields=['stock', 'updated_at'])
    StockMovement.objects.create(
        product=product,
        movement_type=movement_type,
        quantity=delta,
        reason=reason or '',
        performed_by=user,
    )
    refresh_stock_alerts(product)
    logger.info(f"Warehouse stock of product {product.id} changed by {delta} to {new_stock}")
    return product


@transaction.atomic
def transfer_stock_to_delivery(product, delivery_person, quantity, user=None, reason=''):
    """Move ``quantity`` units from the warehouse to a delivery agent"""
    if quantity <= 0:
        raise StockError("Quantity must be greater than 0")
    product = _lock_product(product)
    if product.stock < quantity:
        raise StockError(f"Insufficient warehouse stock: {product.stock} available, {quantity} requested")

    item = _lock_delivery_stock(product, delivery_person)
    product.stock -= quantity
    product.save(update_fields=['stock', 'updated_at'])
    item.quantity += quantity
    item.save(update_fields=['quantity', 'updated_at'])

    StockMovement.objects.create(
        product=product,
        movement_type='transfer_to_delivery',
        quantity=quantity,
        delivery_person=delivery_person,
        reason=reason or '',
        performed_by=user,
    )
    refresh_stock_alerts(product, delivery_person)
    create_audit_log(
        user=user,
        action='stock_transfer',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        changes={'direction': 'to_delivery', 'delivery_person': delivery_person.id, 'quantity': quantity}
    )
    logger.info(f"Transferred {quantity} x product {product.id} to delivery person {delivery_person.id}")
    return item


@transaction.atomic
def transfer_stock_from_delivery(product, delivery_person, quantity, user=None, reason=''):
    """Return ``quantity`` units from a delivery agent to the warehouse"""
    if quantity <= 0:
        raise StockError("Quantity must be greater than 0")
    product = _lock_product(product)
    item = _lock_delivery_stock(product, delivery_person)
    if item.quantity < quantity:
        raise StockError(f"Insufficient delivery stock: {item.quantity} available, {quantity} requested")

    item.quantity -= quantity
    item.save(update_fields=['quantity', 'updated_at'])
    product.stock += quantity
    product.save(update_fields=['stock', 'updated_at'])

    StockMovement.objects.create(
        product=product,
        movement_type='transfer_from_delivery',
        quantity=quantity,
        delivery_person=delivery_person,
        reason=reason or '',
        performed_by=user,
    )
    refresh_stock_alerts(product, delivery_person)
    create_audit_log(
        user=user,
        action='stock_transfer',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        changes={'direction': 'from_delivery', 'delivery_person': delivery_person.id, 'quantity': quantity}
    )
    logger.info(f"Returned {quantity} x product {product.id} from delivery person {delivery_person.id}")
    return item


def record_delivery_sale(order):
    """Take a delivered order's quantity out of the agent's stock when carried"""
    from backend.delivery.models import DeliveryPersonStock

    if not order.product_id or not order.delivery_person_id:
        return None
    item = (DeliveryPersonStock.objects
            .select_for_update()
            .filter(delivery_person_id=order.delivery_person_id, product_id=order.product_id)
            .first())
    if item is None or item.quantity < order.quantity:
        logger.warning(f"Delivery person {order.delivery_person_id} does not carry enough of product "
                       f"{order.product_id} for order {order.order_number}; stock left unchanged")
        return None

    item.quantity -= order.quantity
    item.save(update_fields=['quantity', 'updated_at'])
    movement = StockMovement.objects.create(
        product_id=order.product_id,
        movement_type='sale',
        quantity=order.quantity,
        delivery_person_id=order.delivery_person_id,
        order=order,
        reason=f"Order {order.order_number} delivered",
    )
    refresh_stock_alerts(order.product, order.delivery_person)
    return movement


def create_supply_request(product, user, requester_type, quantity_requested, reason='', delivery_person=None):
    if requester_type == 'delivery_person' and delivery_person is None:
        delivery_person = getattr(user, 'delivery_profile', None)
        if delivery_person is None:
            raise ValidationError({'delivery_person': 'A delivery person is required for this request type.'})
    if requester_type == 'warehouse':
        delivery_person = None
    return SupplyRequest.objects.create(
        product=product,
        requested_by=user,
        requester_type=requester_type,
        delivery_person=delivery_person,
        quantity_requested=quantity_requested,
        reason=reason or '',
    )


def review_supply_request(supply_request, decision, user, quantity_approved=None, notes='', request=None):
    """Approve or reject a pending request"""
    if supply_request.status != 'pending':
        raise ValidationError({'status': 'Only pending requests can be reviewed.'})

    supply_request.status = decision
    supply_request.quantity_approved = quantity_approved if decision == 'approved' else None
    supply_request.notes = notes or ''
    supply_request.reviewed_by = user
    supply_request.reviewed_at = timezone.now()
    supply_request.save()
    create_audit_log(
        request=request,
        user=user,
        action='supply_review',
        model_name='SupplyRequest',
        object_id=supply_request.id,
        object_name=supply_request.product.name,
        changes={'status': decision, 'quantity_approved': quantity_approved}
    )
    return supply_request


@transaction.atomic
def fulfill_supply_request(supply_request, user):
    """
    Execute an approved request.

    Delivery agent requests move stock from the warehouse to the agent;
    warehouse requests book the goods in. Raises ``StockError`` when the
    warehouse cannot cover the transfer.
    """
    supply_request = SupplyRequest.objects.select_for_update().get(pk=supply_request.pk)
    if supply_request.status != 'approved':
        raise ValidationError({'status': 'The request must be approved first.'})

    quantity = supply_request.quantity_approved or supply_request.quantity_requested
    if supply_request.requester_type == 'delivery_person' and supply_request.delivery_person_id:
        transfer_stock_to_delivery(
            supply_request.product, supply_request.delivery_person, quantity, user=user,
            reason=f"Supply request {supply_request.id}"
        )
    else:
        adjust_warehouse_stock(
            supply_request.product, quantity, reason=f"Supply request {supply_request.id}",
            user=user, movement_type='in'
        )

    supply_request.status = 'fulfilled'
    supply_request.fulfilled_at = timezone.now()
    supply_request.save(update_fields=['status', 'fulfilled_at', 'updated_at'])
    return supply_request


def cancel_supply_request(supply_request, user):
    """Requester withdraws a pending request (stored as rejected)"""
    if supply_request.requested_by_id != user.id and not is_supervisor(user):
        raise PermissionDenied("Only the requester can cancel this request.")
    if supply_request.status != 'pending':
        raise ValidationError({'status': 'Only pending requests can be cancelled.'})
    supply_request.status = 'rejected'
    supply_request.notes = 'Cancelled by requester'
    supply_request.save(update_fields=['status', 'notes', 'updated_at'])
    return supply_request
