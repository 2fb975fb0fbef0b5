"""
Dispatch of confirmed orders to delivery agents.

The queue is every confirmed order without an agent, oldest first.
Candidates are active agents that are available or busy, ranked by their
current workload (confirmed plus in-transit orders). Assignment is a
single-column update: concurrent supervisors can overwrite each other and
the last write wins.
"""
import logging
from decimal import Decimal

from django.db.models import Count, Q

from backend.core.cache_utils import invalidate_dashboard_cache, invalidate_segments_cache
from backend.core.utils import create_audit_log
from .models import DeliveryPerson

logger = logging.getLogger(__name__)

WORKLOAD_STATUSES = ['confirmed', 'in_transit']
DISPATCHABLE_STATUSES = ['available', 'busy']


def dispatch_queue():
    from backend.orders.models import Order
    return (Order.objects
            .filter(status='confirmed', delivery_person__isnull=True)
            .select_related('client', 'product')
            .order_by('created_at', 'id'))


def dispatch_candidates(zone=None):
    """
    Eligible agents annotated with ``pending_count``, least loaded first.

    The sort is stable, so agents with equal workload keep id order.
    """
    queryset = (DeliveryPerson.objects
                .filter(is_active=True, status__in=DISPATCHABLE_STATUSES)
                .select_related('user')
                .annotate(pending_count=Count('orders', filter=Q(orders__status__in=WORKLOAD_STATUSES)))
                .order_by('id'))
    if zone:
        queryset = queryset.filter(zone__iexact=zone)
    return sorted(queryset, key=lambda person: person.pending_count)


def assign_delivery_person(order, delivery_person, request=None, user=None):
    """Point ``order`` at ``delivery_person`` with a plain update"""
    from backend.orders.models import Order

    previous_id = order.delivery_person_id
    Order.objects.filter(pk=order.pk).update(delivery_person=delivery_person)
    order.delivery_person = delivery_person
    invalidate_dashboard_cache()
    invalidate_segments_cache()

    create_audit_log(
        request=request,
        user=user,
        action='assign_delivery',
        model_name='Order',
        object_id=order.pk,
        object_reference=order.order_number,
        changes={'delivery_person': {'old': previous_id, 'new': delivery_person.pk if delivery_person else None}}
    )
    logger.info(f"Order {order.order_number} assigned to delivery person {delivery_person.pk if delivery_person else None}")
    return order


def balance_by_workload(orders, workloads):
    """
    Greedy assignment plan.

    ``workloads`` is a list of ``(delivery_person, current_count)``. Each
    order goes to the agent with the smallest count, which is then
    incremented. Returns ``{delivery_person_id: [order, ...]}``.
    """
    counts = [[person, count] for person, count in workloads]
    plan = {person.pk: [] for person, _ in counts}
    if not counts:
        return plan
    for order in orders:
        # Re-sorting in place keeps tie order stable between iterations
        counts.sort(key=lambda entry: entry[1])
        target = counts[0]
        plan[target[0].pk].append(order)
        target[1] += 1
    return plan


def reset_daily_counters():
    """Zero ``daily_deliveries`` and ``daily_amount`` on every agent; run once a day"""
    updated = (DeliveryPerson.objects
               .exclude(daily_deliveries=0, daily_amount=0)
               .update(daily_deliveries=0, daily_amount=Decimal('0.00')))
    invalidate_dashboard_cache()
    logger.info(f"Daily delivery counters reset for {updated} delivery persons")
    return updated
