"""
Automatic distribution of pending orders to online callers.

Runs only inside the distribution window (UTC). Every online caller gets
``floor(n / callers)`` orders, taken oldest first, in order of
performance; the remainder goes to the top performer. Performance is the
number of delivered orders assigned to the caller.
"""
import logging
from datetime import timezone as dt_timezone

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from backend.core.cache_signals import suspend_cache_signals
from backend.core.cache_utils import invalidate_dashboard_cache
from backend.core.permissions import ROLE_SLUGS, ROLE_CALLER
from backend.core.utils import get_online_presences
from .models import Order

logger = logging.getLogger(__name__)


def within_distribution_hours(now):
    start_hour = settings.CRM['DISTRIBUTION_START_HOUR']
    end_hour = settings.CRM['DISTRIBUTION_END_HOUR']
    end_minute = settings.CRM['DISTRIBUTION_END_MINUTE']
    now = now.astimezone(dt_timezone.utc) if timezone.is_aware(now) else now
    return (start_hour <= now.hour < end_hour) or (now.hour == end_hour and now.minute <= end_minute)


def ranked_online_callers():
    """Online callers as ``(user, points)``, best performer first"""
    from django.contrib.auth import get_user_model
    User = get_user_model()

    user_ids = list(get_online_presences(ROLE_SLUGS[ROLE_CALLER]).values_list('user_id', flat=True))
    callers = (User.objects
               .filter(id__in=user_ids, is_active=True)
               .annotate(points=Count('assigned_orders', filter=Q(assigned_orders__status='delivered')))
               .order_by('id'))
    return sorted(((caller, caller.points) for caller in callers), key=lambda entry: -entry[1])


def plan_distribution(order_ids, callers):
    """
    Split ``order_ids`` among ``callers`` (already ranked).

    Returns a list of ``(order_id, caller)`` pairs.
    """
    if not callers:
        return []
    per_caller, remainder = divmod(len(order_ids), len(callers))
    assignments = []
    index = 0
    for caller in callers:
        for _ in range(per_caller):
            assignments.append((order_ids[index], caller))
            index += 1
    top_performer = callers[0]
    for _ in range(remainder):
        assignments.append((order_ids[index], top_performer))
        index += 1
    return assignments


def auto_distribute_orders(now=None):
    """
    Distribute pending unassigned orders to online callers.

    Returns a result dict; ``skipped`` is set when called outside the
    distribution window.
    """
    from backend.agent.models import AIInstruction, AIExecutionLog

    now = now or timezone.now()
    if not within_distribution_hours(now):
        logger.info(f"Outside distribution hours. Current time: {now:%H:%M} UTC")
        return {'success': True, 'skipped': True, 'distributed': 0,
                'message': 'Outside distribution hours'}

    ranked = ranked_online_callers()
    if not ranked:
        logger.info("No online callers found")
        return {'success': True, 'distributed': 0, 'message': 'No online callers available'}

    order_ids = list(Order.objects
                     .filter(status='pending', assigned_to__isnull=True)
                     .order_by('created_at', 'id')
                     .values_list('id', flat=True))
    if not order_ids:
        logger.info("No pending orders to distribute")
        return {'success': True, 'distributed': 0, 'online_callers': len(ranked),
                'message': 'No pending orders to distribute'}

    callers = [caller for caller, _ in ranked]
    per_caller, remainder = divmod(len(order_ids), len(callers))
    assignments = plan_distribution(order_ids, callers)

    with transaction.atomic(), suspend_cache_signals():
        for order_id, caller in assignments:
            Order.objects.filter(pk=order_id).update(assigned_to=caller, updated_at=timezone.now())

        instruction = AIInstruction.objects.create(
            instruction=f"Automatic distribution: {len(assignments)} orders to {len(callers)} callers",
            instruction_type='auto_distribution',
            status='completed',
            executed_at=timezone.now(),
            affected_count=len(assignments),
            result={
                'message': f"{len(assignments)} orders distributed",
                'distribution': {
                    'total_orders': len(order_ids),
                    'callers_count': len(callers),
                    'orders_per_caller': per_caller,
                    'remainder': remainder,
                    'top_performer': callers[0].id,
                },
            },
        )
        AIExecutionLog.objects.bulk_create([
            AIExecutionLog(
                instruction=instruction,
                action_type='assign_order',
                entity_type='order',
                entity_id=str(order_id),
                details={'assigned_to': caller.id},
            )
            for order_id, caller in assignments
        ])

    invalidate_dashboard_cache()
    logger.info(f"Assigned {len(assignments)} orders among {len(callers)} callers, "
                f"{remainder} remainder to user {callers[0].id}")
    return {
        'success': True,
        'distributed': len(assignments),
        'online_callers': len(callers),
        'orders_per_caller': per_caller,
        'remainder': remainder,
        'instruction_id': instruction.id,
        'message': f"{len(assignments)} orders distributed",
    }
