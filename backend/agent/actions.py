"""
Console operations. Each handler receives the running ``AIInstruction``
and the parsed params and returns ``(message, affected_count)``; entities
it touches are recorded as ``AIExecutionLog`` rows.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from backend.catalog.models import Product
from backend.clients.models import Client
from backend.core.cache_utils import invalidate_dashboard_cache, invalidate_segments_cache
from backend.core.permissions import ROLE_CALLER
from backend.delivery.dispatch import balance_by_workload
from backend.delivery.models import DeliveryPerson
from backend.inventory.models import StockAlert
from backend.orders.models import Order, FollowUp
from .models import AIExecutionLog

logger = logging.getLogger(__name__)

RECENT_ORDERS_WINDOW = 100
CRITICAL_STOCK_LEVEL = 5
DEFAULT_STOCK_THRESHOLD = 10
TOP_CLIENTS_SHOWN = 10

FOLLOWUP_TYPE_LABELS = {
    'reminder': 'reminder',
    'partial_payment': 'payment',
    'rescheduled': 'rescheduling',
    'retargeting': 'sales follow-up',
}


def _log(instruction, action_type, entity_type, entity_id, details):
    return AIExecutionLog(
        instruction=instruction,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=details,
    )


def _active_callers():
    User = get_user_model()
    return list(User.objects.filter(groups__name=ROLE_CALLER, is_active=True).distinct().order_by('id'))


def _display_name(user):
    return user.get_full_name() or user.username


def distribute_orders(instruction, params, user):
    """Round-robin unassigned orders among active callers"""
    callers = _active_callers()
    if not callers:
        return "No active caller found.", 0

    orders = Order.objects.filter(assigned_to__isnull=True, status=params.get('filter_status', 'pending'))
    order_ids = list(orders.order_by('created_at', 'id').values_list('id', flat=True))
    if not order_ids:
        return "Everything is already assigned. There is no pending order to distribute.", 0

    distribution = {caller.id: [] for caller in callers}
    for index, order_id in enumerate(order_ids):
        distribution[callers[index % len(callers)].id].append(order_id)

    logs = []
    for caller in callers:
        assigned = distribution[caller.id]
        if assigned:
            Order.objects.filter(id__in=assigned).update(assigned_to=caller, updated_at=timezone.now())
            logs.extend(_log(instruction, 'assign_order', 'order', order_id, {'assigned_to': caller.id})
                        for order_id in assigned)
    AIExecutionLog.objects.bulk_create(logs)
    invalidate_dashboard_cache()
    logger.info(f"Instruction {instruction.id}: {len(order_ids)} orders distributed among {len(callers)} callers")

    summary = '\n'.join(f"- {_display_name(caller)}: {len(distribution[caller.id])} orders" for caller in callers)
    return f"Done! {len(order_ids)} orders distributed among {len(callers)} callers:\n\n{summary}", len(order_ids)


def distribute_to_delivery(instruction, params, user):
    """Send confirmed orders without an agent to available agents, least loaded first"""
    orders = (Order.objects
              .filter(status='confirmed', delivery_person__isnull=True)
              .select_related('client')
              .order_by('created_at', 'id'))
    zones = [zone.lower() for zone in params.get('zones', [])]
    if zones:
        orders = [order for order in orders if (order.client.zone or '').lower() in zones]
    else:
        orders = list(orders)

    agents = list(DeliveryPerson.objects
                  .filter(is_active=True, status='available')
                  .select_related('user')
                  .order_by('id'))
    if not agents:
        return "No delivery person is available right now.", 0
    if not orders:
        return "Every confirmed order already has a delivery person. Nothing to do.", 0

    agents.sort(key=lambda agent: agent.daily_deliveries)
    plan = balance_by_workload(orders, [(agent, agent.daily_deliveries) for agent in agents])

    logs = []
    lines = []
    for agent in agents:
        assigned = plan[agent.pk]
        if not assigned:
            continue
        Order.objects.filter(id__in=[order.id for order in assigned]).update(
            delivery_person=agent, status='in_transit', updated_at=timezone.now()
        )
        logs.extend(
            _log(instruction, 'assign_delivery', 'order', order.id,
                 {'delivery_person_id': agent.pk, 'delivery_person_name': agent.name})
            for order in assigned
        )
        lines.append(f"- {agent.name}: {len(assigned)} orders")
    AIExecutionLog.objects.bulk_create(logs)
    invalidate_dashboard_cache()
    invalidate_segments_cache()
    logger.info(f"Instruction {instruction.id}: {len(orders)} orders sent to {len(lines)} delivery people")

    return f"Done! {len(orders)} orders are out for delivery:\n\n" + '\n'.join(lines), len(orders)


def create_followups(instruction, params, user):
    """One follow-up tomorrow for each matching order without a pending one"""
    followup_type = params.get('followup_type', 'reminder')
    orders = Order.objects.all()
    if params.get('filter_status'):
        orders = orders.filter(status=params['filter_status'])
    else:
        orders = orders.exclude(status__in=['delivered', 'cancelled'])
    if params.get('days_since_order'):
        orders = orders.filter(created_at__lt=timezone.now() - timedelta(days=params['days_since_order']))
    orders = orders.exclude(follow_ups__status='pending').order_by('created_at', 'id')

    orders = list(orders)
    if not orders:
        return "No new follow-up to create: every matching order already has one scheduled.", 0

    label = FOLLOWUP_TYPE_LABELS.get(followup_type, followup_type)
    scheduled_at = timezone.now() + timedelta(days=1)
    follow_ups = FollowUp.objects.bulk_create([
        FollowUp(
            client_id=order.client_id,
            order=order,
            type=followup_type,
            status='pending',
            scheduled_at=scheduled_at,
            notes=f"Automatic follow-up - type: {label}",
            created_by=user,
            assigned_to_id=order.assigned_to_id,
        )
        for order in orders
    ])
    AIExecutionLog.objects.bulk_create([
        _log(instruction, 'create_followup', 'follow_up', follow_up.pk,
             {'type': followup_type, 'order_id': follow_up.order_id})
        for follow_up in follow_ups
    ])
    invalidate_dashboard_cache()
    return (f"Done! {len(follow_ups)} {label} follow-ups created, scheduled for tomorrow.", len(follow_ups))


def stock_alerts(instruction, params, user):
    """List products at or under the threshold, or raise warehouse alerts for them"""
    threshold = params.get('threshold') or DEFAULT_STOCK_THRESHOLD
    products = list(Product.objects.filter(is_active=True, stock__lte=threshold).order_by('stock', 'name'))
    if not products:
        return f"Good news! Every product has more than {threshold} units in stock.", 0

    def severity(product):
        return 'critical' if product.stock <= threshold / 2 else 'warning'

    lines = '\n'.join(
        f"- {p.name}: {p.stock} units{' (CRITICAL)' if severity(p) == 'critical' else ''}" for p in products
    )
    if params.get('action') != 'alert':
        return f"Products to watch ({threshold} units or less):\n\n{lines}", 0

    logs = []
    for product in products:
        alert = StockAlert.objects.filter(
            product=product, alert_type='warehouse', delivery_person__isnull=True, is_acknowledged=False
        ).first()
        if alert:
            alert.severity = severity(product)
            alert.threshold = threshold
            alert.current_quantity = product.stock
            alert.save(update_fields=['severity', 'threshold', 'current_quantity', 'updated_at'])
        else:
            StockAlert.objects.create(
                product=product,
                alert_type='warehouse',
                threshold=threshold,
                current_quantity=product.stock,
                severity=severity(product),
            )
        logs.append(_log(instruction, 'create_stock_alert', 'product', product.id,
                         {'stock': product.stock, 'threshold': threshold}))
    AIExecutionLog.objects.bulk_create(logs)
    return f"{len(products)} stock alerts raised:\n\n{lines}\n\nRemember to restock these products.", len(products)


def client_analysis(instruction, params, user):
    """Clients of a stored segment, biggest spenders first"""
    clients = Client.objects.all()
    if params.get('segment'):
        clients = clients.filter(segment=params['segment'])
    if params.get('min_orders'):
        clients = clients.filter(total_orders__gte=params['min_orders'])
    clients = clients.order_by('-total_spent', 'full_name')

    total = clients.count()
    summary = f"Found {total} clients"
    if params.get('segment'):
        summary += f" in segment '{params['segment']}'"
    if params.get('min_orders'):
        summary += f" with at least {params['min_orders']} orders"
    top = '\n'.join(
        f"- {client.full_name}: {client.total_orders} orders, {client.total_spent} {settings.CRM['CURRENCY']}"
        for client in clients[:TOP_CLIENTS_SHOWN]
    )
    if not top:
        return summary + '.', 0
    return f"{summary}.\n\nTop {min(total, TOP_CLIENTS_SHOWN)}:\n{top}", 0


def shop_snapshot():
    """Figures shared by the performance report and the action plan"""
    recent = list(Order.objects.order_by('-created_at').values_list('status', flat=True)[:RECENT_ORDERS_WINDOW])
    by_status = {}
    for status in recent:
        by_status[status] = by_status.get(status, 0) + 1
    delivered = by_status.get('delivered', 0)
    return {
        'total_orders': len(recent),
        'by_status': by_status,
        'delivered': delivered,
        'pending': by_status.get('pending', 0),
        'confirmed': by_status.get('confirmed', 0),
        'delivery_rate': round(delivered / len(recent) * 100) if recent else 0,
        'critical_products': list(Product.objects.filter(is_active=True, stock__lte=CRITICAL_STOCK_LEVEL)
                                  .order_by('name').values_list('name', flat=True)),
        'available_agents': DeliveryPerson.objects.filter(is_active=True, status='available').count(),
        'vip_clients': Client.objects.filter(segment='vip').count(),
        'pending_followups': FollowUp.objects.filter(status='pending').count(),
    }


def performance_score(snapshot):
    """Mean of the delivery, stock and pending sub-scores, 0-100"""
    delivery_score = min(snapshot['delivery_rate'], 100)
    critical = len(snapshot['critical_products'])
    stock_score = 100 if critical == 0 else 70 if critical <= 2 else 40
    pending = snapshot['pending']
    pending_score = 100 if pending <= 5 else 70 if pending <= 15 else 40
    return round((delivery_score + stock_score + pending_score) / 3)


def score_label(score):
    if score >= 80:
        return 'Excellent'
    if score >= 60:
        return 'Fair'
    if score >= 40:
        return 'Needs improvement'
    return 'Attention required'


def global_performance(instruction, params, user):
    snapshot = shop_snapshot()
    score = performance_score(snapshot)

    recommendations = []
    if snapshot['pending']:
        recommendations.append(f"- {snapshot['pending']} pending orders to distribute")
    if snapshot['critical_products']:
        recommendations.append(f"- {len(snapshot['critical_products'])} products at critical stock to restock")
    if snapshot['delivery_rate'] < 70:
        recommendations.append(f"- Low delivery rate ({snapshot['delivery_rate']}%), check what is blocking")

    message = (f"Shop score: {score}/100 - {score_label(score)}\n\n"
               f"Going well:\n"
               f"- {snapshot['delivered']} orders delivered\n"
               f"- {snapshot['available_agents']} delivery people available\n"
               f"- {snapshot['vip_clients']} VIP clients")
    if recommendations:
        message += "\n\nTo improve:\n" + '\n'.join(recommendations)
    return message, 0


def action_plan(instruction, params, user):
    snapshot = shop_snapshot()
    period_label = 'this week' if params.get('period') == 'week' else 'today'

    steps = []
    if snapshot['pending']:
        steps.append(f"Distribute {snapshot['pending']} pending orders to callers")
    if snapshot['confirmed']:
        steps.append(f"Send {snapshot['confirmed']} confirmed orders out for delivery")
    if snapshot['critical_products']:
        steps.append(f"Restock {len(snapshot['critical_products'])} products: "
                     f"{', '.join(snapshot['critical_products'])}")
    if snapshot['pending_followups']:
        steps.append(f"Handle {snapshot['pending_followups']} pending follow-ups")

    if not steps:
        return f"Everything is under control {period_label}. Nothing urgent.", 0
    plan = '\n'.join(f"{index}. {step}" for index, step in enumerate(steps, start=1))
    return f"Action plan {period_label}:\n\n{plan}", 0


def help_text(instruction, params, user):
    return ("I can:\n"
            "- distribute pending orders to callers\n"
            "- send confirmed orders to delivery people (optionally for one zone)\n"
            "- create follow-ups for orders older than N days\n"
            "- list low stock or create stock alerts under a threshold\n"
            "- analyse clients of a segment (vip, new, regular, inactive)\n"
            "- give a global performance score\n"
            "- suggest an action plan for today or this week"), 0


HANDLERS = {
    'distribute_orders': distribute_orders,
    'distribute_to_delivery': distribute_to_delivery,
    'create_followups': create_followups,
    'stock_alerts': stock_alerts,
    'client_analysis': client_analysis,
    'global_performance': global_performance,
    'action_plan': action_plan,
    'help': help_text,
}
