import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model
from django.db.models import Sum, Count, Q, DecimalField
from django.db.models.functions import TruncDate
from django.utils import timezone
from datetime import datetime, timedelta
from decimal import Decimal

from backend.core.cache_utils import cached_query, DASHBOARD_CACHE_PREFIX, DASHBOARD_KPI_CACHE_TTL
from backend.core.permissions import IsSupervisor, ROLE_CALLER
from backend.delivery.models import DeliveryPerson
from backend.inventory.models import StockAlert
from backend.orders.models import Order, Payment, FollowUp

logger = logging.getLogger('backend.reports')


def parse_period(request):
    """``date_from``/``date_to`` query params, defaulting to the last 30 days"""
    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)

    if not date_from:
        date_from = (timezone.now() - timedelta(days=30)).date()
    else:
        date_from = datetime.strptime(date_from, '%Y-%m-%d').date()

    if not date_to:
        date_to = timezone.now().date()
    else:
        date_to = datetime.strptime(date_to, '%Y-%m-%d').date()
    return date_from, date_to


def _period_orders(date_from, date_to):
    return Order.objects.filter(created_at__date__gte=date_from, created_at__date__lte=date_to)


@cached_query(cache_ttl=DASHBOARD_KPI_CACHE_TTL, key_prefix=DASHBOARD_CACHE_PREFIX)
def build_dashboard_summary(date_from, date_to):
    orders = _period_orders(date_from, date_to)

    by_status = {choice[0]: 0 for choice in Order.STATUS_CHOICES}
    for row in orders.values('status').annotate(count=Count('id')):
        by_status[row['status']] = row['count']
    total_orders = sum(by_status.values())
    delivered = by_status['delivered']

    delivered_revenue = orders.filter(status='delivered').aggregate(
        total=Sum('total_amount', output_field=DecimalField())
    )['total'] or Decimal('0.00')
    collected = Payment.objects.filter(
        status='completed',
        created_at__date__gte=date_from,
        created_at__date__lte=date_to,
    ).aggregate(total=Sum('amount', output_field=DecimalField()))['total'] or Decimal('0.00')
    outstanding = orders.exclude(status='cancelled').aggregate(
        total=Sum('amount_due', output_field=DecimalField())
    )['total'] or Decimal('0.00')

    daily = orders.annotate(date=TruncDate('created_at')).values('date').annotate(
        count=Count('id'),
        delivered=Count('id', filter=Q(status='delivered')),
    ).order_by('date')

    alerts = StockAlert.objects.filter(is_acknowledged=False)
    return {
        'period': {
            'from': date_from.isoformat(),
            'to': date_to.isoformat()
        },
        'orders': {
            'total': total_orders,
            'by_status': by_status,
            'delivery_rate': round(delivered / total_orders * 100, 1) if total_orders else 0,
        },
        'revenue': {
            'delivered_total': str(delivered_revenue),
            'collected': str(collected),
            'outstanding': str(outstanding),
        },
        'pending_follow_ups': FollowUp.objects.filter(status='pending').count(),
        'overdue_follow_ups': FollowUp.objects.filter(status='pending', scheduled_at__lt=timezone.now()).count(),
        'stock_alerts': {
            'open': alerts.count(),
            'critical': alerts.filter(severity='critical').count(),
            'warning': alerts.filter(severity='warning').count(),
        },
        'delivery_persons': {
            'available': DeliveryPerson.objects.filter(is_active=True, status='available').count(),
            'busy': DeliveryPerson.objects.filter(is_active=True, status='busy').count(),
        },
        'daily': [
            {'date': row['date'].isoformat(), 'count': row['count'], 'delivered': row['delivered']}
            for row in daily
        ],
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def dashboard_summary(request):
    """Supervisor dashboard KPIs (cached, invalidated when orders or payments change)"""
    try:
        date_from, date_to = parse_period(request)
    except ValueError:
        return Response({'error': 'Dates must use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(build_dashboard_summary(date_from, date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def caller_performance(request):
    """Assigned, confirmed, delivered and cancelled orders per caller"""
    try:
        date_from, date_to = parse_period(request)
    except ValueError:
        return Response({'error': 'Dates must use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)

    period = Q(assigned_orders__created_at__date__gte=date_from, assigned_orders__created_at__date__lte=date_to)
    User = get_user_model()
    callers = User.objects.filter(groups__name=ROLE_CALLER).distinct().annotate(
        assigned=Count('assigned_orders', filter=period),
        confirmed=Count('assigned_orders', filter=period & Q(assigned_orders__status='confirmed')),
        delivered=Count('assigned_orders', filter=period & Q(assigned_orders__status='delivered')),
        cancelled=Count('assigned_orders', filter=period & Q(assigned_orders__status='cancelled')),
    ).order_by('-delivered', 'username')

    results = []
    for caller in callers:
        results.append({
            'user_id': caller.id,
            'username': caller.username,
            'name': caller.get_full_name() or caller.username,
            'assigned': caller.assigned,
            'confirmed': caller.confirmed,
            'delivered': caller.delivered,
            'cancelled': caller.cancelled,
            'conversion_rate': round(caller.delivered / caller.assigned * 100, 1) if caller.assigned else 0,
        })
    logger.info(f"Caller performance computed for {len(results)} callers ({date_from} - {date_to})")
    return Response({
        'period': {'from': date_from.isoformat(), 'to': date_to.isoformat()},
        'callers': results,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def delivery_performance(request):
    """Delivered count and amount per delivery agent"""
    try:
        date_from, date_to = parse_period(request)
    except ValueError:
        return Response({'error': 'Dates must use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)

    delivered = Q(orders__status='delivered',
                  orders__delivered_at__date__gte=date_from,
                  orders__delivered_at__date__lte=date_to)
    agents = DeliveryPerson.objects.select_related('user').annotate(
        delivered_count=Count('orders', filter=delivered),
        delivered_amount=Sum('orders__total_amount', filter=delivered, output_field=DecimalField()),
        in_progress=Count('orders', filter=Q(orders__status__in=['confirmed', 'in_transit'])),
    ).order_by('-delivered_count', 'id')

    return Response({
        'period': {'from': date_from.isoformat(), 'to': date_to.isoformat()},
        'delivery_persons': [
            {
                'delivery_person_id': agent.id,
                'name': agent.name,
                'zone': agent.zone,
                'status': agent.status,
                'delivered_count': agent.delivered_count,
                'delivered_amount': str(agent.delivered_amount or Decimal('0.00')),
                'in_progress': agent.in_progress,
                'daily_deliveries': agent.daily_deliveries,
            }
            for agent in agents
        ],
    })
