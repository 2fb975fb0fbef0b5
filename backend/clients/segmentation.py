"""
Client segmentation for campaign targeting.

Segments are overlapping: each client is tested against every predicate
independently and joins every segment it matches. Status segments look at
all orders, behaviour segments at delivered orders only, frequency
segments at orders placed in the trailing 90 days.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from backend.core.cache_utils import SEGMENTS_CACHE_PREFIX, SEGMENTS_CACHE_TTL, cache_set, make_cache_key
from .models import Client

logger = logging.getLogger(__name__)

CAMPAIGN_GROUP_PREFIX = 'campaign_group:'
PRODUCT_PREFIX = 'product:'
PRODUCT_CANCELLED_PREFIX = 'product_cancelled:'

VIP_MIN_DELIVERED = 5
REGULAR_MIN_DELIVERED = 3
FREQUENT_MIN_RECENT = 3
FREQUENCY_WINDOW_DAYS = 90

# id, label, description, category
BASE_SEGMENTS = [
    ('all', 'All clients', 'Every client in the database', 'status'),
    ('confirmed_paid', 'Active clients (confirmed)', 'At least one confirmed or delivered order', 'status'),
    ('cancelled', 'Clients with cancellations', 'Cancelled at least one order', 'status'),
    ('reported', 'Clients with postponements', 'Postponed at least one order', 'status'),
    ('pending', 'Clients awaiting confirmation', 'At least one pending or partially paid order', 'status'),
    ('new', 'New clients', 'First delivered order or none yet', 'behavior'),
    ('regular', 'Loyal clients', '3+ delivered orders', 'behavior'),
    ('vip', 'VIP clients', '5+ delivered orders or 100k+ spent', 'behavior'),
    ('inactive_30', 'Inactive 30 days', 'No order in the last 30 days', 'behavior'),
    ('inactive_60', 'Inactive 60 days', 'No order in the last 60 days', 'behavior'),
    ('inactive_90', 'Inactive 90 days', 'No order in the last 90 days', 'behavior'),
    ('frequent', 'Frequent clients', '3+ orders in the last 90 days', 'frequency'),
    ('occasional', 'Occasional clients', '1-2 orders in the last 90 days', 'frequency'),
    ('lost', 'Lost clients', 'No order in the last 6 months', 'frequency'),
]
BASE_SEGMENT_IDS = [segment[0] for segment in BASE_SEGMENTS]


def _load_orders():
    from backend.orders.models import Order
    return list(Order.objects.values('client_id', 'product_id', 'status', 'created_at', 'total_amount'))


def _orders_by_client(orders):
    grouped = {}
    for order in orders:
        grouped.setdefault(order['client_id'], []).append(order)
    return grouped


def client_activity(client_orders, now):
    """Aggregates every segment predicate is evaluated against"""
    delivered = [o for o in client_orders if o['status'] == 'delivered']
    window_start = now - timedelta(days=FREQUENCY_WINDOW_DAYS)
    return {
        'statuses': {o['status'] for o in client_orders},
        'delivered_count': len(delivered),
        'delivered_total': sum((o['total_amount'] or Decimal('0') for o in delivered), Decimal('0')),
        'last_order_at': max((o['created_at'] for o in client_orders), default=None),
        'recent_count': sum(1 for o in client_orders if o['created_at'] >= window_start),
    }


def _older_than(activity, now, days):
    last = activity['last_order_at']
    return last is not None and last < now - timedelta(days=days)


def matches_segment(segment_id, activity, now):
    """Evaluate one base segment predicate; unknown ids match everything"""
    statuses = activity['statuses']
    if segment_id == 'confirmed_paid':
        return bool(statuses & {'delivered', 'confirmed'})
    if segment_id == 'cancelled':
        return 'cancelled' in statuses
    if segment_id == 'reported':
        return 'reported' in statuses
    if segment_id == 'pending':
        return bool(statuses & {'pending', 'partial'})
    if segment_id == 'new':
        return activity['delivered_count'] <= 1
    if segment_id == 'regular':
        return activity['delivered_count'] >= REGULAR_MIN_DELIVERED
    if segment_id == 'vip':
        return (activity['delivered_count'] >= VIP_MIN_DELIVERED
                or activity['delivered_total'] >= settings.CRM['VIP_SPENT_THRESHOLD'])
    if segment_id == 'inactive_30':
        # A client without any order has no last order date and counts here
        return activity['last_order_at'] is None or _older_than(activity, now, 30)
    if segment_id == 'inactive_60':
        return _older_than(activity, now, 60)
    if segment_id == 'inactive_90':
        return _older_than(activity, now, 90)
    if segment_id == 'frequent':
        return activity['recent_count'] >= FREQUENT_MIN_RECENT
    if segment_id == 'occasional':
        return 1 <= activity['recent_count'] < FREQUENT_MIN_RECENT
    if segment_id == 'lost':
        return _older_than(activity, now, 180)
    return True


def _campaign_group_sort_key(name):
    # Group-C-2 sorts before Group-C-10; other names go last
    suffix = name[len('Group-C-'):] if name.startswith('Group-C-') else ''
    return (int(suffix) if suffix.isdigit() else float('inf'), name)


def compute_segments(now=None):
    """Build every segment with its member count in a single pass"""
    from backend.catalog.models import Product

    now = now or timezone.now()
    clients = list(Client.objects.values('id', 'campaign_group'))
    orders = _load_orders()
    by_client = _orders_by_client(orders)

    members = {segment_id: set() for segment_id in BASE_SEGMENT_IDS}
    group_counts = {}
    for client in clients:
        activity = client_activity(by_client.get(client['id'], []), now)
        for segment_id in BASE_SEGMENT_IDS:
            if matches_segment(segment_id, activity, now):
                members[segment_id].add(client['id'])
        if client['campaign_group']:
            group_counts[client['campaign_group']] = group_counts.get(client['campaign_group'], 0) + 1

    segments = [
        {'id': segment_id, 'label': label, 'description': description,
         'count': len(members[segment_id]), 'category': category}
        for segment_id, label, description, category in BASE_SEGMENTS
    ]

    for name in sorted(group_counts, key=_campaign_group_sort_key):
        segments.append({
            'id': f'{CAMPAIGN_GROUP_PREFIX}{name}',
            'label': name,
            'description': f'{group_counts[name]} contacts in this group',
            'count': group_counts[name],
            'category': 'group',
        })

    ordered_by = {}
    cancelled_by = {}
    for order in orders:
        if not order['product_id']:
            continue
        ordered_by.setdefault(order['product_id'], set()).add(order['client_id'])
        if order['status'] == 'cancelled':
            cancelled_by.setdefault(order['product_id'], set()).add(order['client_id'])

    for product in Product.objects.filter(is_active=True).values('id', 'name'):
        ordered_count = len(ordered_by.get(product['id'], ()))
        cancelled_count = len(cancelled_by.get(product['id'], ()))
        if ordered_count:
            segments.append({
                'id': f"{PRODUCT_PREFIX}{product['id']}",
                'label': product['name'],
                'description': f'{ordered_count} clients ordered this product',
                'count': ordered_count,
                'category': 'product',
            })
        if cancelled_count:
            segments.append({
                'id': f"{PRODUCT_CANCELLED_PREFIX}{product['id']}",
                'label': f"{product['name']} (cancelled)",
                'description': f'{cancelled_count} clients cancelled this product',
                'count': cancelled_count,
                'category': 'product',
            })

    return segments


def get_segments():
    """Segment summary, cached for a minute and invalidated on data changes"""
    cache_key = make_cache_key(SEGMENTS_CACHE_PREFIX, 'summary')
    segments = cache.get(cache_key)
    if segments is None:
        segments = compute_segments()
        cache_set(SEGMENTS_CACHE_PREFIX, cache_key, segments, SEGMENTS_CACHE_TTL)
    return segments


def get_clients_for_segment(segment_id, now=None):
    """
    Members of a single segment as ``{id, full_name, phone}`` dicts.

    Re-reads clients and orders rather than reusing the summary; unknown
    segment ids return every client. Membership uses the summary predicate,
    so clients without any order belong to ``inactive_30`` but not to
    ``inactive_60``, ``inactive_90`` or ``lost``, and the member list always
    matches the summary count.
    """
    from backend.orders.models import Order

    now = now or timezone.now()
    clients = Client.objects.order_by('full_name').values('id', 'full_name', 'phone')

    if segment_id.startswith(CAMPAIGN_GROUP_PREFIX):
        group_name = segment_id[len(CAMPAIGN_GROUP_PREFIX):]
        return list(clients.filter(campaign_group=group_name))

    if segment_id.startswith(PRODUCT_PREFIX) or segment_id.startswith(PRODUCT_CANCELLED_PREFIX):
        cancelled_only = segment_id.startswith(PRODUCT_CANCELLED_PREFIX)
        product_id = segment_id.split(':', 1)[1]
        if not product_id.isdigit():
            return []
        product_orders = Order.objects.filter(product_id=int(product_id))
        if cancelled_only:
            product_orders = product_orders.filter(status='cancelled')
        return list(clients.filter(id__in=product_orders.values('client_id')))

    if segment_id not in BASE_SEGMENT_IDS or segment_id == 'all':
        if segment_id != 'all':
            logger.warning(f"Unknown segment '{segment_id}', returning all clients")
        return list(clients)

    by_client = _orders_by_client(_load_orders())
    return [
        client for client in clients
        if matches_segment(segment_id, client_activity(by_client.get(client['id'], []), now), now)
    ]


def estimate_recipients(selected_ids, excluded_ids, segments=None):
    """
    Selected segment counts minus excluded segment counts, floored at zero.

    Overlapping memberships are not deduplicated, so the figure is an
    approximation. An id both selected and excluded counts as excluded.
    """
    counts = {segment['id']: segment['count'] for segment in (segments if segments is not None else get_segments())}
    excluded = set(excluded_ids)
    selected = set(selected_ids) - excluded
    total = sum(counts.get(segment_id, 0) for segment_id in selected)
    total -= sum(counts.get(segment_id, 0) for segment_id in excluded)
    return max(total, 0)
