"""
Cache invalidation signals
Automatically invalidate segment and dashboard caches when data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_segments_cache, invalidate_dashboard_cache

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

SEGMENT_MODELS = {'Client', 'Order', 'Product'}
DASHBOARD_MODELS = {'Order', 'Payment', 'FollowUp', 'StockAlert', 'DeliveryPerson'}


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals.
    Used by bulk operations (CSV import, distribution); invalidate manually
    after the block.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver([post_save, post_delete])
def invalidate_segments_on_change(sender, instance, **kwargs):
    """Invalidate segment summaries when clients, orders or products change"""
    if is_suspended() or sender.__name__ not in SEGMENT_MODELS:
        return
    try:
        invalidate_segments_cache()
    except Exception as e:
        logger.warning(f"Error in invalidate_segments_on_change signal: {e}")


@receiver([post_save, post_delete])
def invalidate_dashboard_on_change(sender, instance, **kwargs):
    """Invalidate dashboard KPIs when orders, payments or alerts change"""
    if is_suspended() or sender.__name__ not in DASHBOARD_MODELS:
        return
    try:
        invalidate_dashboard_cache()
    except Exception as e:
        logger.warning(f"Error in invalidate_dashboard_on_change signal: {e}")
