"""
Caching utilities for expensive aggregate queries
Uses Redis when configured, the local-memory cache otherwise
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
SEGMENTS_CACHE_TTL = 60  # 1 minute
DASHBOARD_KPI_CACHE_TTL = 300  # 5 minutes

SEGMENTS_CACHE_PREFIX = "client_segments"
DASHBOARD_CACHE_PREFIX = "dashboard_kpis"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def _registry_key(prefix):
    return f"{prefix}:registry"


def cache_set(prefix, cache_key, value, timeout):
    """
    ``cache.set`` that also records ``cache_key`` under its prefix, so the
    key can be dropped on backends that cannot scan for a pattern.
    """
    cache.set(cache_key, value, timeout)
    registry_key = _registry_key(prefix)
    keys = cache.get(registry_key) or []
    if cache_key not in keys:
        cache.set(registry_key, keys + [cache_key], None)


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=60, key_prefix="client_segments")
        def build_segments():
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache_set(key_prefix, cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Uses Redis SCAN; on a non-Redis backend only the keys registered under
    the prefix are deleted, other cache entries (throttle history) survive
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except NotImplementedError:
        # Local-memory cache cannot be scanned
        registry_key = _registry_key(pattern)
        keys = cache.get(registry_key) or []
        cache.delete_many(keys + [registry_key])
        logger.debug(f"Dropped {len(keys)} registered cache keys for pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_segments_cache():
    """Invalidate client segment summaries"""
    invalidate_cache_pattern(SEGMENTS_CACHE_PREFIX)


def invalidate_dashboard_cache():
    """Invalidate dashboard KPIs cache"""
    invalidate_cache_pattern(DASHBOARD_CACHE_PREFIX)
