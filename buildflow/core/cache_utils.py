"""
Caching helpers for expensive queries
Keys are scoped per agency so tenants never share cached data
"""
import hashlib
import logging
from functools import wraps

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

REPORTS_CACHE_TTL = 600  # 10 minutes
VERSION_TTL = None  # version counters never expire


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def agency_prefix(agency_id, namespace):
    return f"{namespace}:{agency_id}"


def get_agency_cache_version(agency_id, namespace='reports'):
    return cache.get(f"{agency_prefix(agency_id, namespace)}:version", 1)


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=120, key_prefix="reports")
        def get_expensive_data(agency_id, filters):
            return data

    The first positional argument must be the agency id; the agency's cache
    version is part of the key so bumping it drops every cached entry.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(agency_id, *args, **kwargs):
            prefix = agency_prefix(agency_id, key_prefix)
            version = get_agency_cache_version(agency_id, key_prefix)
            cache_key = make_cache_key(f"{prefix}:{func.__name__}", version, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {func.__name__}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {func.__name__}: {cache_key}")
            result = func(agency_id, *args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Note: This requires Redis with SCAN command support
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
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_agency_cache(agency_id, namespace='reports'):
    """Drop every cached entry of an agency for ``namespace``"""
    if agency_id is None:
        return
    prefix = agency_prefix(agency_id, namespace)
    version_key = f"{prefix}:version"
    try:
        cache.incr(version_key)
    except ValueError:
        cache.set(version_key, 2, VERSION_TTL)
    if getattr(settings, 'REDIS_URL', None):
        invalidate_cache_pattern(f"{prefix}:")
    logger.debug(f"Invalidated {namespace} cache for agency {agency_id}")
