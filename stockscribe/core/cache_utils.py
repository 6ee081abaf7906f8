"""
Caching utilities for expensive queries
Uses Redis (django-redis) in production, local memory otherwise
"""
from django.conf import settings
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache key prefixes
PRODUCTS_LIST_PREFIX = "products_list"
CATEGORIES_LIST_PREFIX = "categories_list"
SUPPLIERS_LIST_PREFIX = "suppliers_list"
DASHBOARD_PREFIX = "dashboard_kpis"
STATS_PREFIX = "stats"


def _ttl(name, default):
    return settings.STOCKSCRIBE.get(name, default)


def products_list_ttl():
    return _ttl('PRODUCTS_LIST_CACHE_TTL', 300)


def lookup_list_ttl():
    return _ttl('LOOKUP_LIST_CACHE_TTL', 600)


def dashboard_ttl():
    return _ttl('DASHBOARD_CACHE_TTL', 300)


VERSION_KEY = "cache_version:{}"


def prefix_version(prefix):
    """Current generation of a key prefix; bumping it orphans every key built from the old one"""
    return cache.get(VERSION_KEY.format(prefix), 0)


def bump_prefix_version(prefix):
    key = VERSION_KEY.format(prefix)
    try:
        return cache.incr(key)
    except ValueError:
        # No counter yet
        cache.set(key, 1, None)
        return 1


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:v{prefix_version(prefix)}:{key_hash}"


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=120, key_prefix="dashboard_kpis")
        def build_dashboard(days):
            # expensive query here
            return data

    ``cache_ttl`` may be a callable, resolved on every call so settings
    overrides apply.
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

            ttl = cache_ttl() if callable(cache_ttl) else cache_ttl
            cache.set(cache_key, result, ttl)
            return result
        wrapper.cache_key_prefix = key_prefix
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern

    django-redis exposes ``delete_pattern`` (SCAN + DEL). Other backends
    cannot enumerate keys, so the prefix version is bumped instead and the
    stale keys expire on their own. Throttle counters and other unrelated
    keys are never touched.
    """
    try:
        if hasattr(cache, 'delete_pattern'):
            deleted = cache.delete_pattern(f"*{pattern}*")
            logger.info(f"Invalidated {deleted} cache keys matching pattern: {pattern}")
        else:
            version = bump_prefix_version(pattern)
            logger.debug(f"Cache prefix {pattern} moved to version {version} (backend has no pattern support)")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def get_cached_list(prefix, params):
    """
    Get a cached list response
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = make_cache_key(prefix, **params)
    return cache.get(cache_key), cache_key


def cache_list(cache_key, data, ttl):
    """Cache list response data"""
    cache.set(cache_key, data, ttl)
    logger.debug(f"Cached list: {cache_key}")


def invalidate_products_cache():
    """Invalidate all products-related cache"""
    invalidate_cache_pattern(PRODUCTS_LIST_PREFIX)


def invalidate_lookup_cache():
    """Invalidate categories and suppliers lists"""
    invalidate_cache_pattern(CATEGORIES_LIST_PREFIX)
    invalidate_cache_pattern(SUPPLIERS_LIST_PREFIX)


def invalidate_dashboard_cache():
    """Invalidate dashboard and stats cache"""
    invalidate_cache_pattern(DASHBOARD_PREFIX)
    invalidate_cache_pattern(STATS_PREFIX)
