"""
Cache invalidation signals
Automatically invalidate cache when data changes
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import (
    invalidate_products_cache, invalidate_lookup_cache, invalidate_dashboard_cache,
)

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()

PRODUCT_MODELS = {'Product'}
LOOKUP_MODELS = {'Category', 'Supplier'}
DASHBOARD_MODELS = {'Product', 'Category', 'Supplier', 'StockMovement', 'BudgetRequest', 'Approval'}


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_all_caches():
    invalidate_products_cache()
    invalidate_lookup_cache()
    invalidate_dashboard_cache()


def _invalidate_now_and_after_commit(func):
    # Readers inside the open transaction may repopulate the cache with
    # uncommitted state, so invalidate again once the commit lands.
    func()
    transaction.on_commit(func)


@receiver([post_save, post_delete])
def invalidate_model_caches(sender, instance, **kwargs):
    """Invalidate list and dashboard caches when cached models change"""
    if is_suspended():
        return

    model_name = sender.__name__
    if model_name not in DASHBOARD_MODELS:
        return

    try:
        if model_name in PRODUCT_MODELS:
            _invalidate_now_and_after_commit(invalidate_products_cache)
            # Category / supplier lists carry product counts
            _invalidate_now_and_after_commit(invalidate_lookup_cache)
        if model_name in LOOKUP_MODELS:
            _invalidate_now_and_after_commit(invalidate_lookup_cache)
            # Product rows embed category / supplier names
            _invalidate_now_and_after_commit(invalidate_products_cache)
        _invalidate_now_and_after_commit(invalidate_dashboard_cache)
    except Exception as e:
        logger.warning(f"Error invalidating cache for {model_name}: {e}")
