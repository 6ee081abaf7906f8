"""
Client side of offline sync

``OfflineStore`` keeps a local copy of the cacheable tables and the queue of
writes made while offline; ``OfflineManager`` refreshes that copy from the
API and replays the queue when connectivity returns.
"""
from .store import OfflineStore, CACHE_TABLES, PENDING_ACTIONS
from .manager import OfflineManager
from .performance import PerformanceOptimizer, debounce, throttle, memoize

__all__ = [
    'OfflineStore', 'OfflineManager', 'PerformanceOptimizer',
    'CACHE_TABLES', 'PENDING_ACTIONS', 'debounce', 'throttle', 'memoize',
]
