"""
Debounce, throttle and memoize helpers

State is kept per key, so two wrapped callables sharing a key share one
timer / throttle window. Delays are in seconds.

Usage:
    @debounce(0.5, key='search')
    def search(text):
        ...

    @memoize(key_func=lambda product_id: f'product:{product_id}')
    def load_product(product_id):
        ...
"""
import json
import logging
import threading
import time
from functools import wraps

logger = logging.getLogger(__name__)


def _default_key(args, kwargs):
    return json.dumps([list(args), kwargs], sort_keys=True, default=str)


class PerformanceOptimizer:

    def __init__(self, timer_factory=threading.Timer, clock=time.monotonic):
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._debounce_timers = {}
        self._throttle_until = {}
        self._cache = {}

    def debounce(self, delay, key):
        """Run only the last call made within ``delay`` seconds of the previous one"""
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                token = object()
                timer = self._timer_factory(delay, self._fire, args=(key, token, func, args, kwargs))
                timer.daemon = True
                with self._lock:
                    existing = self._debounce_timers.pop(key, None)
                    if existing is not None:
                        existing[0].cancel()
                    self._debounce_timers[key] = (timer, token)
                timer.start()
            return wrapper
        return decorator

    def _fire(self, key, token, func, args, kwargs):
        with self._lock:
            current = self._debounce_timers.get(key)
            # A cancelled timer may still fire; only the latest call runs
            if current is None or current[1] is not token:
                return
            del self._debounce_timers[key]
        func(*args, **kwargs)

    def throttle(self, delay, key):
        """Run the first call, then drop calls for ``delay`` seconds"""
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                now = self._clock()
                with self._lock:
                    if now < self._throttle_until.get(key, 0):
                        logger.debug(f"Throttled call for {key}")
                        return None
                    self._throttle_until[key] = now + delay
                return func(*args, **kwargs)
            return wrapper
        return decorator

    def memoize(self, key_func=None):
        """Cache results by ``key_func(*args, **kwargs)`` (JSON of the arguments by default)"""
        def decorator(func):
            namespace = f"{func.__module__}.{func.__qualname__}"

            @wraps(func)
            def wrapper(*args, **kwargs):
                key = key_func(*args, **kwargs) if key_func else _default_key(args, kwargs)
                cache_key = (namespace, key)
                with self._lock:
                    if cache_key in self._cache:
                        return self._cache[cache_key]
                result = func(*args, **kwargs)
                with self._lock:
                    self._cache[cache_key] = result
                return result

            wrapper.cache_namespace = namespace
            return wrapper
        return decorator

    def is_pending(self, key):
        with self._lock:
            return key in self._debounce_timers

    def cache_size(self):
        with self._lock:
            return len(self._cache)

    def clear(self):
        """Cancel pending debounced calls and forget throttle windows and memoized results"""
        with self._lock:
            for timer, _token in self._debounce_timers.values():
                timer.cancel()
            self._debounce_timers.clear()
            self._throttle_until.clear()
            self._cache.clear()


_default = PerformanceOptimizer()


def get_optimizer():
    return _default


debounce = _default.debounce
throttle = _default.throttle
memoize = _default.memoize
clear = _default.clear
