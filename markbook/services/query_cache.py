"""
Read-through cache for API queries.

Mutations invalidate a key; the next get() refetches it from the server.
"""
import threading
import logging

logger = logging.getLogger(__name__)


class QueryCache:
    def __init__(self):
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key, loader):
        """Return the cached value for key, loading it on a miss."""
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        value = loader()
        with self._lock:
            self._entries[key] = value
        return value

    def invalidate(self, key=None):
        """Drop one key, every key sharing its first element, or everything."""
        with self._lock:
            if key is None:
                self._entries.clear()
                return
            if not isinstance(key, tuple):
                key = (key,)
            stale = [k for k in self._entries if k[:len(key)] == key]
            for k in stale:
                del self._entries[k]
        logger.debug("Invalidated %d cache entries for %s", len(stale), key)

    def __contains__(self, key):
        with self._lock:
            return key in self._entries
