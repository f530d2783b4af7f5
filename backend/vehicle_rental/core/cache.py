"""
Time-boxed in-memory cache

Entries expire a fixed number of seconds after they are written and are
dropped lazily on the next read. There is no size bound or eviction
policy; writers are expected to call `clear()` when the underlying data
changes.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from vehicle_rental.core.config import settings

logger = logging.getLogger(__name__)


class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None):
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self):
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        if count:
            logger.debug("Cleared %d cache entries", count)

    def clear_prefix(self, prefix: str):
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


# Backs GET /api/vehicles
vehicle_list_cache = TTLCache(settings.VEHICLE_CACHE_TTL_SECONDS)


def make_key(prefix: str, params: dict) -> str:
    """Build a stable key from a prefix and query parameters"""
    parts = [f"{k}={params[k]}" for k in sorted(params) if params[k] is not None]
    return prefix + "?" + "&".join(parts)
