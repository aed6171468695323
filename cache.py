import logging
import threading
import time
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class ProductQueryCache:
    """
    Short-lived memo for product listings, keyed by the serialized filters.

    `invalidate` bumps a generation counter; a load that started before the
    bump is returned to its caller but never stored, so a listing computed
    while a mutation was in flight cannot be served to later readers.
    """

    def __init__(self, ttl: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._generation = 0

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Tuple[Any, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                value, stored_at = entry
                if self._clock() - stored_at < self.ttl:
                    logger.debug("Product cache hit for %s", key)
                    return value, True
                del self._entries[key]
            generation = self._generation

        value = loader()

        with self._lock:
            if generation == self._generation:
                now = self._clock()
                self._prune(now)
                self._entries[key] = (value, now)
        return value, False

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl]
        for k in expired:
            del self._entries[k]

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
