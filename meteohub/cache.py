from __future__ import annotations

import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Optional, Tuple


logger = logging.getLogger(__name__)


class CacheCorruption(RuntimeError):
    """Raised internally when a stored entry does not have the expected shape."""


class ResultCache:
    """A bounded TTL cache for aggregated weather results.

    Keys are case-insensitive and trimmed. Expiry is checked lazily on read and
    the oldest inserted entry is evicted when capacity is reached.
    """

    def __init__(
        self,
        max_size: int = 20,
        ttl: float = 10 * 60,
        time_func: Callable[[], float] = time.monotonic,
        expected_type: Optional[type] = None,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.max_size = max_size
        self.ttl = ttl
        self._time_func = time_func
        self._expected_type = expected_type
        self._storage: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = Lock()

    @staticmethod
    def normalize_key(key: str) -> str:
        return key.strip().lower()

    def get(self, key: str) -> Any:
        normalized = self.normalize_key(key)
        with self._lock:
            item = self._storage.get(normalized)
            if item is None:
                return None
            try:
                inserted_at, value = self._unpack(item)
            except CacheCorruption as exc:
                logger.warning("Dropping corrupted cache entry %s: %s", normalized, exc)
                self._storage.pop(normalized, None)
                return None
            if self._time_func() - inserted_at > self.ttl:
                self._storage.pop(normalized, None)
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        normalized = self.normalize_key(key)
        with self._lock:
            # re-inserting an existing key moves it to the newest position
            self._storage.pop(normalized, None)
            while len(self._storage) >= self.max_size:
                evicted, _ = self._storage.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted)
            self._storage[normalized] = (self._time_func(), value)

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()

    def __len__(self) -> int:
        return len(self._storage)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def _unpack(self, item: Any) -> Tuple[float, Any]:
        if not isinstance(item, tuple) or len(item) != 2:
            raise CacheCorruption("entry is not an (inserted_at, value) pair")
        inserted_at, value = item
        if not isinstance(inserted_at, (int, float)):
            raise CacheCorruption("entry timestamp is not numeric")
        if self._expected_type is not None and not isinstance(value, self._expected_type):
            raise CacheCorruption(
                f"expected {self._expected_type.__name__}, got {type(value).__name__}"
            )
        return inserted_at, value


__all__ = ["ResultCache", "CacheCorruption"]
