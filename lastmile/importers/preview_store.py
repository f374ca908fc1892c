from __future__ import annotations

import threading
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple


class PreviewStore:
    """
    In-memory parse/preview cache keyed by import id.

    Entries expire `ttl_seconds` after they were stored (checked lazily on
    read). When full, the oldest entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 1800,
        max_entries: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._items: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, created_at: float, now: float) -> bool:
        return now - created_at >= self.ttl_seconds

    def put(self, value: Any, key: Optional[str] = None) -> str:
        """Store `value`; an existing key is overwritten and its TTL restarts."""
        key = key or uuid.uuid4().hex
        with self._lock:
            self._items.pop(key, None)
            while len(self._items) >= self.max_entries:
                self._items.popitem(last=False)
            self._items[key] = (self._clock(), value)
        return key

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            created_at, value = item
            if self._expired(created_at, self._clock()):
                del self._items[key]
                return None
            return value

    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.pop(key, None)
        if item is None or self._expired(item[0], self._clock()):
            return None
        return item[1]

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, (created_at, _) in self._items.items() if self._expired(created_at, now)]
            for k in stale:
                del self._items[k]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
