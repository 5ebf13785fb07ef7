import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """Process-local cache where each entry is reloaded once it is older than ``ttl_seconds``"""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: Dict[Any, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Any, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            hit = self._store.get(key)
        if hit and (now - hit[0]) < self.ttl_seconds:
            return hit[1]
        val = loader()
        with self._lock:
            self._store[key] = (now, val)
        return val

    def invalidate(self, key: Optional[Any] = None) -> None:
        with self._lock:
            if key is None:
                self._store.clear()
            else:
                self._store.pop(key, None)
