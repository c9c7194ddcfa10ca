# /cexdash/core/rate_limiter.py
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List

def _now_ms() -> int:
    return int(time.monotonic() * 1000)

class RateLimiter:
    """
    In-memory sliding-window limiter keyed by an identifier (the client address).

    Check-and-record runs under a per-identifier lock so two concurrent
    attempts cannot both take the last slot. Identifiers are never evicted;
    the map grows with the number of distinct callers until the process
    restarts, which also clears every counter.
    """
    def __init__(self, clock: Callable[[], int] = _now_ms):
        self._clock = clock
        self._attempts: Dict[str, List[int]] = {}
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()

    def _lock_for(self, identifier: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[identifier]

    def allow(self, identifier: str, max_attempts: int = 1, window_ms: int = 60000) -> bool:
        """Record an attempt and return True if fewer than ``max_attempts`` fall in the window."""
        with self._lock_for(identifier):
            now = self._clock()
            recent = [t for t in self._attempts.get(identifier, []) if now - t < window_ms]
            if len(recent) >= max_attempts:
                self._attempts[identifier] = recent
                return False
            recent.append(now)
            self._attempts[identifier] = recent
            return True

    def reset(self, identifier: str) -> None:
        with self._lock_for(identifier):
            self._attempts.pop(identifier, None)

    def tracked_identifiers(self) -> int:
        return len(self._attempts)
