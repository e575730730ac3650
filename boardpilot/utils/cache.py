"""In-memory TTL cache with an injectable clock.

Entries expire per key according to the TTL given at write time. There is no
locking: concurrent writers for the same key simply overwrite each other,
which is fine because every cached value is a re-derivation of the same
upstream data.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Tuple


Clock = Callable[[], float]


class TTLCache:
    """Process-lifetime cache keyed by string."""

    def __init__(self, default_ttl: float = 300.0, clock: Optional[Clock] = None) -> None:
        self._default_ttl = default_ttl
        self._clock: Clock = clock or time.monotonic
        # key -> (stored_at, ttl, value)
        self._entries: Dict[str, Tuple[float, float, Any]] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, ttl, value = entry
        if self._clock() - stored_at >= ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = (self._clock(), self._default_ttl if ttl is None else ttl, value)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def clear(self, pattern: Optional[str] = None) -> int:
        """Drop every entry, or only keys containing ``pattern``. Returns the count removed."""

        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        active = 0
        expired = 0
        for stored_at, ttl, _ in self._entries.values():
            if now - stored_at >= ttl:
                expired += 1
            else:
                active += 1
        try:
            memory = len(json.dumps([v for _, _, v in self._entries.values()], default=str))
        except (TypeError, ValueError):
            memory = 0
        return {
            "total_entries": len(self._entries),
            "active_entries": active,
            "expired_entries": expired,
            "memory_usage": memory,
        }
