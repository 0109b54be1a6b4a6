"""Key-value cache port with per-entry TTL."""
from __future__ import annotations

import time
from typing import Any, Callable, Protocol


class Cache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    def incr(self, key: str, ttl: float | None = None) -> int: ...

    def delete(self, key: str) -> None: ...


class MemoryCache:
    """In-process cache. Expired entries are dropped lazily on read.

    ``incr`` keeps the expiry of an existing counter so a daily counter
    resets at the end of its original window rather than sliding forward.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _expiry(self, ttl: float | None) -> float | None:
        return self._clock() + ttl if ttl is not None else None

    def get(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._data[key] = (value, self._expiry(ttl))

    def incr(self, key: str, ttl: float | None = None) -> int:
        current = self.get(key)
        if current is None:
            self._data[key] = (1, self._expiry(ttl))
            return 1
        expires_at = self._data[key][1]
        self._data[key] = (int(current) + 1, expires_at)
        return int(current) + 1

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)
