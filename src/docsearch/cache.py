"""Time-bounded in-process cache used for query embeddings and answers."""
from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_MAX_ENTRIES = 1024

_MISSING = object()


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """Map keys to values that expire a fixed time after they were written.

    Each entry stores its own deadline at write time; reading an entry never
    extends it. Entries are kept in write order, so every ``set`` drops the
    expired prefix before inserting. When ``max_entries`` is set the oldest
    entries are evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int | None = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._max_entries = max_entries
        self._entries: "OrderedDict[K, _Entry[V]]" = OrderedDict()

    def set(self, key: K, value: V) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        self._drop_expired_prefix(now)
        self._entries[key] = _Entry(value=value, expires_at=now + self.ttl_seconds)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return default
        return entry.value

    def pop(self, key: K, default: object = _MISSING) -> V:
        value = self.get(key, _MISSING)  # type: ignore[arg-type]
        if value is _MISSING:
            if default is _MISSING:
                raise KeyError(key)
            return default  # type: ignore[return-value]
        del self._entries[key]
        return value  # type: ignore[return-value]

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def _drop_expired_prefix(self, now: float) -> None:
        # Deadlines grow with write order, so the first live entry ends the scan.
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if entry.expires_at > now:
                break
            del self._entries[key]

    def __contains__(self, key: object) -> bool:
        return self.get(key, _MISSING) is not _MISSING  # type: ignore[arg-type]

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)


__all__ = ["DEFAULT_MAX_ENTRIES", "TTLCache"]
