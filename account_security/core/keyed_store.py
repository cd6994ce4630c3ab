# account_security/core/keyed_store.py
"""
Narrow keyed-store interface used by the lockout, 2FA and session services.

The services only ever read a key, atomically rewrite a key, or let a key
expire. Any store that can do those three things (a process-local dict, a
shared TTL cache) can back them without touching the state-machine logic.

The in-memory implementation is single-process only: counters and sessions
are not shared between workers.
"""

import threading
import time
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

R = TypeVar("R")

LOCK_STRIPES = 64


def now_ms() -> int:
    """Wall-clock milliseconds, the unit all TTLs are expressed in."""
    return int(time.time() * 1000)


class KeyedStore(Protocol):
    """Minimal get / update / expire contract."""

    def get(self, key: str) -> Any | None: ...

    def update(
        self,
        key: str,
        mutate: Callable[[Any | None], tuple[Any | None, R]],
        *,
        ttl_ms: int | None = None,
    ) -> R:
        """
        Atomically replace the value under ``key``.

        ``mutate`` receives the current value (``None`` when absent or expired)
        and returns ``(new_value, result)``. A ``new_value`` of ``None`` deletes
        the key, and handing back the current value object leaves the entry (and
        its expiry) untouched. ``result`` is handed back to the caller unchanged.
        Exceptions raised by ``mutate`` propagate without writing.
        """
        ...

    def delete(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...

    def purge_expired(self) -> int: ...


@dataclass
class _Entry:
    value: Any
    expires_at_ms: int | None


class InMemoryKeyedStore:
    """
    Thread-safe dict-backed store.

    Keys are mapped onto a fixed set of striped locks, so writers on the same
    key are serialised while memory for locks stays bounded.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, key: str) -> threading.Lock:
        return self._stripes[zlib.crc32(key.encode("utf-8")) % LOCK_STRIPES]

    def _live(self, key: str, now: int) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at_ms is not None and entry.expires_at_ms <= now:
            return None
        return entry

    def get(self, key: str) -> Any | None:
        entry = self._live(key, self._clock())
        return entry.value if entry else None

    def update(
        self,
        key: str,
        mutate: Callable[[Any | None], tuple[Any | None, R]],
        *,
        ttl_ms: int | None = None,
    ) -> R:
        with self._lock_for(key):
            now = self._clock()
            entry = self._live(key, now)
            new_value, result = mutate(entry.value if entry else None)
            if entry is not None and new_value is entry.value:
                return result
            if new_value is None:
                self._entries.pop(key, None)
            else:
                expires_at = now + ttl_ms if ttl_ms is not None else None
                self._entries[key] = _Entry(value=new_value, expires_at_ms=expires_at)
            return result

    def delete(self, key: str) -> None:
        with self._lock_for(key):
            self._entries.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        now = self._clock()
        return [
            key
            for key in list(self._entries)
            if key.startswith(prefix) and self._live(key, now) is not None
        ]

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for key in list(self._entries):
            with self._lock_for(key):
                entry = self._entries.get(key)
                if entry and entry.expires_at_ms is not None and entry.expires_at_ms <= now:
                    del self._entries[key]
                    removed += 1
        return removed

    def clear(self) -> None:
        for lock in self._stripes:
            lock.acquire()
        try:
            self._entries.clear()
        finally:
            for lock in self._stripes:
                lock.release()
