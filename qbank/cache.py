"""
Tag-invalidated, time-limited read cache.

Entries are keyed by ``(operation name, serialised arguments)`` and carry one
or more tags. ``invalidate(tag)`` expires every entry holding that tag no
matter what its key is, so a single write can discard all reads that might
depend on it.

Usage:
    cache = ReadCache()
    get_questions = cache.cached(_load, ["questions"], tags={"questions"}, ttl_seconds=3600)
    get_questions("t1")          # miss → runs _load("t1")
    get_questions("t1")          # hit
    cache.invalidate("questions")
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A stored result snapshot."""

    value: Any
    written_at: float
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)


def make_key(key_parts: Iterable[str], args: tuple, kwargs: dict) -> tuple[str, str]:
    """Build a cache key from the operation name parts and call arguments."""
    name = ":".join(key_parts)
    serialised = json.dumps([list(args), kwargs], sort_keys=True, default=str)
    return name, serialised


class ReadCache:
    """Process-wide memo store with TTL expiry and tag invalidation.

    Concurrent misses on the same key each run the underlying read; the
    lock only protects the entry table.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: tuple[str, str]) -> tuple[bool, Any]:
        """Return ``(hit, value)``. Expired entries are dropped and miss."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            if now > entry.expires_at:
                del self._entries[key]
                return False, None
            return True, copy.deepcopy(entry.value)

    def set(
        self,
        key: tuple[str, str],
        value: Any,
        tags: Iterable[str] = (),
        ttl_seconds: float = 0,
    ) -> None:
        now = self._clock()
        entry = CacheEntry(
            value=copy.deepcopy(value),
            written_at=now,
            expires_at=now + ttl_seconds,
            tags=frozenset(tags),
        )
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, tag: str) -> int:
        """Expire every entry carrying *tag*. Returns how many were dropped."""
        with self._lock:
            stale = [k for k, e in self._entries.items() if tag in e.tags]
            for k in stale:
                del self._entries[k]
        logger.debug("Invalidated %d cache entries tagged %r", len(stale), tag)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cached(
        self,
        fn: Callable[..., Any],
        key_parts: Iterable[str],
        tags: Iterable[str] = (),
        ttl_seconds: float = 0,
    ) -> Callable[..., Any]:
        """Wrap *fn* so results are memoised per argument set.

        Args:
            fn: The read operation. Its arguments must be JSON-serialisable
                (or have a stable ``str``).
            key_parts: Name of the operation, used as the key prefix.
            tags: Invalidation tags attached to every stored result.
            ttl_seconds: Lifetime of a stored result.

        Returns:
            A callable with the same signature as *fn*.
        """
        key_parts = tuple(key_parts)
        tags = frozenset(tags)

        def wrapper(*args, **kwargs):
            key = make_key(key_parts, args, kwargs)
            hit, value = self.get(key)
            if hit:
                return value
            value = fn(*args, **kwargs)
            self.set(key, value, tags=tags, ttl_seconds=ttl_seconds)
            return value

        wrapper.__name__ = getattr(fn, "__name__", "cached")
        wrapper.__doc__ = fn.__doc__
        return wrapper
