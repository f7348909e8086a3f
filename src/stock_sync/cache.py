"""
In-process TTL cache fronting spreadsheet reads.

Entries expire ``ttl`` seconds after they are set. When the cache grows past
``max_entries`` the earliest-inserted entry is evicted (FIFO, not LRU).
Expired entries are dropped lazily on ``get`` and in bulk by ``cleanup``.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
MAX_CACHE_SIZE = 100


class _Miss:
    """Sentinel type for a cache miss."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


@dataclass
class CacheEntry:
    """A cached payload and its lifetime."""

    key: str
    data: Any
    created_at: float
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now <= self.expires_at


class TTLCache:
    """Expiring key/value store with a bounded number of entries."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = MAX_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl: Lifetime in seconds used when ``set`` gets no ttl
            max_entries: Entry count above which the oldest entry is evicted
            clock: Monotonic time source, in seconds
        """
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        # dicts keep insertion order; re-setting a key keeps its position
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_valid(self._clock())

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Store ``data`` under ``key`` for ``ttl`` seconds."""
        now = self._clock()
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(
            key=key,
            data=data,
            created_at=now,
            expires_at=now + lifetime,
        )

        if len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Cache full, evicted {oldest}")

        logger.debug(f"Cache set: {key} (ttl {lifetime}s)")

    def get(self, key: str) -> Any:
        """Return the cached payload, or ``MISS`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return MISS

        if not entry.is_valid(self._clock()):
            del self._entries[key]
            logger.debug(f"Cache expired: {key}")
            return MISS

        logger.debug(f"Cache hit: {key}")
        return entry.data

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        if self._entries.pop(key, None) is not None:
            logger.debug(f"Cache delete: {key}")

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``. Returns the count removed."""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the count removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"Cache cleanup: removed {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def status(self) -> dict[str, int]:
        """Entry counts: total, still valid, and expired but not yet swept."""
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if entry.is_valid(now))
        return {
            "total": len(self._entries),
            "valid": valid,
            "expired": len(self._entries) - valid,
        }
