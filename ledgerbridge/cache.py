"""
In-memory query cache with per-entry TTL.

Entries expire lazily: an expired entry is dropped the first time it is read.
There is no size bound; the number of entries is bounded by the number of
distinct query shapes the caller issues.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import orjson

from .util import now_ms

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 60_000


@dataclass(slots=True)
class CacheEntry:
    """A cached value and the absolute time (ms) after which it is stale."""
    value: Any
    expires_at_ms: int


class TTLCache:
    """
    Key/value store with TTL expiry.

    All mutations are single statements with no awaits, so the cache can be
    shared by coroutines on one event loop without locking.
    """

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl_ms: TTL used when set() is called without one
            clock: Returns the current time in milliseconds
        """
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at_ms:
            del self._entries[key]
            return None

        return entry.value

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Store a value, replacing any existing entry for the key."""
        if ttl_ms is None:
            ttl_ms = self.default_ttl_ms
        self._entries[key] = CacheEntry(value=value, expires_at_ms=self._clock() + ttl_ms)

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        if self._entries:
            logger.debug(f"Clearing {len(self._entries)} cached queries")
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() <= entry.expires_at_ms


def generate_key(template_ids: Sequence[str], query: Optional[dict] = None) -> str:
    """
    Derive the cache key for a ledger query.

    Template order is significant; field order inside the filter is not.

    >>> generate_key(["Market"], {"b": 2, "a": 1})
    'query:Market:{"a":1,"b":2}'
    """
    filter_json = orjson.dumps(query or {}, option=orjson.OPT_SORT_KEYS).decode()
    return f"query:{','.join(template_ids)}:{filter_json}"
