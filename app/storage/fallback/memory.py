"""
============================================================================
FALLBACK IMPLEMENTATION: In-Memory Key Map (High-Availability)
============================================================================

This is the FALLBACK storage backend used while Redis is unavailable.

PURPOSE:
--------
Keeps the cache and session engines operational when the remote store is
unreachable, with zero external dependencies.

FEATURES:
---------
* Absolute expiry per entry, checked lazily on every read
* Glob-style pattern deletion (``*`` wildcard)
* Sweep of expired entries for the periodic reaper
* Injectable clock so TTL behaviour can be tested without sleeping

LIMITATIONS:
------------
* Non-Persistent: entries are lost on process restart
* Single-Instance: not shared across processes
* Unbounded: no capacity limit is enforced (see DESIGN.md)

No locking: every caller runs on the same event loop and no method awaits,
so each call is atomic with respect to other coroutines.

See: app/storage/base.py for the routing between Redis and this map
"""

import logging
import time
from typing import Callable, Dict, Iterator, Optional

from app.storage.models import CacheEntry
from app.storage.utils import glob_to_regex

logger = logging.getLogger(__name__)


class FallbackMap:
    """Process-local map of serialized values with absolute expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def set(self, key: str, value: str, ttl_seconds: float) -> CacheEntry:
        """Store ``value`` until ``now + ttl_seconds``."""
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)
        self._entries[key] = entry
        return entry

    def set_until(self, key: str, value: str, expires_at: float) -> CacheEntry:
        """Store ``value`` with an explicit absolute expiry."""
        entry = CacheEntry(value=value, expires_at=expires_at)
        self._entries[key] = entry
        return entry

    def get(self, key: str) -> Optional[str]:
        """Return the live value for ``key``; expired entries are deleted."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None

        return entry.value

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``.

        Returns:
            Number of keys removed
        """
        regex = glob_to_regex(pattern)
        matched = [key for key in self._entries if regex.match(key)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    def purge_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(f"Purged {len(expired)} expired fallback entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
