"""
MCPShelf Tool Cache - avoids repeating discovery round-trips.

Caches:
- Discovered tool lists, keyed by endpoint URL

Entries live in process memory and expire after a fixed window.
Two providers pointing at the same URL share one entry.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from mcpshelf.registry.schema import CacheEntry, Tool

DEFAULT_TTL = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ToolCache:
    """
    In-memory discovery result cache.

    An entry is fresh while ``now - fetched_at <= ttl``. Stale entries are
    dropped by the lookup that finds them.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utc_now):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0

    def entry(self, url: str) -> Optional[CacheEntry]:
        """
        Get the fresh cache entry for ``url``.

        Returns None if not cached or expired.
        """
        cached = self._entries.get(url)
        if cached is None:
            self._misses += 1
            return None

        # Check expiry
        if self._clock() - cached.fetched_at > self.ttl:
            del self._entries[url]
            self._misses += 1
            return None

        self._hits += 1
        return cached

    def get(self, url: str) -> Optional[List[Tool]]:
        """Cached tools for ``url``, or None."""
        cached = self.entry(url)
        if cached is None:
            return None
        return [tool.model_copy() for tool in cached.tools]

    def put(self, url: str, tools: Sequence[Tool]) -> None:
        """Store ``tools`` for ``url``, replacing any previous entry."""
        self._entries[url] = CacheEntry(
            url=url,
            tools=[tool.model_copy() for tool in tools],
            fetched_at=self._clock(),
        )
        self._sets += 1

    def invalidate(self, url: str) -> bool:
        """Drop the entry for ``url``. Returns True if one existed."""
        return self._entries.pop(url, None) is not None

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries cleared.
        """
        cleared = len(self._entries)
        self._entries.clear()
        return cleared

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "sets": self._sets,
            "ttl_seconds": int(self.ttl.total_seconds()),
        }

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)
