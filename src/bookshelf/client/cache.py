"""In-memory cache for API GET responses."""

from __future__ import annotations

import time
from typing import Any

import structlog

log = structlog.get_logger()


class ResponseCache:
    """Cache decoded JSON responses keyed by request path.

    Entries never go stale on their own unless a TTL applies, either the
    cache-wide ``ttl_seconds`` or one passed to ``put``; callers drop them
    with ``invalidate`` after a mutation.
    """

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            log.debug("cache_expired", key=key)
            return None

        log.debug("cache_hit", key=key)
        return value

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._entries[key] = (value, expires_at)
        log.debug("cache_store", key=key, ttl=ttl)

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        if stale:
            log.debug("cache_invalidated", prefix=prefix, entries=len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
