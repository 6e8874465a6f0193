"""
Small in-process TTL cache. One instance is created per app and injected
through app.extensions, so nothing is cached in module globals.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return (now - self.fetched_at) < self.ttl


class TTLCache:
    def __init__(self, default_ttl: float = 60, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries = {}

    def get(self, key: str, default=None):
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock(), ttl=ttl)

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def get_or_load(self, key: str, loader: Callable[[], Any], ttl: Optional[float] = None,
                    force_refresh: bool = False, fallback=_MISSING):
        """
        Return the cached value, or call loader() and cache its result.

        If the loader raises, the last known value (even if expired) is
        returned; without one, `fallback` is returned when given, otherwise
        the error propagates.
        """
        entry = self._entries.get(key)
        if entry is not None and not force_refresh and entry.is_fresh(self._clock()):
            return entry.value

        try:
            value = loader()
        except Exception as exc:
            if entry is not None:
                logger.warning("Cache reload for %s failed, serving stale value: %s", key, exc)
                return entry.value
            if fallback is not _MISSING:
                logger.warning("Cache load for %s failed, serving fallback: %s", key, exc)
                return fallback
            raise

        self.set(key, value, ttl=ttl)
        return value
