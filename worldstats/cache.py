from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, Callable, Iterable, Optional, TypeVar

from flask_caching import Cache
from flask_caching.backends.base import BaseCache
from flask_caching.backends.simplecache import SimpleCache
from redis.exceptions import RedisError

from .config import Settings, get_settings
from .utils import code_variants

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Backend failures that trigger the in-memory fallback
BACKEND_ERRORS = (RedisError, OSError)

PROBE_KEY = "__cache_probe__"


def glob_to_regex(pattern: str) -> re.Pattern:
    """Anchored regex for a glob where only `*` is special."""
    parts = (re.escape(p) for p in pattern.split("*"))
    return re.compile("^" + ".*".join(parts) + "$")


def _resolve_backend(cache: Any) -> Optional[BaseCache]:
    if cache is None:
        return None
    if isinstance(cache, Cache):
        return cache.cache
    return cache


def _backend_keys(backend: BaseCache) -> Iterable[str]:
    """List raw (unprefixed) keys of a Flask-Caching backend."""
    client = getattr(backend, "_read_client", None)
    if client is not None:
        prefix = backend.key_prefix() if callable(getattr(backend, "key_prefix", None)) else (backend.key_prefix or "")
        for raw in client.scan_iter(match=f"{prefix}*"):
            key = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            yield key[len(prefix):]
        return
    store = getattr(backend, "_cache", None)
    if store is None:
        raise TypeError(f"Cannot enumerate keys of {type(backend).__name__}")
    yield from list(store.keys())


class CacheFacade:
    """Key/value cache over a Flask-Caching backend with an in-memory fallback.

    The primary backend (usually `RedisCache`) is used while healthy. Any
    backend error switches to an in-process `SimpleCache` and schedules a
    retry with exponential backoff; the first successful probe after the
    retry time returns to the primary and discards entries from both
    stores, since they may disagree about what was invalidated meanwhile.
    Without a primary the facade is simply an in-memory cache.
    """

    def __init__(
        self,
        cache: Any = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.primary = _resolve_backend(cache)
        self.fallback = SimpleCache(threshold=10_000, default_timeout=0)
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._retry_at: Optional[float] = None

    # ---- State ----
    @property
    def degraded(self) -> bool:
        return self._retry_at is not None

    def status(self) -> dict:
        backend = "memory" if self.primary is None else type(self.primary).__name__
        return {"backend": backend, "degraded": self.degraded, "failures": self._failures}

    def _degrade(self, err: Exception) -> None:
        with self._lock:
            self._failures += 1
            delay = min(
                self.settings.cache_retry_base_seconds * (2 ** (self._failures - 1)),
                self.settings.cache_retry_max_seconds,
            )
            self._retry_at = self._clock() + delay
        logger.warning("Cache backend unavailable (%s); using in-memory fallback, retry in %.1fs", err, delay)

    def _recover(self) -> None:
        with self._lock:
            self._failures = 0
            self._retry_at = None
        self.fallback.clear()
        self.primary.clear()
        logger.info("Cache backend reconnected; cleared fallback and primary namespace")

    def _backend(self) -> BaseCache:
        if self.primary is None:
            return self.fallback
        if self._retry_at is None:
            return self.primary
        if self._clock() < self._retry_at:
            return self.fallback
        try:
            self.primary.get(PROBE_KEY)
        except BACKEND_ERRORS as err:
            self._degrade(err)
            return self.fallback
        self._recover()
        return self.primary

    def _run(self, op: Callable[[BaseCache], T]) -> T:
        backend = self._backend()
        if backend is self.fallback:
            return op(backend)
        try:
            return op(backend)
        except BACKEND_ERRORS as err:
            self._degrade(err)
            return op(self.fallback)

    # ---- Operations ----
    def get(self, key: str) -> Any:
        return self._run(lambda b: b.get(key))

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return bool(self._run(lambda b: b.set(key, value, timeout=ttl)))

    def delete(self, key: str) -> bool:
        return bool(self._run(lambda b: b.delete(key)))

    def delete_pattern(self, pattern: str) -> int:
        regex = glob_to_regex(pattern)

        def _op(backend: BaseCache) -> int:
            keys = [k for k in _backend_keys(backend) if regex.match(k)]
            if keys:
                backend.delete_many(*keys)
            return len(keys)

        return self._run(_op)

    def invalidate_country_cache(self, code: Optional[str] = None) -> None:
        if code:
            for variant in code_variants(code):
                self.delete_pattern(f"country:{variant}:*")
                self.delete(f"country:{variant}")
        else:
            self.delete_pattern("country:*")
            self.delete_pattern("countries:*")

    def invalidate_all(self) -> None:
        self.fallback.clear()
        if self.primary is not None:
            self._run(lambda b: b.clear())

    def get_or_set(self, key: str, producer: Callable[[], T], ttl: Optional[int] = None) -> T:
        """Cache-aside helper: return the cached value or produce, store and return it."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = producer()
        self.set(key, value, ttl)
        return value
