"""
Explicit TTL cache component with invalidation hooks.

A TTLCache is constructed once (typically in an AppConfig.ready()) with
its backend and TTL injected, then handed to the consumers that need it.
It never lives as a bare module-level dict.

Usage:
    from django.core.cache import caches
    from core.cache import TTLCache

    cache = TTLCache(caches["default"], prefix="platform_config", ttl=300)
    value = cache.get_or_load("current", loader=load_from_db)

    # Drop the cached value whenever the backing model changes
    cache.invalidate_on_save(PlatformConfig, key="current")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db.models.signals import post_delete, post_save

if TYPE_CHECKING:
    from collections.abc import Callable

    from django.db import models

    from core.protocols import CacheBackend

logger = logging.getLogger(__name__)

V = TypeVar("V")

# Stored in place of None so a cached "nothing" is distinguishable from a miss
_MISSING = "__ttl_cache_missing__"


class TTLCache(Generic[V]):
    """
    Namespaced cache with a fixed TTL and explicit invalidation.

    Args:
        backend: Any CacheBackend (Django cache alias, test double)
        prefix: Key namespace for this cache instance
        ttl: Seconds each entry lives
    """

    def __init__(self, backend: CacheBackend, prefix: str, ttl: int) -> None:
        self.backend = backend
        self.prefix = prefix
        self.ttl = ttl
        self._receivers: list[Callable[..., None]] = []

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> V | None:
        value = self.backend.get(self._key(key))
        if value == _MISSING:
            return None
        return value

    def set(self, key: str, value: V | None) -> None:
        self.backend.set(
            self._key(key), _MISSING if value is None else value, timeout=self.ttl
        )

    def get_or_load(self, key: str, loader: Callable[[], V]) -> V:
        """
        Return the cached value, loading and storing it on a miss.

        Args:
            key: Entry key within this cache's namespace
            loader: Zero-argument callable producing the fresh value
        """
        cached = self.backend.get(self._key(key))
        if cached is not None:
            return None if cached == _MISSING else cached  # type: ignore[return-value]

        value = loader()
        self.set(key, value)
        logger.debug(
            "Cache miss loaded",
            extra={"cache_prefix": self.prefix, "cache_key": key},
        )
        return value

    def invalidate(self, key: str) -> None:
        self.backend.delete(self._key(key))
        logger.info(
            "Cache entry invalidated",
            extra={"cache_prefix": self.prefix, "cache_key": key},
        )

    def invalidate_on_save(self, model: type[models.Model], key: str) -> None:
        """
        Invalidate ``key`` whenever an instance of ``model`` is saved or deleted.

        The receiver is held strongly by this cache so it lives as long as
        the cache does.
        """

        def _receiver(sender, **kwargs) -> None:
            self.invalidate(key)

        self._receivers.append(_receiver)
        uid = f"ttl_cache:{self.prefix}:{key}:{model._meta.label}"
        post_save.connect(_receiver, sender=model, weak=False, dispatch_uid=uid)
        post_delete.connect(
            _receiver, sender=model, weak=False, dispatch_uid=f"{uid}:delete"
        )
