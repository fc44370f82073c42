"""
Protocol definitions for generic infrastructure services.

Available Protocols:
    CacheBackend: Cache operations interface (compatible with Django caches)

Usage:
    from django.core.cache import caches
    from core.protocols import CacheBackend

    backend: CacheBackend = caches["default"]

Note:
    - Protocols are primarily for type checking
    - @runtime_checkable allows isinstance() checks
    - Domain collaborators (payment gateway, work status) live in escrow.protocols
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class CacheBackend(Protocol):
    """
    Protocol for cache backends.

    Defines the subset of Django's cache interface the application uses,
    so a django-redis cache, a LocMemCache or a test double all qualify.
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Get value from cache, or default when missing."""
        ...

    def set(self, key: str, value: Any, timeout: int | None = None) -> None:
        """Set value in cache with an expiry in seconds (None for no expiry)."""
        ...

    def delete(self, key: str) -> bool:
        """Delete value from cache; True if the key existed."""
        ...
