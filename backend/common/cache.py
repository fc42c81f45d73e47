"""
Read-aggregate cache with invalidation by key prefix.

Django's cache API has no "delete by pattern", so every key written through
`set_cached` is also recorded in a small index entry; `invalidate_prefix`
walks that index.
"""
from __future__ import annotations
from typing import Any, Optional
from django.core.cache import cache

INDEX_KEY = "cache-index:keys"
DEFAULT_TTL = 5 * 60


def _index() -> set:
    return set(cache.get(INDEX_KEY) or ())


def get_cached(key: str, default: Any = None) -> Any:
    return cache.get(key, default)


def set_cached(key: str, value: Any, ttl: Optional[int] = None) -> None:
    cache.set(key, value, timeout=ttl or DEFAULT_TTL)
    keys = _index()
    keys.add(key)
    cache.set(INDEX_KEY, keys, timeout=None)


def invalidate_prefix(prefix: Optional[str] = None) -> int:
    """Drop every indexed key starting with `prefix` (all keys when empty). Returns the count."""
    keys = _index()
    doomed = [k for k in keys if not prefix or k.startswith(prefix)]
    if doomed:
        cache.delete_many(doomed)
    cache.set(INDEX_KEY, keys.difference(doomed), timeout=None)
    return len(doomed)
