"""TTL cache for objects read from the Kubernetes API."""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Optional

# kopf runs sync handlers in a thread pool
_lock = threading.Lock()
_cache: dict[str, tuple[Any, float]] = {}
_cache_ttl: float = float(os.getenv("K8S_CACHE_TTL_SECONDS", "30.0"))


def get_cached_object(key: str) -> Optional[Any]:
    """Return the cached object for ``key``, or None if missing or expired."""
    with _lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        obj, stored_at = entry
        if time.time() - stored_at > _cache_ttl:
            del _cache[key]
            return None
        return obj


def set_cached_object(key: str, obj: Any) -> None:
    """Store ``obj`` under ``key`` stamped with the current time."""
    with _lock:
        _cache[key] = (obj, time.time())


def invalidate_cache(pattern: Optional[str] = None) -> None:
    """Drop cache entries whose key contains ``pattern``, or all of them."""
    with _lock:
        if pattern is None:
            _cache.clear()
            return
        for key in [key for key in _cache if pattern in key]:
            del _cache[key]


def make_cache_key(kind: str, namespace: str, name: str) -> str:
    """Build the cache key for a namespaced resource, e.g. ``Provider:default:gcp``."""
    return f"{kind}:{namespace}:{name}"


def delete_cached_object(key: str) -> None:
    """Drop the entry stored under exactly ``key``."""
    with _lock:
        _cache.pop(key, None)


def invalidate_cache_prefix(prefix: str) -> None:
    """Drop cache entries whose key starts with ``prefix``."""
    with _lock:
        for key in [key for key in _cache if key.startswith(prefix)]:
            del _cache[key]
