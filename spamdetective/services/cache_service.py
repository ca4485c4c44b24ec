"""
Caching layer for account analyses and external lookups.
In-memory TTL store by default; anything implementing the same
get/set/delete/delete_prefix contract can be swapped in.
"""

import hashlib
import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Tuple
from datetime import datetime, timedelta

from spamdetective.config import settings

logger = logging.getLogger(__name__)

CACHE_PREFIX = "spam_detective_"
USER_CACHE_PREFIX = CACHE_PREFIX + "user_"

_MISSING = object()


class TTLCache:
    """
    Thread-safe key/value store with per-entry expiry.

    Expired entries are treated as absent on read even before
    they are physically purged.
    """

    def __init__(self, max_size: int = 10000, default_ttl: int = 86400):
        self._entries: Dict[str, Tuple[Any, datetime]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._lock = threading.RLock()

    def _evict_oldest(self):
        """Remove the entry closest to expiry if the store is full."""
        if len(self._entries) >= self._max_size:
            oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
            self._entries.pop(oldest_key, None)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if datetime.now() >= expires_at:
                self._entries.pop(key, None)
                return default
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            if key not in self._entries:
                self._evict_oldest()
            self._entries[key] = (value, datetime.now() + timedelta(seconds=ttl))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix. Returns the count removed."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear(self):
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def cleanup_expired(self) -> int:
        """Physically purge expired entries. Returns the count removed."""
        now = datetime.now()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def stats(self, prefix: str = CACHE_PREFIX) -> Dict[str, int]:
        now = datetime.now()
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            expired = sum(1 for k in keys if now >= self._entries[k][1])
        return {
            "total_cached": len(keys),
            "expired": expired,
            "active": len(keys) - expired,
        }

    @property
    def size(self) -> int:
        """Current number of stored entries (expired included)."""
        return len(self._entries)


def fingerprint(*parts: Any) -> str:
    """md5 over the joined parts, used to derive cache keys."""
    joined = "".join("" if p is None else str(p) for p in parts)
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def cached_lookup(
    cache: TTLCache,
    key: str,
    fetch: Callable[[], Any],
    ttl: Optional[int] = None,
    should_cache: Callable[[Any], bool] = lambda value: True,
) -> Any:
    """
    Return the cached value for key, or call fetch() and cache its result.

    Exceptions from fetch() propagate and nothing is cached.
    """
    cached = cache.get(key, _MISSING)
    if cached is not _MISSING:
        logger.debug(f"Cache hit for {key}")
        return cached

    value = fetch()
    if should_cache(value):
        cache.set(key, value, ttl)
    return value


class AnalysisCache:
    """
    Per-account analysis results.

    Keys combine the account id with a hash of the registration timestamp and
    email, so a change to either produces a fresh key.
    """

    def __init__(self, store: TTLCache, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl

    @staticmethod
    def make_key(account_id: int, registered: Any, email: str) -> str:
        return f"{USER_CACHE_PREFIX}{account_id}_{fingerprint(registered, email)}"

    def get_user_analysis(self, account):
        key = self.make_key(account.id, account.registered, account.email)
        result = self.store.get(key)
        if result is not None:
            logger.debug(f"Cache hit for account {account.id}")
        return result

    def set_user_analysis(self, account, analysis, ttl: Optional[int] = None):
        key = self.make_key(account.id, account.registered, account.email)
        self.store.set(key, analysis, self.ttl if ttl is None else ttl)

    def clear_user_cache(self, account) -> bool:
        return self.store.delete(self.make_key(account.id, account.registered, account.email))

    def clear_all_user_cache(self) -> bool:
        """Flush every cached analysis. Returns whether anything was removed."""
        deleted = self.store.delete_prefix(USER_CACHE_PREFIX)
        logger.info(f"Cleared {deleted} cached analyses")
        return deleted > 0

    def cleanup_expired(self) -> int:
        removed = self.store.cleanup_expired()
        logger.info(f"Purged {removed} expired cache entries")
        return removed

    def warmup(self, accounts: Iterable, analyze_fn: Callable, ttl: Optional[int] = None) -> int:
        """Analyze and cache accounts that have no cached result yet."""
        warmed_up = 0
        for account in accounts:
            if self.get_user_analysis(account) is None:
                self.set_user_analysis(account, analyze_fn(account), ttl)
                warmed_up += 1
        return warmed_up

    def get_stats(self) -> Dict[str, int]:
        return self.store.stats(USER_CACHE_PREFIX)


# Global cache instance (uses config values)
cache_store = TTLCache(
    max_size=settings.cache_capacity,
    default_ttl=settings.cache_ttl,
)
