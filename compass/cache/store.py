import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from cachetools import LRUCache
from supabase import Client

from .. import db_queries
from ..schemas import CachedQuery, RankedCareer

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Storage for cached ranking results keyed by profile hash."""

    @abstractmethod
    def get(self, profile_hash: str, now: datetime) -> Optional[CachedQuery]:
        """Returns the entry if present and unexpired at `now`."""

    @abstractmethod
    def put(self, entry: CachedQuery) -> None:
        pass

    @abstractmethod
    def delete_expired(self, now: datetime) -> int:
        """Removes entries with expires_at < now and returns how many were removed."""


class InMemoryCacheStore(CacheStore):
    """
    Process-local store. Bounded by an LRU policy; expiry is checked against
    each entry's own expires_at so an injected clock fully controls it.
    """

    def __init__(self, max_entries: int = 10000):
        self._cache = LRUCache(maxsize=max_entries)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, profile_hash: str, now: datetime) -> Optional[CachedQuery]:
        with self._lock:
            entry = self._cache.get(profile_hash)
        if entry is None or entry.is_expired(now):
            return None
        return entry

    def put(self, entry: CachedQuery) -> None:
        with self._lock:
            self._cache[entry.profile_hash] = entry

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key in list(self._cache) if self._cache[key].expires_at < now]
            for key in expired:
                del self._cache[key]
        return len(expired)


class SupabaseCacheStore(CacheStore):
    """Store backed by the `recommendation_cache` table."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get(self, profile_hash: str, now: datetime) -> Optional[CachedQuery]:
        row = db_queries.fetch_cached_recommendations(self.supabase, profile_hash, now.isoformat())
        if row is None:
            return None
        entry = CachedQuery(
            profile_hash=row['profile_hash'],
            results=[RankedCareer.model_validate(r) for r in row.get('recommendations') or []],
            created_at=row['created_at'],
            expires_at=row['expires_at'],
            processing_time_ms=row.get('processing_time_ms'),
        )
        return None if entry.is_expired(now) else entry

    def put(self, entry: CachedQuery) -> None:
        db_queries.insert_cached_recommendations(self.supabase, {
            'profile_hash': entry.profile_hash,
            'recommendations': [r.model_dump(mode='json', by_alias=True) for r in entry.results],
            'processing_time_ms': entry.processing_time_ms,
            'created_at': entry.created_at.isoformat(),
            'expires_at': entry.expires_at.isoformat(),
        })

    def delete_expired(self, now: datetime) -> int:
        return db_queries.delete_expired_recommendations(self.supabase, now.isoformat())
