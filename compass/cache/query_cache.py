import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ..config import CacheConfig
from ..schemas import CachedQuery, RankedCareer
from .store import CacheStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _copied(results: List[RankedCareer]) -> List[RankedCareer]:
    return [r.model_copy(deep=True) for r in results]


class QueryCache:
    """
    Memoizes ranking results per profile hash for a fixed TTL.

    The cache never changes what a caller gets back: a failed read counts as
    a miss and a failed write is logged while the fresh result is still
    returned. Stored results are private copies, so callers may mutate what
    they receive.
    """

    def __init__(self, store: CacheStore, config: CacheConfig, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.ttl = timedelta(hours=config.ttl_hours)
        self.clock = clock or utc_now

    def get_or_compute(self, profile_hash: str, compute_fn: Callable[[], List[RankedCareer]]) -> List[RankedCareer]:
        now = self.clock()
        try:
            entry = self.store.get(profile_hash, now)
        except Exception as e:
            logger.warning(f"Cache read failed for {profile_hash[:12]}, computing fresh: {e}", exc_info=True)
            entry = None

        if entry is not None and not entry.is_expired(now):
            logger.info(f"Cache hit for {profile_hash[:12]} ({len(entry.results)} results)")
            return _copied(entry.results)

        logger.info(f"Cache miss for {profile_hash[:12]}")
        start = time.perf_counter()
        results = compute_fn()
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        created_at = self.clock()
        entry = CachedQuery(
            profile_hash=profile_hash,
            results=_copied(results),
            created_at=created_at,
            expires_at=created_at + self.ttl,
            processing_time_ms=elapsed_ms,
        )
        try:
            self.store.put(entry)
        except Exception as e:
            logger.warning(f"Cache write failed for {profile_hash[:12]}: {e}", exc_info=True)
        return results

    def sweep(self) -> int:
        """Deletes expired entries. Returns the number removed, 0 if the store failed."""
        try:
            deleted = self.store.delete_expired(self.clock())
        except Exception as e:
            logger.error(f"Cache sweep failed: {e}", exc_info=True)
            return 0
        logger.info(f"Cache sweep removed {deleted} expired entries")
        return deleted
