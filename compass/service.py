import logging
from typing import Any, Dict, List, Optional, Union

from .cache.keys import profile_hash
from .cache.query_cache import QueryCache
from .matching.embedder import FacetEmbedder
from .matching.ranker import SimilarityRanker, WeightsLike
from .schemas import DWAMatch, QueryProfile, RankedCareer

logger = logging.getLogger(__name__)


class CompassService:
    """
    Entry point for career matching: profile -> hash -> cache -> embed -> rank.
    """

    def __init__(self, embedder: FacetEmbedder, ranker: SimilarityRanker, cache: QueryCache):
        self.embedder = embedder
        self.ranker = ranker
        self.cache = cache

    def recommend(self, profile: Union[QueryProfile, Dict[str, Any]], weights: WeightsLike = None,
                  limit: Optional[int] = None, prefer_consolidated: Optional[bool] = None) -> List[RankedCareer]:
        if not isinstance(profile, QueryProfile):
            profile = QueryProfile.model_validate(profile)

        weights = self.ranker.resolve_weights(weights)
        limit = self.ranker.resolve_limit(limit)
        prefer_consolidated = self.ranker.resolve_prefer_consolidated(prefer_consolidated)
        key = profile_hash(
            profile,
            weights=weights.model_dump(),
            limit=limit,
            prefer_consolidated=prefer_consolidated,
        )

        def compute() -> List[RankedCareer]:
            query = self.embedder.embed_profile(profile)
            return self.ranker.rank_similar(
                query.task, query.narrative, query.skills,
                weights=weights, limit=limit, prefer_consolidated=prefer_consolidated,
            )

        return self.cache.get_or_compute(key, compute)

    def match_activities(self, text: str, limit: Optional[int] = None) -> List[DWAMatch]:
        """Ranks work activities against free text, e.g. a line from a resume."""
        if not text or not text.strip():
            return []
        return self.ranker.rank_activities(self.embedder.embed_text(text), limit)

    def cleanup_cache(self) -> int:
        return self.cache.sweep()
