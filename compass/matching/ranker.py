import logging
from typing import Dict, List, Optional, Union

from ..config import RankingConfig
from ..exceptions import ConfigurationError, EmbeddingDimensionError
from ..schemas import DWAMatch, FacetWeights, QueryEmbeddings, RankedCareer
from .index import ActivityIndex, EmbeddingIndex

logger = logging.getLogger(__name__)

WeightsLike = Union[FacetWeights, Dict[str, float], None]


class SimilarityRanker:
    """
    Ranks careers against a three-facet query.

    score = w_task * cos(task) + w_narrative * cos(narrative) + w_skills * cos(skills)

    Results are ordered by score, highest first, with ties broken by
    ascending career slug so identical inputs always give identical output.
    """

    def __init__(self, index: EmbeddingIndex, config: RankingConfig,
                 activity_index: Optional[ActivityIndex] = None):
        self.index = index
        self.config = config
        self.activity_index = activity_index

    def resolve_weights(self, weights: WeightsLike = None) -> FacetWeights:
        if weights is None:
            return FacetWeights(
                task=self.config.task_weight,
                narrative=self.config.narrative_weight,
                skills=self.config.skills_weight,
            )
        if isinstance(weights, FacetWeights):
            return weights
        return FacetWeights(**weights)

    def resolve_limit(self, limit: Optional[int]) -> int:
        return self.config.result_limit if limit is None else limit

    def resolve_prefer_consolidated(self, prefer_consolidated: Optional[bool]) -> bool:
        return self.config.prefer_consolidated if prefer_consolidated is None else prefer_consolidated

    def _check_dimensions(self, query: QueryEmbeddings):
        lengths = {len(query.task), len(query.narrative), len(query.skills)}
        if len(lengths) != 1 or 0 in lengths:
            raise EmbeddingDimensionError(
                f"Query facets must be non-empty vectors of one length, got "
                f"task={len(query.task)}, narrative={len(query.narrative)}, skills={len(query.skills)}"
            )
        expected = self.index.dimension
        (actual,) = lengths
        if expected is not None and actual != expected:
            raise EmbeddingDimensionError(f"Query has {actual} dimensions, index uses {expected}")

    def rank_similar(self, query_task: List[float], query_narrative: List[float], query_skills: List[float],
                     weights: WeightsLike = None, limit: Optional[int] = None,
                     prefer_consolidated: Optional[bool] = None) -> List[RankedCareer]:
        """
        Returns the top `limit` careers for the query.

        With prefer_consolidated set, specialization rows (entries with a
        parent career) are left out. An empty list means no eligible
        candidates; lookup failures raise instead.
        """
        query = QueryEmbeddings(task=query_task, narrative=query_narrative, skills=query_skills)
        self._check_dimensions(query)
        weights = self.resolve_weights(weights)
        limit = self.resolve_limit(limit)
        prefer_consolidated = self.resolve_prefer_consolidated(prefer_consolidated)

        if abs(weights.total - 1.0) > 1e-6:
            logger.debug(f"Facet weights sum to {weights.total:.3f}; scores are not renormalized")
        if limit <= 0:
            return []

        results = self.index.rank(query, weights, limit, prefer_consolidated)
        results = sorted(results, key=lambda r: (-r.similarity, r.career_slug))[:limit]
        if results:
            logger.info(
                f"Ranked {len(results)} careers (top: {results[0].career_slug} {results[0].similarity:.3f})"
            )
        else:
            logger.info("No eligible careers to rank")
        return results

    def rank_activities(self, query: List[float], limit: Optional[int] = None) -> List[DWAMatch]:
        """Top `limit` work activities by cosine similarity to a single query vector."""
        if self.activity_index is None:
            raise ConfigurationError("No activity index configured")
        if not query:
            raise EmbeddingDimensionError("Activity query vector is empty")
        limit = self.config.activity_result_limit if limit is None else limit
        if limit <= 0:
            return []
        return self.activity_index.rank(query, limit)
