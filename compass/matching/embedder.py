import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..schemas import AggregationResult, QueryEmbeddings, QueryProfile
from .embedding_processor import BatchEmbeddingProcessor
from .texts import CareerLike, build_career_texts, build_query_texts, career_activities

logger = logging.getLogger(__name__)

FacetVectors = Tuple[List[float], List[float], List[float]]


class FacetEmbedder:
    """Turns careers and query profiles into task, narrative and skills vectors."""

    def __init__(self, processor: BatchEmbeddingProcessor):
        self.processor = processor

    def embed_careers(self, careers: Sequence[CareerLike],
                      activities: Optional[Mapping[str, Sequence[str]]] = None) -> Dict[str, FacetVectors]:
        """
        Embeds every career's three facet texts, keyed by slug.

        All texts of one facet go to the model as a single batch list.
        `activities` maps an occupation code to its work activity titles,
        which go into the task text of every career built from that code.
        """
        if not careers:
            return {}

        activities = activities or {}
        texts = [build_career_texts(c, career_activities(c, activities)) for c in careers]
        task_vectors = self.processor.encode_to_lists([t[0] for t in texts])
        narrative_vectors = self.processor.encode_to_lists([t[1] for t in texts])
        skills_vectors = self.processor.encode_to_lists([t[2] for t in texts])

        vectors = {}
        for career, task, narrative, skills in zip(careers, task_vectors, narrative_vectors, skills_vectors):
            vectors[career.slug] = (task, narrative, skills)
        logger.info(f"Embedded {len(vectors)} careers across 3 facets")
        return vectors

    def embed_aggregation_result(self, result: AggregationResult,
                                 activities: Optional[Mapping[str, Sequence[str]]] = None
                                 ) -> Tuple[Dict[str, FacetVectors], Dict[str, FacetVectors]]:
        """
        Returns (career vectors, specialization vectors).

        Specializations sharing a slug with a consolidated career get no index
        row of their own, so they are not embedded.
        """
        career_vectors = self.embed_careers(result.consolidated, activities)
        career_slugs = {c.slug for c in result.consolidated}
        specializations = [s for s in result.specializations if s.slug not in career_slugs]
        skipped = len(result.specializations) - len(specializations)
        if skipped:
            logger.info(f"Not embedding {skipped} specializations that share their career's slug")
        return career_vectors, self.embed_careers(specializations, activities)

    def embed_profile(self, profile: QueryProfile) -> QueryEmbeddings:
        task, narrative, skills = self.processor.encode_to_lists(list(build_query_texts(profile)))
        return QueryEmbeddings(task=task, narrative=narrative, skills=skills)

    def embed_text(self, text: str) -> List[float]:
        return self.processor.encode_to_lists([text])[0]
