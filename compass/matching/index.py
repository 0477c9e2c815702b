"""
Career and activity embedding indexes.

An index holds one row per career slug with its three facet vectors. Writes
replace whole rows, so a reader never sees a row with some facets from one
embedding run and the rest from another. Rows with any facet missing stay in
the index but are never ranked.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError
from supabase import Client

from .. import db_queries
from ..exceptions import DataLoadError, EmbeddingDimensionError, IndexIntegrityError
from ..schemas import (
    AggregationResult,
    DWAEntry,
    DWAMatch,
    EmbeddingEntry,
    FacetWeights,
    QueryEmbeddings,
    RankedCareer,
)
from .embedder import FacetVectors
from .similarity import cosine_similarities, to_matrix, weighted_similarities

logger = logging.getLogger(__name__)


def check_parent_links(entries: Mapping[str, EmbeddingEntry]) -> None:
    """
    Every parent_career_slug must name a consolidated entry present in `entries`.

    Raises:
        IndexIntegrityError: listing the offending slugs.
    """
    broken = []
    for slug, entry in entries.items():
        if entry.parent_career_slug is None:
            continue
        parent = entries.get(entry.parent_career_slug)
        if parent is None or not parent.is_consolidated:
            broken.append(f"{slug} -> {entry.parent_career_slug}")
    if broken:
        raise IndexIntegrityError(
            f"{len(broken)} entries point at a missing or non-consolidated parent: {', '.join(sorted(broken)[:10])}"
        )


def _sort_ranked(results: Iterable[RankedCareer]) -> List[RankedCareer]:
    return sorted(results, key=lambda r: (-r.similarity, r.career_slug))


class EmbeddingIndex(ABC):

    @property
    @abstractmethod
    def dimension(self) -> Optional[int]:
        """Vector length every stored facet has, or None if not known yet."""

    @abstractmethod
    def upsert(self, entries: Sequence[EmbeddingEntry]) -> int:
        """Writes whole entries keyed by career_slug and returns how many were written."""

    @abstractmethod
    def rank(self, query: QueryEmbeddings, weights: FacetWeights, limit: int,
             prefer_consolidated: bool) -> List[RankedCareer]:
        """Top `limit` eligible careers by weighted similarity, best first."""


class ActivityIndex(ABC):

    @abstractmethod
    def upsert(self, entries: Sequence[DWAEntry]) -> int:
        pass

    @abstractmethod
    def rank(self, query: List[float], limit: int) -> List[DWAMatch]:
        pass


class InMemoryEmbeddingIndex(EmbeddingIndex):
    """
    Thread-safe in-process index.

    Upserts build a new mapping and swap it in under the lock, so concurrent
    rank() calls work on a consistent snapshot.
    """

    def __init__(self, entries: Optional[Iterable[EmbeddingEntry]] = None, dimension: Optional[int] = None):
        self._lock = threading.RLock()
        self._entries: Dict[str, EmbeddingEntry] = {}
        self._dimension = dimension
        if entries:
            self.upsert(list(entries))

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, career_slug: str) -> Optional[EmbeddingEntry]:
        return self._entries.get(career_slug)

    def entries(self) -> List[EmbeddingEntry]:
        return list(self._entries.values())

    def upsert(self, entries: Sequence[EmbeddingEntry]) -> int:
        with self._lock:
            dimension = self._dimension
            for entry in entries:
                entry_dimension = entry.dimension
                if entry_dimension is None:
                    continue
                if dimension is None:
                    dimension = entry_dimension
                elif entry_dimension != dimension:
                    raise EmbeddingDimensionError(
                        f"Entry '{entry.career_slug}' has {entry_dimension}-dimensional vectors, index uses {dimension}"
                    )

            merged = dict(self._entries)
            for entry in entries:
                merged[entry.career_slug] = entry
            check_parent_links(merged)

            self._entries = merged
            self._dimension = dimension
        logger.debug(f"Upserted {len(entries)} entries, index now holds {len(merged)}")
        return len(entries)

    def candidates(self, prefer_consolidated: bool) -> List[EmbeddingEntry]:
        snapshot = self._entries
        return [
            e for e in snapshot.values()
            if e.is_fully_embedded and not (prefer_consolidated and e.parent_career_slug is not None)
        ]

    def rank(self, query: QueryEmbeddings, weights: FacetWeights, limit: int,
             prefer_consolidated: bool) -> List[RankedCareer]:
        candidates = self.candidates(prefer_consolidated)
        if not candidates or limit <= 0:
            return []

        scores = weighted_similarities(
            query,
            to_matrix([c.task_vector for c in candidates]),
            to_matrix([c.narrative_vector for c in candidates]),
            to_matrix([c.skills_vector for c in candidates]),
            weights,
        ).tolist()

        ranked = [
            RankedCareer(
                career_slug=c.career_slug,
                code=c.code,
                title=c.title,
                category=c.category,
                median_salary=c.median_salary,
                ai_resilience=c.ai_resilience,
                is_consolidated=c.is_consolidated,
                specialization_count=c.specialization_count,
                similarity=score,
            )
            for c, score in zip(candidates, scores)
        ]
        return _sort_ranked(ranked)[:limit]

    @classmethod
    def load_file(cls, path) -> 'InMemoryEmbeddingIndex':
        """
        Loads an embeddings file of the form
        {"metadata": {"dimensions": ...}, "embeddings": {slug: {...}}}.
        """
        path = Path(path)
        if not path.exists():
            raise DataLoadError(path, "Embeddings file not found")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise DataLoadError(path, f"Embeddings file is not valid JSON ({e})") from e

        raw_entries = data.get('embeddings') if isinstance(data, dict) else None
        if not isinstance(raw_entries, dict):
            raise DataLoadError(path, "Expected an 'embeddings' mapping of slug -> entry")

        entries = []
        for slug, raw in raw_entries.items():
            try:
                entries.append(EmbeddingEntry.model_validate({**raw, 'career_slug': slug}))
            except ValidationError as e:
                raise DataLoadError(path, f"Invalid embedding entry '{slug}': {e}") from e

        metadata = data.get('metadata') or {}
        index = cls(dimension=metadata.get('dimensions'))
        index.upsert(entries)
        logger.info(f"Loaded {len(index)} embedding entries from {path}")
        return index

    def save_file(self, path, model_name: str, weights: FacetWeights) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        entries = sorted(self._entries.values(), key=lambda e: e.career_slug)
        payload = {
            'metadata': {
                'model': model_name,
                'dimensions': self._dimension,
                'generated_at': datetime.now(timezone.utc).isoformat(),
                'total_careers': len(entries),
                'embedding_strategy': 'multi-field',
                'weights': weights.model_dump(),
            },
            'embeddings': {e.career_slug: e.model_dump(by_alias=True, exclude={'career_slug'}) for e in entries},
        }
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False)
        logger.info(f"Saved {len(entries)} embedding entries to {path}")
        return path


class InMemoryActivityIndex(ActivityIndex):

    def __init__(self, entries: Optional[Iterable[DWAEntry]] = None):
        self._lock = threading.RLock()
        self._entries: Dict[str, DWAEntry] = {}
        if entries:
            self.upsert(list(entries))

    def __len__(self) -> int:
        return len(self._entries)

    def upsert(self, entries: Sequence[DWAEntry]) -> int:
        with self._lock:
            merged = dict(self._entries)
            for entry in entries:
                merged[entry.dwa_id] = entry
            self._entries = merged
        return len(entries)

    def rank(self, query: List[float], limit: int) -> List[DWAMatch]:
        candidates = [e for e in self._entries.values() if e.embedding is not None]
        if not candidates or limit <= 0:
            return []
        dimension = len(candidates[0].embedding)
        if len(query) != dimension:
            raise EmbeddingDimensionError(f"Query has {len(query)} dimensions, activity index uses {dimension}")

        scores = cosine_similarities(query, to_matrix([c.embedding for c in candidates])).tolist()
        matches = [DWAMatch(dwa_id=c.dwa_id, dwa_title=c.dwa_title, similarity=s) for c, s in zip(candidates, scores)]
        matches.sort(key=lambda m: (-m.similarity, m.dwa_id))
        return matches[:limit]

    @classmethod
    def load_file(cls, path) -> 'InMemoryActivityIndex':
        """Loads a JSON array of activity entries with their embeddings."""
        path = Path(path)
        if not path.exists():
            raise DataLoadError(path, "Activity embeddings file not found")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            entries = [DWAEntry.model_validate(raw) for raw in data]
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            raise DataLoadError(path, f"Invalid activity embeddings file ({e})") from e
        logger.info(f"Loaded {len(entries)} activity entries from {path}")
        return cls(entries)


class SupabaseEmbeddingIndex(EmbeddingIndex):
    """Index backed by the `career_embeddings` table and its pgvector RPC."""

    def __init__(self, supabase: Client, dimension: int = 384, batch_size: int = 100):
        self.supabase = supabase
        self._dimension = dimension
        self.batch_size = batch_size

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def upsert(self, entries: Sequence[EmbeddingEntry]) -> int:
        for entry in entries:
            if entry.dimension is not None and entry.dimension != self._dimension:
                raise EmbeddingDimensionError(
                    f"Entry '{entry.career_slug}' has {entry.dimension}-dimensional vectors, "
                    f"table column is vector({self._dimension})"
                )
        rows = [e.model_dump(by_alias=True) for e in entries]
        return db_queries.upsert_rows(
            self.supabase, db_queries.CAREER_EMBEDDINGS_TABLE, rows,
            on_conflict="career_slug", batch_size=self.batch_size,
        )

    def rank(self, query: QueryEmbeddings, weights: FacetWeights, limit: int,
             prefer_consolidated: bool) -> List[RankedCareer]:
        if limit <= 0:
            return []
        rows = db_queries.find_similar_careers(
            self.supabase, query.task, query.narrative, query.skills,
            weights.task, weights.narrative, weights.skills, limit, prefer_consolidated,
        )
        return _sort_ranked(RankedCareer.model_validate(row) for row in rows)[:limit]


class SupabaseActivityIndex(ActivityIndex):
    """Activity index backed by the `dwa_embeddings` table."""

    def __init__(self, supabase: Client, batch_size: int = 100):
        self.supabase = supabase
        self.batch_size = batch_size

    def upsert(self, entries: Sequence[DWAEntry]) -> int:
        rows = [e.model_dump() for e in entries]
        return db_queries.upsert_rows(
            self.supabase, db_queries.DWA_EMBEDDINGS_TABLE, rows,
            on_conflict="dwa_id", batch_size=self.batch_size,
        )

    def rank(self, query: List[float], limit: int) -> List[DWAMatch]:
        if limit <= 0:
            return []
        rows = db_queries.find_careers_by_dwa_similarity(self.supabase, query, limit)
        matches = [DWAMatch.model_validate(row) for row in rows]
        matches.sort(key=lambda m: (-m.similarity, m.dwa_id))
        return matches[:limit]


def build_embedding_entries(result: AggregationResult,
                            career_vectors: Mapping[str, FacetVectors],
                            specialization_vectors: Optional[Mapping[str, FacetVectors]] = None) -> List[EmbeddingEntry]:
    """
    Builds index rows for every consolidated career and every specialization.

    Career and specialization vectors come in separate mappings because a
    single-member group may share its slug with its only member while the two
    are embedded from different texts.

    A specialization whose slug equals a consolidated career's slug (a
    single-member group named after its only occupation) is left out; the
    career row already covers it. Careers without vectors get a row with no
    facets, which the index keeps but never ranks.
    """
    specialization_vectors = specialization_vectors or {}
    entries: Dict[str, EmbeddingEntry] = {}

    for career in result.consolidated:
        task, narrative, skills = career_vectors.get(career.slug, (None, None, None))
        entries[career.slug] = EmbeddingEntry(
            career_slug=career.slug,
            code=career.primary_code,
            title=career.title,
            category=career.category,
            median_salary=career.median_pay or None,
            ai_resilience=career.ai_resilience,
            is_consolidated=career.is_consolidated,
            specialization_count=career.specialization_count if career.is_consolidated else None,
            parent_career_slug=None,
            data_source=career.data_source,
            task_vector=task,
            narrative_vector=narrative,
            skills_vector=skills,
        )

    skipped = 0
    for spec in result.specializations:
        if spec.slug in entries:
            skipped += 1
            continue
        task, narrative, skills = specialization_vectors.get(spec.slug, (None, None, None))
        tier = spec.ai_resilience_tier
        entries[spec.slug] = EmbeddingEntry(
            career_slug=spec.slug,
            code=spec.code,
            title=spec.title,
            category=spec.category,
            median_salary=int(spec.median_wage) if spec.median_wage else None,
            ai_resilience=tier.label if tier else None,
            is_consolidated=False,
            specialization_count=None,
            parent_career_slug=spec.parent_career_slug,
            data_source=spec.data_source,
            task_vector=task,
            narrative_vector=narrative,
            skills_vector=skills,
        )

    if skipped:
        logger.info(f"Skipped {skipped} specializations whose slug matches their career")
    missing = sum(1 for e in entries.values() if not e.is_fully_embedded)
    if missing:
        logger.warning(f"{missing} index entries have no vectors and will not be ranked")

    check_parent_links(entries)
    return list(entries.values())
