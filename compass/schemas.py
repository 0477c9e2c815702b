"""
Data Schemas for the Career Consolidation and Compass Matching Engine

This module defines the Pydantic models that serve as the data contracts for the
records flowing through the engine: raw occupation records and consolidation
definitions coming out of the upstream ETL, the consolidated careers produced by
the aggregator, the rows of the embedding index, ranked results and cached
queries.

Input records are validated once at ingestion so the aggregation code can rely on
well-typed, nullable numeric fields instead of probing untyped dictionaries.
Unknown keys in the input files are ignored.
"""
import re
from datetime import date, datetime
from enum import IntEnum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RiskTier(IntEnum):
    """Ordinal AI-exposure class, 1 being the most resilient."""
    AI_RESILIENT = 1
    AI_AUGMENTED = 2
    IN_TRANSITION = 3
    HIGH_DISRUPTION_RISK = 4

    @property
    def label(self) -> str:
        return RISK_TIER_LABELS[self]


RISK_TIER_LABELS = {
    RiskTier.AI_RESILIENT: 'AI-Resilient',
    RiskTier.AI_AUGMENTED: 'AI-Augmented',
    RiskTier.IN_TRANSITION: 'In Transition',
    RiskTier.HIGH_DISRUPTION_RISK: 'High Disruption Risk',
}

TrainingTime = Literal['<6mo', '6-24mo', '2-4yr', '4+yr']
TRAINING_TIME_CATEGORIES = ('<6mo', '6-24mo', '2-4yr', '4+yr')


def create_slug(title: str) -> str:
    """Creates a URL-friendly slug from a title."""
    slug = title.lower()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug.strip()


class _Record(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)


# --- Raw inputs ---

class YearsRange(_Record):
    min_years: Optional[float] = None
    typical_years: Optional[float] = None
    max_years: Optional[float] = None


class Education(_Record):
    typical_entry_education: Optional[str] = None
    time_to_job_ready: Optional[YearsRange] = None
    education_duration: Optional[YearsRange] = None


class AnnualWages(_Record):
    pct_10: Optional[float] = None
    pct_25: Optional[float] = None
    median: Optional[float] = None
    pct_75: Optional[float] = None
    pct_90: Optional[float] = None
    mean: Optional[float] = None


class Wages(_Record):
    source: Optional[str] = None
    year: Optional[int] = None
    annual: Optional[AnnualWages] = None
    hourly: Optional[Dict[str, Any]] = None
    employment_count: Optional[int] = Field(None, ge=0)


class RawOccupationRecord(_Record):
    """One fine-grained occupation as produced by the upstream ETL."""
    code: str = Field(alias='onet_code')
    slug: str = ''
    title: str
    category: str = ''
    subcategory: Optional[str] = None
    description: Optional[str] = None
    data_source: Literal['onet', 'manual'] = 'onet'

    wages: Optional[Wages] = None
    education: Optional[Education] = None
    ai_resilience_tier: Optional[RiskTier] = None

    # Ordered by relevance
    tasks: List[str] = Field(default_factory=list)
    technology_skills: List[str] = Field(default_factory=list)
    abilities: List[str] = Field(default_factory=list)
    alternate_titles: List[str] = Field(default_factory=list)

    # Opaque blobs that are only ever copied from the primary member
    outlook: Optional[Any] = None
    video: Optional[Any] = None
    inside_look: Optional[Any] = None
    ai_assessment: Optional[Any] = None
    ai_risk: Optional[Any] = None
    national_importance: Optional[Any] = None
    career_progression: Optional[Any] = None

    @field_validator('tasks', 'technology_skills', 'abilities', 'alternate_titles', mode='before')
    @classmethod
    def _none_to_empty(cls, value):
        return [] if value is None else value

    @model_validator(mode='after')
    def _derive_slug(self):
        if not self.slug:
            self.slug = create_slug(self.title)
        return self

    @property
    def median_wage(self) -> Optional[float]:
        if self.wages and self.wages.annual:
            return self.wages.annual.median
        return None

    @property
    def pct_10(self) -> Optional[float]:
        if self.wages and self.wages.annual:
            return self.wages.annual.pct_10
        return None

    @property
    def pct_90(self) -> Optional[float]:
        if self.wages and self.wages.annual:
            return self.wages.annual.pct_90
        return None

    @property
    def employment_count(self) -> Optional[int]:
        return self.wages.employment_count if self.wages else None

    @property
    def training_years(self) -> Optional[float]:
        """Typical years to job-ready, falling back to the generic education duration."""
        if not self.education:
            return None
        for years in (self.education.time_to_job_ready, self.education.education_duration):
            if years is not None and years.typical_years is not None:
                return years.typical_years
        return None

    @property
    def inside_look_text(self) -> Optional[str]:
        if isinstance(self.inside_look, dict):
            return self.inside_look.get('content')
        if isinstance(self.inside_look, str):
            return self.inside_look
        return None


class ConsolidationDefinition(_Record):
    """Declares which raw occupation codes merge into one consumer-facing career."""
    id: str
    title: str
    category: str
    member_codes: List[str] = Field(alias='onetCodes', min_length=1)
    primary_code: str = Field(alias='primaryOnetCode')
    grouping_strategy: str = Field('soc-based', alias='groupingStrategy')
    display_strategy: str = Field('career-only', alias='displayStrategy')
    specialization_label: Optional[str] = Field(None, alias='specializationLabel')
    description: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)

    @field_validator('member_codes')
    @classmethod
    def _dedupe_members(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode='after')
    def _primary_is_member(self):
        if self.primary_code not in self.member_codes:
            raise ValueError(
                f"primary code '{self.primary_code}' is not one of the member codes {self.member_codes}"
            )
        return self


class CareerContent(_Record):
    """Generated copy for a consolidated career with several specializations."""
    description: str
    inside_look: Optional[Dict[str, Any]] = None
    generated_at: Optional[str] = None
    specialization_count: Optional[int] = None
    model: Optional[str] = None


# --- Aggregator outputs ---

class PayRange(BaseModel):
    min: int = 0
    max: int = 0


class TrainingYears(BaseModel):
    min: float
    typical: float
    max: float


class DataCompleteness(BaseModel):
    has_wages: bool = False
    has_education: bool = False
    has_outlook: bool = False
    has_tasks: bool = False


class ConsolidatedCareer(_Record):
    slug: str
    title: str
    category: str = ''
    subcategory: str = ''
    description: Optional[str] = None
    data_source: str = 'onet'

    is_consolidated: bool
    specialization_count: int = Field(1, ge=1)
    specialization_slugs: List[str] = Field(default_factory=list)
    member_codes: List[str] = Field(default_factory=list)
    primary_code: Optional[str] = None
    display_strategy: str = 'career-only'
    grouping_strategy: str = 'singleton'
    specialization_label: Optional[str] = None

    wages: Optional[Wages] = None
    pay_range: PayRange = Field(default_factory=PayRange)
    education: Optional[Education] = None
    training_time: TrainingTime = '2-4yr'
    training_years: Optional[TrainingYears] = None
    ai_resilience: Optional[str] = None
    ai_resilience_tier: Optional[RiskTier] = None

    tasks: List[str] = Field(default_factory=list)
    technology_skills: List[str] = Field(default_factory=list)
    abilities: List[str] = Field(default_factory=list)
    alternate_titles: List[str] = Field(default_factory=list)

    outlook: Optional[Any] = None
    video: Optional[Any] = None
    inside_look: Optional[Any] = None
    ai_assessment: Optional[Any] = None
    ai_risk: Optional[Any] = None
    national_importance: Optional[Any] = None
    career_progression: Optional[Any] = None

    last_updated: Optional[date] = None
    data_completeness: Optional[DataCompleteness] = None

    @property
    def median_pay(self) -> int:
        if self.wages and self.wages.annual and self.wages.annual.median:
            return int(self.wages.annual.median)
        return 0

    @property
    def inside_look_text(self) -> Optional[str]:
        if isinstance(self.inside_look, dict):
            return self.inside_look.get('content')
        if isinstance(self.inside_look, str):
            return self.inside_look
        return None


class Specialization(RawOccupationRecord):
    """A raw occupation subsumed by a consolidated career."""
    parent_career_slug: str
    is_consolidated: bool = False


class AggregationStats(BaseModel):
    invalid_records: int = 0
    duplicate_records: int = 0
    consolidated: int = 0
    specializations: int = 0
    pass_through: int = 0
    skipped_definitions: int = 0
    skipped_duplicates: int = 0
    missing_member_codes: int = 0
    duplicate_member_codes: int = 0
    no_wage_data: int = 0
    no_training_data: int = 0
    no_risk_data: int = 0
    categories_consolidated: List[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return any((
            self.invalid_records, self.duplicate_records,
            self.skipped_definitions, self.skipped_duplicates, self.missing_member_codes,
            self.duplicate_member_codes, self.no_wage_data, self.no_training_data, self.no_risk_data,
        ))


class AggregationResult(BaseModel):
    consolidated: List[ConsolidatedCareer] = Field(default_factory=list)
    specializations: List[Specialization] = Field(default_factory=list)
    career_to_spec_map: Dict[str, List[str]] = Field(default_factory=dict)
    stats: AggregationStats = Field(default_factory=AggregationStats)


# --- Embedding index and ranking ---

class EmbeddingEntry(_Record):
    """One row of the career embedding index."""
    career_slug: str
    code: Optional[str] = Field(None, alias='onet_code')
    title: str = ''
    category: str = ''
    median_salary: Optional[int] = None
    ai_resilience: Optional[str] = None
    is_consolidated: bool = False
    specialization_count: Optional[int] = None
    parent_career_slug: Optional[str] = None
    data_source: str = 'onet'

    task_vector: Optional[List[float]] = Field(None, alias='task_embedding')
    narrative_vector: Optional[List[float]] = Field(None, alias='narrative_embedding')
    skills_vector: Optional[List[float]] = Field(None, alias='skills_embedding')

    @model_validator(mode='after')
    def _vectors_share_dimension(self):
        lengths = {len(v) for v in (self.task_vector, self.narrative_vector, self.skills_vector) if v is not None}
        if len(lengths) > 1:
            raise ValueError(f"Embedding vectors for '{self.career_slug}' have different lengths: {sorted(lengths)}")
        return self

    @property
    def is_fully_embedded(self) -> bool:
        return all(v is not None for v in (self.task_vector, self.narrative_vector, self.skills_vector))

    @property
    def dimension(self) -> Optional[int]:
        for vector in (self.task_vector, self.narrative_vector, self.skills_vector):
            if vector is not None:
                return len(vector)
        return None


class FacetWeights(BaseModel):
    """Caller-assigned weight per facet. Not renormalized."""
    task: float = 0.5
    narrative: float = 0.3
    skills: float = 0.2

    @property
    def total(self) -> float:
        return self.task + self.narrative + self.skills


class QueryEmbeddings(BaseModel):
    task: List[float]
    narrative: List[float]
    skills: List[float]


class RankedCareer(_Record):
    career_slug: str
    code: Optional[str] = Field(None, alias='onet_code')
    title: str = ''
    category: str = ''
    median_salary: Optional[int] = None
    ai_resilience: Optional[str] = None
    is_consolidated: bool = False
    specialization_count: Optional[int] = None
    similarity: float


class DWAEntry(_Record):
    """A Detailed Work Activity from the flat activity taxonomy."""
    dwa_id: str
    dwa_title: str
    iwa_id: str = ''
    iwa_title: str = ''
    gwa_id: str = ''
    gwa_title: str = ''
    embedding: Optional[List[float]] = None


class DWAMatch(BaseModel):
    dwa_id: str
    dwa_title: str
    similarity: float


# --- Query profiles and caching ---

class QueryProfile(_Record):
    skills: List[str] = Field(default_factory=list)
    task_preferences: List[str] = Field(default_factory=list)
    job_titles: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    education: str = ''
    experience_years: float = 0
    career_goals: str = ''
    skills_to_develop: str = ''
    work_environment: str = ''
    salary_expectations: str = ''
    industry_interests: str = ''
    min_salary: Optional[int] = None
    max_training_time: Optional[TrainingTime] = None
    location: Optional[str] = None


class CachedQuery(BaseModel):
    profile_hash: str
    results: List[RankedCareer]
    created_at: datetime
    expires_at: datetime
    processing_time_ms: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
