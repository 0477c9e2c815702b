"""
Aggregation rules for merging several occupation records into one career.

- median pay: employment-weighted mean of member medians
- pay range: [min 10th percentile, max 90th percentile] across members
- employment: plain sum
- AI resilience: employment-weighted plurality vote over risk tiers
- training time: simple (unweighted) mean of member years, bucketed
- content lists: first-seen union, deduplicated, capped
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..schemas import PayRange, RawOccupationRecord, RiskTier, TrainingYears

logger = logging.getLogger(__name__)

# Tier assumed for a member with no tier when falling back to an unweighted vote
DEFAULT_RISK_TIER = RiskTier.AI_AUGMENTED

DEFAULT_TRAINING_YEARS = TrainingYears(min=2, typical=3, max=4)


def weighted_median_pay(members: Sequence[RawOccupationRecord]) -> int:
    """
    Employment-weighted average of member medians.

    Members with both a median and a positive employment count carry the weight.
    Without any such member the plain mean of the available medians is used, and
    without any median at all the result is 0 (unknown).
    """
    weighted = [m for m in members if m.median_wage and (m.employment_count or 0) > 0]

    if not weighted:
        medians = [m.median_wage for m in members if m.median_wage]
        if not medians:
            return 0
        return int(round(float(np.mean(medians))))

    medians = np.array([m.median_wage for m in weighted], dtype=float)
    employment = np.array([m.employment_count for m in weighted], dtype=float)
    return int(round(float(np.average(medians, weights=employment))))


def pay_range(members: Sequence[RawOccupationRecord]) -> PayRange:
    """Extremes actually present across members; a missing side is 0."""
    low = [m.pct_10 for m in members if m.pct_10]
    high = [m.pct_90 for m in members if m.pct_90]
    return PayRange(
        min=int(min(low)) if low else 0,
        max=int(max(high)) if high else 0,
    )


def total_employment(members: Sequence[RawOccupationRecord]) -> int:
    return sum(m.employment_count or 0 for m in members)


def risk_tier_histogram(members: Sequence[RawOccupationRecord]) -> Dict[RiskTier, float]:
    histogram = {tier: 0.0 for tier in RiskTier}
    weighted = [m for m in members if m.ai_resilience_tier and (m.employment_count or 0) > 0]

    if not weighted:
        for m in members:
            histogram[m.ai_resilience_tier or DEFAULT_RISK_TIER] += 1
        return histogram

    total = sum(m.employment_count for m in weighted)
    for m in weighted:
        histogram[m.ai_resilience_tier] += m.employment_count / total
    return histogram


def weighted_risk_tier(members: Sequence[RawOccupationRecord]) -> RiskTier:
    """
    Winning tier of the employment-weighted vote.

    Tiers are visited from most to least resilient and only a strictly larger
    weight replaces the current leader, so ties go to the more resilient tier.
    """
    histogram = risk_tier_histogram(members)
    winner = RiskTier.AI_RESILIENT
    for tier in sorted(histogram):
        if histogram[tier] > histogram[winner]:
            winner = tier
    return winner


def training_time_category(years: float) -> str:
    if years < 0.5:
        return '<6mo'
    if years < 2:
        return '6-24mo'
    if years < 4:
        return '2-4yr'
    return '4+yr'


def training_time(members: Sequence[RawOccupationRecord],
                  default_category: str = '2-4yr') -> Tuple[str, TrainingYears, bool]:
    """
    Returns (category, years, had_data). The mean over members is unweighted.
    """
    years = [m.training_years for m in members if m.training_years is not None]
    if not years:
        return default_category, DEFAULT_TRAINING_YEARS, False

    average = sum(years) / len(years)
    return (
        training_time_category(average),
        TrainingYears(min=min(years), typical=round(average, 1), max=max(years)),
        True,
    )


def union_lists(lists: Iterable[Optional[List[str]]], max_items: int) -> List[str]:
    """Concatenates in order, keeps the first occurrence of each string, then truncates."""
    seen = {}
    for items in lists:
        for item in items or []:
            if item not in seen:
                seen[item] = None
    return list(seen)[:max_items]


def union_field(members: Sequence[RawOccupationRecord], field: str, max_items: int) -> List[str]:
    return union_lists((getattr(m, field) for m in members), max_items)
