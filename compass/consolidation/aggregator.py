import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Set

from ..config import AggregationConfig
from ..schemas import (
    AggregationResult,
    AggregationStats,
    AnnualWages,
    CareerContent,
    ConsolidatedCareer,
    ConsolidationDefinition,
    DataCompleteness,
    RawOccupationRecord,
    Specialization,
    Wages,
)
from .aggregation import (
    pay_range,
    total_employment,
    training_time,
    union_field,
    union_lists,
    weighted_median_pay,
    weighted_risk_tier,
)

logger = logging.getLogger(__name__)


class CareerAggregator:
    """
    Merges raw occupation records into consolidated careers.

    Definitions are processed first, in the order given; every code a
    definition resolves is claimed so that no later definition and no
    pass-through can claim it again. Everything left unclaimed afterwards is
    passed through as its own singleton career.
    """

    def __init__(self, config: AggregationConfig, as_of: Optional[date] = None):
        self.config = config
        self.as_of = as_of

    def aggregate(self,
                  raw_records: Sequence[RawOccupationRecord],
                  definitions: Sequence[ConsolidationDefinition],
                  career_content: Optional[Dict[str, CareerContent]] = None,
                  load_stats: Optional[AggregationStats] = None) -> AggregationResult:
        """
        Consolidates `raw_records` according to `definitions`.

        `load_stats` carries counters gathered while loading the inputs; they
        are copied into the result's stats and never modified.
        """
        as_of = self.as_of or date.today()
        result = AggregationResult()
        if load_stats is not None:
            result.stats = load_stats.model_copy(deep=True)
        stats = result.stats

        by_code: Dict[str, RawOccupationRecord] = {}
        for record in raw_records:
            if record.code in by_code:
                logger.warning(f"Occupation code {record.code} appears more than once; using the first record")
                stats.duplicate_records += 1
                continue
            by_code[record.code] = record

        claimed: Set[str] = set()

        for definition in definitions:
            members = self._resolve_members(definition, by_code, claimed, stats)
            if not members:
                stats.skipped_definitions += 1
                logger.warning(f"No matching occupations found for career definition '{definition.id}', skipping")
                continue

            claimed.update(m.code for m in members)
            content = career_content.get(definition.id) if career_content else None
            career = self._consolidate(definition, members, content, stats, as_of)
            result.consolidated.append(career)

            for member in members:
                result.specializations.append(Specialization.model_validate({
                    **member.model_dump(),
                    'parent_career_slug': definition.id,
                }))
            result.career_to_spec_map[definition.id] = [m.code for m in members]

            stats.consolidated += 1
            stats.specializations += len(members)
            if definition.category not in stats.categories_consolidated:
                stats.categories_consolidated.append(definition.category)

        # Pass-through is opt-out per code, never per category
        produced_slugs = {c.slug for c in result.consolidated}
        for record in raw_records:
            if record.code in claimed:
                continue
            if record.slug in produced_slugs:
                stats.skipped_duplicates += 1
                logger.warning(f"Skipping pass-through {record.code}: slug '{record.slug}' already produced")
                continue
            result.consolidated.append(self._pass_through(record, stats, as_of))
            produced_slugs.add(record.slug)
            claimed.add(record.code)
            stats.pass_through += 1

        logger.info(
            f"Consolidation finished: {stats.consolidated} consolidated careers, "
            f"{stats.specializations} specializations linked, {stats.pass_through} pass-through, "
            f"{stats.skipped_definitions} definitions skipped, {stats.skipped_duplicates} duplicate slugs skipped"
        )
        if stats.degraded:
            logger.warning(
                f"Data quality: {stats.invalid_records} invalid records, {stats.duplicate_records} duplicate records, "
                f"{stats.missing_member_codes} missing member codes, "
                f"{stats.duplicate_member_codes} codes claimed twice, {stats.no_wage_data} careers without wages, "
                f"{stats.no_training_data} without training years, {stats.no_risk_data} without a risk tier"
            )
        return result

    def _resolve_members(self, definition: ConsolidationDefinition, by_code: Dict[str, RawOccupationRecord],
                         claimed: Set[str], stats: AggregationStats) -> List[RawOccupationRecord]:
        members = []
        for code in definition.member_codes:
            if code in claimed:
                stats.duplicate_member_codes += 1
                logger.warning(f"Code {code} in '{definition.id}' was already claimed by another career, dropping it")
                continue
            record = by_code.get(code)
            if record is None:
                stats.missing_member_codes += 1
                logger.warning(f"Code {code} listed in '{definition.id}' is not in the occupation data")
                continue
            members.append(record)
        return members

    def _consolidate(self, definition: ConsolidationDefinition, members: List[RawOccupationRecord],
                     content: Optional[CareerContent], stats: AggregationStats, as_of: date) -> ConsolidatedCareer:
        primary = next((m for m in members if m.code == definition.primary_code), None)
        if primary is None:
            logger.warning(
                f"Primary code {definition.primary_code} of '{definition.id}' did not resolve; "
                f"using {members[0].code} instead"
            )
            primary = members[0]

        median = weighted_median_pay(members)
        payband = pay_range(members)
        tier = weighted_risk_tier(members)
        training_category, training_years, had_training = training_time(
            members, self.config.default_training_time
        )
        education = primary.education or members[0].education
        self._tally(stats, median, had_training, members)

        # Generated copy applies to multi-member groups only
        use_generated = content is not None and len(members) > 1
        if use_generated:
            description = content.description
            inside_look = content.inside_look
        else:
            description = definition.description or primary.description
            inside_look = primary.inside_look

        return ConsolidatedCareer(
            slug=definition.id,
            title=definition.title,
            category=definition.category,
            subcategory=primary.subcategory or '',
            description=description,
            data_source='onet',
            is_consolidated=True,
            specialization_count=len(members),
            specialization_slugs=[m.slug for m in members],
            member_codes=[m.code for m in members],
            primary_code=definition.primary_code,
            display_strategy=definition.display_strategy,
            grouping_strategy=definition.grouping_strategy,
            specialization_label=definition.specialization_label,
            wages=Wages(
                source='BLS OES (aggregated)',
                year=primary.wages.year if primary.wages else None,
                annual=AnnualWages(
                    pct_10=payband.min,
                    pct_25=None,
                    median=median,
                    pct_75=None,
                    pct_90=payband.max,
                    mean=None,
                ),
                hourly=primary.wages.hourly if primary.wages else None,
                employment_count=total_employment(members),
            ),
            pay_range=payband,
            education=education,
            training_time=training_category,
            training_years=training_years,
            ai_resilience=tier.label,
            ai_resilience_tier=tier,
            tasks=union_field(members, 'tasks', self.config.max_tasks),
            technology_skills=union_field(members, 'technology_skills', self.config.max_technology_skills),
            abilities=union_field(members, 'abilities', self.config.max_abilities),
            alternate_titles=union_lists(
                [[definition.title], *(m.alternate_titles for m in members), definition.keywords],
                self.config.max_alternate_titles,
            ),
            outlook=primary.outlook,
            video=primary.video,
            inside_look=inside_look,
            ai_assessment=primary.ai_assessment,
            ai_risk=primary.ai_risk,
            national_importance=primary.national_importance,
            career_progression=primary.career_progression,
            last_updated=as_of,
            data_completeness=DataCompleteness(
                has_wages=median > 0,
                has_education=education is not None,
                has_outlook=bool(primary.outlook),
                has_tasks=any(m.tasks for m in members),
            ),
        )

    def _pass_through(self, record: RawOccupationRecord, stats: AggregationStats, as_of: date) -> ConsolidatedCareer:
        training_category, training_years, had_training = training_time(
            [record], self.config.default_training_time
        )
        self._tally(stats, int(record.median_wage or 0), had_training, [record])
        tier = record.ai_resilience_tier

        return ConsolidatedCareer(
            slug=record.slug,
            title=record.title,
            category=record.category,
            subcategory=record.subcategory or '',
            description=record.description,
            data_source=record.data_source,
            is_consolidated=False,
            specialization_count=1,
            member_codes=[record.code],
            primary_code=record.code,
            display_strategy='career-only',
            grouping_strategy='singleton',
            wages=record.wages,
            pay_range=pay_range([record]),
            education=record.education,
            training_time=training_category,
            training_years=training_years if had_training else None,
            ai_resilience=tier.label if tier else None,
            ai_resilience_tier=tier,
            tasks=union_field([record], 'tasks', self.config.max_tasks),
            technology_skills=union_field([record], 'technology_skills', self.config.max_technology_skills),
            abilities=union_field([record], 'abilities', self.config.max_abilities),
            alternate_titles=union_field([record], 'alternate_titles', self.config.max_alternate_titles),
            outlook=record.outlook,
            video=record.video,
            inside_look=record.inside_look,
            ai_assessment=record.ai_assessment,
            ai_risk=record.ai_risk,
            national_importance=record.national_importance,
            career_progression=record.career_progression,
            last_updated=as_of,
            data_completeness=DataCompleteness(
                has_wages=bool(record.median_wage),
                has_education=record.education is not None,
                has_outlook=bool(record.outlook),
                has_tasks=bool(record.tasks),
            ),
        )

    @staticmethod
    def _tally(stats: AggregationStats, median: int, had_training: bool, members: List[RawOccupationRecord]):
        if median == 0:
            stats.no_wage_data += 1
        if not had_training:
            stats.no_training_data += 1
        if not any(m.ai_resilience_tier for m in members):
            stats.no_risk_data += 1
