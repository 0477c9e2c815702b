"""
Builds the three facet texts that get embedded for a career or a query profile.

task      - what the job does (tasks and work activities)
narrative - what the job is like (inside look, or the description)
skills    - what the job needs (technology skills and abilities)
"""
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from ..schemas import ConsolidatedCareer, QueryProfile, RawOccupationRecord

# Character caps keep each text within the model's useful context
MAX_TASK_TEXT = 8000
MAX_NARRATIVE_TEXT = 8000
MAX_INSIDE_LOOK = 4000
MAX_SKILLS_TEXT = 4000

CareerLike = Union[ConsolidatedCareer, RawOccupationRecord]


def career_activities(career: CareerLike, activities_by_code: Mapping[str, Sequence[str]]) -> List[str]:
    """Work activity titles of every occupation behind a career, first occurrence wins."""
    if isinstance(career, RawOccupationRecord):
        codes = [career.code]
    else:
        codes = career.member_codes or [career.primary_code]
    titles = []
    for code in codes:
        for title in activities_by_code.get(code) or []:
            if title not in titles:
                titles.append(title)
    return titles


def build_task_text(career: CareerLike, dwas: Optional[Sequence[str]] = None) -> str:
    parts = [f"Career: {career.title}", f"Description: {career.description or ''}"]
    if career.tasks:
        parts.append('Key Tasks:')
        parts.extend(f"- {task}" for task in career.tasks[:10])
    if dwas:
        parts.append('Work Activities:')
        parts.extend(f"- {dwa}" for dwa in list(dwas)[:10])
    return '\n'.join(parts)[:MAX_TASK_TEXT]


def build_narrative_text(career: CareerLike) -> str:
    parts = [f"Career: {career.title}"]
    inside_look = career.inside_look_text
    if inside_look:
        parts.append('Work Environment and Culture:')
        parts.append(inside_look[:MAX_INSIDE_LOOK])
    else:
        parts.append(f"Description: {career.description or ''}")
        if career.tasks:
            parts.append('Daily activities include:')
            parts.extend(f"- {task}" for task in career.tasks[:5])
    return '\n'.join(parts)[:MAX_NARRATIVE_TEXT]


def build_skills_text(career: CareerLike) -> str:
    parts = [f"Career: {career.title}"]
    if career.technology_skills:
        parts.append('Technology Skills:')
        parts.append(', '.join(career.technology_skills[:20]))
    if career.abilities:
        parts.append('Key Abilities:')
        parts.append(', '.join(career.abilities[:10]))
    return '\n'.join(parts)[:MAX_SKILLS_TEXT]


def build_career_texts(career: CareerLike, dwas: Optional[Sequence[str]] = None) -> Tuple[str, str, str]:
    return build_task_text(career, dwas), build_narrative_text(career), build_skills_text(career)


def _joined(items: List[str], fallback: str = '') -> str:
    return ', '.join(i for i in items if i) or fallback


def build_query_texts(profile: QueryProfile) -> Tuple[str, str, str]:
    """Returns (task, narrative, skills) texts describing what the user is looking for."""
    interests = profile.industry_interests or _joined(profile.industries)
    task_lines = [
        f"Career Goals: {profile.career_goals}",
        f"Industry Interests: {interests}",
        f"Previous Experience: {_joined(profile.job_titles, 'Entry level')}",
        f"Skills to Develop: {profile.skills_to_develop}",
    ]
    if profile.task_preferences:
        task_lines.append(f"Preferred Tasks: {_joined(profile.task_preferences)}")

    narrative_lines = [
        f"Work Environment: {profile.work_environment}",
        f"Career Goals: {profile.career_goals}",
        f"Skills to Develop: {profile.skills_to_develop}",
        f"Salary Expectations: {profile.salary_expectations}",
    ]

    if profile.skills:
        skills_text = _joined(profile.skills)
    else:
        skills_text = f"{profile.skills_to_develop}, general professional skills"

    return '\n'.join(task_lines), '\n'.join(narrative_lines), skills_text
