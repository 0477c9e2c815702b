import json
import logging
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd

from ..schemas import AggregationResult, ConsolidatedCareer

logger = logging.getLogger(__name__)

DEFAULT_AI_RISK = 50
DEFAULT_AI_RISK_LABEL = 'medium'

INDEX_COLUMNS = [
    'title', 'slug', 'category', 'subcategory', 'median_pay', 'training_time', 'training_years',
    'typical_education', 'ai_risk', 'ai_risk_label', 'ai_resilience', 'ai_resilience_tier', 'data_source',
    'description', 'is_consolidated', 'specialization_count',
]


def _sort_key(item) -> tuple:
    return (item.title or '', item.slug)


def _ai_risk(career: ConsolidatedCareer) -> Tuple[int, str]:
    """AI risk score and label for the index; the assessment may be an object or a bare score."""
    risk = career.ai_risk
    if isinstance(risk, dict):
        score, label = risk.get('score'), risk.get('label')
    else:
        score, label = risk, None
    return round(score or DEFAULT_AI_RISK), label or DEFAULT_AI_RISK_LABEL


def build_careers_index(careers: List[ConsolidatedCareer]) -> pd.DataFrame:
    """Flat listing used by the category and search pages."""
    rows = []
    for career in sorted(careers, key=_sort_key):
        ai_risk, ai_risk_label = _ai_risk(career)
        rows.append({
            'title': career.title,
            'slug': career.slug,
            'category': career.category,
            'subcategory': career.subcategory or None,
            'median_pay': career.median_pay,
            'training_time': career.training_time,
            'training_years': career.training_years.model_dump() if career.training_years else None,
            'typical_education': career.education.typical_entry_education if career.education else None,
            'ai_risk': ai_risk,
            'ai_risk_label': ai_risk_label,
            'ai_resilience': career.ai_resilience,
            'ai_resilience_tier': int(career.ai_resilience_tier) if career.ai_resilience_tier else None,
            'data_source': career.data_source,
            'description': career.description,
            'is_consolidated': career.is_consolidated,
            'specialization_count': career.specialization_count,
        })
    df = pd.DataFrame(rows, columns=INDEX_COLUMNS)
    return df.astype({
        'median_pay': 'int64', 'ai_risk': 'int64', 'ai_resilience_tier': 'Int64', 'specialization_count': 'int64',
    })


def _write_json(path: Path, payload) -> None:
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write('\n')


def write_outputs(result: AggregationResult, output_dir) -> Dict[str, Path]:
    """
    Writes careers.json, specializations.json, career-to-spec-map.json and
    careers-index.json. Lists are sorted by title then slug so two runs over the
    same inputs produce identical files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        'careers': output_dir / 'careers.json',
        'specializations': output_dir / 'specializations.json',
        'career_to_spec_map': output_dir / 'career-to-spec-map.json',
        'careers_index': output_dir / 'careers-index.json',
    }

    careers = sorted(result.consolidated, key=_sort_key)
    _write_json(paths['careers'], [c.model_dump(mode='json', by_alias=True) for c in careers])
    logger.info(f"Saved {len(careers)} careers to {paths['careers']}")

    specializations = sorted(result.specializations, key=_sort_key)
    _write_json(paths['specializations'], [s.model_dump(mode='json', by_alias=True) for s in specializations])
    logger.info(f"Saved {len(specializations)} specializations to {paths['specializations']}")

    _write_json(paths['career_to_spec_map'], dict(sorted(result.career_to_spec_map.items())))
    logger.info(f"Saved career-to-spec mapping to {paths['career_to_spec_map']}")

    index_df = build_careers_index(result.consolidated)
    index_df.to_json(paths['careers_index'], orient='records', indent=2, force_ascii=False)
    logger.info(f"Saved careers index ({len(index_df)} rows) to {paths['careers_index']}")

    return paths
