import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from ..exceptions import DataLoadError, MalformedDefinitionError
from ..schemas import AggregationStats, CareerContent, ConsolidationDefinition, RawOccupationRecord

logger = logging.getLogger(__name__)


def read_json(path) -> object:
    path = Path(path)
    if not path.exists():
        raise DataLoadError(path, "Required input file not found")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise DataLoadError(path, f"Input file is not valid JSON ({e})") from e


def load_raw_records(path, stats: Optional[AggregationStats] = None) -> List[RawOccupationRecord]:
    """
    Loads the generated occupation records (a JSON array).

    A missing file is fatal. Individual records that fail validation are
    logged and left out; a record without a code cannot be claimed by any
    career, so it cannot take part in consolidation. Dropped records are
    counted in `stats` when one is given.
    """
    stats = stats if stats is not None else AggregationStats()
    data = read_json(path)
    if not isinstance(data, list):
        raise DataLoadError(path, "Expected a JSON array of occupation records")

    records = []
    seen_codes = set()
    for i, raw in enumerate(data):
        try:
            record = RawOccupationRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Skipping occupation record #{i} in {path}: {e.error_count()} validation error(s): {e}")
            stats.invalid_records += 1
            continue
        if record.code in seen_codes:
            logger.warning(f"Duplicate occupation code {record.code} in {path}; keeping the first record")
            stats.duplicate_records += 1
            continue
        seen_codes.add(record.code)
        records.append(record)

    logger.info(f"Loaded {len(records)} occupation records from {path}")
    return records


def parse_definitions(data: Dict) -> List[ConsolidationDefinition]:
    careers = data.get('careers') if isinstance(data, dict) else None
    if not isinstance(careers, dict):
        raise MalformedDefinitionError('<file>', "expected a 'careers' mapping of id -> definition")

    definitions = []
    for career_id, raw in careers.items():
        if not isinstance(raw, dict):
            raise MalformedDefinitionError(career_id, "definition must be a mapping")
        payload = {'id': career_id, **raw}
        try:
            definitions.append(ConsolidationDefinition.model_validate(payload))
        except ValidationError as e:
            reasons = '; '.join(err['msg'] for err in e.errors())
            raise MalformedDefinitionError(career_id, reasons) from e
    return definitions


def load_definitions(path) -> List[ConsolidationDefinition]:
    """Loads and validates career-definitions.json. Any malformed definition aborts the load."""
    data = read_json(path)
    definitions = parse_definitions(data)
    logger.info(
        f"Loaded {len(definitions)} career definitions from {path} "
        f"(version {data.get('version', 'unknown')})"
    )
    return definitions


def load_manual_careers(directory, stats: Optional[AggregationStats] = None) -> List[RawOccupationRecord]:
    """
    Loads hand-written careers from YAML files.

    Files starting with an underscore are templates and are skipped. A manual
    career may use 'name' instead of 'title' and has no occupation code, so its
    slug doubles as its code.
    """
    stats = stats if stats is not None else AggregationStats()
    directory = Path(directory)
    if not directory.exists():
        return []

    careers = []
    for file_path in sorted(directory.glob('*.yaml')):
        if file_path.name.startswith('_'):
            continue
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse manual career {file_path.name}: {e}")
            stats.invalid_records += 1
            continue

        if not isinstance(raw, dict) or not raw.get('slug'):
            logger.warning(f"Manual career {file_path.name} has no slug, skipping")
            stats.invalid_records += 1
            continue

        if not raw.get('title') and raw.get('name'):
            raw['title'] = raw['name']
        raw.setdefault('code', raw['slug'])
        raw['data_source'] = 'manual'

        try:
            careers.append(RawOccupationRecord.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Invalid manual career {file_path.name}: {e}")
            stats.invalid_records += 1

    logger.info(f"Loaded {len(careers)} manual careers from {directory}")
    return careers


def load_career_content(path) -> Optional[Dict[str, CareerContent]]:
    """Loads generated career copy. Optional: a missing file only produces a warning."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Career content file not found at {path}, using primary career content")
        return None

    data = read_json(path)
    content = {}
    for career_id, raw in (data.get('careers') or {}).items():
        try:
            content[career_id] = CareerContent.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring generated content for {career_id}: {e}")
    logger.info(f"Generated content available for {len(content)} careers")
    return content


def load_career_activities(career_dwas_path, dwa_list_path) -> Dict[str, List[str]]:
    """
    Maps occupation codes to the titles of their detailed work activities.

    `career_dwas_path` holds {"careers": {code: {"dwa_ids": [...]}}} and
    `dwa_list_path` holds {"dwas": [{"id", "title"}, ...]}. Unknown activity
    ids are dropped with a warning.
    """
    mappings = read_json(career_dwas_path)
    dwa_list = read_json(dwa_list_path)
    if not isinstance(mappings, dict) or not isinstance(dwa_list, dict):
        raise DataLoadError(career_dwas_path, "Expected career-DWA mappings and a DWA list as JSON objects")

    titles = {d['id']: d['title'] for d in dwa_list.get('dwas') or [] if d.get('id') and d.get('title')}

    activities = {}
    unknown = 0
    for code, mapping in (mappings.get('careers') or {}).items():
        known = []
        for dwa_id in mapping.get('dwa_ids') or []:
            if dwa_id in titles:
                known.append(titles[dwa_id])
            else:
                unknown += 1
        activities[code] = known

    if unknown:
        logger.warning(f"{unknown} activity ids in {career_dwas_path} are not in {dwa_list_path}")
    logger.info(f"Loaded work activities for {len(activities)} occupations")
    return activities
