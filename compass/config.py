import os
import logging
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class AggregationConfig:
    raw_records_path: str = 'data/careers.generated.json'
    definitions_path: str = 'data/consolidation/career-definitions.json'
    manual_careers_dir: str = 'data/manual/careers'
    career_content_path: str = 'data/consolidation/career-content.json'
    output_dir: str = 'data/output'

    # Caps for the unioned content lists of a consolidated career
    max_tasks: int = 15
    max_technology_skills: int = 20
    max_abilities: int = 10
    max_alternate_titles: int = 30

    # Used when no member has a training-years figure
    default_training_time: str = '2-4yr'


@dataclass
class RankingConfig:
    task_weight: float = 0.5
    narrative_weight: float = 0.3
    skills_weight: float = 0.2
    result_limit: int = 50
    activity_result_limit: int = 20
    prefer_consolidated: bool = True
    embedding_dimension: int = 384
    upsert_batch_size: int = 100


@dataclass
class CacheConfig:
    ttl_hours: float = 24.0
    max_entries: int = 10000
    cache_size: int = 1000  # LRU size for encoded texts


@dataclass
class PipelineConfig:
    batch_size: int = 32


@dataclass
class AppConfig:
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    model_name: str = 'all-MiniLM-L6-v2'
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None


def _apply_overrides(section, overrides: Dict[str, Any], path: str):
    known = {f.name for f in fields(section)}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigurationError(f"Unknown configuration key '{path}{key}'")
        current = getattr(section, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ConfigurationError(f"Configuration section '{path}{key}' must be a mapping")
            _apply_overrides(current, value, f"{path}{key}.")
        else:
            setattr(section, key, value)


def get_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Builds the application configuration.

    Defaults come from the dataclasses above, then an optional YAML file is
    applied section by section, then environment variables (read through
    python-dotenv) fill in credentials and a few operational knobs.
    """
    load_dotenv()
    config = AppConfig()

    if config_path:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Config file not found: {config_path}")
        with open(config_path, 'r', encoding='utf-8') as f:
            overrides = yaml.safe_load(f) or {}
        if not isinstance(overrides, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        _apply_overrides(config, overrides, '')
        logger.info(f"Loaded configuration overrides from {config_path}")

    config.supabase_url = config.supabase_url or os.getenv("SUPABASE_URL")
    config.supabase_key = (
        config.supabase_key
        or os.getenv("SUPABASE_KEY")
        or os.getenv("SUPABASE_SERVICE_KEY")
    )

    model_name = os.getenv("COMPASS_MODEL_NAME")
    if model_name:
        config.model_name = model_name

    ttl_hours = os.getenv("COMPASS_CACHE_TTL_HOURS")
    if ttl_hours:
        try:
            config.cache.ttl_hours = float(ttl_hours)
        except ValueError as e:
            raise ConfigurationError(f"COMPASS_CACHE_TTL_HOURS must be a number, got '{ttl_hours}'") from e

    if config.cache.ttl_hours <= 0:
        raise ConfigurationError("Cache TTL must be positive")

    weight_sum = config.ranking.task_weight + config.ranking.narrative_weight + config.ranking.skills_weight
    if abs(weight_sum - 1.0) > 1e-6:
        logger.warning(f"Default facet weights sum to {weight_sum:.3f}, not 1.0; absolute scores will be skewed")

    return config
