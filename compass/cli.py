import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .cache.query_cache import QueryCache
from .cache.store import InMemoryCacheStore, SupabaseCacheStore
from .config import AppConfig, get_config
from .consolidation.aggregator import CareerAggregator
from .consolidation.loader import (
    load_career_activities,
    load_career_content,
    load_definitions,
    load_manual_careers,
    load_raw_records,
    read_json,
)
from .consolidation.writer import write_outputs
from .exceptions import CompassError
from .matching.embedder import FacetEmbedder
from .matching.embedding_processor import BatchEmbeddingProcessor
from .matching.index import (
    InMemoryActivityIndex,
    InMemoryEmbeddingIndex,
    SupabaseActivityIndex,
    SupabaseEmbeddingIndex,
    build_embedding_entries,
)
from .matching.ranker import SimilarityRanker
from .resources import ResourceManager, create_supabase_client
from .schemas import (
    AggregationResult,
    AggregationStats,
    ConsolidatedCareer,
    FacetWeights,
    QueryProfile,
    Specialization,
)
from .service import CompassService

logger = logging.getLogger(__name__)


def _require_supabase(config: AppConfig):
    supabase = create_supabase_client(config)
    if supabase is None:
        logger.error("SUPABASE_URL or SUPABASE_KEY not set in environment.")
        sys.exit(1)
    return supabase


def run_consolidate(args, config: AppConfig):
    agg = config.aggregation
    raw_path = args.raw or agg.raw_records_path
    definitions_path = args.definitions or agg.definitions_path
    output_dir = args.out or agg.output_dir

    logger.info("🚀 Starting career consolidation...")
    load_stats = AggregationStats()
    raw_records = load_raw_records(raw_path, load_stats)
    raw_records += load_manual_careers(args.manual_dir or agg.manual_careers_dir, load_stats)
    definitions = load_definitions(definitions_path)
    content = load_career_content(args.content or agg.career_content_path)

    result = CareerAggregator(agg).aggregate(raw_records, definitions, content, load_stats)
    paths = write_outputs(result, output_dir)

    stats = result.stats
    logger.info(
        f"✅ {len(result.consolidated)} careers written to {paths['careers']} "
        f"({stats.consolidated} consolidated, {stats.pass_through} pass-through, "
        f"{stats.invalid_records} invalid records dropped)"
    )


def _load_aggregation_result(output_dir) -> AggregationResult:
    output_dir = Path(output_dir)
    return AggregationResult(
        consolidated=[ConsolidatedCareer.model_validate(c) for c in read_json(output_dir / 'careers.json')],
        specializations=[Specialization.model_validate(s) for s in read_json(output_dir / 'specializations.json')],
    )


def run_embed(args, config: AppConfig):
    result = _load_aggregation_result(args.careers_dir or config.aggregation.output_dir)
    supabase = _require_supabase(config) if args.supabase else None
    activities = None
    if args.career_dwas or args.dwa_list:
        if not (args.career_dwas and args.dwa_list):
            logger.error("--career-dwas and --dwa-list must be given together.")
            sys.exit(1)
        activities = load_career_activities(args.career_dwas, args.dwa_list)

    with ResourceManager(config, supabase) as resources:
        processor = BatchEmbeddingProcessor(
            resources['embedding_model'],
            batch_size=config.pipeline.batch_size,
            cache_size=config.cache.cache_size,
        )
        embedder = FacetEmbedder(processor)
        career_vectors, specialization_vectors = embedder.embed_aggregation_result(result, activities)

    entries = build_embedding_entries(result, career_vectors, specialization_vectors)
    if supabase is not None:
        index = SupabaseEmbeddingIndex(supabase, config.ranking.embedding_dimension, config.ranking.upsert_batch_size)
        written = index.upsert(entries)
        logger.info(f"✅ Upserted {written} embedding rows")
    else:
        index = InMemoryEmbeddingIndex(entries)
        weights = FacetWeights(
            task=config.ranking.task_weight,
            narrative=config.ranking.narrative_weight,
            skills=config.ranking.skills_weight,
        )
        index.save_file(args.out, config.model_name, weights)


def _build_service(args, config: AppConfig, embedder: FacetEmbedder, load_careers: bool = True) -> CompassService:
    """Careers are only loaded from the embeddings file when `load_careers` is set."""
    if args.supabase:
        supabase = _require_supabase(config)
        index = SupabaseEmbeddingIndex(supabase, config.ranking.embedding_dimension, config.ranking.upsert_batch_size)
        activity_index = SupabaseActivityIndex(supabase, config.ranking.upsert_batch_size)
        store = SupabaseCacheStore(supabase)
    else:
        index = InMemoryEmbeddingIndex.load_file(args.embeddings) if load_careers else InMemoryEmbeddingIndex()
        activity_index = InMemoryActivityIndex.load_file(args.dwa_embeddings) if args.dwa_embeddings else None
        store = InMemoryCacheStore(config.cache.max_entries)

    ranker = SimilarityRanker(index, config.ranking, activity_index)
    return CompassService(embedder, ranker, QueryCache(store, config.cache))


def _print_json(items):
    print(json.dumps([i.model_dump(mode='json') for i in items], indent=2, ensure_ascii=False))


def run_recommend(args, config: AppConfig):
    profile = QueryProfile.model_validate(read_json(args.profile))
    weights = None
    if any(w is not None for w in (args.task_weight, args.narrative_weight, args.skills_weight)):
        weights = FacetWeights(
            task=config.ranking.task_weight if args.task_weight is None else args.task_weight,
            narrative=config.ranking.narrative_weight if args.narrative_weight is None else args.narrative_weight,
            skills=config.ranking.skills_weight if args.skills_weight is None else args.skills_weight,
        )

    with ResourceManager(config) as resources:
        processor = BatchEmbeddingProcessor(
            resources['embedding_model'], config.pipeline.batch_size, config.cache.cache_size
        )
        service = _build_service(args, config, FacetEmbedder(processor))
        results = service.recommend(
            profile,
            weights=weights,
            limit=args.limit,
            prefer_consolidated=not args.include_specializations,
        )
    _print_json(results)


def run_activities(args, config: AppConfig):
    if not args.supabase and not args.dwa_embeddings:
        logger.error("Provide --dwa-embeddings or --supabase to match work activities.")
        sys.exit(1)
    with ResourceManager(config) as resources:
        processor = BatchEmbeddingProcessor(
            resources['embedding_model'], config.pipeline.batch_size, config.cache.cache_size
        )
        service = _build_service(args, config, FacetEmbedder(processor), load_careers=False)
        matches = service.match_activities(args.text, args.limit)
    _print_json(matches)


def run_sweep_cache(args, config: AppConfig):
    supabase = _require_supabase(config)
    deleted = QueryCache(SupabaseCacheStore(supabase), config.cache).sweep()
    logger.info(f"✅ Removed {deleted} expired cache rows")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Career consolidation and compass matching")
    parser.add_argument('--config', type=str, help='Path to a YAML file overriding default settings.')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('consolidate', help='Merge raw occupations into consolidated careers.')
    p.add_argument('--raw', type=str, help='Generated occupation records (JSON array).')
    p.add_argument('--definitions', type=str, help='career-definitions.json')
    p.add_argument('--manual-dir', type=str, help='Directory of hand-written career YAML files.')
    p.add_argument('--content', type=str, help='Generated career content JSON (optional).')
    p.add_argument('--out', type=str, help='Output directory.')
    p.set_defaults(func=run_consolidate)

    p = sub.add_parser('embed', help='Embed consolidated careers and specializations.')
    p.add_argument('--careers-dir', type=str, help='Directory holding careers.json and specializations.json.')
    p.add_argument('--out', type=str, default='data/compass/career-embeddings.json',
                   help='Embeddings file to write when not using --supabase.')
    p.add_argument('--supabase', action='store_true', help='Upsert into the career_embeddings table.')
    p.add_argument('--career-dwas', type=str, help='career-dwas.json mapping occupation codes to activity ids.')
    p.add_argument('--dwa-list', type=str, help='dwa-list.json with activity titles.')
    p.set_defaults(func=run_embed)

    p = sub.add_parser('recommend', help='Rank careers for a profile JSON file.')
    p.add_argument('--profile', type=str, required=True, help='Profile JSON file.')
    p.add_argument('--embeddings', type=str, default='data/compass/career-embeddings.json')
    p.add_argument('--dwa-embeddings', type=str, help='Activity embeddings JSON file.')
    p.add_argument('--supabase', action='store_true', help='Rank and cache through Supabase.')
    p.add_argument('--limit', type=int, help='Maximum number of results.')
    p.add_argument('--include-specializations', action='store_true',
                   help='Also rank specializations alongside their parent careers.')
    p.add_argument('--task-weight', type=float)
    p.add_argument('--narrative-weight', type=float)
    p.add_argument('--skills-weight', type=float)
    p.set_defaults(func=run_recommend)

    p = sub.add_parser('activities', help='Rank work activities for a piece of text.')
    p.add_argument('--text', type=str, required=True)
    p.add_argument('--dwa-embeddings', type=str, help='Activity embeddings JSON file.')
    p.add_argument('--supabase', action='store_true')
    p.add_argument('--limit', type=int)
    p.set_defaults(func=run_activities)

    p = sub.add_parser('sweep-cache', help='Delete expired rows from the recommendation cache.')
    p.set_defaults(func=run_sweep_cache)

    return parser


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = get_config(args.config)
        args.func(args, config)
    except (CompassError, ValidationError) as e:
        logger.error(f"❌ {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
