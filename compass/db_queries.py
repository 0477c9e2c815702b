import logging
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client

from .exceptions import IndexQueryError

logger = logging.getLogger(__name__)

CAREER_EMBEDDINGS_TABLE = "career_embeddings"
DWA_EMBEDDINGS_TABLE = "dwa_embeddings"
RECOMMENDATION_CACHE_TABLE = "recommendation_cache"


def find_similar_careers(supabase: Client, query_task: List[float], query_narrative: List[float],
                         query_skills: List[float], task_weight: float, narrative_weight: float,
                         skills_weight: float, result_limit: int, prefer_consolidated: bool) -> List[Dict[str, Any]]:
    """
    Calls the `find_similar_careers` database function, which scores every
    fully embedded career with the weighted cosine similarity server-side.

    Raises:
        IndexQueryError: if the RPC call fails. An empty list means no candidates.
    """
    try:
        response = supabase.rpc("find_similar_careers", {
            "query_task": query_task,
            "query_narrative": query_narrative,
            "query_skills": query_skills,
            "task_weight": task_weight,
            "narrative_weight": narrative_weight,
            "skills_weight": skills_weight,
            "result_limit": result_limit,
            "prefer_consolidated": prefer_consolidated,
        }).execute()
    except Exception as e:
        logger.error(f"Error calling find_similar_careers: {e}", exc_info=True)
        raise IndexQueryError(f"find_similar_careers failed: {e}") from e

    rows = response.data or []
    logger.info(f"find_similar_careers returned {len(rows)} careers.")
    return rows


def find_careers_by_dwa_similarity(supabase: Client, query_embedding: List[float],
                                   result_limit: int) -> List[Dict[str, Any]]:
    try:
        response = supabase.rpc("find_careers_by_dwa_similarity", {
            "query_embedding": query_embedding,
            "result_limit": result_limit,
        }).execute()
    except Exception as e:
        logger.error(f"Error calling find_careers_by_dwa_similarity: {e}", exc_info=True)
        raise IndexQueryError(f"find_careers_by_dwa_similarity failed: {e}") from e
    return response.data or []


def upsert_rows(supabase: Client, table: str, rows: Sequence[Dict[str, Any]],
                on_conflict: str, batch_size: int = 100) -> int:
    """
    Upserts rows in batches. The first failed batch aborts the run.
    """
    written = 0
    for start in range(0, len(rows), batch_size):
        batch = list(rows[start:start + batch_size])
        try:
            supabase.table(table).upsert(batch, on_conflict=on_conflict).execute()
        except Exception as e:
            logger.error(f"Error upserting batch {start // batch_size + 1} into '{table}': {e}", exc_info=True)
            raise IndexQueryError(f"Upsert into {table} failed after {written} rows: {e}") from e
        written += len(batch)
        logger.info(f"Upserted {written}/{len(rows)} rows into '{table}'")
    return written


def fetch_cached_recommendations(supabase: Client, profile_hash: str, now_iso: str) -> Optional[Dict[str, Any]]:
    """
    Fetches the newest unexpired cache row for a profile hash, or None.
    """
    try:
        response = (
            supabase.table(RECOMMENDATION_CACHE_TABLE)
            .select("*")
            .eq("profile_hash", profile_hash)
            .gt("expires_at", now_iso)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if response.data:
            return response.data[0]
        return None
    except Exception as e:
        logger.error(f"Error fetching cached recommendations for {profile_hash[:12]}: {e}", exc_info=True)
        return None


def insert_cached_recommendations(supabase: Client, payload: Dict[str, Any]) -> None:
    supabase.table(RECOMMENDATION_CACHE_TABLE).insert(payload).execute()


def delete_expired_recommendations(supabase: Client, now_iso: str) -> int:
    """Deletes cache rows whose expiry has passed and returns how many went."""
    response = (
        supabase.table(RECOMMENDATION_CACHE_TABLE)
        .delete()
        .lt("expires_at", now_iso)
        .execute()
    )
    return len(response.data or [])
