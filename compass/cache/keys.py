import hashlib
import json
from typing import Any, Dict, Iterable, List, Union

from ..schemas import QueryProfile


def _normalize_text(value: Any) -> str:
    return ' '.join(str(value).split()).casefold()


def _normalize_list(values: Iterable[Any]) -> List[str]:
    normalized = {_normalize_text(v) for v in values}
    normalized.discard('')
    return sorted(normalized)


def normalize_profile(profile: QueryProfile) -> Dict[str, Any]:
    """
    Canonical form of a profile for hashing: list order, letter case and
    whitespace runs do not matter.
    """
    normalized = {}
    for name, value in profile.model_dump().items():
        if isinstance(value, list):
            normalized[name] = _normalize_list(value)
        elif isinstance(value, str):
            normalized[name] = _normalize_text(value)
        else:
            normalized[name] = value
    return normalized


def profile_hash(profile: Union[QueryProfile, Dict[str, Any]], **context: Any) -> str:
    """
    SHA-256 over the normalized profile plus any ranking context (weights,
    limit, filters) that changes the result for the same profile.
    """
    if not isinstance(profile, QueryProfile):
        profile = QueryProfile.model_validate(profile)
    payload = {'profile': normalize_profile(profile), 'context': context}
    data_str = json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(data_str.encode('utf-8')).hexdigest()
