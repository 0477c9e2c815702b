from typing import Sequence

import torch
from sentence_transformers import util

from ..schemas import FacetWeights, QueryEmbeddings


def to_matrix(vectors: Sequence[Sequence[float]]) -> torch.Tensor:
    """Stacks equal-length vectors into a (N, D) float64 tensor."""
    if not vectors:
        return torch.empty((0, 0), dtype=torch.float64)
    return torch.tensor([list(v) for v in vectors], dtype=torch.float64)


def cosine_similarities(query: Sequence[float], matrix: torch.Tensor) -> torch.Tensor:
    """
    Cosine similarity (1 - cosine distance) between one query vector and every
    row of `matrix`. A zero vector on either side scores 0.
    """
    if matrix.numel() == 0:
        return torch.empty(0, dtype=torch.float64)
    query_tensor = torch.tensor(list(query), dtype=torch.float64).unsqueeze(0)
    return util.cos_sim(query_tensor, matrix)[0]


def weighted_similarities(query: QueryEmbeddings,
                          task_matrix: torch.Tensor,
                          narrative_matrix: torch.Tensor,
                          skills_matrix: torch.Tensor,
                          weights: FacetWeights) -> torch.Tensor:
    """Sum over facets of weight * cosine similarity, one score per candidate row."""
    return (
        weights.task * cosine_similarities(query.task, task_matrix)
        + weights.narrative * cosine_similarities(query.narrative, narrative_matrix)
        + weights.skills * cosine_similarities(query.skills, skills_matrix)
    )
