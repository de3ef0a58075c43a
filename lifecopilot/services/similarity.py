"""
Cosine similarity between embeddings and top-K ranking.
"""

from typing import Iterable, List, Sequence, Tuple

import numpy as np

from ..models.core import SimilarityScore
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class DimensionMismatchError(ValueError):
    """Raised when two vectors that must share a dimension do not."""
    pass


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    Returns 0.0 when either vector has zero norm, so an all-zero vector is
    treated as unrelated to everything rather than raising.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(f'Cannot compare vectors of length {va.size} and {vb.size}')

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push |a.a| / |a|^2 slightly past 1
    return max(-1.0, min(1.0, score))


def rank_by_similarity(query: Sequence[float],
                       candidates: Iterable[Tuple[str, Sequence[float]]],
                       top_k: int) -> List[SimilarityScore]:
    """Score candidates against a query embedding and keep the best.

    Args:
        query: Query embedding
        candidates: (id, embedding) pairs
        top_k: Number of scores to keep

    Returns:
        Scores sorted descending, at most ``top_k`` long. Candidates with a
        mismatched dimension are skipped.
    """
    scores = []
    for candidate_id, embedding in candidates:
        try:
            scores.append(SimilarityScore(id=candidate_id, score=cosine_similarity(query, embedding)))
        except DimensionMismatchError as e:
            logger.warning(f'Skipping similarity for {candidate_id}: {e}')

    scores.sort(key=lambda s: s.score, reverse=True)
    return scores[:top_k]
