"""
Cosine distance and result ordering shared by all backends.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

_EPSILON = 1e-8


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """L2-normalize each row; zero rows stay zero."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    return vectors / np.maximum(norms, _EPSILON)


def cosine_distances(query_vector: np.ndarray, vectors: np.ndarray) -> np.ndarray:
    """
    Compute cosine distances between a query vector and stored vectors.

    Args:
        query_vector: Query vector of shape (dimension,)
        vectors: Stored vectors of shape (n, dimension)

    Returns:
        Array of n distances in [0, 2]; a zero vector has distance 1 to everything
    """
    if vectors.shape[0] == 0:
        return np.empty(0, dtype=np.float64)

    query_norm = max(np.linalg.norm(query_vector), _EPSILON)
    vectors_norm = np.maximum(np.linalg.norm(vectors, axis=1), _EPSILON)

    similarities = np.dot(vectors, query_vector) / (vectors_norm * query_norm)
    similarities = np.clip(similarities, -1.0, 1.0)
    return 1.0 - similarities


def rank_by_distance(
    ids: Sequence[str],
    distances: np.ndarray,
    limit: int,
    threshold: Optional[float] = None,
) -> List[Tuple[str, float]]:
    """
    Order candidates nearest first and cut the list down.

    Ties in distance are broken by ascending id. The threshold, if any, removes
    candidates whose distance exceeds it; it is applied after ordering and before
    truncation to limit.

    Returns:
        List of (id, distance) pairs
    """
    if len(ids) == 0:
        return []

    order = sorted(range(len(ids)), key=lambda i: (distances[i], ids[i]))

    ranked = []
    for idx in order:
        distance = float(distances[idx])
        if threshold is not None and distance > threshold:
            # Sorted ascending, nothing after this passes either
            break
        ranked.append((ids[idx], distance))
        if len(ranked) >= limit:
            break
    return ranked
