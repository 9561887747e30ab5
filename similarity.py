"""
Similarity — soulsmith
Pure vector helpers shared by the principle store and the embedding gateway.
Nothing here holds state.
"""

import numpy as np
from scipy.spatial.distance import cdist


def cosine_similarity(vec1, vec2) -> float:
    """
    Cosine similarity clamped to [0, 1]. Anti-correlated vectors count as
    completely dissimilar rather than "negatively similar".
    """
    a = np.asarray(vec1, dtype=np.float64)
    b = np.asarray(vec2, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vector dimension mismatch: {a.shape[0]} vs {b.shape[0]}")
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / denom, 0.0, 1.0))


def similarities_to(vec, matrix: np.ndarray) -> np.ndarray:
    """
    Similarity of one vector against every row of `matrix` in a single
    cdist call. Returns an empty array for an empty matrix.
    """
    if len(matrix) == 0:
        return np.array([])
    query = np.asarray(vec, dtype=np.float64).reshape(1, -1)
    if query.shape[1] != matrix.shape[1]:
        raise ValueError(
            f"Vector dimension mismatch: {query.shape[1]} vs {matrix.shape[1]}"
        )
    sims = 1.0 - cdist(query, matrix, metric="cosine")[0]
    # zero-norm rows come back as nan from cdist
    return np.clip(np.nan_to_num(sims, nan=0.0), 0.0, 1.0)


def mean_vector(vectors) -> list[float]:
    """Equal-weight mean of a non-empty sequence of vectors."""
    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()
