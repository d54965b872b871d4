"""Cosine similarity helpers shared by the memory store and the embedder."""

from typing import Optional, Sequence

import numpy as np


def _unit(vector: np.ndarray) -> Optional[np.ndarray]:
    # Scale by the largest component first so the norm cannot overflow or underflow
    peak = float(np.max(np.abs(vector))) if vector.size else 0.0
    if peak == 0.0 or not np.isfinite(peak):
        return None
    scaled = vector / peak
    return scaled / np.linalg.norm(scaled)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 for empty, mismatched or zero-norm inputs. Each vector is
    normalised on its own before the dot product, so the result stays in
    [-1, 1] for any finite magnitude.
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0

    ua = _unit(np.asarray(a, dtype=np.float64))
    ub = _unit(np.asarray(b, dtype=np.float64))
    if ua is None or ub is None:
        return 0.0

    return float(np.clip(np.dot(ua, ub), -1.0, 1.0))


def cosine_similarity_batch(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Compute cosine similarity of *query* against every row of *matrix*."""
    if matrix.size == 0:
        return np.zeros(len(matrix), dtype=np.float64)

    q = np.asarray(query, dtype=np.float64)
    if q.shape[0] != matrix.shape[1]:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    unit_query = _unit(q)
    if unit_query is None:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    rows = np.asarray(matrix, dtype=np.float64)
    peaks = np.max(np.abs(rows), axis=1, keepdims=True)
    # Zero rows have similarity 0 by definition
    valid = (peaks[:, 0] > 0.0) & np.isfinite(peaks[:, 0])
    scaled = rows / np.where(valid[:, None], peaks, 1.0)
    norms = np.linalg.norm(scaled, axis=1, keepdims=True)
    unit_rows = scaled / np.where(valid[:, None], norms, 1.0)

    sims = np.where(valid, unit_rows @ unit_query, 0.0)
    return np.clip(sims, -1.0, 1.0)
