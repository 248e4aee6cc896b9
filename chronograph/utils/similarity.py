"""Vector similarity helpers backed by numpy."""

import numpy as np


def cosine_similarity_matrix(query: list[float], candidates: list[list[float]]) -> np.ndarray:
    """
    Cosine similarity of one query vector against many candidates.

    Candidates with a mismatched dimension or zero norm score 0.0.
    """
    if not candidates:
        return np.zeros(0)

    q = np.asarray(query, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    scores = np.zeros(len(candidates))
    if q_norm == 0:
        return scores

    for i, candidate in enumerate(candidates):
        if len(candidate) != len(q):
            continue
        c = np.asarray(candidate, dtype=np.float64)
        c_norm = np.linalg.norm(c)
        if c_norm == 0:
            continue
        scores[i] = float(np.dot(q, c) / (q_norm * c_norm))

    return scores
