"""
Cosine similarity over the shared prefix of two vectors.
"""

from typing import Sequence

import numpy as np

NO_SIMILARITY = -1.0


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Normalized dot product; -1 when either vector is empty or has zero norm."""
    if len(left) == 0 or len(right) == 0:
        return NO_SIMILARITY

    size = min(len(left), len(right))
    left_vector = np.asarray(left[:size], dtype=np.float64)
    right_vector = np.asarray(right[:size], dtype=np.float64)

    left_norm = float(np.linalg.norm(left_vector))
    right_norm = float(np.linalg.norm(right_vector))
    if left_norm == 0 or right_norm == 0:
        return NO_SIMILARITY

    return float(np.dot(left_vector, right_vector)) / (left_norm * right_norm)
