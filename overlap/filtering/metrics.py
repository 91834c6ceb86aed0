"""
Geometric similarity between prototype weight vectors.

Feature-space metrics over ``axis -> weight`` maps. Axes missing from one
map are treated as zero weight for vector metrics.
"""

import numpy as np
from typing import Dict, List, Set, Tuple


def active_axes(weights: Dict[str, float], epsilon: float) -> Set[str]:
    """Axes whose weight magnitude meets ``epsilon``."""
    return {axis for axis, w in weights.items() if abs(w) >= epsilon}


def jaccard(a: Set[str], b: Set[str], empty_value: float = 1.0) -> float:
    """Jaccard index; ``empty_value`` when both sets are empty."""
    union = a | b
    if not union:
        return float(empty_value)
    return len(a & b) / len(union)


def sign_agreement(
    weights_a: Dict[str, float],
    weights_b: Dict[str, float],
    active: Set[str],
    soft_threshold: float,
) -> float:
    """
    Fraction of considered axes whose signs agree.

    Considered = active in either prototype AND present in both maps.
    A weight with ``|w| <= soft_threshold`` is neutral and agrees with any sign.
    Returns 0.0 when nothing is considered.
    """
    considered = [axis for axis in active if axis in weights_a and axis in weights_b]
    if not considered:
        return 0.0

    matching = 0
    for axis in considered:
        wa, wb = weights_a[axis], weights_b[axis]
        if abs(wa) <= soft_threshold or abs(wb) <= soft_threshold:
            matching += 1
        elif np.sign(wa) == np.sign(wb):
            matching += 1
    return matching / len(considered)


def weight_vectors(weights_a: Dict[str, float], weights_b: Dict[str, float]) -> Tuple[np.ndarray, np.ndarray, List[str]]:
    """Align two weight maps on the union of their axes (sorted)."""
    axes = sorted(set(weights_a) | set(weights_b))
    x = np.array([weights_a.get(axis, 0.0) for axis in axes], dtype=float)
    y = np.array([weights_b.get(axis, 0.0) for axis in axes], dtype=float)
    return x, y, axes


def cosine_similarity(x: np.ndarray, y: np.ndarray) -> float:
    """Cosine similarity, clipped to [-1, 1]; 0.0 for zero vectors."""
    nx = np.linalg.norm(x)
    ny = np.linalg.norm(y)
    if nx < 1e-15 or ny < 1e-15:
        return 0.0
    return float(np.clip(np.dot(x, y) / (nx * ny), -1.0, 1.0))


def weight_cosine_similarity(weights_a: Dict[str, float], weights_b: Dict[str, float]) -> float:
    x, y, _ = weight_vectors(weights_a, weights_b)
    return cosine_similarity(x, y)
