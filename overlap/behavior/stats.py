"""
Sample statistics for behavioral comparison.
"""

import math

import numpy as np
from scipy.stats import norm


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation clamped to [-1, 1]; NaN for n < 2 or zero variance."""
    if len(x) < 2 or len(x) != len(y):
        return float('nan')
    xc = x - np.mean(x)
    yc = y - np.mean(y)
    denom = np.linalg.norm(xc) * np.linalg.norm(yc)
    if denom < 1e-15:
        return float('nan')
    return float(np.clip(np.dot(xc, yc) / denom, -1.0, 1.0))


def rate(count: int, total: int) -> float:
    return count / total if total > 0 else 0.0


def wilson_lower_bound(successes: int, n: int, confidence: float = 0.95) -> float:
    """Lower end of the Wilson score interval for a binomial proportion."""
    if n <= 0:
        return float('nan')
    z = float(norm.ppf(1.0 - (1.0 - confidence) / 2.0))
    p = successes / n
    denom = 1.0 + z * z / n
    center = p + z * z / (2.0 * n)
    margin = z * math.sqrt(p * (1.0 - p) / n + z * z / (4.0 * n * n))
    return max(0.0, (center - margin) / denom)
