"""Stage A: geometric candidate filtering."""

from .metrics import (
    active_axes,
    jaccard,
    sign_agreement,
    cosine_similarity,
    weight_cosine_similarity,
)
from .candidates import CandidatePairFilter, deduplicate_pairs
from .routes import GateSimilarityFilter, BehavioralPrescanFilter, mean_interval_overlap

__all__ = [
    "active_axes",
    "jaccard",
    "sign_agreement",
    "cosine_similarity",
    "weight_cosine_similarity",
    "CandidatePairFilter",
    "deduplicate_pairs",
    "GateSimilarityFilter",
    "BehavioralPrescanFilter",
    "mean_interval_overlap",
]
