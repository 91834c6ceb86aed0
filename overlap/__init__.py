"""
Overlap: redundancy detection between emotion/behavior prototypes.

Four-stage pipeline:
    A. CandidatePairFilter         - weight-vector geometry shortlist
    B. BehavioralOverlapEvaluator  - Monte Carlo / shared-pool comparison
    C. OverlapClassifier           - fixed-priority classification
    -  PrototypeOverlapAnalyzer    - orchestration and ranked output

Gate tooling (parse / normalize / implication) lives in ``overlap.gates``.
"""

__version__ = "0.3.0"

from overlap.config import OVERLAP_CONFIG, build_config, load_config, validate_config
from overlap.models import (
    Prototype,
    CandidateMetrics,
    CandidatePair,
    BehaviorMetrics,
    Classification,
    AnalysisResult,
)
from overlap.gates import (
    GateASTNormalizer,
    GateConstraintExtractor,
    GateImplicationEvaluator,
    Interval,
)
from overlap.filtering import CandidatePairFilter, GateSimilarityFilter, BehavioralPrescanFilter
from overlap.behavior import BehavioralOverlapEvaluator
from overlap.classify import OverlapClassifier, OverlapType
from overlap.services import PrototypeOverlapAnalyzer

__all__ = [
    "OVERLAP_CONFIG",
    "build_config",
    "load_config",
    "validate_config",
    "Prototype",
    "CandidateMetrics",
    "CandidatePair",
    "BehaviorMetrics",
    "Classification",
    "AnalysisResult",
    "GateASTNormalizer",
    "GateConstraintExtractor",
    "GateImplicationEvaluator",
    "Interval",
    "CandidatePairFilter",
    "GateSimilarityFilter",
    "BehavioralPrescanFilter",
    "BehavioralOverlapEvaluator",
    "OverlapClassifier",
    "OverlapType",
    "PrototypeOverlapAnalyzer",
]
