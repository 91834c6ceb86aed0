# Prototype Overlap Analysis Configuration
# ========================================
# All thresholds and settings for the redundancy-detection pipeline.
# Tune these values per prototype family and authoring conventions.
#
# Usage:
#   from overlap.config import OVERLAP_CONFIG
#   threshold = OVERLAP_CONFIG['classification']['min_correlation_for_merge']
#
# Sections map one-to-one onto pipeline stages:
#   candidate       -> Stage A (CandidatePairFilter)
#   routes          -> Stage A multi-route (Route B / Route C)
#   behavior        -> Stage B (BehavioralOverlapEvaluator)
#   classification  -> Stage C (OverlapClassifier)
#   analysis        -> orchestration (PrototypeOverlapAnalyzer)
#   pool            -> shared context pool

import copy
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

import yaml

logger = logging.getLogger(__name__)


OVERLAP_CONFIG = {

    # =========================================================
    # Stage A: Geometric Candidate Filtering
    # =========================================================
    'candidate': {
        'active_axis_epsilon': 0.08,              # |w| >= eps counts as active
        'candidate_min_active_axis_overlap': 0.6, # Jaccard of active axes
        'candidate_min_sign_agreement': 0.8,
        'candidate_min_cosine_similarity': 0.85,
        'soft_sign_threshold': 0.15,              # |w| <= this is neutral
        'jaccard_empty_set_value': 1.0,           # Both inactive = full overlap
        'enable_multi_route_filtering': True,
    },

    # =========================================================
    # Stage A Routes B/C (re-admission of Route A rejects)
    # =========================================================
    'routes': {
        'gate_similarity': {
            # Route B: implication or tight interval overlap
            'min_interval_overlap': 0.6,           # Mean per-axis IoU
            'admit_on_implication': True,
        },
        'prescan': {
            # Route C: cheap co-activation heuristic on a small pool
            'sample_count': 500,
            'min_gate_overlap_ratio': 0.6,         # on_both / on_either
            'min_on_either_rate': 0.02,
        },
    },

    # =========================================================
    # Stage B: Behavioral Sampling
    # =========================================================
    'behavior': {
        'sample_count_per_pair': 8000,
        'divergence_examples_k': 5,
        'dominance_delta': 0.05,                  # A > B + delta counts for A
        'min_co_pass_samples': 1,                 # Below this, intensity stats are NaN
        'intensity_eps': 0.05,                    # |A - B| <= eps counts as agreement
        'min_pass_samples_for_conditional': 200,  # Below this, P(A|B) is NaN
        'confidence_level': 0.95,                 # Wilson lower bounds
        'high_thresholds': [0.4, 0.6, 0.75],
        'context_summary_axes': 3,
    },

    # =========================================================
    # Stage C: Classification Thresholds
    # =========================================================
    'classification': {
        # merge_recommended
        'min_on_either_rate_for_merge': 0.05,     # Both must fire materially
        'min_gate_overlap_ratio': 0.90,           # on_both / on_either
        'min_correlation_for_merge': 0.98,
        'max_mean_abs_diff_for_merge': 0.03,

        # subsumed_recommended
        'max_exclusive_rate_for_subsumption': 0.01,
        'min_correlation_for_subsumption': 0.95,
        'min_dominance_for_subsumption': 0.95,

        # Extension slots (disabled until calibrated)
        'enable_convert_to_expression': False,
        'enable_nested_siblings': False,
        'enable_needs_separation': False,
        'nested_conditional_threshold': 0.97,
        'max_threat_upper_bound_for_convert': 0.20,
        'convert_axes': ['threat'],
        'separation_min_gate_overlap_ratio': 0.70,
        'separation_min_correlation': 0.80,

        # Near misses (just below merge)
        'near_miss_correlation_threshold': 0.90,
        'near_miss_gate_overlap_ratio': 0.75,
    },

    # =========================================================
    # Orchestration
    # =========================================================
    'analysis': {
        'max_candidate_pairs': 5000,              # Safety limit on Stage B work
        'enable_axis_gap_detection': True,
        'max_near_miss_pairs_to_report': 10,
        'recommendation_types': [
            'merge_recommended',
            'subsumed_recommended',
            'convert_to_expression',
            'nested_siblings',
            'needs_separation',
        ],
        'banding_classification_types': ['nested_siblings', 'needs_separation'],
        'composite_weights': {
            'gate_overlap': 0.3,
            'correlation': 0.2,
            'global_output': 0.5,
        },
    },

    # =========================================================
    # Shared Context Pool
    # =========================================================
    'pool': {
        'shared_pool_size': 50000,
        'random_seed': None,
        'chunk_size': 1000,
    },
}


# Keys that must be in [0, 1]
PROBABILITY_KEYS = [
    'candidate.active_axis_epsilon',
    'candidate.candidate_min_active_axis_overlap',
    'candidate.candidate_min_sign_agreement',
    'candidate.soft_sign_threshold',
    'candidate.jaccard_empty_set_value',
    'behavior.dominance_delta',
    'behavior.intensity_eps',
    'behavior.confidence_level',
    'classification.min_on_either_rate_for_merge',
    'classification.min_gate_overlap_ratio',
    'classification.max_mean_abs_diff_for_merge',
    'classification.max_exclusive_rate_for_subsumption',
    'classification.min_dominance_for_subsumption',
    'classification.nested_conditional_threshold',
    'classification.separation_min_gate_overlap_ratio',
    'classification.near_miss_gate_overlap_ratio',
]

# Keys that must be in [-1, 1]
CORRELATION_KEYS = [
    'candidate.candidate_min_cosine_similarity',
    'classification.min_correlation_for_merge',
    'classification.min_correlation_for_subsumption',
    'classification.separation_min_correlation',
    'classification.near_miss_correlation_threshold',
]

# Keys that must be positive integers
POSITIVE_INT_KEYS = [
    'behavior.sample_count_per_pair',
    'behavior.divergence_examples_k',
    'behavior.min_co_pass_samples',
    'analysis.max_candidate_pairs',
    'analysis.max_near_miss_pairs_to_report',
    'pool.shared_pool_size',
    'pool.chunk_size',
]

# (lower, upper) pairs where lower must not exceed upper
ORDERING_CONSTRAINTS = [
    ('classification.min_correlation_for_subsumption',
     'classification.min_correlation_for_merge'),
    ('classification.near_miss_correlation_threshold',
     'classification.min_correlation_for_merge'),
    ('classification.near_miss_gate_overlap_ratio',
     'classification.min_gate_overlap_ratio'),
]


def get_threshold(path: str, default=None, config: Optional[Dict] = None):
    """
    Get a threshold value by dot-notation path.

    Example:
        get_threshold('classification.min_correlation_for_merge')  # Returns 0.98
        get_threshold('behavior.divergence_examples_k')           # Returns 5
    """
    keys = path.split('.')
    value = OVERLAP_CONFIG if config is None else config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _deep_merge(base: Dict, overrides: Dict) -> Dict:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def build_config(overrides: Optional[Dict] = None) -> Dict:
    """Copy of the defaults with ``overrides`` deep-merged on top."""
    config = copy.deepcopy(OVERLAP_CONFIG)
    if overrides:
        _deep_merge(config, copy.deepcopy(overrides))
    return config


def load_config(path: str) -> Dict:
    """
    Load a YAML override file and merge it over the defaults.

    The file mirrors OVERLAP_CONFIG's layout; any subset of keys may be given:

        classification:
          min_correlation_for_merge: 0.97
        behavior:
          sample_count_per_pair: 4000
    """
    with open(path) as f:
        overrides = yaml.safe_load(f) or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(overrides).__name__}")
    logger.debug(f"Loaded config overrides from {path}: sections={sorted(overrides)}")
    return build_config(overrides)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def validate_config(config: Optional[Dict] = None) -> List[str]:
    """Validate config values are sensible. Returns list of error strings."""
    config = OVERLAP_CONFIG if config is None else config
    errors = []

    for path in PROBABILITY_KEYS:
        value = get_threshold(path, config=config)
        if value is None:
            continue
        if not _is_number(value) or not 0 <= value <= 1:
            errors.append(f"{path} must be a probability in [0, 1], got {value!r}")

    for path in CORRELATION_KEYS:
        value = get_threshold(path, config=config)
        if value is None:
            continue
        if not _is_number(value) or not -1 <= value <= 1:
            errors.append(f"{path} must be a correlation in [-1, 1], got {value!r}")

    for path in POSITIVE_INT_KEYS:
        value = get_threshold(path, config=config)
        if value is None:
            continue
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            errors.append(f"{path} must be a positive integer, got {value!r}")

    for lower_path, upper_path in ORDERING_CONSTRAINTS:
        lower = get_threshold(lower_path, config=config)
        upper = get_threshold(upper_path, config=config)
        if _is_number(lower) and _is_number(upper) and lower > upper:
            errors.append(f"{lower_path} ({lower}) must not exceed {upper_path} ({upper})")

    weights = get_threshold('analysis.composite_weights', config=config)
    if isinstance(weights, dict) and weights:
        total = sum(v for v in weights.values() if _is_number(v))
        if abs(total - 1.0) > 1e-6:
            errors.append(f"analysis.composite_weights must sum to 1.0, got {total:.4f}")

    thresholds = get_threshold('behavior.high_thresholds', config=config)
    if thresholds is not None:
        if not isinstance(thresholds, (list, tuple)) or not all(
            _is_number(t) and 0 <= t <= 1 for t in thresholds
        ):
            errors.append(f"behavior.high_thresholds must be a list of values in [0, 1], got {thresholds!r}")

    return errors


def require_config_keys(section: Dict, keys: Iterable[str], owner: str) -> None:
    """
    Fail fast when a component's section lacks a required numeric key.

    Raises:
        ValueError: naming the first missing or non-numeric key
    """
    if not isinstance(section, dict):
        raise ValueError(f"{owner}: config must be a dict, got {type(section).__name__}")
    for key in keys:
        value = section.get(key)
        if not _is_number(value):
            logger.error(f"{owner}: config.{key} is required and must be a number, got {value!r}")
            raise ValueError(f"{owner}: config.{key} is required and must be a number")
