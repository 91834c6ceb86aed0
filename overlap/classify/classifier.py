"""
Overlap Classifier (Stage C)
============================

Maps (geometric metrics, behavioral metrics) to exactly one classification
type via the fixed priority list in ``overlap.classify.rules``.

Total and pure: never raises on bad evidence, never omits a type. Missing,
None or non-numeric inputs become NaN, which fails every threshold, so
garbage evidence resolves to ``keep_distinct``.

Usage:
    classifier = OverlapClassifier(config['classification'])
    result = classifier.classify(pair.candidate_metrics, behavior)
    print(result.type, result.subsumed_prototype)
"""

import logging
from typing import Any, Dict, Optional

from overlap.classify.rules import (
    CLASSIFICATION_PRIORITY,
    OverlapType,
    RuleInput,
)
from overlap.config import require_config_keys
from overlap.models import Classification

logger = logging.getLogger(__name__)

REQUIRED_KEYS = [
    'min_on_either_rate_for_merge',
    'min_gate_overlap_ratio',
    'min_correlation_for_merge',
    'max_mean_abs_diff_for_merge',
    'max_exclusive_rate_for_subsumption',
    'min_correlation_for_subsumption',
    'min_dominance_for_subsumption',
]


class OverlapClassifier:
    """Stage C: first-match-wins classification over six fixed slots."""

    def __init__(self, config: Dict[str, Any]):
        require_config_keys(config, REQUIRED_KEYS, 'OverlapClassifier')
        self.config = config

    def thresholds(self) -> Dict[str, Any]:
        return {key: self.config[key] for key in REQUIRED_KEYS}

    def classify(self, candidate_metrics: Any, behavior_metrics: Any) -> Classification:
        x = RuleInput.from_metrics(candidate_metrics, behavior_metrics)

        matches = []
        for rule in CLASSIFICATION_PRIORITY:
            match = rule.predicate(x, self.config)
            if match is not None:
                matches.append(match)

        # keep_distinct always matches, so there is always a winner
        winner = matches[0]
        return Classification(
            type=winner.type.value,
            thresholds=self.thresholds(),
            metrics=x.to_dict(),
            subsumed_prototype=winner.subsumed_prototype,
            all_matching_classifications=[m.to_dict() for m in matches],
        )

    def check_near_miss(self, candidate_metrics: Any, behavior_metrics: Any) -> Optional[Dict[str, Any]]:
        """
        Flag pairs that fell just short of merge on correlation or gate overlap.

        Returns None when the pair is not a near miss (including when it
        actually qualifies for merge).
        """
        x = RuleInput.from_metrics(candidate_metrics, behavior_metrics)
        corr, ratio = x.pearson_correlation, x.gate_overlap_ratio

        merge_corr = self.config['min_correlation_for_merge']
        merge_ratio = self.config['min_gate_overlap_ratio']
        near_corr = self.config.get('near_miss_correlation_threshold', 0.9)
        near_ratio = self.config.get('near_miss_gate_overlap_ratio', 0.75)

        corr_near = near_corr <= corr < merge_corr
        corr_ok = corr >= merge_corr
        ratio_near = near_ratio <= ratio < merge_ratio
        ratio_ok = ratio >= merge_ratio

        if corr_near and ratio_near:
            kind = 'correlation_and_gate_overlap'
            reason = (
                f"correlation {corr:.3f} and gate overlap {ratio:.3f} both just below "
                f"merge thresholds ({merge_corr}, {merge_ratio})"
            )
        elif corr_near and ratio_ok:
            kind = 'correlation'
            reason = f"correlation {corr:.3f} just below merge threshold {merge_corr}"
        elif ratio_near and corr_ok:
            kind = 'gate_overlap'
            reason = f"gate overlap {ratio:.3f} just below merge threshold {merge_ratio}"
        else:
            return None

        return {
            'type': kind,
            'reason': reason,
            'metrics': {
                'pearson_correlation': corr,
                'gate_overlap_ratio': ratio,
                'mean_abs_diff': x.mean_abs_diff,
            },
            'gaps': {
                'correlation': max(0.0, merge_corr - corr) if corr == corr else float('nan'),
                'gate_overlap': max(0.0, merge_ratio - ratio) if ratio == ratio else float('nan'),
            },
        }


CLASSIFICATION_TYPES = [t.value for t in OverlapType]
