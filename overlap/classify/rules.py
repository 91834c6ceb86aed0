"""
Overlap Classification Rules
============================

Fixed-priority rule list for Stage C. Each slot is a named rule; the first
matching slot wins, but every slot is evaluated so the full match set can be
reported.

Order matters:
    1. merge_recommended      - same gates, same intensities, nobody dominates
    2. subsumed_recommended   - one side is a dominated special case
    3. convert_to_expression  - nested gate bounded on a threat-like axis
    4. nested_siblings        - one gate implies the other
    5. needs_separation       - co-fire and correlate, but disagree in level
    6. keep_distinct          - fallback

Slots 3-5 are extension points: disabled (never match) until their
``enable_*`` flag is set, so adding a calibrated rule never renumbers the
slots around it.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from overlap.models import lookup


class OverlapType(str, Enum):
    MERGE_RECOMMENDED = 'merge_recommended'
    SUBSUMED_RECOMMENDED = 'subsumed_recommended'
    CONVERT_TO_EXPRESSION = 'convert_to_expression'
    NESTED_SIBLINGS = 'nested_siblings'
    NEEDS_SEPARATION = 'needs_separation'
    KEEP_DISTINCT = 'keep_distinct'

    def __str__(self) -> str:
        return self.value


def _num(value: Any) -> float:
    """Finite float or NaN. NaN fails every threshold comparison."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return float('nan')
    value = float(value)
    return value if math.isfinite(value) else float('nan')


@dataclass(frozen=True)
class RuleInput:
    """Flat, NaN-normalized view of the Stage A + Stage B evidence."""
    on_either_rate: float = float('nan')
    on_both_rate: float = float('nan')
    p_only_rate: float = float('nan')
    q_only_rate: float = float('nan')
    pearson_correlation: float = float('nan')
    mean_abs_diff: float = float('nan')
    dominance_p: float = float('nan')
    dominance_q: float = float('nan')
    p_a_given_b: float = float('nan')
    p_b_given_a: float = float('nan')
    gate_implication: Optional[Mapping[str, Any]] = field(default=None, compare=False)

    @classmethod
    def from_metrics(cls, candidate_metrics: Any, behavior_metrics: Any) -> 'RuleInput':
        implication = lookup(behavior_metrics, 'gate_implication')
        return cls(
            on_either_rate=_num(lookup(behavior_metrics, 'gate_overlap.on_either_rate')),
            on_both_rate=_num(lookup(behavior_metrics, 'gate_overlap.on_both_rate')),
            p_only_rate=_num(lookup(behavior_metrics, 'gate_overlap.p_only_rate')),
            q_only_rate=_num(lookup(behavior_metrics, 'gate_overlap.q_only_rate')),
            pearson_correlation=_num(lookup(behavior_metrics, 'intensity.pearson_correlation')),
            mean_abs_diff=_num(lookup(behavior_metrics, 'intensity.mean_abs_diff')),
            dominance_p=_num(lookup(behavior_metrics, 'intensity.dominance_p')),
            dominance_q=_num(lookup(behavior_metrics, 'intensity.dominance_q')),
            p_a_given_b=_num(lookup(behavior_metrics, 'pass_rates.p_a_given_b')),
            p_b_given_a=_num(lookup(behavior_metrics, 'pass_rates.p_b_given_a')),
            gate_implication=implication if isinstance(implication, Mapping) else None,
        )

    @property
    def gate_overlap_ratio(self) -> float:
        if not self.on_either_rate > 0:
            return float('nan')
        return self.on_both_rate / self.on_either_rate

    def to_dict(self) -> Dict[str, float]:
        return {
            'on_either_rate': self.on_either_rate,
            'on_both_rate': self.on_both_rate,
            'p_only_rate': self.p_only_rate,
            'q_only_rate': self.q_only_rate,
            'gate_overlap_ratio': self.gate_overlap_ratio,
            'pearson_correlation': self.pearson_correlation,
            'mean_abs_diff': self.mean_abs_diff,
            'dominance_p': self.dominance_p,
            'dominance_q': self.dominance_q,
        }


@dataclass
class RuleMatch:
    type: OverlapType
    confidence: float = float('nan')
    subsumed_prototype: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {'type': self.type.value, 'confidence': self.confidence}
        if self.subsumed_prototype is not None:
            d['subsumed_prototype'] = self.subsumed_prototype
        return d


# =============================================================================
# Rule predicates
# =============================================================================

def merge_rule(x: RuleInput, cfg: Dict[str, Any]) -> Optional[RuleMatch]:
    dominance = cfg['min_dominance_for_subsumption']
    if (
        x.on_either_rate >= cfg['min_on_either_rate_for_merge']
        and x.gate_overlap_ratio >= cfg['min_gate_overlap_ratio']
        and x.pearson_correlation >= cfg['min_correlation_for_merge']
        and x.mean_abs_diff <= cfg['max_mean_abs_diff_for_merge']
        and x.dominance_p < dominance
        and x.dominance_q < dominance
    ):
        return RuleMatch(OverlapType.MERGE_RECOMMENDED, confidence=x.pearson_correlation)
    return None


def subsumed_rule(x: RuleInput, cfg: Dict[str, Any]) -> Optional[RuleMatch]:
    if not x.pearson_correlation >= cfg['min_correlation_for_subsumption']:
        return None
    max_exclusive = cfg['max_exclusive_rate_for_subsumption']
    min_dominance = cfg['min_dominance_for_subsumption']

    # A rarely fires without B and B's intensity dominates: A is the special case
    if x.p_only_rate <= max_exclusive and x.dominance_q >= min_dominance:
        return RuleMatch(OverlapType.SUBSUMED_RECOMMENDED, x.dominance_q, subsumed_prototype='a')
    if x.q_only_rate <= max_exclusive and x.dominance_p >= min_dominance:
        return RuleMatch(OverlapType.SUBSUMED_RECOMMENDED, x.dominance_p, subsumed_prototype='b')
    return None


def _narrower_side(x: RuleInput, cfg: Dict[str, Any]) -> Optional[str]:
    """'a' or 'b' if one gate is nested inside the other, else None."""
    implication = x.gate_implication
    if implication is not None:
        a_in_b = bool(implication.get('a_implies_b'))
        b_in_a = bool(implication.get('b_implies_a'))
        if a_in_b and not b_in_a:
            return 'a'
        if b_in_a and not a_in_b:
            return 'b'

    threshold = cfg.get('nested_conditional_threshold', 0.97)
    b_given_a_high = x.p_b_given_a >= threshold
    a_given_b_high = x.p_a_given_b >= threshold
    if b_given_a_high and not a_given_b_high:
        return 'a'
    if a_given_b_high and not b_given_a_high:
        return 'b'
    return None


def convert_to_expression_rule(x: RuleInput, cfg: Dict[str, Any]) -> Optional[RuleMatch]:
    if not cfg.get('enable_convert_to_expression', False):
        return None
    narrower = _narrower_side(x, cfg)
    if narrower is None or x.gate_implication is None:
        return None

    bound = cfg.get('max_threat_upper_bound_for_convert', 0.20)
    axes = set(cfg.get('convert_axes', ['threat']))
    for ev in x.gate_implication.get('evidence') or []:
        if ev.get('axis') not in axes:
            continue
        upper = _num(lookup(ev, f'interval_{narrower}.upper'))
        if upper <= bound:
            return RuleMatch(OverlapType.CONVERT_TO_EXPRESSION, confidence=x.pearson_correlation)
    return None


def nested_siblings_rule(x: RuleInput, cfg: Dict[str, Any]) -> Optional[RuleMatch]:
    if not cfg.get('enable_nested_siblings', False):
        return None
    narrower = _narrower_side(x, cfg)
    if narrower is None:
        return None
    confidence = x.p_b_given_a if narrower == 'a' else x.p_a_given_b
    return RuleMatch(OverlapType.NESTED_SIBLINGS, confidence=confidence)


def needs_separation_rule(x: RuleInput, cfg: Dict[str, Any]) -> Optional[RuleMatch]:
    if not cfg.get('enable_needs_separation', False):
        return None
    if _narrower_side(x, cfg) is not None:
        return None
    if (
        x.gate_overlap_ratio >= cfg.get('separation_min_gate_overlap_ratio', 0.70)
        and x.pearson_correlation >= cfg.get('separation_min_correlation', 0.80)
        and x.mean_abs_diff > cfg['max_mean_abs_diff_for_merge']
    ):
        return RuleMatch(OverlapType.NEEDS_SEPARATION, confidence=x.gate_overlap_ratio)
    return None


def keep_distinct_rule(x: RuleInput, cfg: Dict[str, Any]) -> Optional[RuleMatch]:
    return RuleMatch(OverlapType.KEEP_DISTINCT, confidence=1.0)


@dataclass(frozen=True)
class ClassificationRule:
    type: OverlapType
    predicate: Callable[[RuleInput, Dict[str, Any]], Optional[RuleMatch]]


CLASSIFICATION_PRIORITY: List[ClassificationRule] = [
    ClassificationRule(OverlapType.MERGE_RECOMMENDED, merge_rule),
    ClassificationRule(OverlapType.SUBSUMED_RECOMMENDED, subsumed_rule),
    ClassificationRule(OverlapType.CONVERT_TO_EXPRESSION, convert_to_expression_rule),
    ClassificationRule(OverlapType.NESTED_SIBLINGS, nested_siblings_rule),
    ClassificationRule(OverlapType.NEEDS_SEPARATION, needs_separation_rule),
    ClassificationRule(OverlapType.KEEP_DISTINCT, keep_distinct_rule),
]
