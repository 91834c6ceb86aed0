"""
Stage A secondary routes.

Route B - gate similarity. Geometrically different prototypes can still be
redundant when their gates admit (nearly) the same contexts. A pair is
re-admitted when one gate implies the other, or when per-axis interval
overlap is high.

Route C - behavioral pre-scan. A cheap co-activation check over a small
context pool; pairs whose gates fire together most of the time are sent on
to full Stage B sampling.

Both expose ``filter_pairs(pairs) -> {'candidates': [...], 'stats': {...}}``.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from overlap.config import require_config_keys
from overlap.gates.implication import GateImplicationEvaluator
from overlap.gates.intervals import GateConstraintExtractor, Interval
from overlap.gates.normalizer import GateASTNormalizer
from overlap.interfaces import ContextPoolGenerator, GateChecker, require_capabilities
from overlap.models import CandidatePair

logger = logging.getLogger(__name__)


class GateSimilarityFilter:
    """Route B: re-admit pairs whose gates imply or closely overlap each other."""

    def __init__(
        self,
        config: Dict[str, Any],
        extractor: Optional[GateConstraintExtractor] = None,
        implication_evaluator: Optional[GateImplicationEvaluator] = None,
    ):
        require_config_keys(config, ['min_interval_overlap'], 'GateSimilarityFilter')
        normalizer = GateASTNormalizer()
        self.config = config
        self.extractor = extractor or GateConstraintExtractor(normalizer)
        self.implication_evaluator = implication_evaluator or GateImplicationEvaluator(normalizer)

    def filter_pairs(self, pairs: Sequence[CandidatePair]) -> Dict[str, Any]:
        admitted: List[CandidatePair] = []
        stats = {'parse_incomplete': 0, 'unconstrained': 0, 'by_implication': 0, 'by_interval_overlap': 0}
        admit_on_implication = self.config.get('admit_on_implication', True)

        for pair in pairs:
            ext_a = self.extractor.extract(pair.prototype_a.gates)
            ext_b = self.extractor.extract(pair.prototype_b.gates)
            if ext_a.parse_status != 'complete' or ext_b.parse_status != 'complete':
                stats['parse_incomplete'] += 1
                continue
            # Ungated pairs trivially "imply" each other; nothing to learn here
            if not ext_a.intervals or not ext_b.intervals:
                stats['unconstrained'] += 1
                continue

            result = self.implication_evaluator.evaluate(ext_a.intervals, ext_b.intervals)
            overlap = mean_interval_overlap(ext_a.intervals, ext_b.intervals)
            route_metrics = {
                'relation': result.relation,
                'a_implies_b': result.a_implies_b,
                'b_implies_a': result.b_implies_a,
                'interval_overlap': overlap,
            }

            if admit_on_implication and (result.a_implies_b or result.b_implies_a):
                stats['by_implication'] += 1
            elif overlap >= self.config['min_interval_overlap']:
                stats['by_interval_overlap'] += 1
            else:
                continue

            admitted.append(CandidatePair(
                pair.prototype_a,
                pair.prototype_b,
                pair.candidate_metrics,
                selected_by='route_b',
                route_metrics=route_metrics,
            ))

        return {'candidates': admitted, 'stats': stats}


def mean_interval_overlap(intervals_a: Dict[str, Interval], intervals_b: Dict[str, Interval]) -> float:
    """Mean per-axis IoU over the union of constrained axes."""
    axes = sorted(set(intervals_a) | set(intervals_b))
    if not axes:
        return 1.0
    unconstrained = Interval.unconstrained()
    ratios = [
        intervals_a.get(axis, unconstrained).overlap_ratio(intervals_b.get(axis, unconstrained))
        for axis in axes
    ]
    return float(np.mean(ratios))


class BehavioralPrescanFilter:
    """
    Route C: cheap gate co-activation over a small context pool.

    The pool is either passed in directly or drawn once from
    ``pool_generator`` on first use and reused across calls.
    """

    def __init__(
        self,
        gate_checker,
        config: Dict[str, Any],
        contexts: Optional[Sequence[Any]] = None,
        pool_generator=None,
    ):
        require_capabilities(gate_checker, GateChecker, 'gate_checker')
        require_config_keys(
            config, ['sample_count', 'min_gate_overlap_ratio', 'min_on_either_rate'],
            'BehavioralPrescanFilter',
        )
        if contexts is None:
            require_capabilities(pool_generator, ContextPoolGenerator, 'pool_generator')
        self.gate_checker = gate_checker
        self.config = config
        self.pool_generator = pool_generator
        self._contexts = list(contexts) if contexts is not None else None

    def _pool(self) -> List[Any]:
        if self._contexts is None:
            self._contexts = list(self.pool_generator.generate())
        return self._contexts[:int(self.config['sample_count'])]

    def filter_pairs(self, pairs: Sequence[CandidatePair]) -> Dict[str, Any]:
        pool = self._pool()
        cache: Dict[str, np.ndarray] = {}

        def gate_results(proto) -> np.ndarray:
            if proto.id not in cache:
                cache[proto.id] = np.array(
                    [bool(self.gate_checker.check_all_gates_pass(proto.gates, ctx)) for ctx in pool],
                    dtype=bool,
                )
            return cache[proto.id]

        admitted: List[CandidatePair] = []
        for pair in pairs:
            ga = gate_results(pair.prototype_a)
            gb = gate_results(pair.prototype_b)
            n = len(pool)
            either = int((ga | gb).sum())
            both = int((ga & gb).sum())
            on_either_rate = either / n if n else 0.0
            ratio = both / either if either else 0.0

            if on_either_rate < self.config['min_on_either_rate']:
                continue
            if ratio < self.config['min_gate_overlap_ratio']:
                continue

            admitted.append(CandidatePair(
                pair.prototype_a,
                pair.prototype_b,
                pair.candidate_metrics,
                selected_by='route_c',
                route_metrics={
                    'gate_overlap_ratio': ratio,
                    'on_either_rate': on_either_rate,
                    'sample_count': n,
                },
            ))

        logger.debug(f"Route C prescan: {len(admitted)}/{len(pairs)} pairs over {len(pool)} contexts")
        return {'candidates': admitted, 'stats': {'pool_size': len(pool)}}
