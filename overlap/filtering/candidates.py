"""
Candidate Pair Filter (Stage A)
===============================

Cheap geometric shortlisting of prototype pairs from O(n²) before any
sampling happens.

Route A (always on), all three must pass with ``>=``:
    - active_axis_overlap       Jaccard of |w| >= eps axis sets
    - sign_agreement            soft-sign agreement on shared active axes
    - weight_cosine_similarity  cosine over full weight vectors

Multi-route (optional): Route A rejects are offered to an injected
gate-similarity filter (Route B), and what B still rejects to an injected
behavioral pre-scan filter (Route C). The union is de-duplicated by
unordered pair, Route A > B > C.

Usage:
    f = CandidatePairFilter(config['candidate'])
    result = f.filter_candidates(prototypes)
    for pair in result['candidates']:
        print(pair.prototype_a.id, pair.prototype_b.id, pair.selected_by)
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from overlap.config import require_config_keys
from overlap.filtering.metrics import (
    active_axes,
    jaccard,
    sign_agreement,
    weight_cosine_similarity,
)
from overlap.models import ROUTE_PRIORITY, CandidateMetrics, CandidatePair, Prototype
from overlap.interfaces import RouteFilter, require_capabilities

logger = logging.getLogger(__name__)

REQUIRED_KEYS = [
    'active_axis_epsilon',
    'candidate_min_active_axis_overlap',
    'candidate_min_sign_agreement',
    'candidate_min_cosine_similarity',
    'soft_sign_threshold',
    'jaccard_empty_set_value',
]


class CandidatePairFilter:
    """Stage A: shortlist prototype pairs by weight-vector geometry."""

    def __init__(
        self,
        config: Dict[str, Any],
        gate_similarity_filter: Optional[RouteFilter] = None,
        behavioral_prescan_filter: Optional[RouteFilter] = None,
    ):
        require_config_keys(config, REQUIRED_KEYS, 'CandidatePairFilter')
        if gate_similarity_filter is not None:
            require_capabilities(gate_similarity_filter, RouteFilter, 'gate_similarity_filter')
        if behavioral_prescan_filter is not None:
            require_capabilities(behavioral_prescan_filter, RouteFilter, 'behavioral_prescan_filter')

        self.config = config
        self.gate_similarity_filter = gate_similarity_filter
        self.behavioral_prescan_filter = behavioral_prescan_filter

    @property
    def multi_route_enabled(self) -> bool:
        return bool(self.config.get('enable_multi_route_filtering', True))

    def compute_metrics(self, proto_a: Prototype, proto_b: Prototype) -> CandidateMetrics:
        weights_a = proto_a.numeric_weights()
        weights_b = proto_b.numeric_weights()
        eps = self.config['active_axis_epsilon']

        active_a = active_axes(weights_a, eps)
        active_b = active_axes(weights_b, eps)

        return CandidateMetrics(
            active_axis_overlap=jaccard(active_a, active_b, self.config['jaccard_empty_set_value']),
            sign_agreement=sign_agreement(
                weights_a, weights_b, active_a | active_b, self.config['soft_sign_threshold'],
            ),
            weight_cosine_similarity=weight_cosine_similarity(weights_a, weights_b),
        )

    def _rejection_reason(self, metrics: CandidateMetrics) -> Optional[str]:
        """First failing Route A check, or None if the pair passes."""
        if metrics.active_axis_overlap < self.config['candidate_min_active_axis_overlap']:
            return 'rejected_by_active_axis_overlap'
        if metrics.sign_agreement < self.config['candidate_min_sign_agreement']:
            return 'rejected_by_sign_agreement'
        if metrics.weight_cosine_similarity < self.config['candidate_min_cosine_similarity']:
            return 'rejected_by_cosine_similarity'
        return None

    def filter_candidates(
        self,
        prototypes: Any,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> Dict[str, Any]:
        """
        Shortlist candidate pairs.

        Returns:
            {'candidates': [CandidatePair, ...], 'stats': {...}}
        """
        stats = _empty_stats()

        if not isinstance(prototypes, (list, tuple)):
            logger.warning(f"Invalid input to filter_candidates: expected list, got {type(prototypes).__name__}")
            return {'candidates': [], 'stats': stats}

        valid = []
        for raw in prototypes:
            proto = Prototype.coerce(raw)
            if proto is None:
                continue
            if not proto.numeric_weights():
                logger.debug(f"Skipping prototype {proto.id}: no usable numeric weights")
                continue
            valid.append(proto)

        stats['prototypes_with_valid_weights'] = len(valid)
        if len(valid) < 2:
            logger.debug(f"Fewer than 2 valid prototypes ({len(valid)}), nothing to compare")
            return {'candidates': [], 'stats': stats}

        total = len(valid) * (len(valid) - 1) // 2
        stats['total_possible_pairs'] = total

        route_a: List[CandidatePair] = []
        rejected: List[CandidatePair] = []
        current = 0

        for i in range(len(valid)):
            for j in range(i + 1, len(valid)):
                proto_a, proto_b = valid[i], valid[j]
                metrics = self.compute_metrics(proto_a, proto_b)
                reason = self._rejection_reason(metrics)
                pair = CandidatePair(proto_a, proto_b, metrics, selected_by='route_a')
                if reason is None:
                    route_a.append(pair)
                else:
                    stats[reason] += 1
                    rejected.append(pair)

                current += 1
                if on_progress is not None:
                    on_progress(current, total)

        logger.debug(
            f"Route A: {len(route_a)}/{total} pairs passed "
            f"(overlap rejects={stats['rejected_by_active_axis_overlap']}, "
            f"sign rejects={stats['rejected_by_sign_agreement']}, "
            f"cosine rejects={stats['rejected_by_cosine_similarity']})"
        )

        candidates = route_a
        if self.multi_route_enabled:
            stats['route_stats'] = {'route_a': {'passed': len(route_a), 'rejected': len(rejected)}}
            candidates = self._run_extra_routes(route_a, rejected, stats)

        stats['passed_filtering'] = len(candidates)
        return {'candidates': candidates, 'stats': stats}

    def _run_extra_routes(
        self,
        route_a: List[CandidatePair],
        rejected: List[CandidatePair],
        stats: Dict[str, Any],
    ) -> List[CandidatePair]:
        found = list(route_a)
        remaining = rejected

        for route, route_filter in (
            ('route_b', self.gate_similarity_filter),
            ('route_c', self.behavioral_prescan_filter),
        ):
            if route_filter is None or not remaining:
                continue
            result = route_filter.filter_pairs(remaining) or {}
            admitted = []
            for item in result.get('candidates', []):
                pair = CandidatePair.coerce(item, default_route=route)
                if pair is not None:
                    admitted.append(pair)
            stats['route_stats'][route] = {
                'evaluated': len(remaining),
                'passed': len(admitted),
                **(result.get('stats') or {}),
            }
            logger.debug(f"{route}: re-admitted {len(admitted)}/{len(remaining)} pairs")
            found.extend(admitted)
            admitted_keys = {p.pair_key for p in admitted}
            remaining = [p for p in remaining if p.pair_key not in admitted_keys]

        return deduplicate_pairs(found)


def deduplicate_pairs(pairs: List[CandidatePair]) -> List[CandidatePair]:
    """One pair per unordered identity, best route wins, discovery order kept."""
    best: Dict[tuple, CandidatePair] = {}
    order: List[tuple] = []
    for pair in pairs:
        key = pair.pair_key
        if key not in best:
            best[key] = pair
            order.append(key)
        elif ROUTE_PRIORITY.get(pair.selected_by, 99) < ROUTE_PRIORITY.get(best[key].selected_by, 99):
            best[key] = pair
    return [best[key] for key in order]


def _empty_stats() -> Dict[str, Any]:
    return {
        'total_possible_pairs': 0,
        'passed_filtering': 0,
        'rejected_by_active_axis_overlap': 0,
        'rejected_by_sign_agreement': 0,
        'rejected_by_cosine_similarity': 0,
        'prototypes_with_valid_weights': 0,
    }
