"""
Behavioral Overlap Evaluator (Stage B)
======================================

Compares two prototypes by how they actually behave over many contexts.

Two input modes:
    sampling     - an int sample count; contexts are drawn one at a time from
                   the injected random-state generator and context builder
    precomputed  - {'vector_a': ..., 'vector_b': ..., 'contexts': [...]?}
                   evaluated once over a shared pool (see behavior.vectors)

Per-sample gate results feed the four co-activation rates. Intensity
agreement (correlation, mean abs diff, dominance) is measured only where
both gates pass, since an intensity is meaningless behind a closed gate.

The evaluator has no randomness of its own: given deterministic
collaborators its output is deterministic.
"""

import heapq
import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np

from overlap.behavior.context import referenced_axes, summarize_context
from overlap.behavior.stats import pearson, rate, wilson_lower_bound
from overlap.behavior.vectors import PrototypeVector, build_sample_context
from overlap.config import require_config_keys
from overlap.gates.implication import GateImplicationEvaluator
from overlap.gates.intervals import GateConstraintExtractor
from overlap.gates.normalizer import GateASTNormalizer
from overlap.interfaces import (
    ContextBuilder,
    GateChecker,
    IntensityCalculator,
    RandomStateGenerator,
    require_capabilities,
)
from overlap.models import (
    BehaviorMetrics,
    DivergenceExample,
    GateOverlap,
    GlobalMetrics,
    IntensityMetrics,
    PassRates,
    Prototype,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500

REQUIRED_KEYS = [
    'sample_count_per_pair',
    'divergence_examples_k',
    'dominance_delta',
]


class BehavioralOverlapEvaluator:
    """Stage B: Monte Carlo (or shared-pool) behavioral comparison."""

    def __init__(
        self,
        intensity_calculator,
        random_state_generator,
        context_builder,
        gate_checker,
        config: Dict[str, Any],
        normalizer: Optional[GateASTNormalizer] = None,
        constraint_extractor: Optional[GateConstraintExtractor] = None,
        implication_evaluator: Optional[GateImplicationEvaluator] = None,
    ):
        require_capabilities(intensity_calculator, IntensityCalculator, 'intensity_calculator')
        require_capabilities(random_state_generator, RandomStateGenerator, 'random_state_generator')
        require_capabilities(context_builder, ContextBuilder, 'context_builder')
        require_capabilities(gate_checker, GateChecker, 'gate_checker')
        require_config_keys(config, REQUIRED_KEYS, 'BehavioralOverlapEvaluator')

        self.intensity_calculator = intensity_calculator
        self.random_state_generator = random_state_generator
        self.context_builder = context_builder
        self.gate_checker = gate_checker
        self.config = config

        self.normalizer = normalizer or GateASTNormalizer()
        self.constraint_extractor = constraint_extractor or GateConstraintExtractor(self.normalizer)
        self.implication_evaluator = implication_evaluator or GateImplicationEvaluator(self.normalizer)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def evaluate(
        self,
        proto_a: Any,
        proto_b: Any,
        sample_count_or_vectors: Any = None,
        on_sample_progress: Optional[Callable[[int, int], None]] = None,
    ) -> BehaviorMetrics:
        proto_a = Prototype.coerce(proto_a)
        proto_b = Prototype.coerce(proto_b)
        if proto_a is None or proto_b is None:
            raise ValueError("BehavioralOverlapEvaluator.evaluate requires two prototypes")

        summary_axes = self._summary_axes(proto_a) | self._summary_axes(proto_b)

        if isinstance(sample_count_or_vectors, Mapping):
            gate_a, int_a, gate_b, int_b, heap = self._from_vectors(
                proto_a, proto_b, sample_count_or_vectors,
            )
            if on_sample_progress is not None:
                on_sample_progress(len(gate_a), len(gate_a))
        else:
            n = self.resolve_sample_count(sample_count_or_vectors)
            gate_a, int_a, gate_b, int_b, heap = self._sample(
                proto_a, proto_b, n, on_sample_progress,
            )

        metrics = self.compute_metrics(gate_a, int_a, gate_b, int_b)
        metrics.divergence_examples = self._finalize_examples(heap, summary_axes)
        metrics.gate_implication, metrics.gate_parse_info = self._gate_implication(proto_a, proto_b)

        logger.debug(
            f"Stage B {proto_a.id} vs {proto_b.id}: n={metrics.sample_count}, "
            f"on_both={metrics.gate_overlap.on_both_rate:.3f}, "
            f"on_either={metrics.gate_overlap.on_either_rate:.3f}, "
            f"corr={metrics.intensity.pearson_correlation:.3f}"
        )
        return metrics

    def resolve_sample_count(self, sample_count: Any) -> int:
        """Fall back to config for non-numeric or < 1 counts; floor the rest."""
        if (
            isinstance(sample_count, bool)
            or not isinstance(sample_count, (int, float))
            or not math.isfinite(sample_count)
            or sample_count < 1
        ):
            return int(self.config['sample_count_per_pair'])
        return int(math.floor(sample_count))

    # ------------------------------------------------------------------
    # Sample sources
    # ------------------------------------------------------------------

    def _sample(self, proto_a: Prototype, proto_b: Prototype, n: int, on_progress):
        weights_a = proto_a.numeric_weights()
        weights_b = proto_b.numeric_weights()

        gate_a = np.zeros(n, dtype=bool)
        gate_b = np.zeros(n, dtype=bool)
        int_a = np.zeros(n, dtype=float)
        int_b = np.zeros(n, dtype=float)
        heap: List[Tuple] = []
        k = int(self.config['divergence_examples_k'])

        for start in range(0, n, CHUNK_SIZE):
            end = min(start + CHUNK_SIZE, n)
            for i in range(start, end):
                context = build_sample_context(self.random_state_generator, self.context_builder)
                pass_a = bool(self.gate_checker.check_all_gates_pass(proto_a.gates, context))
                pass_b = bool(self.gate_checker.check_all_gates_pass(proto_b.gates, context))
                gate_a[i], gate_b[i] = pass_a, pass_b
                if pass_a:
                    int_a[i] = float(self.intensity_calculator.compute_intensity(weights_a, context))
                if pass_b:
                    int_b[i] = float(self.intensity_calculator.compute_intensity(weights_b, context))
                if pass_a and pass_b:
                    _push_example(heap, k, i, int_a[i], int_b[i], context)
            if on_progress is not None:
                on_progress(end, n)

        return gate_a, int_a, gate_b, int_b, heap

    def _from_vectors(self, proto_a: Prototype, proto_b: Prototype, vectors: Mapping):
        vector_a = PrototypeVector.coerce(vectors.get('vector_a'), proto_a.id)
        vector_b = PrototypeVector.coerce(vectors.get('vector_b'), proto_b.id)
        if len(vector_a) != len(vector_b):
            raise ValueError(
                f"Vector length mismatch for {proto_a.id} vs {proto_b.id}: "
                f"{len(vector_a)} != {len(vector_b)}"
            )

        gate_a, gate_b = vector_a.gate_results, vector_b.gate_results
        int_a = np.where(gate_a, vector_a.intensities, 0.0)
        int_b = np.where(gate_b, vector_b.intensities, 0.0)

        heap: List[Tuple] = []
        contexts = vectors.get('contexts')
        k = int(self.config['divergence_examples_k'])
        if contexts is not None and k > 0:
            for i in np.flatnonzero(gate_a & gate_b):
                _push_example(heap, k, int(i), int_a[i], int_b[i], contexts[i])

        return gate_a, int_a, gate_b, int_b, heap

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def compute_metrics(
        self,
        gate_a: np.ndarray,
        int_a: np.ndarray,
        gate_b: np.ndarray,
        int_b: np.ndarray,
    ) -> BehaviorMetrics:
        n = len(gate_a)
        both = gate_a & gate_b
        either = gate_a | gate_b

        gate_overlap = GateOverlap(
            on_either_rate=rate(int(either.sum()), n),
            on_both_rate=rate(int(both.sum()), n),
            p_only_rate=rate(int((gate_a & ~gate_b).sum()), n),
            q_only_rate=rate(int((gate_b & ~gate_a).sum()), n),
        )

        return BehaviorMetrics(
            gate_overlap=gate_overlap,
            intensity=self._intensity_metrics(int_a[both], int_b[both]),
            pass_rates=self._pass_rates(gate_a, gate_b),
            global_metrics=_global_metrics(gate_a, int_a, gate_b, int_b),
            high_coactivation=self._high_coactivation(gate_a, int_a, gate_b, int_b),
            sample_count=n,
        )

    def _intensity_metrics(self, joint_a: np.ndarray, joint_b: np.ndarray) -> IntensityMetrics:
        joint = len(joint_a)
        delta = self.config['dominance_delta']
        min_joint = max(1, int(self.config.get('min_co_pass_samples', 1)))
        eps = self.config.get('intensity_eps', 0.05)

        metrics = IntensityMetrics(joint_count=joint)
        if joint == 0:
            return metrics

        diff = joint_a - joint_b
        metrics.dominance_p = float(np.mean(diff > delta))
        metrics.dominance_q = float(np.mean(-diff > delta))

        if joint >= min_joint:
            abs_diff = np.abs(diff)
            metrics.pearson_correlation = pearson(joint_a, joint_b)
            metrics.mean_abs_diff = float(np.mean(abs_diff))
            metrics.rmse = float(np.sqrt(np.mean(diff ** 2)))
            metrics.pct_within_eps = float(np.mean(abs_diff <= eps))
        return metrics

    def _pass_rates(self, gate_a: np.ndarray, gate_b: np.ndarray) -> PassRates:
        n = len(gate_a)
        count_a = int(gate_a.sum())
        count_b = int(gate_b.sum())
        co_pass = int((gate_a & gate_b).sum())
        min_cond = int(self.config.get('min_pass_samples_for_conditional', 200))
        confidence = self.config.get('confidence_level', 0.95)

        rates = PassRates(
            pass_a_rate=rate(count_a, n),
            pass_b_rate=rate(count_b, n),
            co_pass_count=co_pass,
            pass_a_count=count_a,
            pass_b_count=count_b,
        )
        if count_b >= min_cond and count_b > 0:
            rates.p_a_given_b = co_pass / count_b
            rates.p_a_given_b_lower = wilson_lower_bound(co_pass, count_b, confidence)
        if count_a >= min_cond and count_a > 0:
            rates.p_b_given_a = co_pass / count_a
            rates.p_b_given_a_lower = wilson_lower_bound(co_pass, count_a, confidence)
        return rates

    def _high_coactivation(self, gate_a, int_a, gate_b, int_b) -> Dict[str, Dict[str, float]]:
        n = len(gate_a)
        either_gate = gate_a | gate_b
        result = {}
        for threshold in self.config.get('high_thresholds', []):
            high_a = gate_a & (int_a >= threshold)
            high_b = gate_b & (int_b >= threshold)
            high_both = int((high_a & high_b).sum())
            high_either = int((high_a | high_b).sum())
            on_either = int(either_gate.sum())
            agree = int(((high_a == high_b) & either_gate).sum())
            result[str(threshold)] = {
                'p_high_a': rate(int(high_a.sum()), n),
                'p_high_b': rate(int(high_b.sum()), n),
                'p_high_both': rate(high_both, n),
                'high_jaccard': high_both / high_either if high_either else float('nan'),
                'high_agreement': agree / on_either if on_either else float('nan'),
            }
        return result

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def _summary_axes(self, proto: Prototype) -> set:
        parsed = self.normalizer.parse(proto.gates)
        return referenced_axes(proto.numeric_weights(), parsed.ast.axes())

    def _gate_implication(self, proto_a: Prototype, proto_b: Prototype):
        extraction_a = self.constraint_extractor.extract(proto_a.gates)
        extraction_b = self.constraint_extractor.extract(proto_b.gates)
        parse_info = {'a': extraction_a.parse_info, 'b': extraction_b.parse_info}

        if extraction_a.parse_status != 'complete' or extraction_b.parse_status != 'complete':
            logger.debug(
                f"Skipping gate implication for {proto_a.id} vs {proto_b.id}: "
                f"parse status {extraction_a.parse_status}/{extraction_b.parse_status}"
            )
            return None, parse_info

        result = self.implication_evaluator.evaluate(extraction_a.intervals, extraction_b.intervals)
        return result.to_dict(), parse_info

    def _finalize_examples(self, heap: List[Tuple], axes: set) -> List[DivergenceExample]:
        limit = int(self.config.get('context_summary_axes', 3))
        ordered = sorted(heap, key=lambda item: (-item[0], -item[1]))
        return [
            DivergenceExample(
                context=context,
                intensity_a=ia,
                intensity_b=ib,
                abs_diff=abs_diff,
                context_summary=summarize_context(context, axes, limit),
            )
            for abs_diff, _, ia, ib, context in ordered
        ]


def _push_example(heap: List[Tuple], k: int, index: int, ia: float, ib: float, context: Any) -> None:
    """Keep the top-k by abs diff; ties keep the earliest sample."""
    if k <= 0:
        return
    ia, ib = float(ia), float(ib)
    entry = (abs(ia - ib), -index, ia, ib, context)
    if len(heap) < k:
        heapq.heappush(heap, entry)
    elif entry[:2] > heap[0][:2]:
        heapq.heapreplace(heap, entry)


def _global_metrics(gate_a, int_a, gate_b, int_b) -> GlobalMetrics:
    if len(gate_a) == 0:
        return GlobalMetrics()
    out_a = np.where(gate_a, int_a, 0.0)
    out_b = np.where(gate_b, int_b, 0.0)
    diff = out_a - out_b
    return GlobalMetrics(
        global_mean_abs_diff=float(np.mean(np.abs(diff))),
        global_l2_distance=float(np.sqrt(np.mean(diff ** 2))),
        global_output_correlation=pearson(out_a, out_b),
    )
