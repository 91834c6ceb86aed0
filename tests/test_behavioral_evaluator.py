"""
Tests for Stage B behavioral comparison.

Validates that:
1. Co-activation rates partition the samples
2. Intensity metrics use jointly-passing samples only
3. Divergence examples are the top-K by |diff|, largest first
4. Progress is reported per chunk (sampling) or once (shared pool)
5. Reference collaborators map contexts into gate space
"""

import math

import numpy as np
import pytest

from overlap.behavior import (
    ASTGateChecker,
    BehavioralOverlapEvaluator,
    DefaultContextBuilder,
    PrototypeProfileCalculator,
    PrototypeVector,
    PrototypeVectorEvaluator,
    SharedContextPoolGenerator,
    UniformStateGenerator,
    WeightedIntensityCalculator,
    axis_value,
    summarize_context,
)
from overlap.behavior.stats import pearson, wilson_lower_bound
from overlap.models import Prototype

from conftest import (
    AlwaysPassGateChecker,
    ConstantIntensityCalculator,
    ConstantStateGenerator,
    PassThroughContextBuilder,
    SequenceStateGenerator,
    ValenceScaledIntensityCalculator,
)


def _evaluator(config, intensity=None, states=None, checker=None):
    return BehavioralOverlapEvaluator(
        intensity_calculator=intensity or ConstantIntensityCalculator(0.6),
        random_state_generator=states or ConstantStateGenerator(),
        context_builder=PassThroughContextBuilder(),
        gate_checker=checker or AlwaysPassGateChecker(),
        config=config,
    )


PROTO_A = Prototype('joy', weights={'valence': 1.0})
PROTO_B = Prototype('contentment', weights={'valence': 0.5})


# ============================================================
# Sampling Mode
# ============================================================

class TestSampling:
    """Test sampling-mode evaluation."""

    def test_identical_constant_outputs(self, behavior_config):
        """Always-open gates, equal constant intensity."""
        metrics = _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 100)
        go = metrics.gate_overlap
        assert go.on_either_rate == 1.0
        assert go.on_both_rate == 1.0
        assert go.p_only_rate == 0.0
        assert go.q_only_rate == 0.0
        assert go.gate_overlap_ratio == 1.0
        assert metrics.intensity.mean_abs_diff == 0.0
        assert metrics.intensity.dominance_p == 0.0
        assert metrics.intensity.dominance_q == 0.0
        # Zero variance: correlation undefined
        assert math.isnan(metrics.intensity.pearson_correlation)
        assert metrics.sample_count == 100

    def test_rates_partition_samples(self, behavior_config):
        """on_either = on_both + p_only + q_only, all in [0, 1]."""
        evaluator = BehavioralOverlapEvaluator(
            intensity_calculator=WeightedIntensityCalculator(),
            random_state_generator=UniformStateGenerator(seed=7),
            context_builder=DefaultContextBuilder(),
            gate_checker=ASTGateChecker(),
            config=behavior_config,
        )
        a = Prototype('a', weights={'valence': 0.8, 'arousal': 0.2}, gates=["valence >= 0.0"])
        b = Prototype('b', weights={'valence': 0.6, 'arousal': 0.4}, gates=["arousal >= -0.2"])
        metrics = evaluator.evaluate(a, b, 300)
        go = metrics.gate_overlap
        for value in (go.on_either_rate, go.on_both_rate, go.p_only_rate, go.q_only_rate):
            assert 0.0 <= value <= 1.0
        assert go.on_either_rate == pytest.approx(go.on_both_rate + go.p_only_rate + go.q_only_rate)
        assert 0.0 <= metrics.intensity.dominance_p <= 1.0
        assert 0.0 <= metrics.intensity.dominance_q <= 1.0

    def test_divergence_examples_sorted(self, behavior_config):
        """Examples are ordered by absolute difference, largest first."""
        behavior_config['divergence_examples_k'] = 3
        evaluator = _evaluator(
            behavior_config,
            intensity=ValenceScaledIntensityCalculator(),
            states=SequenceStateGenerator([10, 50, 30, 90, 70]),
        )
        metrics = evaluator.evaluate(PROTO_A, PROTO_B, 5)
        diffs = [ex.abs_diff for ex in metrics.divergence_examples]
        assert diffs == pytest.approx([0.45, 0.35, 0.25])
        top = metrics.divergence_examples[0]
        assert top.intensity_a == pytest.approx(0.9)
        assert top.intensity_b == pytest.approx(0.45)
        assert top.abs_diff == pytest.approx(abs(top.intensity_a - top.intensity_b))
        assert top.context_summary == "valence: 0.90"

    def test_divergence_limit(self, behavior_config):
        """No more than divergence_examples_k examples are kept."""
        behavior_config['divergence_examples_k'] = 2
        metrics = _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 50)
        assert len(metrics.divergence_examples) == 2

    def test_divergence_ties_keep_earliest(self, behavior_config):
        """Tied differences keep the earliest samples."""
        behavior_config['divergence_examples_k'] = 2
        evaluator = _evaluator(
            behavior_config,
            intensity=ValenceScaledIntensityCalculator(),
            states=SequenceStateGenerator([40, 41, 42, 43]),
        )
        # Identical prototypes: every |diff| ties at 0
        metrics = evaluator.evaluate(PROTO_A, PROTO_A, 4)
        assert [ex.context['mood_axes']['valence'] for ex in metrics.divergence_examples] == [40, 41]

    def test_summary_excludes_unrelated_axes(self, behavior_config):
        """Only axes a prototype weights or gates appear in summaries."""
        metrics = _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 10)
        summary = metrics.divergence_examples[0].context_summary
        assert summary == "valence: 0.50"
        assert 'threat' not in summary

    def test_no_examples_without_joint_pass(self, behavior_config):
        """No joint pass yields no examples and NaN joint metrics."""
        class OnlyA:
            def check_all_gates_pass(self, gate_spec, context):
                return gate_spec == 'a'

        a = Prototype('a', weights={'valence': 1.0}, gates='a')
        b = Prototype('b', weights={'valence': 1.0}, gates='b')
        metrics = _evaluator(behavior_config, checker=OnlyA()).evaluate(a, b, 20)
        assert metrics.divergence_examples == []
        assert metrics.gate_overlap.p_only_rate == 1.0
        assert metrics.intensity.joint_count == 0
        assert math.isnan(metrics.intensity.mean_abs_diff)

    def test_progress_single_chunk(self, behavior_config):
        """A single chunk reports once at completion."""
        calls = []
        _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 500, lambda c, t: calls.append((c, t)))
        assert calls == [(500, 500)]

    def test_progress_multiple_chunks(self, behavior_config):
        """Progress is reported at each chunk boundary."""
        calls = []
        _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 1200, lambda c, t: calls.append((c, t)))
        assert calls == [(500, 1200), (1000, 1200), (1200, 1200)]

    def test_high_coactivation(self, behavior_config):
        """High co-activation is reported per threshold."""
        metrics = _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 20)
        high = metrics.high_coactivation
        assert set(high) == {'0.4', '0.6', '0.75'}
        assert high['0.6']['p_high_both'] == 1.0
        assert high['0.75']['p_high_a'] == 0.0
        assert math.isnan(high['0.75']['high_jaccard'])

    def test_conditional_pass_rates(self, behavior_config):
        """Conditional rates carry a Wilson lower bound."""
        behavior_config['min_pass_samples_for_conditional'] = 10
        metrics = _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 100)
        rates = metrics.pass_rates
        assert rates.p_a_given_b == 1.0
        assert 0.9 < rates.p_a_given_b_lower < 1.0

    def test_conditional_needs_enough_passes(self, behavior_config):
        """Too few conditioning passes gives NaN."""
        metrics = _evaluator(behavior_config).evaluate(PROTO_A, PROTO_B, 100)
        assert math.isnan(metrics.pass_rates.p_b_given_a)

    def test_deterministic(self, behavior_config):
        """Same collaborators, same output."""
        def run():
            evaluator = BehavioralOverlapEvaluator(
                intensity_calculator=WeightedIntensityCalculator(),
                random_state_generator=UniformStateGenerator(seed=3),
                context_builder=DefaultContextBuilder(),
                gate_checker=ASTGateChecker(),
                config=behavior_config,
            )
            return evaluator.evaluate(PROTO_A, PROTO_B, 200).to_dict()

        first, second = run(), run()
        assert first['gate_overlap'] == second['gate_overlap']
        assert first['intensity']['mean_abs_diff'] == second['intensity']['mean_abs_diff']


# ============================================================
# Sample Count
# ============================================================

class TestSampleCount:
    """Test sample count resolution."""

    @pytest.mark.parametrize("value", [None, 0, -5, 'many', True, float('nan')])
    def test_fallback_to_config(self, behavior_config, value):
        """Unusable values fall back to the configured count."""
        assert _evaluator(behavior_config).resolve_sample_count(value) == 8000

    def test_floor(self, behavior_config):
        """Fractional counts are floored."""
        assert _evaluator(behavior_config).resolve_sample_count(2.7) == 2


# ============================================================
# Shared-pool Mode
# ============================================================

class TestPrecomputedVectors:
    """Test evaluation from precomputed output vectors."""

    VECTOR_A = [(True, 0.5), (True, 0.2), (False, None), (True, 0.9)]
    VECTOR_B = [(True, 0.5), (False, None), (True, 0.3), (True, 0.1)]

    def _contexts(self):
        return [{'mood_axes': {'valence': v}} for v in (10, 20, 30, 40)]

    def test_metrics(self, behavior_config):
        """Rates and joint metrics come straight from the vectors."""
        calls = []
        metrics = _evaluator(behavior_config).evaluate(
            PROTO_A, PROTO_B,
            {'vector_a': self.VECTOR_A, 'vector_b': self.VECTOR_B, 'contexts': self._contexts()},
            lambda c, t: calls.append((c, t)),
        )
        assert calls == [(4, 4)]
        go = metrics.gate_overlap
        assert go.on_either_rate == 1.0
        assert go.on_both_rate == 0.5
        assert go.p_only_rate == 0.25
        assert go.q_only_rate == 0.25
        assert metrics.intensity.joint_count == 2
        assert metrics.intensity.dominance_p == 0.5
        assert metrics.intensity.dominance_q == 0.0
        assert metrics.intensity.mean_abs_diff == pytest.approx(0.4)

    def test_global_metrics(self, behavior_config):
        """Global metrics count failed gates as zero output."""
        metrics = _evaluator(behavior_config).evaluate(
            PROTO_A, PROTO_B, {'vector_a': self.VECTOR_A, 'vector_b': self.VECTOR_B},
        )
        gm = metrics.global_metrics
        assert gm.global_mean_abs_diff == pytest.approx(0.325)
        assert gm.global_l2_distance == pytest.approx(math.sqrt(0.1925))

    def test_examples_from_joint_samples(self, behavior_config):
        """Examples are drawn from pool contexts where both pass."""
        metrics = _evaluator(behavior_config).evaluate(
            PROTO_A, PROTO_B,
            {'vector_a': self.VECTOR_A, 'vector_b': self.VECTOR_B, 'contexts': self._contexts()},
        )
        examples = metrics.divergence_examples
        assert [ex.context['mood_axes']['valence'] for ex in examples] == [40, 10]
        assert examples[0].abs_diff == pytest.approx(0.8)

    def test_no_contexts_no_examples(self, behavior_config):
        """Without contexts no examples are built."""
        metrics = _evaluator(behavior_config).evaluate(
            PROTO_A, PROTO_B, {'vector_a': self.VECTOR_A, 'vector_b': self.VECTOR_B},
        )
        assert metrics.divergence_examples == []

    def test_length_mismatch(self, behavior_config):
        """Vectors of different lengths are rejected."""
        with pytest.raises(ValueError, match='length mismatch'):
            _evaluator(behavior_config).evaluate(
                PROTO_A, PROTO_B, {'vector_a': self.VECTOR_A, 'vector_b': self.VECTOR_B[:2]},
            )

    def test_oracles_not_called(self, behavior_config):
        """Precomputed mode never draws new states."""
        states = ConstantStateGenerator()
        _evaluator(behavior_config, states=states).evaluate(
            PROTO_A, PROTO_B, {'vector_a': self.VECTOR_A, 'vector_b': self.VECTOR_B},
        )
        assert states.calls == 0


# ============================================================
# Gate Implication
# ============================================================

class TestGateImplication:
    """Test gate implication attached to behavior metrics."""

    def test_attached_when_parseable(self, behavior_config):
        """Parseable gates get an implication result."""
        a = Prototype('a', weights={'threat': 1.0}, gates=["threat <= 0.2"])
        b = Prototype('b', weights={'threat': 1.0}, gates=["threat <= 0.5"])
        metrics = _evaluator(behavior_config).evaluate(a, b, 10)
        assert metrics.gate_implication['relation'] == 'narrower'
        assert metrics.gate_parse_info['a']['parse_status'] == 'complete'

    def test_skipped_when_unparseable(self, behavior_config):
        """Unparseable gates leave implication empty."""
        a = Prototype('a', weights={'threat': 1.0}, gates=["threat <=<= 0.2"])
        b = Prototype('b', weights={'threat': 1.0}, gates=["threat <= 0.5"])
        metrics = _evaluator(behavior_config).evaluate(a, b, 10)
        assert metrics.gate_implication is None
        assert metrics.gate_parse_info['a']['parse_status'] == 'failed'


# ============================================================
# Construction
# ============================================================

class TestConstruction:
    """Test evaluator construction."""

    def test_missing_collaborator(self, behavior_config):
        """Collaborator without its method is rejected."""
        with pytest.raises(TypeError, match='compute_intensity'):
            BehavioralOverlapEvaluator(
                object(), ConstantStateGenerator(), PassThroughContextBuilder(),
                AlwaysPassGateChecker(), behavior_config,
            )

    def test_missing_config(self):
        """Missing config key is named in the error."""
        with pytest.raises(ValueError, match='sample_count_per_pair'):
            _evaluator({'divergence_examples_k': 5, 'dominance_delta': 0.05})


# ============================================================
# Statistics
# ============================================================

class TestStats:
    """Test statistical helpers."""

    def test_pearson(self):
        """Perfectly linear inputs give +/-1."""
        x = np.array([1.0, 2.0, 3.0])
        assert pearson(x, 2 * x) == pytest.approx(1.0)
        assert pearson(x, -x) == pytest.approx(-1.0)

    def test_pearson_degenerate(self):
        """Short or constant inputs give NaN."""
        assert math.isnan(pearson(np.array([1.0]), np.array([1.0])))
        assert math.isnan(pearson(np.ones(5), np.arange(5.0)))

    def test_wilson_lower_bound(self):
        """Wilson bound at 50/100 and on an empty sample."""
        assert wilson_lower_bound(50, 100) == pytest.approx(0.4038, abs=1e-3)
        assert math.isnan(wilson_lower_bound(0, 0))


# ============================================================
# Reference Collaborators
# ============================================================

class TestReferenceCollaborators:
    """Test the built-in sampling collaborators."""

    def test_axis_value_scaling(self):
        """Raw axes map into gate space."""
        context = {
            'mood_axes': {'valence': 50, 'threat': -250},
            'affect_traits': {'harm_aversion': 70},
            'sexual_axes': {'baseline_libido': 0, 'sex_excitation': 30},
            'sexual_arousal': 0.4,
        }
        assert axis_value(context, 'valence') == 0.5
        assert axis_value(context, 'threat') == -1.0
        assert axis_value(context, 'harm_aversion') == pytest.approx(0.7)
        assert axis_value(context, 'baseline_libido') == 0.5
        assert axis_value(context, 'sex_excitation') == pytest.approx(0.3)
        assert axis_value(context, 'sexual_arousal') == 0.4
        assert axis_value(context, 'arousal') is None

    def test_flat_context_passthrough(self):
        """Flat contexts are read as-is."""
        assert axis_value({'custom_axis': 0.3}, 'custom_axis') == 0.3

    def test_summarize_context(self):
        """Summary keeps the largest-magnitude axes."""
        context = {'mood_axes': {'valence': -40, 'threat': 82, 'arousal': 5}}
        assert summarize_context(context, ['valence', 'threat', 'arousal'], limit=2) == "threat: 0.82, valence: -0.40"

    def test_gate_checker(self):
        """Gate checker evaluates predicate gates."""
        checker = ASTGateChecker()
        assert checker.check_all_gates_pass(["valence >= 0.2"], {'mood_axes': {'valence': 50}})
        assert not checker.check_all_gates_pass(["valence >= 0.2"], {'mood_axes': {'valence': 10}})

    def test_intensity_calculator(self):
        """Intensity is a clamped weighted sum."""
        calc = WeightedIntensityCalculator()
        assert calc.compute_intensity({'valence': 1.0}, {'mood_axes': {'valence': 50}}) == 0.5
        assert calc.compute_intensity({'valence': 1.0}, {'mood_axes': {'valence': -50}}) == 0.0
        assert calc.compute_intensity({}, {'mood_axes': {'valence': 50}}) == 0.0

    def test_state_generator_seeded(self):
        """Same seed, same state."""
        assert UniformStateGenerator(seed=1).generate() == UniformStateGenerator(seed=1).generate()

    def test_state_generator_ranges(self):
        """Generated axes stay in their raw ranges."""
        state = UniformStateGenerator(seed=2).generate()
        assert all(-100 <= v <= 100 for v in state['current']['mood_axes'].values())
        assert -50 <= state['current']['sexual_axes']['baseline_libido'] <= 50
        assert 0 <= state['current']['sexual_arousal'] <= 1

    def test_shared_pool_pipeline(self, config):
        """Pool generation feeds vector evaluation."""
        config['pool']['shared_pool_size'] = 30
        config['pool']['chunk_size'] = 10
        progress = []
        pool = SharedContextPoolGenerator(
            UniformStateGenerator(seed=5), DefaultContextBuilder(), config['pool'],
        ).generate(lambda c, t: progress.append(c))
        assert len(pool) == 30
        assert progress == [10, 20, 30]

        vectors = PrototypeVectorEvaluator(ASTGateChecker(), WeightedIntensityCalculator()).evaluate_all(
            [PROTO_A, {'id': 'calm', 'weights': {'arousal': -1.0}, 'gates': ["arousal <= 0.0"]}], pool,
        )
        assert set(vectors) == {'joy', 'calm'}
        assert len(vectors['calm']) == 30
        assert vectors['joy'].gate_pass_rate == 1.0
        # Failed gates carry zero intensity
        assert np.all(vectors['calm'].intensities[~vectors['calm'].gate_results] == 0.0)

    def test_profile(self):
        """Profile summarizes a prototype vector."""
        vector = PrototypeVector('joy', np.array([True, False, True]), np.array([0.2, 0.0, 0.4]))
        profile = PrototypeProfileCalculator().calculate_single(
            Prototype('joy', weights={'valence': 0.6, 'arousal': 0.6, 'threat': 0.01}), vector,
        )
        assert profile['gate_pass_rate'] == pytest.approx(2 / 3)
        assert profile['mean_intensity'] == pytest.approx(0.3)
        assert profile['active_axis_count'] == 2
        assert profile['dominant_axes'][2] == 'threat'
