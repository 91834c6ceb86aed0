"""
Prototype Overlap Analyzer
==========================

Runs the full redundancy pipeline over one prototype family.

    registry ──► Stage A (filter) ──► Stage B (behavior, per pair)
             ──► Stage C (classify) ──► recommendation builder ──► ranked output

Two evaluation modes, picked automatically:
    sampling     - each pair draws its own contexts (default)
    shared_pool  - one context pool, every prototype evaluated once, pairs
                   compared vector-to-vector. Enabled when a pool generator,
                   vector evaluator and profile calculator are all injected.

The analyzer keeps no state between calls beyond its collaborators and
config; every accumulator lives inside one analyze() call.

Usage:
    analyzer = PrototypeOverlapAnalyzer(
        prototype_registry=registry,
        candidate_pair_filter=CandidatePairFilter(config['candidate']),
        behavioral_overlap_evaluator=evaluator,
        overlap_classifier=OverlapClassifier(config['classification']),
        recommendation_builder=builder,
        config=config,
    )
    result = analyzer.analyze('emotion', sample_count=4000)
    print(result.summary())
"""

import logging
import math
from collections.abc import MutableMapping
from typing import Any, Callable, Dict, List, Optional

from overlap.classify.classifier import CLASSIFICATION_TYPES
from overlap.config import require_config_keys
from overlap.interfaces import (
    AxisGapAnalyzer,
    BehaviorEvaluator,
    CandidateFilter,
    Classifier,
    ContextPoolGenerator,
    GateBandingSuggestionBuilder,
    PrototypeRegistry,
    ProfileCalculator,
    RecommendationBuilder,
    VectorEvaluator,
    require_capabilities,
)
from overlap.models import AnalysisResult, CandidatePair, Prototype, lookup

logger = logging.getLogger(__name__)

# Families analyzed together under the 'both' tag
COMBINED_FAMILIES = ['emotion', 'sexual']

ProgressCallback = Callable[[str, Dict[str, Any]], None]


def _finite(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value) if math.isfinite(value) else default


class PrototypeOverlapAnalyzer:
    """Orchestrates Stages A-C plus recommendations over a prototype family."""

    def __init__(
        self,
        prototype_registry,
        candidate_pair_filter,
        behavioral_overlap_evaluator,
        overlap_classifier,
        recommendation_builder,
        config: Dict[str, Any],
        gate_banding_suggestion_builder=None,
        shared_context_pool_generator=None,
        prototype_vector_evaluator=None,
        prototype_profile_calculator=None,
        axis_gap_analyzer=None,
    ):
        require_capabilities(prototype_registry, PrototypeRegistry, 'prototype_registry')
        require_capabilities(candidate_pair_filter, CandidateFilter, 'candidate_pair_filter')
        require_capabilities(behavioral_overlap_evaluator, BehaviorEvaluator, 'behavioral_overlap_evaluator')
        require_capabilities(overlap_classifier, Classifier, 'overlap_classifier')
        require_capabilities(recommendation_builder, RecommendationBuilder, 'recommendation_builder')

        optional = [
            (gate_banding_suggestion_builder, GateBandingSuggestionBuilder, 'gate_banding_suggestion_builder'),
            (shared_context_pool_generator, ContextPoolGenerator, 'shared_context_pool_generator'),
            (prototype_vector_evaluator, VectorEvaluator, 'prototype_vector_evaluator'),
            (prototype_profile_calculator, ProfileCalculator, 'prototype_profile_calculator'),
            (axis_gap_analyzer, AxisGapAnalyzer, 'axis_gap_analyzer'),
        ]
        for obj, protocol, name in optional:
            if obj is not None:
                require_capabilities(obj, protocol, name)

        if not isinstance(config, dict):
            raise ValueError(f"PrototypeOverlapAnalyzer: config must be a dict, got {type(config).__name__}")
        require_config_keys(config.get('analysis'), ['max_candidate_pairs'], 'PrototypeOverlapAnalyzer')
        require_config_keys(config.get('behavior'), ['sample_count_per_pair'], 'PrototypeOverlapAnalyzer')

        self.prototype_registry = prototype_registry
        self.candidate_pair_filter = candidate_pair_filter
        self.behavioral_overlap_evaluator = behavioral_overlap_evaluator
        self.overlap_classifier = overlap_classifier
        self.recommendation_builder = recommendation_builder
        self.gate_banding_suggestion_builder = gate_banding_suggestion_builder
        self.shared_context_pool_generator = shared_context_pool_generator
        self.prototype_vector_evaluator = prototype_vector_evaluator
        self.prototype_profile_calculator = prototype_profile_calculator
        self.axis_gap_analyzer = axis_gap_analyzer
        self.config = config

    # ------------------------------------------------------------------
    # Configuration views
    # ------------------------------------------------------------------

    @property
    def analysis_config(self) -> Dict[str, Any]:
        return self.config['analysis']

    @property
    def shared_pool_enabled(self) -> bool:
        return (
            self.shared_context_pool_generator is not None
            and self.prototype_vector_evaluator is not None
            and self.prototype_profile_calculator is not None
        )

    @property
    def axis_gap_enabled(self) -> bool:
        return (
            self.shared_pool_enabled
            and self.axis_gap_analyzer is not None
            and bool(self.analysis_config.get('enable_axis_gap_detection', True))
        )

    def _stages(self) -> List[str]:
        stages = ['filtering', 'evaluating']
        if self.shared_pool_enabled:
            stages.insert(0, 'setup')
        if self.axis_gap_enabled:
            stages.append('axis_gap_analysis')
        return stages

    def _resolve_sample_count(self, sample_count: Any) -> int:
        if isinstance(sample_count, bool) or not isinstance(sample_count, (int, float)):
            return int(self.config['behavior']['sample_count_per_pair'])
        if not math.isfinite(sample_count) or sample_count < 1:
            return int(self.config['behavior']['sample_count_per_pair'])
        return int(sample_count)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(
        self,
        prototype_family: str = 'emotion',
        sample_count: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        prototypes = self._fetch_prototypes(prototype_family)
        mode = 'shared_pool' if self.shared_pool_enabled else 'sampling'
        samples = self._resolve_sample_count(sample_count)

        logger.info(f"Overlap analysis: family={prototype_family}, prototypes={len(prototypes)}, mode={mode}")

        if len(prototypes) < 2:
            logger.info(f"Fewer than 2 prototypes in family {prototype_family}, skipping analysis")
            return AnalysisResult(metadata=self._metadata(
                prototype_family, len(prototypes), mode, samples,
                found=0, evaluated=0, redundant=0,
                filtering_stats={}, breakdown=_empty_breakdown(), closest_pair=None,
                insight=_summary_insight(len(prototypes), 0, 0, 0),
            ))

        stages = self._stages()
        emit = _progress_emitter(on_progress, stages)

        vectors: Dict[str, Any] = {}
        profiles: Dict[str, Any] = {}
        pool: List[Any] = []
        if self.shared_pool_enabled:
            pool, vectors, profiles = self._setup_shared_pool(prototypes, emit)
            samples = len(pool)

        # Stage A
        filter_result = self.candidate_pair_filter.filter_candidates(
            prototypes,
            lambda current, total: emit('filtering', {'current': current, 'total': total}),
        ) or {}
        candidates = [
            pair for pair in (CandidatePair.coerce(c) for c in filter_result.get('candidates', []))
            if pair is not None
        ]
        found = len(candidates)
        limit = int(self.analysis_config['max_candidate_pairs'])
        if found > limit:
            logger.warning(
                f"Candidate pairs ({found}) exceed max_candidate_pairs ({limit}); "
                f"evaluating the first {limit}"
            )
            candidates = candidates[:limit]

        # Stages B + C
        recommendation_types = set(self.analysis_config.get('recommendation_types', []))
        recommendations = []
        near_misses = []
        pair_results = []
        breakdown = _empty_breakdown()
        closest_pair = None

        for i, pair in enumerate(candidates):
            behavior = self._evaluate_pair(pair, i, len(candidates), samples, vectors, pool, emit)
            classification = self.overlap_classifier.classify(pair.candidate_metrics, behavior)
            ctype = str(lookup(classification, 'type', 'keep_distinct'))
            breakdown[ctype] = breakdown.get(ctype, 0) + 1

            pair_results.append({
                'prototype_a': pair.prototype_a.id,
                'prototype_b': pair.prototype_b.id,
                'selected_by': pair.selected_by,
                'candidate_metrics': pair.candidate_metrics,
                'behavior_metrics': behavior,
                'classification': classification,
            })

            score = self._composite_score(behavior)
            if closest_pair is None or score > closest_pair['composite_score']:
                closest_pair = {
                    'prototype_a': pair.prototype_a.id,
                    'prototype_b': pair.prototype_b.id,
                    'composite_score': score,
                    'classification': ctype,
                }

            if ctype in recommendation_types:
                recommendations.append(
                    self._build_recommendation(pair, classification, behavior, ctype, prototype_family)
                )
                continue

            near_miss = self._check_near_miss(pair, behavior)
            if near_miss is not None:
                near_misses.append(near_miss)

        if candidates and not self.shared_pool_enabled:
            emit('evaluating', {
                'pair_index': len(candidates),
                'pair_total': len(candidates),
                'sample_index': samples,
                'sample_total': samples,
            })

        near_misses = near_misses[:int(self.analysis_config.get('max_near_miss_pairs_to_report', 10))]

        axis_gap = None
        if self.axis_gap_enabled:
            axis_gap = self._run_axis_gap_analysis(prototypes, vectors, profiles, pair_results, emit)

        recommendations.sort(key=lambda r: _finite(lookup(r, 'severity', 0.0)), reverse=True)

        metadata = self._metadata(
            prototype_family, len(prototypes), mode, samples,
            found=found,
            evaluated=len(candidates),
            redundant=len(recommendations),
            filtering_stats=filter_result.get('stats') or {},
            breakdown=breakdown,
            closest_pair=closest_pair,
            insight=_summary_insight(len(prototypes), found, len(recommendations), len(near_misses)),
        )

        logger.info(
            f"Overlap analysis complete: {found} candidates, {len(candidates)} evaluated, "
            f"{len(recommendations)} redundant, {len(near_misses)} near misses"
        )
        return AnalysisResult(
            recommendations=recommendations,
            metadata=metadata,
            near_misses=near_misses,
            axis_gap_analysis=axis_gap,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _fetch_prototypes(self, family: str) -> List[Prototype]:
        families = COMBINED_FAMILIES if family == 'both' else [family]
        prototypes = []
        for fam in families:
            for raw in self.prototype_registry.get_prototypes_by_type(fam) or []:
                proto = Prototype.coerce(raw)
                if proto is None:
                    logger.warning(f"Skipping prototype without an id in family {fam}")
                    continue
                prototypes.append(proto)
        return prototypes

    def _setup_shared_pool(self, prototypes: List[Prototype], emit):
        def phase(name):
            return lambda current, total: emit('setup', {'phase': name, 'current': current, 'total': total})

        pool = self.shared_context_pool_generator.generate(phase('pool'))
        vectors = self.prototype_vector_evaluator.evaluate_all(prototypes, pool, phase('vectors'))

        profiles = {}
        report = phase('profiles')
        for i, proto in enumerate(prototypes):
            profiles[proto.id] = self.prototype_profile_calculator.calculate_single(proto, vectors.get(proto.id))
            report(i + 1, len(prototypes))

        logger.debug(f"Shared pool ready: {len(pool)} contexts, {len(vectors)} vectors")
        return pool, vectors, profiles

    def _evaluate_pair(self, pair: CandidatePair, index: int, total: int, samples: int, vectors, pool, emit):
        proto_a, proto_b = pair.prototype_a, pair.prototype_b

        if self.shared_pool_enabled:
            behavior = self.behavioral_overlap_evaluator.evaluate(
                proto_a, proto_b,
                {'vector_a': vectors[proto_a.id], 'vector_b': vectors[proto_b.id], 'contexts': pool},
            )
            emit('evaluating', {
                'pair_index': index + 1,
                'pair_total': total,
                'sample_index': samples,
                'sample_total': samples,
            })
            return behavior

        # pair_index counts completed pairs while this one is sampling
        def on_sample_progress(done, sample_total):
            emit('evaluating', {
                'pair_index': index,
                'pair_total': total,
                'sample_index': done,
                'sample_total': sample_total,
            })

        return self.behavioral_overlap_evaluator.evaluate(proto_a, proto_b, samples, on_sample_progress)

    def _build_recommendation(self, pair: CandidatePair, classification, behavior, ctype: str, family: str):
        banding = []
        if (
            self.gate_banding_suggestion_builder is not None
            and ctype in self.analysis_config.get('banding_classification_types', [])
        ):
            banding = self.gate_banding_suggestion_builder.build_suggestions(
                lookup(behavior, 'gate_implication'), ctype,
            ) or []

        recommendation = self.recommendation_builder.build(
            pair.prototype_a,
            pair.prototype_b,
            classification,
            pair.candidate_metrics,
            behavior,
            lookup(behavior, 'divergence_examples', []),
            banding,
            family,
        )

        matching = lookup(classification, 'all_matching_classifications', [])
        if isinstance(recommendation, MutableMapping):
            recommendation['all_matching_classifications'] = matching
        elif hasattr(recommendation, '__dict__'):
            recommendation.all_matching_classifications = matching
        return recommendation

    def _check_near_miss(self, pair: CandidatePair, behavior) -> Optional[Dict[str, Any]]:
        check = getattr(self.overlap_classifier, 'check_near_miss', None)
        if check is None:
            return None
        near_miss = check(pair.candidate_metrics, behavior)
        if near_miss is None:
            return None
        return {
            'prototype_a': pair.prototype_a.id,
            'prototype_b': pair.prototype_b.id,
            'near_miss': near_miss,
            'candidate_metrics': pair.candidate_metrics,
        }

    def _composite_score(self, behavior) -> float:
        weights = self.analysis_config.get('composite_weights') or {}
        on_either = _finite(lookup(behavior, 'gate_overlap.on_either_rate'))
        on_both = _finite(lookup(behavior, 'gate_overlap.on_both_rate'))
        ratio = on_both / on_either if on_either > 0 else 0.0
        corr = _finite(lookup(behavior, 'intensity.pearson_correlation'))
        global_mad = lookup(behavior, 'global_metrics.global_mean_abs_diff')
        global_similarity = 1.0 - global_mad if _finite(global_mad, -1.0) >= 0 else 0.0
        return (
            weights.get('gate_overlap', 0.3) * ratio
            + weights.get('correlation', 0.2) * corr
            + weights.get('global_output', 0.5) * global_similarity
        )

    def _run_axis_gap_analysis(self, prototypes, vectors, profiles, pair_results, emit):
        emit('axis_gap_analysis', {})

        # Accepts (current, total) or (phase, current, total)
        def on_axis_gap_progress(*args):
            data = dict(zip(('current', 'total'), args[-2:]))
            if len(args) > 2:
                data['phase'] = args[0]
            emit('axis_gap_analysis', data)

        try:
            return self.axis_gap_analyzer.analyze(
                prototypes, vectors, profiles, pair_results, on_axis_gap_progress,
            )
        except Exception as e:
            logger.error(f"Axis gap analysis failed, continuing without it: {e}", exc_info=True)
            return None

    def _metadata(
        self, family, total, mode, samples, found, evaluated, redundant,
        filtering_stats, breakdown, closest_pair, insight,
    ) -> Dict[str, Any]:
        return {
            'prototype_family': family,
            'total_prototypes': total,
            'candidate_pairs_found': found,
            'candidate_pairs_evaluated': evaluated,
            'redundant_pairs_found': redundant,
            'sample_count_per_pair': samples,
            'analysis_mode': mode,
            'filtering_stats': filtering_stats,
            'classification_breakdown': breakdown,
            'closest_pair': closest_pair,
            'summary_insight': insight,
        }


def _progress_emitter(on_progress: Optional[ProgressCallback], stages: List[str]):
    def emit(stage: str, data: Dict[str, Any]) -> None:
        if on_progress is None:
            return
        on_progress(stage, {
            **data,
            'stage_number': stages.index(stage) + 1,
            'total_stages': len(stages),
        })
    return emit


def _empty_breakdown() -> Dict[str, int]:
    return {t: 0 for t in CLASSIFICATION_TYPES}


def _summary_insight(total: int, found: int, redundant: int, near_misses: int) -> Dict[str, str]:
    if total < 2:
        return {
            'status': 'insufficient_data',
            'message': f"Only {total} prototype(s) in family; at least 2 are needed.",
        }
    if found == 0:
        return {
            'status': 'no_candidates',
            'message': "No prototype pairs passed candidate filtering.",
        }
    if redundant > 0:
        return {
            'status': 'redundant_found',
            'message': f"{redundant} redundant pair(s) found; see recommendations.",
        }
    if near_misses > 0:
        return {
            'status': 'near_misses',
            'message': f"No redundancy, but {near_misses} pair(s) came close to merge thresholds.",
        }
    return {
        'status': 'well_differentiated',
        'message': "All candidate pairs are behaviorally distinct.",
    }
