"""
Overlap Data Model
==================

Records passed between pipeline stages. Inputs (Prototype) are coerced at
the boundary from registry mappings; everything downstream is derived per
analysis run and never persisted.

    Prototype ──► CandidatePair(CandidateMetrics)
                        │
                        ▼
                  BehaviorMetrics(GateOverlap, IntensityMetrics, ...)
                        │
                        ▼
                  Classification ──► recommendation (external)
"""

import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional


def lookup(obj: Any, path: str, default: Any = None) -> Any:
    """
    Read a dot-notation path from nested dataclasses or mappings.

    Missing keys, None intermediates and unsupported types all resolve to
    ``default``.
    """
    value = obj
    for key in path.split('.'):
        if value is None:
            return default
        if isinstance(value, Mapping):
            if key not in value:
                return default
            value = value[key]
        elif hasattr(value, key):
            value = getattr(value, key)
        else:
            return default
    return default if value is None else value


def is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _has_id(value: Any) -> bool:
    return value is not None and str(value) != ''


# =============================================================================
# Prototype
# =============================================================================

@dataclass(frozen=True)
class Prototype:
    """A named weighted-sum scoring rule with boolean admission gates."""
    id: str
    type: str = 'emotion'
    weights: Dict[str, Any] = field(default_factory=dict)
    gates: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Prototype':
        if not _has_id(data.get('id')):
            raise ValueError(f"Prototype requires an id, got {data.get('id')!r}")
        weights = data.get('weights')
        return cls(
            id=str(data.get('id')),
            type=data.get('type') or 'emotion',
            weights=dict(weights) if isinstance(weights, Mapping) else {},
            gates=data.get('gates'),
        )

    @classmethod
    def coerce(cls, obj: Any) -> Optional['Prototype']:
        """
        Accept a Prototype, a mapping, or any object with ``id``/``weights``.

        Returns None when there is no usable id.
        """
        if isinstance(obj, Prototype):
            return obj
        if isinstance(obj, Mapping):
            return cls.from_dict(obj) if _has_id(obj.get('id')) else None
        if obj is not None and _has_id(getattr(obj, 'id', None)):
            weights = getattr(obj, 'weights', None)
            return cls(
                id=str(obj.id),
                type=getattr(obj, 'type', None) or 'emotion',
                weights=dict(weights) if isinstance(weights, Mapping) else {},
                gates=getattr(obj, 'gates', None),
            )
        return None

    def numeric_weights(self) -> Dict[str, float]:
        """Finite numeric weights only; non-numeric values are ignored."""
        return {
            axis: float(w)
            for axis, w in self.weights.items()
            if is_finite_number(w)
        }

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'type': self.type, 'weights': dict(self.weights), 'gates': self.gates}


# =============================================================================
# Stage A
# =============================================================================

@dataclass
class CandidateMetrics:
    """Geometric similarity between two weight vectors."""
    active_axis_overlap: float = 0.0       # Jaccard of active axes, [0, 1]
    sign_agreement: float = 0.0            # [0, 1]
    weight_cosine_similarity: float = 0.0  # [-1, 1]

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


ROUTE_PRIORITY = {'route_a': 0, 'route_b': 1, 'route_c': 2}


@dataclass
class CandidatePair:
    """A shortlisted pair. Identity is unordered."""
    prototype_a: Prototype
    prototype_b: Prototype
    candidate_metrics: CandidateMetrics = field(default_factory=CandidateMetrics)
    selected_by: str = 'route_a'
    route_metrics: Optional[Dict[str, Any]] = None

    @property
    def pair_key(self) -> tuple:
        return tuple(sorted((self.prototype_a.id, self.prototype_b.id)))

    @classmethod
    def coerce(cls, obj: Any, default_route: str = 'route_a') -> Optional['CandidatePair']:
        """Accept a CandidatePair or a mapping of the same shape."""
        if isinstance(obj, CandidatePair):
            return obj
        if not isinstance(obj, Mapping):
            return None
        proto_a = Prototype.coerce(obj.get('prototype_a'))
        proto_b = Prototype.coerce(obj.get('prototype_b'))
        if proto_a is None or proto_b is None:
            return None
        metrics = obj.get('candidate_metrics')
        if isinstance(metrics, Mapping):
            metrics = CandidateMetrics(
                active_axis_overlap=metrics.get('active_axis_overlap', 0.0),
                sign_agreement=metrics.get('sign_agreement', 0.0),
                weight_cosine_similarity=metrics.get('weight_cosine_similarity', 0.0),
            )
        elif not isinstance(metrics, CandidateMetrics):
            metrics = CandidateMetrics()
        return cls(
            prototype_a=proto_a,
            prototype_b=proto_b,
            candidate_metrics=metrics,
            selected_by=obj.get('selected_by') or default_route,
            route_metrics=obj.get('route_metrics'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prototype_a': self.prototype_a.id,
            'prototype_b': self.prototype_b.id,
            'candidate_metrics': self.candidate_metrics.to_dict(),
            'selected_by': self.selected_by,
            'route_metrics': self.route_metrics,
        }


# =============================================================================
# Stage B
# =============================================================================

@dataclass
class GateOverlap:
    """Sample frequencies of the four gate-pass combinations."""
    on_either_rate: float = 0.0
    on_both_rate: float = 0.0
    p_only_rate: float = 0.0
    q_only_rate: float = 0.0

    @property
    def gate_overlap_ratio(self) -> float:
        """on_both / on_either, 0.0 when neither ever fires."""
        if self.on_either_rate <= 0:
            return 0.0
        return self.on_both_rate / self.on_either_rate


@dataclass
class IntensityMetrics:
    """Intensity agreement, computed over jointly-passing samples."""
    pearson_correlation: float = float('nan')
    mean_abs_diff: float = float('nan')
    dominance_p: float = 0.0
    dominance_q: float = 0.0
    rmse: float = float('nan')
    pct_within_eps: float = float('nan')
    joint_count: int = 0


@dataclass
class PassRates:
    """Marginal and conditional gate pass rates."""
    pass_a_rate: float = 0.0
    pass_b_rate: float = 0.0
    p_a_given_b: float = float('nan')
    p_b_given_a: float = float('nan')
    p_a_given_b_lower: float = float('nan')  # Wilson lower bound
    p_b_given_a_lower: float = float('nan')
    co_pass_count: int = 0
    pass_a_count: int = 0
    pass_b_count: int = 0


@dataclass
class GlobalMetrics:
    """Output comparison over all samples, failed gates count as 0."""
    global_mean_abs_diff: float = float('nan')
    global_l2_distance: float = float('nan')
    global_output_correlation: float = float('nan')


@dataclass
class DivergenceExample:
    context: Any
    intensity_a: float
    intensity_b: float
    abs_diff: float
    context_summary: str = ''

    @property
    def intensity_difference(self) -> float:
        return self.intensity_a - self.intensity_b


@dataclass
class BehaviorMetrics:
    """Result of one Stage B comparison."""
    gate_overlap: GateOverlap = field(default_factory=GateOverlap)
    intensity: IntensityMetrics = field(default_factory=IntensityMetrics)
    divergence_examples: List[DivergenceExample] = field(default_factory=list)
    pass_rates: PassRates = field(default_factory=PassRates)
    global_metrics: GlobalMetrics = field(default_factory=GlobalMetrics)
    high_coactivation: Dict[str, Dict[str, float]] = field(default_factory=dict)
    gate_implication: Optional[Dict[str, Any]] = None
    gate_parse_info: Optional[Dict[str, Any]] = None
    sample_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['gate_overlap']['gate_overlap_ratio'] = self.gate_overlap.gate_overlap_ratio
        return d


# =============================================================================
# Stage C
# =============================================================================

@dataclass
class Classification:
    type: str
    thresholds: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)
    subsumed_prototype: Optional[str] = None  # 'a' or 'b', the dominated side
    all_matching_classifications: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Orchestration
# =============================================================================

@dataclass
class AnalysisResult:
    """Output of one PrototypeOverlapAnalyzer.analyze() call."""
    recommendations: List[Any] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    near_misses: List[Dict[str, Any]] = field(default_factory=list)
    axis_gap_analysis: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recommendations': self.recommendations,
            'metadata': self.metadata,
            'near_misses': self.near_misses,
            'axis_gap_analysis': self.axis_gap_analysis,
        }

    def summary(self) -> str:
        """Human-readable summary."""
        md = self.metadata
        lines = [
            "=" * 60,
            f"PROTOTYPE OVERLAP: {md.get('prototype_family', '?')}",
            "=" * 60,
            f"Prototypes:          {md.get('total_prototypes', 0)}",
            f"Candidate pairs:     {md.get('candidate_pairs_found', 0)} "
            f"(evaluated {md.get('candidate_pairs_evaluated', 0)})",
            f"Redundant pairs:     {md.get('redundant_pairs_found', 0)}",
            f"Near misses:         {len(self.near_misses)}",
            f"Mode:                {md.get('analysis_mode', '?')}",
        ]
        insight = md.get('summary_insight')
        if insight:
            lines.extend(["", f"[{insight['status']}] {insight['message']}"])
        lines.append("=" * 60)
        return "\n".join(lines)
