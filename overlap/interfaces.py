"""
Collaborator interfaces consumed by the overlap pipeline.

Each Protocol lists the capability methods a collaborator must expose.
``require_capabilities`` is called at construction so a mis-wired
collaborator fails immediately, naming the missing method.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class PrototypeRegistry(Protocol):
    def get_prototypes_by_type(self, family: str) -> List[Any]: ...


@runtime_checkable
class RandomStateGenerator(Protocol):
    def generate(self) -> Any: ...


@runtime_checkable
class ContextBuilder(Protocol):
    def build_context(self, current: Any, previous: Any, traits: Any) -> Any: ...


@runtime_checkable
class GateChecker(Protocol):
    def check_all_gates_pass(self, gate_spec: Any, context: Any) -> bool: ...


@runtime_checkable
class IntensityCalculator(Protocol):
    def compute_intensity(self, weights: Mapping[str, float], context: Any) -> float: ...


@runtime_checkable
class RouteFilter(Protocol):
    def filter_pairs(self, pairs: Sequence[Any]) -> Dict[str, Any]: ...


@runtime_checkable
class RecommendationBuilder(Protocol):
    def build(
        self,
        proto_a: Any,
        proto_b: Any,
        classification: Any,
        candidate_metrics: Any,
        behavior_metrics: Any,
        divergence_examples: Any,
        banding_suggestions: Any,
        family: str,
    ) -> Any: ...


@runtime_checkable
class GateBandingSuggestionBuilder(Protocol):
    def build_suggestions(self, gate_implication: Any, classification_type: str) -> List[Any]: ...


@runtime_checkable
class AxisGapAnalyzer(Protocol):
    def analyze(
        self,
        prototypes: Sequence[Any],
        vectors: Mapping[str, Any],
        profiles: Mapping[str, Any],
        pair_results: Sequence[Any],
        on_progress: Optional[Callable] = None,
    ) -> Any: ...


@runtime_checkable
class ContextPoolGenerator(Protocol):
    def generate(self, on_progress: Optional[Callable] = None) -> List[Any]: ...


@runtime_checkable
class VectorEvaluator(Protocol):
    def evaluate_all(
        self,
        prototypes: Sequence[Any],
        pool: Sequence[Any],
        on_progress: Optional[Callable] = None,
    ) -> Dict[str, Any]: ...


@runtime_checkable
class ProfileCalculator(Protocol):
    def calculate_single(self, prototype: Any, vector: Any) -> Dict[str, Any]: ...


@runtime_checkable
class CandidateFilter(Protocol):
    def filter_candidates(self, prototypes: Sequence[Any], on_progress: Optional[Callable] = None) -> Dict[str, Any]: ...


@runtime_checkable
class BehaviorEvaluator(Protocol):
    def evaluate(
        self,
        proto_a: Any,
        proto_b: Any,
        sample_count_or_vectors: Any = None,
        on_sample_progress: Optional[Callable] = None,
    ) -> Any: ...


@runtime_checkable
class Classifier(Protocol):
    def classify(self, candidate_metrics: Any, behavior_metrics: Any) -> Any: ...


def protocol_methods(protocol: type) -> List[str]:
    return sorted(
        name for name, value in vars(protocol).items()
        if callable(value) and not name.startswith('_')
    )


def require_capabilities(obj: Any, protocol: type, name: str) -> None:
    """
    Raises:
        TypeError: if ``obj`` is missing any method ``protocol`` declares
    """
    if obj is None:
        raise TypeError(f"{name} is required ({protocol.__name__})")
    missing = [m for m in protocol_methods(protocol) if not callable(getattr(obj, m, None))]
    if missing:
        raise TypeError(
            f"{name} must implement {protocol.__name__}: missing {', '.join(missing)}"
        )
