"""
Shared Context Pool
===================

When a whole family is compared pairwise, sampling fresh contexts for every
pair costs O(pairs × samples) oracle calls. Shared-pool mode draws one pool
of contexts, evaluates every prototype against it once, and lets Stage B
compare the resulting vectors index by index.

    SharedContextPoolGenerator.generate()          -> [context, ...]
    PrototypeVectorEvaluator.evaluate_all(...)     -> {id: PrototypeVector}
    PrototypeProfileCalculator.calculate_single()  -> per-prototype profile
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from overlap.config import require_config_keys
from overlap.filtering.metrics import active_axes
from overlap.models import Prototype
from overlap.interfaces import (
    ContextBuilder,
    GateChecker,
    IntensityCalculator,
    RandomStateGenerator,
    require_capabilities,
)

logger = logging.getLogger(__name__)


def state_part(state: Any, key: str) -> Any:
    if isinstance(state, Mapping):
        return state.get(key)
    return getattr(state, key, None)


def build_sample_context(state_generator, context_builder) -> Any:
    state = state_generator.generate()
    return context_builder.build_context(
        state_part(state, 'current'),
        state_part(state, 'previous'),
        state_part(state, 'affect_traits'),
    )


@dataclass
class PrototypeVector:
    """One prototype evaluated over a shared context pool."""
    prototype_id: str
    gate_results: np.ndarray  # bool, one per pool context
    intensities: np.ndarray   # float, 0.0 where the gate failed

    def __len__(self):
        return len(self.gate_results)

    @property
    def gate_pass_rate(self) -> float:
        if len(self.gate_results) == 0:
            return 0.0
        return float(np.mean(self.gate_results))

    @property
    def mean_intensity(self) -> float:
        """Mean intensity over passing contexts; NaN if none pass."""
        if not np.any(self.gate_results):
            return float('nan')
        return float(np.mean(self.intensities[self.gate_results]))

    @classmethod
    def coerce(cls, value: Any, prototype_id: str = '') -> 'PrototypeVector':
        """
        Accept a PrototypeVector or a sequence of ``{passed, intensity}``
        mappings / ``(passed, intensity)`` pairs.
        """
        if isinstance(value, PrototypeVector):
            return value
        if not isinstance(value, Sequence) or isinstance(value, str):
            raise ValueError(f"Cannot read prototype vector from {type(value).__name__}")

        passed = np.zeros(len(value), dtype=bool)
        intensities = np.zeros(len(value), dtype=float)
        for i, item in enumerate(value):
            if isinstance(item, Mapping):
                ok, intensity = item.get('passed'), item.get('intensity')
            else:
                ok, intensity = item
            passed[i] = bool(ok)
            if passed[i] and intensity is not None:
                intensities[i] = float(intensity)
        return cls(prototype_id, passed, intensities)


class SharedContextPoolGenerator:
    """Draw the shared context pool once per analysis."""

    def __init__(self, random_state_generator, context_builder, config: Dict[str, Any]):
        require_capabilities(random_state_generator, RandomStateGenerator, 'random_state_generator')
        require_capabilities(context_builder, ContextBuilder, 'context_builder')
        require_config_keys(config, ['shared_pool_size', 'chunk_size'], 'SharedContextPoolGenerator')
        self.random_state_generator = random_state_generator
        self.context_builder = context_builder
        self.config = config

    def generate(self, on_progress: Optional[Callable[[int, int], None]] = None) -> List[Any]:
        total = int(self.config['shared_pool_size'])
        chunk = max(1, int(self.config['chunk_size']))
        pool = []
        for start in range(0, total, chunk):
            for _ in range(start, min(start + chunk, total)):
                pool.append(build_sample_context(self.random_state_generator, self.context_builder))
            if on_progress is not None:
                on_progress(len(pool), total)
        logger.debug(f"Shared context pool: {len(pool)} contexts")
        return pool


class PrototypeVectorEvaluator:
    """Evaluate every prototype's gate and intensity against the pool."""

    def __init__(self, gate_checker, intensity_calculator):
        require_capabilities(gate_checker, GateChecker, 'gate_checker')
        require_capabilities(intensity_calculator, IntensityCalculator, 'intensity_calculator')
        self.gate_checker = gate_checker
        self.intensity_calculator = intensity_calculator

    def evaluate(self, prototype: Prototype, pool: Sequence[Any]) -> PrototypeVector:
        weights = prototype.numeric_weights()
        passed = np.zeros(len(pool), dtype=bool)
        intensities = np.zeros(len(pool), dtype=float)
        for i, context in enumerate(pool):
            if self.gate_checker.check_all_gates_pass(prototype.gates, context):
                passed[i] = True
                intensities[i] = float(self.intensity_calculator.compute_intensity(weights, context))
        return PrototypeVector(prototype.id, passed, intensities)

    def evaluate_all(
        self,
        prototypes: Sequence[Any],
        pool: Sequence[Any],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> Dict[str, PrototypeVector]:
        vectors = {}
        protos = [p for p in (Prototype.coerce(x) for x in prototypes) if p is not None]
        for i, proto in enumerate(protos):
            vectors[proto.id] = self.evaluate(proto, pool)
            if on_progress is not None:
                on_progress(i + 1, len(protos))
        return vectors


class PrototypeProfileCalculator:
    """Per-prototype summary used by family-wide post-passes."""

    def __init__(self, active_axis_epsilon: float = 0.08, top_axes: int = 3):
        self.active_axis_epsilon = active_axis_epsilon
        self.top_axes = top_axes

    def calculate_single(self, prototype: Any, vector: PrototypeVector) -> Dict[str, Any]:
        proto = Prototype.coerce(prototype)
        weights = proto.numeric_weights()
        magnitudes = np.array([abs(w) for w in weights.values()], dtype=float)

        entropy = 0.0
        if magnitudes.sum() > 0:
            p = magnitudes / magnitudes.sum()
            p = p[p > 0]
            entropy = float(-np.sum(p * np.log2(p)))

        passing = vector.intensities[vector.gate_results] if vector is not None else np.array([])
        dominant = sorted(weights.items(), key=lambda kv: abs(kv[1]), reverse=True)[:self.top_axes]

        return {
            'prototype_id': proto.id,
            'gate_pass_rate': vector.gate_pass_rate if vector is not None else 0.0,
            'mean_intensity': float(np.mean(passing)) if len(passing) else float('nan'),
            'intensity_std': float(np.std(passing)) if len(passing) else float('nan'),
            'active_axis_count': len(active_axes(weights, self.active_axis_epsilon)),
            'weight_entropy': entropy,
            'dominant_axes': [axis for axis, _ in dominant],
        }
