"""
Reference sampling collaborators.

Simple implementations of the oracles Stage B consumes. Production callers
inject their own generator / evaluators; these exist so the pipeline runs
standalone (tests, notebooks, quick audits of a prototype file).

    gen = UniformStateGenerator(seed=42)
    builder = DefaultContextBuilder()
    checker = ASTGateChecker()
    calc = WeightedIntensityCalculator()
"""

from typing import Any, Dict, Mapping, Optional

import numpy as np

from overlap.behavior.context import (
    AFFECT_TRAITS,
    MOOD_AXES,
    SEXUAL_AROUSAL,
    SEXUAL_AXES,
    flatten_context,
)
from overlap.gates.normalizer import GateASTNormalizer


class UniformStateGenerator:
    """
    Uniform random states in raw authoring units.

    mood axes        [-100, 100]
    affect traits    [0, 100]
    sex_excitation / sex_inhibition [0, 100], baseline_libido [-50, 50]
    sexual_arousal   [0, 1]
    """

    def __init__(self, seed: Optional[int] = None, include_sexual: bool = True):
        self.rng = np.random.default_rng(seed)
        self.include_sexual = include_sexual

    def _mood(self) -> Dict[str, float]:
        values = self.rng.uniform(-100.0, 100.0, size=len(MOOD_AXES))
        return dict(zip(MOOD_AXES, values.tolist()))

    def generate(self) -> Dict[str, Any]:
        traits = self.rng.uniform(0.0, 100.0, size=len(AFFECT_TRAITS))
        current = {'mood_axes': self._mood()}
        if self.include_sexual:
            current['sexual_axes'] = {
                'sex_excitation': float(self.rng.uniform(0.0, 100.0)),
                'sex_inhibition': float(self.rng.uniform(0.0, 100.0)),
                'baseline_libido': float(self.rng.uniform(-50.0, 50.0)),
            }
            current[SEXUAL_AROUSAL] = float(self.rng.uniform(0.0, 1.0))
        return {
            'current': current,
            'previous': {'mood_axes': self._mood()},
            'affect_traits': dict(zip(AFFECT_TRAITS, traits.tolist())),
        }


class DefaultContextBuilder:
    """Assemble a structured evaluation context from one generated state."""

    def build_context(self, current: Any, previous: Any, traits: Any) -> Dict[str, Any]:
        current = current if isinstance(current, Mapping) else {}
        previous = previous if isinstance(previous, Mapping) else {}
        context = {
            'mood_axes': dict(current.get('mood_axes') or {}),
            'previous_mood_axes': dict(previous.get('mood_axes') or {}),
            'affect_traits': dict(traits or {}),
        }
        if 'sexual_axes' in current:
            context['sexual_axes'] = {
                axis: current['sexual_axes'][axis]
                for axis in SEXUAL_AXES
                if axis in current['sexual_axes']
            }
        if SEXUAL_AROUSAL in current:
            context[SEXUAL_AROUSAL] = current[SEXUAL_AROUSAL]
        return context


class ASTGateChecker:
    """Evaluate gate specs against the gate-space view of a context."""

    def __init__(self, normalizer: Optional[GateASTNormalizer] = None):
        self.normalizer = normalizer or GateASTNormalizer()
        self._cache: Dict[str, Any] = {}

    def _ast(self, gate_spec: Any):
        key = repr(gate_spec)
        if key not in self._cache:
            self._cache[key] = self.normalizer.parse(gate_spec).ast
        return self._cache[key]

    def check_all_gates_pass(self, gate_spec: Any, context: Any) -> bool:
        return self.normalizer.evaluate(self._ast(gate_spec), flatten_context(context))


class WeightedIntensityCalculator:
    """Σ w·x / Σ|w| over gate-space axis values, clamped to [0, 1]."""

    def compute_intensity(self, weights: Mapping[str, float], context: Any) -> float:
        flat = flatten_context(context)
        total = 0.0
        norm = 0.0
        for axis, w in weights.items():
            norm += abs(w)
            total += w * flat.get(axis, 0.0)
        if norm <= 0:
            return 0.0
        return float(min(1.0, max(0.0, total / norm)))
