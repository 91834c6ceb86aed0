"""Shared stub collaborators for overlap tests."""

import pytest

from overlap.config import build_config


class ConstantStateGenerator:
    """Always yields the same state; counts calls."""

    def __init__(self, mood=None):
        self.mood = mood or {'valence': 50, 'arousal': 20, 'threat': -30}
        self.calls = 0

    def generate(self):
        self.calls += 1
        return {'current': {'mood_axes': dict(self.mood)}, 'previous': {'mood_axes': {}}, 'affect_traits': {}}


class SequenceStateGenerator:
    """Yields states whose valence walks through ``values`` (cycled)."""

    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def generate(self):
        v = self.values[self.calls % len(self.values)]
        self.calls += 1
        return {'current': {'mood_axes': {'valence': v}}, 'previous': None, 'affect_traits': {}}


class PassThroughContextBuilder:
    def build_context(self, current, previous, traits):
        return {
            'mood_axes': dict((current or {}).get('mood_axes') or {}),
            'affect_traits': dict(traits or {}),
        }


class AlwaysPassGateChecker:
    def check_all_gates_pass(self, gate_spec, context):
        return True


class ConstantIntensityCalculator:
    def __init__(self, value=0.6):
        self.value = value

    def compute_intensity(self, weights, context):
        return self.value


class ValenceScaledIntensityCalculator:
    """Intensity = weight['valence'] * raw valence / 100."""

    def compute_intensity(self, weights, context):
        return weights.get('valence', 0.0) * context['mood_axes'].get('valence', 0) / 100.0


class DictRegistry:
    def __init__(self, families):
        self.families = families
        self.calls = []

    def get_prototypes_by_type(self, family):
        self.calls.append(family)
        return list(self.families.get(family, []))


class SeverityRecommendationBuilder:
    """Canned severity per pair id tuple; records calls."""

    def __init__(self, severities=None):
        self.severities = severities or {}
        self.calls = []

    def build(self, proto_a, proto_b, classification, candidate_metrics, behavior_metrics,
              divergence_examples, banding_suggestions, family):
        self.calls.append({
            'pair': (proto_a.id, proto_b.id),
            'type': classification.type,
            'banding': banding_suggestions,
            'family': family,
            'examples': divergence_examples,
        })
        return {
            'type': classification.type,
            'prototypes': [proto_a.id, proto_b.id],
            'severity': self.severities.get((proto_a.id, proto_b.id), 0.5),
        }


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def candidate_config(config):
    return config['candidate']


@pytest.fixture
def behavior_config(config):
    return config['behavior']


@pytest.fixture
def classification_config(config):
    return config['classification']
