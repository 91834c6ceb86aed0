"""
Evaluation context shape and axis resolution.

A structured context groups raw axis values by source:

    {
        'mood_axes':          {'valence': 40, 'threat': -10, ...},   # [-100, 100]
        'previous_mood_axes': {...},
        'affect_traits':      {'harm_aversion': 70, ...},            # [0, 100]
        'sexual_axes':        {'sex_excitation': 30, 'baseline_libido': 10, ...},
        'sexual_arousal':     0.4,                                   # [0, 1]
    }

``axis_value`` maps one axis onto gate space (mood [-1, 1], everything else
[0, 1]), the same units gate thresholds are authored in. Flat contexts that
already hold gate-space values (``{'valence': 0.4}``) are passed through.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

MOOD_AXES = [
    'valence',
    'arousal',
    'agency_control',
    'threat',
    'engagement',
    'future_expectancy',
    'self_evaluation',
    'affiliation',
    'inhibitory_control',
    'uncertainty',
]

AFFECT_TRAITS = [
    'affective_empathy',
    'cognitive_empathy',
    'harm_aversion',
    'self_control',
]

SEXUAL_AXES = [
    'sex_excitation',
    'sex_inhibition',
    'baseline_libido',
]

SEXUAL_AROUSAL = 'sexual_arousal'

_MOOD = set(MOOD_AXES)
_TRAITS = set(AFFECT_TRAITS)
_SEXUAL = set(SEXUAL_AXES)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value):
        return None
    return float(value)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def axis_value(context: Any, axis: str) -> Optional[float]:
    """Gate-space value of ``axis`` in ``context``, or None if absent."""
    if not isinstance(context, Mapping):
        return None

    if axis in _MOOD:
        raw = _number((context.get('mood_axes') or {}).get(axis))
        if raw is not None:
            return _clamp(raw / 100.0, -1.0, 1.0)
    elif axis in _TRAITS:
        raw = _number((context.get('affect_traits') or {}).get(axis))
        if raw is not None:
            return _clamp(raw / 100.0, 0.0, 1.0)
    elif axis == SEXUAL_AROUSAL:
        raw = _number(context.get(SEXUAL_AROUSAL))
        if raw is not None:
            return _clamp(raw, 0.0, 1.0)
    elif axis in _SEXUAL:
        raw = _number((context.get('sexual_axes') or {}).get(axis))
        if raw is not None:
            # baseline_libido is authored on [-50, 50]
            if axis == 'baseline_libido':
                return _clamp((raw + 50.0) / 100.0, 0.0, 1.0)
            return _clamp(raw / 100.0, 0.0, 1.0)

    # Flat context already in gate space
    return _number(context.get(axis))


def flatten_context(context: Any) -> Dict[str, float]:
    """All resolvable axes of a context as ``axis -> gate-space value``."""
    if not isinstance(context, Mapping):
        return {}

    flat: Dict[str, float] = {}
    for key, value in context.items():
        if _number(value) is not None and key != SEXUAL_AROUSAL:
            flat[key] = float(value)
    for axis in MOOD_AXES + AFFECT_TRAITS + SEXUAL_AXES + [SEXUAL_AROUSAL]:
        value = axis_value(context, axis)
        if value is not None:
            flat[axis] = value
    return flat


def referenced_axes(weights: Mapping[str, Any], gate_axes: Iterable[str]) -> Set[str]:
    return set(weights or {}) | set(gate_axes or ())


def summarize_context(context: Any, axes: Iterable[str], limit: int = 3) -> str:
    """
    Compact text of the most extreme relevant axes, e.g.
    ``"threat: 0.82, valence: -0.40"``. Only ``axes`` are considered so
    cross-family axes never leak into a summary.
    """
    values: List[tuple] = []
    for axis in sorted(set(axes)):
        value = axis_value(context, axis)
        if value is not None:
            values.append((axis, value))
    values.sort(key=lambda item: abs(item[1]), reverse=True)
    return ", ".join(f"{axis}: {value:.2f}" for axis, value in values[:limit])
