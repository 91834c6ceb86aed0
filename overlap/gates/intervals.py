"""
Gate Intervals
==============

Per-axis reachable ranges implied by conjunctive gates, and the extractor
that turns a GateSpec into an ``axis -> Interval`` map.

An Interval is closed unless a bound is marked strict. Empty ranges are kept
(``unsatisfiable=True``) rather than dropped: an empty gate set is vacuously
a subset of every other gate set.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from overlap.gates.ast import And, Comparison, GateNode, TrueNode

logger = logging.getLogger(__name__)

INF = math.inf


@dataclass(frozen=True)
class Interval:
    lower: float = -INF
    upper: float = INF
    lower_strict: bool = False
    upper_strict: bool = False
    unsatisfiable: bool = False

    @classmethod
    def unconstrained(cls) -> 'Interval':
        return cls()

    @classmethod
    def coerce(cls, value: Any) -> Optional['Interval']:
        """
        Accept an Interval, a ``(lower, upper)`` pair, or a mapping with
        ``lower``/``upper``/``unsatisfiable``. None bounds mean unbounded.
        Returns None for shapes that cannot be read.
        """
        if isinstance(value, Interval):
            return value
        if isinstance(value, Mapping):
            lower = value.get('lower', value.get('min'))
            upper = value.get('upper', value.get('max'))
            flagged = bool(value.get('unsatisfiable', False))
        elif isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
            lower, upper = value
            flagged = False
        else:
            return None
        try:
            lower = -INF if lower is None else float(lower)
            upper = INF if upper is None else float(upper)
        except (TypeError, ValueError):
            return None
        if math.isnan(lower) or math.isnan(upper):
            return None
        return cls(lower=lower, upper=upper, unsatisfiable=flagged or lower > upper)

    @property
    def is_bounded(self) -> bool:
        return self.lower > -INF or self.upper < INF

    @property
    def width(self) -> float:
        if self.unsatisfiable:
            return 0.0
        return self.upper - self.lower

    def intersect(self, operator: str, threshold: float) -> 'Interval':
        """Tighten by one comparison. ``!=`` does not change an interval."""
        lower, upper = self.lower, self.upper
        lower_strict, upper_strict = self.lower_strict, self.upper_strict
        if operator in ('>=', '>', '=='):
            strict = operator == '>'
            if threshold > lower or (threshold == lower and strict):
                lower, lower_strict = threshold, strict
        if operator in ('<=', '<', '=='):
            strict = operator == '<'
            if threshold < upper or (threshold == upper and strict):
                upper, upper_strict = threshold, strict
        empty = lower > upper or (lower == upper and (lower_strict or upper_strict))
        return Interval(lower, upper, lower_strict, upper_strict, self.unsatisfiable or empty)

    def is_subset_of(self, other: 'Interval') -> bool:
        if self.unsatisfiable:
            return True
        if other.unsatisfiable:
            return False
        lower_ok = other.lower < self.lower or (
            other.lower == self.lower and (self.lower_strict or not other.lower_strict)
        )
        upper_ok = self.upper < other.upper or (
            self.upper == other.upper and (self.upper_strict or not other.upper_strict)
        )
        return lower_ok and upper_ok

    def is_disjoint_from(self, other: 'Interval') -> bool:
        """Touching closed bounds overlap; a strict bound at the touch point does not."""
        if self.unsatisfiable or other.unsatisfiable:
            return False
        return _separated(self.upper, self.upper_strict, other.lower, other.lower_strict) or \
            _separated(other.upper, other.upper_strict, self.lower, self.lower_strict)

    def overlap_ratio(self, other: 'Interval', domain=(-1.0, 1.0)) -> float:
        """
        Intersection-over-union of two ranges, each clipped to ``domain``
        (normalized axis space). Identical intervals give 1.0.
        """
        if self == other:
            return 1.0
        if self.unsatisfiable or other.unsatisfiable or self.is_disjoint_from(other):
            return 0.0
        lo_d, hi_d = domain
        a_lo, a_hi = max(self.lower, lo_d), min(self.upper, hi_d)
        b_lo, b_hi = max(other.lower, lo_d), min(other.upper, hi_d)
        union = max(a_hi, b_hi) - min(a_lo, b_lo)
        if union <= 0:
            return 1.0
        inter = min(a_hi, b_hi) - max(a_lo, b_lo)
        return min(1.0, max(0.0, inter / union))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lower': self.lower,
            'upper': self.upper,
            'unsatisfiable': self.unsatisfiable,
        }

    def __str__(self):
        if self.unsatisfiable:
            return "∅"
        left = '(' if self.lower_strict or self.lower == -INF else '['
        right = ')' if self.upper_strict or self.upper == INF else ']'
        return f"{left}{self.lower}, {self.upper}{right}"


def _separated(upper: float, upper_strict: bool, lower: float, lower_strict: bool) -> bool:
    if upper < lower:
        return True
    return upper == lower and (upper_strict or lower_strict)


def conjuncts(ast: GateNode) -> List[GateNode]:
    """Top-level conjuncts of an AST; TrueNode contributes none."""
    if isinstance(ast, TrueNode):
        return []
    if isinstance(ast, And):
        result = []
        for child in ast.children:
            result.extend(conjuncts(child))
        return result
    return [ast]


def intervals_from_comparisons(comparisons: Sequence[Comparison]) -> Dict[str, Interval]:
    intervals: Dict[str, Interval] = {}
    for comp in comparisons:
        current = intervals.get(comp.axis, Interval.unconstrained())
        intervals[comp.axis] = current.intersect(comp.operator, float(comp.threshold))
    return intervals


def is_interval_comparison(node: GateNode) -> bool:
    return isinstance(node, Comparison) and node.operator != '!='


# =============================================================================
# Constraint Extraction
# =============================================================================

@dataclass
class ConstraintExtraction:
    intervals: Dict[str, Interval] = field(default_factory=dict)
    parse_status: str = 'complete'  # 'complete', 'partial', 'failed'
    parsed_gate_count: int = 0
    total_gate_count: int = 0
    unparsed_gates: List[str] = field(default_factory=list)

    @property
    def parse_info(self) -> Dict[str, Any]:
        return {
            'parse_status': self.parse_status,
            'parsed_gate_count': self.parsed_gate_count,
            'total_gate_count': self.total_gate_count,
            'unparsed_gates': list(self.unparsed_gates),
        }


class GateConstraintExtractor:
    """
    Extract per-axis intervals from a gate specification.

    Only top-level conjuncts that are ordered comparisons (or ``==``)
    contribute intervals. OR / NOT / ``!=`` conjuncts and parse failures are
    reported in ``unparsed_gates``.
    """

    def __init__(self, normalizer=None):
        if normalizer is None:
            from overlap.gates.normalizer import GateASTNormalizer
            normalizer = GateASTNormalizer()
        self.normalizer = normalizer

    def extract(self, gates: Any) -> ConstraintExtraction:
        elements = list(gates) if isinstance(gates, (list, tuple)) else ([] if gates is None else [gates])

        comparisons: List[Comparison] = []
        unparsed: List[str] = []
        total = 0

        for element in elements:
            result = self.normalizer.parse(element)
            if not result.parse_complete:
                total += 1
                unparsed.append(_describe(element))
                continue
            for node in conjuncts(result.ast):
                total += 1
                if is_interval_comparison(node):
                    comparisons.append(node)
                else:
                    unparsed.append(node.to_canonical())

        parsed = total - len(unparsed)
        if parsed == total:
            status = 'complete'
        elif parsed == 0:
            status = 'failed'
        else:
            status = 'partial'

        if unparsed:
            logger.debug(f"Gate extraction {status}: {parsed}/{total} parsed, unparsed={unparsed}")

        return ConstraintExtraction(
            intervals=intervals_from_comparisons(comparisons),
            parse_status=status,
            parsed_gate_count=parsed,
            total_gate_count=total,
            unparsed_gates=unparsed,
        )


def _describe(element: Any) -> str:
    return element if isinstance(element, str) else repr(element)
