"""
Gate Implication Evaluator
==========================

Decides subset / superset / disjoint / overlap relationships between two
gate interval maps (``axis -> Interval``) and aggregates them to a pairwise
verdict.

Relation (order matters, first match wins):
    1. equal        A ⟹ B and B ⟹ A
    2. narrower     A ⟹ B only
    3. wider        B ⟹ A only
    4. disjoint     some axis has non-touching, satisfiable ranges
    5. overlapping  everything else

An unsatisfiable axis empties the whole gate set on that side, which then
vacuously implies the other side.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from overlap.gates.intervals import Interval
from overlap.gates.normalizer import GateASTNormalizer

logger = logging.getLogger(__name__)


@dataclass
class ImplicationResult:
    a_implies_b: bool = True
    b_implies_a: bool = True
    relation: str = 'equal'  # 'equal', 'narrower', 'wider', 'disjoint', 'overlapping'
    counter_example_axes: List[str] = field(default_factory=list)
    evidence: List[Dict[str, Any]] = field(default_factory=list)
    is_vacuous: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'a_implies_b': self.a_implies_b,
            'b_implies_a': self.b_implies_a,
            'relation': self.relation,
            'counter_example_axes': list(self.counter_example_axes),
            'evidence': [
                {
                    **ev,
                    'interval_a': ev['interval_a'].to_dict(),
                    'interval_b': ev['interval_b'].to_dict(),
                }
                for ev in self.evidence
            ],
            'is_vacuous': self.is_vacuous,
        }


def _bool(value: bool) -> str:
    return 'true' if value else 'false'


class GateImplicationEvaluator:
    """Pairwise implication over extracted gate intervals."""

    def __init__(self, normalizer: GateASTNormalizer = None):
        self.normalizer = normalizer or GateASTNormalizer()

    def evaluate(self, intervals_a: Any, intervals_b: Any) -> ImplicationResult:
        if not isinstance(intervals_a, Mapping) or not isinstance(intervals_b, Mapping):
            logger.warning(
                f"Invalid interval maps ({type(intervals_a).__name__}, "
                f"{type(intervals_b).__name__}); treating both sides as unconstrained"
            )
            return ImplicationResult(is_vacuous=True)

        map_a = _coerce_map(intervals_a)
        map_b = _coerce_map(intervals_b)

        a_empty = any(iv.unsatisfiable for iv in map_a.values())
        b_empty = any(iv.unsatisfiable for iv in map_b.values())

        evidence = []
        counter_axes = []
        any_disjoint = False
        all_a_in_b = True
        all_b_in_a = True

        for axis in sorted(set(map_a) | set(map_b)):
            iv_a = map_a.get(axis, Interval.unconstrained())
            iv_b = map_b.get(axis, Interval.unconstrained())
            a_in_b = iv_a.is_subset_of(iv_b)
            b_in_a = iv_b.is_subset_of(iv_a)

            all_a_in_b = all_a_in_b and a_in_b
            all_b_in_a = all_b_in_a and b_in_a
            if not (a_in_b and b_in_a):
                counter_axes.append(axis)
            if iv_a.is_disjoint_from(iv_b):
                any_disjoint = True

            evidence.append({
                'axis': axis,
                'interval_a': iv_a,
                'interval_b': iv_b,
                'a_subset_b': a_in_b,
                'b_subset_a': b_in_a,
            })

        a_implies_b = a_empty or all_a_in_b
        b_implies_a = b_empty or all_b_in_a

        if a_implies_b and b_implies_a:
            relation = 'equal'
        elif a_implies_b:
            relation = 'narrower'
        elif b_implies_a:
            relation = 'wider'
        elif any_disjoint:
            relation = 'disjoint'
        else:
            relation = 'overlapping'

        msg = (
            f"Gate implication: A→B={_bool(a_implies_b)}, B→A={_bool(b_implies_a)}, "
            f"relation={relation}, axes={len(evidence)}"
        )
        if a_empty or b_empty:
            sides = [s for s, empty in (('A', a_empty), ('B', b_empty)) if empty]
            msg += f", unsatisfiable side(s): {','.join(sides)}"
        logger.debug(msg)

        return ImplicationResult(
            a_implies_b=a_implies_b,
            b_implies_a=b_implies_a,
            relation=relation,
            counter_example_axes=counter_axes,
            evidence=evidence,
            is_vacuous=a_empty or b_empty,
        )

    def check_implication(self, gate_a: Any, gate_b: Any) -> Dict[str, Any]:
        """
        Decide A ⟹ B directly from gate specifications.

        ``confidence`` is 'deterministic' only when both gates parsed fully;
        otherwise the verdict is computed on what parsed and flagged 'unknown'.
        """
        parsed_a = self.normalizer.parse(gate_a)
        parsed_b = self.normalizer.parse(gate_b)
        verdict = self.normalizer.check_implication(parsed_a.ast, parsed_b.ast)

        parse_complete = parsed_a.parse_complete and parsed_b.parse_complete
        errors = [f"A: {e}" for e in parsed_a.errors] + [f"B: {e}" for e in parsed_b.errors]
        return {
            'implies': verdict['implies'],
            'is_vacuous': verdict['is_vacuous'],
            'parse_complete': parse_complete,
            'confidence': 'deterministic' if parse_complete else 'unknown',
            'parse_errors': errors,
        }

    def describe_gate(self, gate: Any) -> str:
        parsed = self.normalizer.parse(gate)
        if not parsed.parse_complete:
            return f"[Unparseable gate: {', '.join(parsed.errors)}]"
        return self.normalizer.to_string(parsed.ast)


def _coerce_map(intervals: Mapping) -> Dict[str, Interval]:
    result = {}
    for axis, value in intervals.items():
        interval = Interval.coerce(value)
        if interval is None:
            logger.debug(f"Ignoring unreadable interval for axis {axis!r}: {value!r}")
            continue
        result[str(axis)] = interval
    return result
