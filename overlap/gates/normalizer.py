"""
Gate AST Normalizer
===================

Single entry point for gate specifications in any of their authored forms:

    "valence >= 0.2 AND arousal < 0.5"              predicate string
    ["valence >= 0.2", {">=": [{"var": "x"}, 1]}]   list, implicitly AND-ed
    {"and": [{"<=": [{"var": "threat"}, 0.2]}]}     JSON-Logic-like tree

Usage:
    normalizer = GateASTNormalizer()
    result = normalizer.parse(prototype.gates)
    if result.parse_complete:
        canonical = normalizer.to_string(normalizer.normalize(result.ast))
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from overlap.gates.ast import (
    INVERTED_OPERATORS,
    OPERATORS,
    TRUE,
    And,
    Comparison,
    GateNode,
    Not,
    Or,
    TrueNode,
    parse_predicate,
)
from overlap.gates.intervals import (
    Interval,
    conjuncts,
    intervals_from_comparisons,
    is_interval_comparison,
)

logger = logging.getLogger(__name__)

# JSON-Logic spellings that map onto the canonical operator set
_JSON_OPERATOR_ALIASES = {
    '===': '==',
    '!==': '!=',
    '=': '==',
}


@dataclass
class ParseResult:
    ast: GateNode = TRUE
    parse_complete: bool = True
    errors: List[str] = field(default_factory=list)


class GateASTNormalizer:
    """Parse, serialize, evaluate, normalize and compare gate expressions."""

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, gate_input: Any) -> ParseResult:
        """
        Parse any supported gate form.

        Failures inside a list are collected per element and do not abort
        the rest of the list. ``parse_complete`` is False iff any error
        occurred.
        """
        if gate_input is None:
            return ParseResult()
        if isinstance(gate_input, GateNode):
            return ParseResult(ast=gate_input)

        if isinstance(gate_input, (list, tuple)):
            children: List[GateNode] = []
            errors: List[str] = []
            for i, element in enumerate(gate_input):
                try:
                    node = self._parse_element(element)
                except ValueError as e:
                    errors.append(f"[{i}] {e}")
                    continue
                if not isinstance(node, TrueNode):
                    children.append(node)
            if errors:
                logger.debug(f"Gate list parsed with {len(errors)} error(s): {errors}")
            return ParseResult(ast=_conjoin(children), parse_complete=not errors, errors=errors)

        try:
            return ParseResult(ast=self._parse_element(gate_input))
        except ValueError as e:
            logger.debug(f"Unparseable gate {gate_input!r}: {e}")
            return ParseResult(ast=TRUE, parse_complete=False, errors=[str(e)])

    def _parse_element(self, element: Any) -> GateNode:
        if isinstance(element, GateNode):
            return element
        if isinstance(element, str):
            if not element.strip():
                return TRUE
            return parse_predicate(element)
        if isinstance(element, Mapping):
            return self._parse_json_logic(element)
        raise ValueError(f"Unsupported gate element type {type(element).__name__}")

    def _parse_json_logic(self, node: Any) -> GateNode:
        if isinstance(node, str):
            return self._parse_element(node)
        if not isinstance(node, Mapping) or len(node) != 1:
            raise ValueError(f"Expected single-operator object, got {node!r}")

        key, args = next(iter(node.items()))
        key = str(key).lower()

        if key in ('and', 'or'):
            if not isinstance(args, (list, tuple)) or not args:
                raise ValueError(f"'{key}' requires a non-empty list")
            children = tuple(self._parse_json_logic(arg) for arg in args)
            if len(children) == 1:
                return children[0]
            return And(children) if key == 'and' else Or(children)

        if key in ('!', 'not'):
            # JSON-Logic wraps unary arguments in a one-element list
            if isinstance(args, (list, tuple)):
                if len(args) != 1:
                    raise ValueError(f"'{key}' takes exactly one operand")
                args = args[0]
            return Not(self._parse_json_logic(args))

        op = _JSON_OPERATOR_ALIASES.get(key, key)
        if op not in OPERATORS:
            raise ValueError(f"Unsupported operator {key!r}")
        if not isinstance(args, (list, tuple)) or len(args) != 2:
            raise ValueError(f"'{key}' requires exactly two operands")

        left, right = args
        left_axis, right_axis = _var_name(left), _var_name(right)
        if left_axis is not None and _is_threshold(right):
            return Comparison(left_axis, op, right)
        if right_axis is not None and _is_threshold(left):
            return Comparison(right_axis, INVERTED_OPERATORS[op], left)
        raise ValueError(f"'{key}' needs one variable and one numeric threshold, got {list(args)!r}")

    # ------------------------------------------------------------------
    # Serialization / evaluation
    # ------------------------------------------------------------------

    def to_string(self, ast: Optional[GateNode]) -> str:
        if ast is None:
            return TRUE.to_canonical()
        return ast.to_canonical()

    def evaluate(self, ast: Optional[GateNode], context: Optional[Mapping[str, float]]) -> bool:
        if ast is None:
            return True
        return ast.evaluate(context if isinstance(context, Mapping) else {})

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(self, ast: Optional[GateNode]) -> GateNode:
        """
        Normalize an AST to canonical form.

        Transformations:
        1. Flatten nested And/Or
        2. Drop True from And; True absorbs an Or
        3. Remove duplicate children
        4. Sort children by axis name, then canonical text
        5. Collapse single-child And/Or to the child
        6. Double negation elimination: NOT (NOT x) -> x
        """
        if ast is None:
            return TRUE
        if isinstance(ast, (Comparison, TrueNode)):
            return ast

        if isinstance(ast, Not):
            inner = self.normalize(ast.operand)
            if isinstance(inner, Not):
                return inner.operand
            return Not(inner)

        if isinstance(ast, And):
            flattened: List[GateNode] = []
            for child in ast.children:
                child = self.normalize(child)
                if isinstance(child, And):
                    flattened.extend(child.children)
                elif not isinstance(child, TrueNode):
                    flattened.append(child)
            return _conjoin(_sorted_unique(flattened))

        if isinstance(ast, Or):
            flattened = []
            for child in ast.children:
                child = self.normalize(child)
                if isinstance(child, TrueNode):
                    return TRUE
                if isinstance(child, Or):
                    flattened.extend(child.children)
                else:
                    flattened.append(child)
            unique = _sorted_unique(flattened)
            if not unique:
                return TRUE
            if len(unique) == 1:
                return unique[0]
            return Or(tuple(unique))

        raise TypeError(f"Unknown gate node type: {type(ast).__name__}")

    # ------------------------------------------------------------------
    # Implication
    # ------------------------------------------------------------------

    def check_implication(self, ast_a: Optional[GateNode], ast_b: Optional[GateNode]) -> Dict[str, bool]:
        """
        Does every context admitted by A also pass B?

        Only conjunctions of comparisons are decided; anything containing
        OR / NOT returns ``implies=False`` (unknown, not disproven).
        """
        a = self.normalize(ast_a)
        b = self.normalize(ast_b)

        if isinstance(b, TrueNode):
            return {'implies': True, 'is_vacuous': True}
        if isinstance(a, TrueNode):
            return {'implies': False, 'is_vacuous': True}

        parts_a, parts_b = conjuncts(a), conjuncts(b)
        if not all(isinstance(n, Comparison) for n in parts_a + parts_b):
            return {'implies': False, 'is_vacuous': False}

        intervals_a = intervals_from_comparisons([n for n in parts_a if is_interval_comparison(n)])
        if any(iv.unsatisfiable for iv in intervals_a.values()):
            return {'implies': True, 'is_vacuous': True}
        intervals_b = intervals_from_comparisons([n for n in parts_b if is_interval_comparison(n)])

        for axis, interval_b in intervals_b.items():
            interval_a = intervals_a.get(axis)
            if interval_a is None or not interval_a.is_subset_of(interval_b):
                return {'implies': False, 'is_vacuous': False}

        for comp in parts_b:
            if comp.operator != '!=' or comp in parts_a:
                continue
            interval_a = intervals_a.get(comp.axis)
            point = Interval(float(comp.threshold), float(comp.threshold))
            if interval_a is None or not interval_a.is_disjoint_from(point):
                return {'implies': False, 'is_vacuous': False}

        return {'implies': True, 'is_vacuous': False}


def _var_name(operand: Any) -> Optional[str]:
    if isinstance(operand, Mapping) and len(operand) == 1 and 'var' in operand:
        name = operand['var']
        if isinstance(name, (list, tuple)) and name:
            name = name[0]
        if isinstance(name, str) and name:
            return name
    return None


def _is_threshold(operand: Any) -> bool:
    return isinstance(operand, (int, float)) and not isinstance(operand, bool) and math.isfinite(operand)


def _sorted_unique(nodes: List[GateNode]) -> List[GateNode]:
    seen = set()
    unique = []
    for node in nodes:
        if node not in seen:
            seen.add(node)
            unique.append(node)
    return sorted(unique, key=lambda n: n.sort_key())


def _conjoin(children: List[GateNode]) -> GateNode:
    if not children:
        return TRUE
    if len(children) == 1:
        return children[0]
    return And(tuple(children))
