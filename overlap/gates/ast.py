"""
Gate Expression AST
===================

Frozen node types for boolean admission gates plus a tokenizer and
recursive-descent parser for the predicate-string form:

    valence >= 0.2 AND (arousal < 0.5 OR NOT threat > 0.3)

Grammar (lowest precedence first):

    or_expr    := and_expr (OR and_expr)*
    and_expr   := unary (AND unary)*
    unary      := NOT unary | primary
    primary    := '(' or_expr ')' | 'true' | comparison
    comparison := AXIS OP NUMBER | NUMBER OP AXIS

Connectives are case-insensitive; ``&&``, ``||`` and ``!`` are accepted as
aliases. ``NUMBER OP AXIS`` is stored with the operator inverted so every
Comparison reads "axis OP threshold".
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import FrozenSet, List, Mapping, Tuple, Union

Number = Union[int, float]

OPERATORS = ('>=', '>', '<=', '<', '==', '!=')

# Swapping operand sides: 0.2 <= x  ->  x >= 0.2
INVERTED_OPERATORS = {
    '>=': '<=',
    '>': '<',
    '<=': '>=',
    '<': '>',
    '==': '==',
    '!=': '!=',
}


def format_threshold(value: Number) -> str:
    if isinstance(value, int):
        return str(value)
    return repr(float(value))


# ---------------------------------------------------------------------------
# AST Node Types
# ---------------------------------------------------------------------------

class GateNode(ABC):
    """Base class for gate AST nodes."""

    @abstractmethod
    def to_canonical(self) -> str:
        """Serialize to canonical predicate string."""
        ...

    @abstractmethod
    def axes(self) -> FrozenSet[str]:
        """Axes referenced anywhere in the expression."""
        ...

    @abstractmethod
    def evaluate(self, context: Mapping[str, float]) -> bool:
        ...

    def sort_key(self) -> Tuple[str, str]:
        axes = self.axes()
        return (min(axes) if axes else '', self.to_canonical())


@dataclass(frozen=True)
class TrueNode(GateNode):
    """The "no constraint" sentinel."""

    def to_canonical(self) -> str:
        return "true"

    def axes(self) -> FrozenSet[str]:
        return frozenset()

    def evaluate(self, context: Mapping[str, float]) -> bool:
        return True


@dataclass(frozen=True)
class Comparison(GateNode):
    """Single linear threshold predicate: ``axis operator threshold``."""
    axis: str
    operator: str
    threshold: Number

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f"Unknown operator {self.operator!r}")

    def to_canonical(self) -> str:
        return f"{self.axis} {self.operator} {format_threshold(self.threshold)}"

    def axes(self) -> FrozenSet[str]:
        return frozenset({self.axis})

    def evaluate(self, context: Mapping[str, float]) -> bool:
        value = context.get(self.axis) if isinstance(context, Mapping) else None
        # Unconstrained axis is vacuously satisfied
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return True
        op = self.operator
        if op == '>=':
            return value >= self.threshold
        if op == '>':
            return value > self.threshold
        if op == '<=':
            return value <= self.threshold
        if op == '<':
            return value < self.threshold
        if op == '==':
            return value == self.threshold
        return value != self.threshold


@dataclass(frozen=True)
class And(GateNode):
    """Conjunction (n-ary)."""
    children: Tuple[GateNode, ...]

    def to_canonical(self) -> str:
        parts = []
        for child in self.children:
            s = child.to_canonical()
            if isinstance(child, Or):
                s = f"({s})"
            parts.append(s)
        return " AND ".join(parts)

    def axes(self) -> FrozenSet[str]:
        result: FrozenSet[str] = frozenset()
        for child in self.children:
            result = result | child.axes()
        return result

    def evaluate(self, context: Mapping[str, float]) -> bool:
        return all(child.evaluate(context) for child in self.children)


@dataclass(frozen=True)
class Or(GateNode):
    """Disjunction (n-ary)."""
    children: Tuple[GateNode, ...]

    def to_canonical(self) -> str:
        return " OR ".join(child.to_canonical() for child in self.children)

    def axes(self) -> FrozenSet[str]:
        result: FrozenSet[str] = frozenset()
        for child in self.children:
            result = result | child.axes()
        return result

    def evaluate(self, context: Mapping[str, float]) -> bool:
        return any(child.evaluate(context) for child in self.children)


@dataclass(frozen=True)
class Not(GateNode):
    """Negation."""
    operand: GateNode

    def to_canonical(self) -> str:
        return f"NOT ({self.operand.to_canonical()})"

    def axes(self) -> FrozenSet[str]:
        return self.operand.axes()

    def evaluate(self, context: Mapping[str, float]) -> bool:
        return not self.operand.evaluate(context)


TRUE = TrueNode()


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

class TokenKind(Enum):
    AXIS = auto()
    NUMBER = auto()
    OP = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    TRUE = auto()
    LPAREN = auto()
    RPAREN = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    pos: int


_KEYWORDS = {
    'and': TokenKind.AND,
    'or': TokenKind.OR,
    'not': TokenKind.NOT,
    'true': TokenKind.TRUE,
}

_TOKEN_PATTERNS = [
    (r"\s+", None),
    (r"[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?", TokenKind.NUMBER),
    (r"[A-Za-z_][A-Za-z0-9_.]*", TokenKind.AXIS),
    (r">=|<=|==|!=|>|<|=", TokenKind.OP),
    (r"&&", TokenKind.AND),
    (r"\|\|", TokenKind.OR),
    (r"!", TokenKind.NOT),
    (r"\(", TokenKind.LPAREN),
    (r"\)", TokenKind.RPAREN),
]

_COMPILED_PATTERNS = [(re.compile(p), k) for p, k in _TOKEN_PATTERNS]


def tokenize(s: str) -> List[Token]:
    """Tokenize a gate predicate string."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(s):
        for pattern, kind in _COMPILED_PATTERNS:
            m = pattern.match(s, pos)
            if m:
                if kind is TokenKind.AXIS:
                    kind = _KEYWORDS.get(m.group().lower(), TokenKind.AXIS)
                if kind is not None:
                    tokens.append(Token(kind, m.group(), pos))
                pos = m.end()
                break
        else:
            raise ValueError(f"Unexpected character at position {pos}: {s[pos]!r}")
    tokens.append(Token(TokenKind.EOF, "", pos))
    return tokens


def parse_number(text: str) -> Number:
    if re.fullmatch(r"[-+]?\d+", text):
        return int(text)
    return float(text)


# ---------------------------------------------------------------------------
# Recursive Descent Parser
# ---------------------------------------------------------------------------

class Parser:
    """Recursive descent parser for gate predicate strings."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def consume(self, kind: TokenKind) -> Token:
        tok = self.current()
        if tok.kind != kind:
            raise ValueError(f"Expected {kind.name}, got {tok.kind.name} at position {tok.pos}")
        self.pos += 1
        return tok

    def parse(self) -> GateNode:
        if self.current().kind == TokenKind.EOF:
            raise ValueError("Empty gate expression")
        expr = self.parse_or()
        if self.current().kind != TokenKind.EOF:
            tok = self.current()
            raise ValueError(f"Unexpected token {tok.value!r} at position {tok.pos}")
        return expr

    def parse_or(self) -> GateNode:
        children = [self.parse_and()]
        while self.current().kind == TokenKind.OR:
            self.consume(TokenKind.OR)
            children.append(self.parse_and())
        if len(children) == 1:
            return children[0]
        return Or(tuple(children))

    def parse_and(self) -> GateNode:
        children = [self.parse_unary()]
        while self.current().kind == TokenKind.AND:
            self.consume(TokenKind.AND)
            children.append(self.parse_unary())
        if len(children) == 1:
            return children[0]
        return And(tuple(children))

    def parse_unary(self) -> GateNode:
        if self.current().kind == TokenKind.NOT:
            self.consume(TokenKind.NOT)
            return Not(self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> GateNode:
        tok = self.current()
        if tok.kind == TokenKind.LPAREN:
            self.consume(TokenKind.LPAREN)
            expr = self.parse_or()
            self.consume(TokenKind.RPAREN)
            return expr
        if tok.kind == TokenKind.TRUE:
            self.consume(TokenKind.TRUE)
            return TRUE
        if tok.kind == TokenKind.AXIS:
            axis = self.consume(TokenKind.AXIS).value
            op = self._operator()
            threshold = parse_number(self.consume(TokenKind.NUMBER).value)
            return Comparison(axis, op, threshold)
        if tok.kind == TokenKind.NUMBER:
            threshold = parse_number(self.consume(TokenKind.NUMBER).value)
            op = self._operator()
            axis = self.consume(TokenKind.AXIS).value
            return Comparison(axis, INVERTED_OPERATORS[op], threshold)
        raise ValueError(f"Unexpected token {tok.value!r} at position {tok.pos}")

    def _operator(self) -> str:
        op = self.consume(TokenKind.OP).value
        return '==' if op == '=' else op


def parse_predicate(s: str) -> GateNode:
    """Parse a gate predicate string into an AST (not normalized)."""
    return Parser(tokenize(s)).parse()
