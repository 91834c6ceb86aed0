"""Gate expression parsing, normalization and implication."""

from .ast import (
    GateNode,
    TrueNode,
    Comparison,
    And,
    Or,
    Not,
    TRUE,
    parse_predicate,
)
from .intervals import (
    Interval,
    ConstraintExtraction,
    GateConstraintExtractor,
)
from .normalizer import GateASTNormalizer, ParseResult
from .implication import GateImplicationEvaluator, ImplicationResult

__all__ = [
    "GateNode",
    "TrueNode",
    "Comparison",
    "And",
    "Or",
    "Not",
    "TRUE",
    "parse_predicate",
    "Interval",
    "ConstraintExtraction",
    "GateConstraintExtractor",
    "GateASTNormalizer",
    "ParseResult",
    "GateImplicationEvaluator",
    "ImplicationResult",
]
