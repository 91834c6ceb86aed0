"""Stage C: overlap classification."""

from .rules import (
    OverlapType,
    RuleInput,
    RuleMatch,
    ClassificationRule,
    CLASSIFICATION_PRIORITY,
)
from .classifier import OverlapClassifier, CLASSIFICATION_TYPES

__all__ = [
    "OverlapType",
    "RuleInput",
    "RuleMatch",
    "ClassificationRule",
    "CLASSIFICATION_PRIORITY",
    "OverlapClassifier",
    "CLASSIFICATION_TYPES",
]
