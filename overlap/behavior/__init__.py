"""Stage B: behavioral comparison of prototype pairs."""

from .evaluator import BehavioralOverlapEvaluator, CHUNK_SIZE
from .vectors import (
    PrototypeVector,
    SharedContextPoolGenerator,
    PrototypeVectorEvaluator,
    PrototypeProfileCalculator,
)
from .sampling import (
    UniformStateGenerator,
    DefaultContextBuilder,
    ASTGateChecker,
    WeightedIntensityCalculator,
)
from .context import (
    MOOD_AXES,
    AFFECT_TRAITS,
    SEXUAL_AXES,
    axis_value,
    flatten_context,
    summarize_context,
)

__all__ = [
    "BehavioralOverlapEvaluator",
    "CHUNK_SIZE",
    "PrototypeVector",
    "SharedContextPoolGenerator",
    "PrototypeVectorEvaluator",
    "PrototypeProfileCalculator",
    "UniformStateGenerator",
    "DefaultContextBuilder",
    "ASTGateChecker",
    "WeightedIntensityCalculator",
    "MOOD_AXES",
    "AFFECT_TRAITS",
    "SEXUAL_AXES",
    "axis_value",
    "flatten_context",
    "summarize_context",
]
