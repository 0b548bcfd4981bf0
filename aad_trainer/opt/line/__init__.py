from .cursor import (
    FailsafeLineSearchCursor,
    LineSearchCursor,
    LineSearchPoint,
    SimpleLineSearchCursor,
)
from .bisection import BisectionConfig, BisectionSearch, LineSearchStrategy, StaticLearningRate

__all__ = [
    "LineSearchPoint", "LineSearchCursor", "SimpleLineSearchCursor", "FailsafeLineSearchCursor",
    "LineSearchStrategy", "BisectionConfig", "BisectionSearch", "StaticLearningRate",
]
