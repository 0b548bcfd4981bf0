"""
Optimization on top of the evaluation engine.

    Trainable, ArrayTrainable, SampledTrainable : measure loss + gradient
    IterativeTrainer, TrainerConfig             : the outer training loop
    TrainingMonitor, Step                       : progress reporting
    MultivariateOptimizer                       : coordinate-wise scalar search
    line, orient, region                        : line search, directions, trust regions
"""

from .line import (
    BisectionConfig,
    BisectionSearch,
    FailsafeLineSearchCursor,
    LineSearchCursor,
    LineSearchPoint,
    LineSearchStrategy,
    SimpleLineSearchCursor,
    StaticLearningRate,
)
from .region import DistanceConstraint, TrustRegion
from .orient import (
    GradientDescent,
    LBFGS,
    OrientationStrategy,
    QQN,
    QuadraticLineSearchCursor,
    TrustRegionStrategy,
)
from .monitor import Step, TrainingMonitor
from .trainable import ArrayTrainable, SampledTrainable, Trainable
from .trainer import IterativeTrainer, TrainerConfig
from .multivariate import MultivariateOptimizer

__all__ = [
    "LineSearchPoint", "LineSearchCursor", "SimpleLineSearchCursor", "FailsafeLineSearchCursor",
    "LineSearchStrategy", "BisectionConfig", "BisectionSearch", "StaticLearningRate",
    "TrustRegion", "DistanceConstraint",
    "OrientationStrategy", "GradientDescent", "LBFGS", "QQN", "QuadraticLineSearchCursor",
    "TrustRegionStrategy",
    "Step", "TrainingMonitor",
    "Trainable", "ArrayTrainable", "SampledTrainable",
    "IterativeTrainer", "TrainerConfig",
    "MultivariateOptimizer",
]
