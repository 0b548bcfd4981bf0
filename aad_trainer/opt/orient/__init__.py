from .base import OrientationStrategy
from .gd import GradientDescent
from .lbfgs import LBFGS
from .qqn import QQN, QuadraticLineSearchCursor
from .trust_region import TrustRegionStrategy

__all__ = ["OrientationStrategy", "GradientDescent", "LBFGS", "QQN", "QuadraticLineSearchCursor",
           "TrustRegionStrategy"]
