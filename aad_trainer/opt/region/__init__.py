from .distance import DistanceConstraint, TrustRegion

__all__ = ["TrustRegion", "DistanceConstraint"]
