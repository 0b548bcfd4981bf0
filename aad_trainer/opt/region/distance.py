# opt/region/distance.py
from __future__ import annotations

import math
from abc import ABC, abstractmethod

import numpy as np


class TrustRegion(ABC):
    """Maps a candidate parameter vector into the admissible set around `weights`."""

    @abstractmethod
    def project(self, weights: np.ndarray, point: np.ndarray) -> np.ndarray:
        pass


class DistanceConstraint(TrustRegion):
    """
    Euclidean cap on the displacement of one step.

        project(w, p) = p                              if |p - w| <= max
                        w + (p - w) * max / |p - w|    otherwise

    Stateless: the same arguments always give the same result, and a point
    already inside the region is returned unchanged.
    """

    def __init__(self, max: float = math.inf):
        if max < 0:
            raise ValueError(f"max must be non-negative, got {max}")
        self.max = max

    def length(self, weights: np.ndarray) -> float:
        return float(np.linalg.norm(weights))

    def project(self, weights: np.ndarray, point: np.ndarray) -> np.ndarray:
        weights = np.asarray(weights, dtype=np.float64)
        point = np.asarray(point, dtype=np.float64)
        if weights.shape != point.shape:
            raise ValueError(f"weights shape {weights.shape} != point shape {point.shape}")
        delta = point - weights
        distance = self.length(delta)
        if distance > self.max:
            return weights + delta * (self.max / distance)
        return point

    def __repr__(self):
        return f"DistanceConstraint(max={self.max})"
