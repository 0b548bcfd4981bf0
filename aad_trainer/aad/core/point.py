# aad/core/point.py
from __future__ import annotations

from dataclasses import dataclass, replace

from .delta import DeltaSet, StateSet


@dataclass(frozen=True)
class PointSample:
    """
    Measurement at one position in parameter space.

    Attributes
    ----------
    delta   : DeltaSet
        Gradient of the mean loss, consistent with `weights`.
    weights : StateSet
        Snapshot of the parameter values the loss was evaluated at.
    sum     : float
        Summed loss over `count` batch items.
    rate    : float
        Step size along the search direction that produced this point.
    count   : int
        Number of batch items measured.
    """
    delta: DeltaSet
    weights: StateSet
    sum: float
    rate: float = 0.0
    count: int = 1

    @property
    def mean(self) -> float:
        return self.sum / self.count

    def copy_full(self) -> "PointSample":
        """Deep copy of both the gradient and the parameter snapshot."""
        return replace(self, delta=self.delta.copy(), weights=self.weights.copy())

    def with_rate(self, rate: float) -> "PointSample":
        return replace(self, rate=rate)

    def restore(self) -> "PointSample":
        """Write the parameter snapshot back into the live buffers."""
        self.weights.restore()
        return self

    def add(self, other: "PointSample") -> "PointSample":
        """Combine two partial samples (e.g. from batch partitions)."""
        weights = self.weights.copy()
        for key, b in other.weights.items():
            if key not in weights:
                weights._map[key] = b.copy()
        return PointSample(
            delta=DeltaSet.merge(self.delta, other.delta),
            weights=weights,
            sum=self.sum + other.sum,
            rate=self.rate,
            count=self.count + other.count,
        )

    def __repr__(self):
        return f"PointSample(mean={self.mean:.6g}, rate={self.rate:.6g}, count={self.count})"
