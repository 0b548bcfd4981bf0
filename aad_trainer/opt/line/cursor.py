# opt/line/cursor.py
"""
Line search cursors: re-evaluatable probes along a fixed direction.

A cursor owns an origin `PointSample` and a direction `DeltaSet`. Each call
to `step(alpha)` moves the live parameter buffers to
`origin + alpha * direction`, measures the trainable there, and reports the
directional derivative `gradient · direction` at the new point.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ...aad.core.delta import DeltaSet
from ...aad.core.point import PointSample


@dataclass
class LineSearchPoint:
    point: PointSample
    derivative: float

    def __repr__(self):
        return f"LineSearchPoint({self.point.mean:.6g}, d={self.derivative:.6g})"


class LineSearchCursor(ABC):

    @property
    @abstractmethod
    def direction_type(self) -> str:
        pass

    @abstractmethod
    def step(self, alpha: float, monitor) -> LineSearchPoint:
        """Move to step size `alpha` along the direction and measure."""
        pass

    @abstractmethod
    def position(self, alpha: float) -> DeltaSet:
        """Displacement from the origin at step size `alpha`."""
        pass

    def reset(self) -> None:
        pass


class SimpleLineSearchCursor(LineSearchCursor):
    """
    Straight-line cursor.

    Args:
        subject: Trainable measured at every probe
        origin: Point the search starts from (its weights are restored first)
        direction: Search direction, keyed like the origin's gradient
        region: Optional trust region; when set, every buffer is projected
            through it before evaluation
        direction_type: Label used to select a line search strategy
    """

    def __init__(self, subject, origin: PointSample, direction: DeltaSet,
                 region=None, direction_type: str = "GD"):
        self.subject = subject
        self.origin = origin
        self.direction = direction
        self.region = region
        self._direction_type = direction_type

    @property
    def direction_type(self) -> str:
        return self._direction_type

    @direction_type.setter
    def direction_type(self, value: str) -> None:
        self._direction_type = value

    def position(self, alpha: float) -> DeltaSet:
        return self.direction.scale(alpha)

    def reset(self) -> None:
        self.origin.restore()

    def _move(self, alpha: float) -> None:
        self.origin.restore()
        if self.region is None:
            self.direction.apply(alpha)
            return
        for key, d in self.direction.items():
            if key not in self.origin.weights:
                d.apply(alpha)
                continue
            start = self.origin.weights[key].delta
            candidate = start + alpha * d.delta
            bounded = self.region.project(start.ravel(), candidate.ravel())
            np.copyto(d.target, np.reshape(bounded, d.shape))

    def step(self, alpha: float, monitor) -> LineSearchPoint:
        self._move(alpha)
        sample = self.subject.measure(monitor).with_rate(alpha)
        derivative = sample.delta.dot(self.direction)
        return LineSearchPoint(sample, derivative)


class FailsafeLineSearchCursor(LineSearchCursor):
    """
    Wraps a cursor and keeps the best point seen across all probes.

    The best point only ever improves, so a strategy that overshoots or ends
    on a worse probe cannot lose ground: `get_best` restores the best
    weights and returns that sample.
    """

    def __init__(self, direction: LineSearchCursor, previous_point: PointSample, monitor):
        self.direction = direction
        self.monitor = monitor
        self.best: Optional[PointSample] = previous_point.copy_full()

    @property
    def direction_type(self) -> str:
        return self.direction.direction_type

    def accumulate(self, point: PointSample) -> None:
        if self.best is None or self.best.mean > point.mean:
            self.monitor.log("New Minimum: %s > %s" % (
                None if self.best is None else self.best.mean, point.mean))
            self.best = point.copy_full()

    def get_best(self, monitor=None) -> PointSample:
        self.best.restore()
        return self.best

    def position(self, alpha: float) -> DeltaSet:
        return self.direction.position(alpha)

    def reset(self) -> None:
        self.direction.reset()

    def step(self, alpha: float, monitor) -> LineSearchPoint:
        point = self.direction.step(alpha, monitor)
        self.accumulate(point.point)
        return point
