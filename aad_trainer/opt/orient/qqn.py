# opt/orient/qqn.py
"""
Quadratic quasi-Newton orientation.

Blends steepest descent with the LBFGS step along a curved path

    position(t) = (t - t²) · g  +  t² · q

where q is the LBFGS direction and g the negative gradient rescaled to the
magnitude of q. The path leaves the origin along the gradient and reaches
the quasi-Newton point at t = 1. When the two directions already have
about the same magnitude the plain LBFGS cursor is returned.
"""

from __future__ import annotations

import math
from typing import Optional

from ...aad.core.delta import DeltaSet
from ...aad.core.point import PointSample
from ..line.cursor import LineSearchCursor, LineSearchPoint
from .lbfgs import LBFGS


class QuadraticLineSearchCursor(LineSearchCursor):
    """
    Args:
        subject: Trainable measured at every probe
        origin: Point the path starts from
        gradient: Steepest-descent direction, already rescaled
        quasi_newton: Quasi-Newton direction (the path's end point)
        history: Optional LBFGS whose history receives every probe
    """

    direction_type = "QQN"

    def __init__(self, subject, origin: PointSample, gradient: DeltaSet, quasi_newton: DeltaSet,
                 history: Optional[LBFGS] = None):
        self.subject = subject
        self.origin = origin
        self.gradient = gradient
        self.quasi_newton = quasi_newton
        self.history = history

    def position(self, t: float) -> DeltaSet:
        if not math.isfinite(t):
            raise ValueError(f"non-finite path parameter {t}")
        return self.gradient.scale(t - t * t).add(self.quasi_newton.scale(t * t))

    def tangent(self, t: float) -> DeltaSet:
        return self.gradient.scale(1 - 2 * t).add(self.quasi_newton.scale(2 * t))

    def reset(self) -> None:
        self.origin.restore()

    def step(self, t: float, monitor) -> LineSearchPoint:
        displacement = self.position(t)
        self.reset()
        displacement.apply(1.0)
        sample = self.subject.measure(monitor).with_rate(t)
        if self.history is not None:
            self.history.add_to_history(sample, monitor)
        return LineSearchPoint(sample, self.tangent(t).dot(sample.delta))


class QQN(LBFGS):

    def orient(self, subject, measurement: PointSample, monitor) -> LineSearchCursor:
        cursor = super().orient(subject, measurement, monitor)
        quasi_newton = cursor.direction
        gradient = measurement.delta.scale(-1.0)
        qn_mag = quasi_newton.magnitude()
        gd_mag = gradient.magnitude()
        if gd_mag == 0 or abs(qn_mag - gd_mag) / (qn_mag + gd_mag) <= 1e-2:
            return cursor
        monitor.log("Returning Quadratic Cursor %s GD, %s QN" % (gd_mag, qn_mag))
        return QuadraticLineSearchCursor(subject, measurement, gradient.scale(qn_mag / gd_mag),
                                         quasi_newton, history=self)
