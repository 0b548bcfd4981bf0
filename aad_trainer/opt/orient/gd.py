# opt/orient/gd.py
from __future__ import annotations

from ...aad.core.point import PointSample
from ..line.cursor import SimpleLineSearchCursor
from .base import OrientationStrategy


class GradientDescent(OrientationStrategy):
    """Steepest descent: the direction is the negative gradient."""

    def orient(self, subject, measurement: PointSample, monitor) -> SimpleLineSearchCursor:
        direction = measurement.delta.scale(-1.0)
        return SimpleLineSearchCursor(subject, measurement, direction, direction_type="GD")
