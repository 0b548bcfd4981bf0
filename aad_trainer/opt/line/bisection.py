# opt/line/bisection.py
"""
Line search strategies.

BisectionSearch
---------------
Derivative-sign bisection over the step size, in two phases:

1. Bracketing. Starting from a left edge at 0 and a soft right bound of
   2 * current_rate, probe the middle of [left, min(hard, soft)]:
       value increased          -> probe becomes the hard right bound
       value decreased, f' < 0  -> probe becomes the left edge, soft bound doubles
       otherwise                -> bracket found
   If the hard bound collapses onto the left edge (relative width below
   bracket_tol) the search gives up and returns the left point.

2. Bisection on the sign of the directional derivative until it vanishes,
   an edge stops moving, or the relative width of the interval drops below
   10**narrow_tol.

Fast path: when the bracket's right probe lies beyond the current rate,
that probe is accepted without bisection and becomes the new rate.
`current_rate` is persistent state of the strategy object and warm-starts
the next call.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ...aad.core.point import PointSample
from .cursor import LineSearchCursor

logger = logging.getLogger(__name__)


class LineSearchStrategy(ABC):

    @abstractmethod
    def step(self, cursor: LineSearchCursor, monitor) -> PointSample:
        """Search along `cursor` and return the accepted point."""
        pass


@dataclass
class BisectionConfig:
    """Tolerances and caps of BisectionSearch."""
    initial_rate: float = 1.0
    zero_tol: float = 1e-20            # |f'| below this counts as zero
    bracket_tol: float = 1e-3          # relative width of a collapsed bracket
    narrow_tol: float = -1.0           # log10 of the relative width that ends bisection
    max_bracket_iterations: int = 100
    max_bisect_iterations: int = 1000


def _relative_width(left: float, right: float) -> float:
    scale = left + right
    if scale == 0:
        return math.inf
    return (right - left) * 2.0 / scale


class BisectionSearch(LineSearchStrategy):

    def __init__(self, config: Optional[BisectionConfig] = None):
        self.config = config or BisectionConfig()
        self.current_rate = self.config.initial_rate

    def step(self, cursor: LineSearchCursor, monitor) -> PointSample:
        cfg = self.config

        left_x = 0.0
        start = cursor.step(left_x, monitor)
        monitor.log("F(%s) = %s" % (left_x, start))
        left_value = start.point.sum

        right_right = math.inf
        right_soft = self.current_rate * 2
        loop_count = 0
        while True:
            right_x = (left_x + min(right_right, right_soft)) / 2
            right_point = cursor.step(right_x, monitor)
            monitor.log("F(%s)@%s = %s" % (right_x, loop_count, right_point))
            right_value = right_point.point.sum
            if loop_count > cfg.max_bracket_iterations:
                break
            loop_count += 1
            if _relative_width(left_x, right_right) < cfg.bracket_tol:
                monitor.log("Right limit is nonconvergent at %s/%s" % (left_x, right_right))
                return cursor.step(left_x, monitor).point
            if right_value > left_value:
                right_right = right_x
                monitor.log("Right is at most %s" % right_x)
            elif right_point.derivative < 0:
                right_soft *= 2.0
                left_value = right_value
                left_x = right_x
                monitor.log("Right is at least %s" % right_x)
            else:
                break

        if self.current_rate < right_x:
            logger.debug("accepting bracket probe %s, rate %s -> %s", right_x, self.current_rate, right_x)
            self.current_rate = right_x
            return right_point.point

        loop_count = 0
        while True:
            this_x = (right_x + left_x) / 2
            point = cursor.step(this_x, monitor)
            monitor.log("F(%s) = %s" % (this_x, point))
            if loop_count > cfg.max_bisect_iterations:
                return point.point
            loop_count += 1
            if point.derivative < -cfg.zero_tol:
                if left_x == this_x:
                    monitor.log("End (static left) at %s" % this_x)
                    self.current_rate = this_x
                    return point.point
                left_x = this_x
            elif point.derivative > cfg.zero_tol:
                if right_x == this_x:
                    monitor.log("End (static right) at %s" % this_x)
                    self.current_rate = this_x
                    return point.point
                right_x = this_x
            else:
                monitor.log("End (at zero) at %s" % this_x)
                self.current_rate = this_x
                return point.point
            width = _relative_width(left_x, right_x)
            if width <= 0 or math.log10(width) < cfg.narrow_tol:
                monitor.log("End (narrow range) at %s to %s" % (right_x, left_x))
                self.current_rate = this_x
                return point.point


class StaticLearningRate(LineSearchStrategy):
    """
    Fixed step size. A probe that does not decrease the loss halves the rate
    for this call; below `minimum_rate` the origin is returned.
    """

    def __init__(self, rate: float = 1e-4, minimum_rate: float = 1e-12):
        self.rate = rate
        self.minimum_rate = minimum_rate

    def step(self, cursor: LineSearchCursor, monitor) -> PointSample:
        this_rate = self.rate
        start = cursor.step(0.0, monitor)
        start_value = start.point.mean
        while True:
            probe = cursor.step(this_rate, monitor)
            value = probe.point.mean
            if not math.isfinite(value):
                value = math.inf
            if value + start.derivative * 1e-15 > start_value:
                monitor.log("Non-decreasing step. %s > %s at %s" % (value, start_value, this_rate))
                this_rate /= 2
                if this_rate < self.minimum_rate:
                    return start.point
            else:
                return probe.point
