# opt/orient/lbfgs.py
"""
Limited-memory BFGS orientation.

History holds improving, finite measurements ordered from worst to best
mean loss. With more than `min_history` points, the two-loop recursion
turns the current gradient g into an approximation of H·g built from the
displacement pairs

    s_i = w_{i+1} - w_i        y_i = g_{i+1} - g_i

and the direction -H·g is used when it is a descent direction. Otherwise the
best history point is dropped and the recursion retried; with too little
history the orientation falls back to steepest descent ("GD").
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ...aad.core.delta import DeltaSet
from ...aad.core.point import PointSample
from ..line.cursor import SimpleLineSearchCursor
from .base import OrientationStrategy

logger = logging.getLogger(__name__)


class _RecordingCursor(SimpleLineSearchCursor):
    """Cursor whose probes are offered to the LBFGS history."""

    def __init__(self, owner: "LBFGS", subject, origin, direction, direction_type):
        super().__init__(subject, origin, direction, direction_type=direction_type)
        self.owner = owner

    def step(self, alpha, monitor):
        point = super().step(alpha, monitor)
        self.owner.add_to_history(point.point, monitor)
        return point


class LBFGS(OrientationStrategy):

    def __init__(self, min_history: int = 3, max_history: int = 30, verbose: bool = True):
        if min_history < 1 or max_history < min_history:
            raise ValueError(f"invalid history bounds {min_history}..{max_history}")
        self.min_history = min_history
        self.max_history = max_history
        self.verbose = verbose
        self.history: List[PointSample] = []

    def _log(self, monitor, msg: str) -> None:
        if self.verbose:
            monitor.log(msg)

    def add_to_history(self, measurement: PointSample, monitor) -> None:
        if not measurement.delta.is_finite():
            self._log(monitor, "Corrupt gradient measurement")
        elif not measurement.weights.is_finite():
            self._log(monitor, "Corrupt weights measurement")
        elif any(x.sum <= measurement.sum for x in self.history):
            best = min(x.sum for x in self.history)
            self._log(monitor, "Non-optimal measurement %s < %s. Total: %s"
                      % (measurement.sum, best, len(self.history)))
        else:
            self.history.append(measurement.copy_full())
            self.history.sort(key=lambda x: -x.mean)
            self._log(monitor, "Adding measurement to history. Total: %s" % len(self.history))

    def reset(self) -> None:
        self.history.clear()

    # ------------------------------------------------------------------ #
    # two-loop recursion
    # ------------------------------------------------------------------ #
    def _two_loop(self, gradient: DeltaSet, history: List[PointSample]) -> DeltaSet:
        p = gradient.copy()
        n = len(history)
        alphas = [0.0] * n
        for i in range(n - 2, -1, -1):
            sd = history[i + 1].weights.subtract(history[i].weights)
            yd = history[i + 1].delta.subtract(history[i].delta)
            denominator = sd.dot(yd)
            if denominator == 0:
                raise FloatingPointError("Orientation vanished.")
            alphas[i] = p.dot(sd) / denominator
            p = p.subtract(yd.scale(alphas[i]))
            if not p.is_finite():
                raise FloatingPointError("Non-finite value")
        sk = history[-1].weights.subtract(history[-2].weights)
        yk = history[-1].delta.subtract(history[-2].delta)
        p = p.scale(sk.dot(yk) / yk.dot(yk))
        if not p.is_finite():
            raise FloatingPointError("Non-finite value")
        for i in range(n - 1):
            sd = history[i + 1].weights.subtract(history[i].weights)
            yd = history[i + 1].delta.subtract(history[i].delta)
            beta = p.dot(yd) / sd.dot(yd)
            p = p.add(sd.scale(alphas[i] - beta))
            if not p.is_finite():
                raise FloatingPointError("Non-finite value")
        return p.scale(-1.0)

    def _lbfgs(self, measurement: PointSample, monitor, history: List[PointSample]) -> Optional[DeltaSet]:
        while len(history) > self.min_history:
            try:
                direction = self._two_loop(measurement.delta, history)
            except ArithmeticError as e:
                monitor.log("LBFGS Orientation Error: %s" % e)
                direction = None
            if direction is not None:
                gradient = measurement.delta
                cosine = gradient.dot(direction) / (gradient.magnitude() * direction.magnitude() or 1.0)
                if gradient.dot(direction) < 0:
                    monitor.log("Accepted: LBFGS Orientation magnitude: %.3e, gradient %.3e, dot %.3f"
                                % (direction.magnitude(), gradient.magnitude(), cosine))
                    if len(history) != len(self.history):
                        self._log(monitor, "Overwriting history with %s points" % len(history))
                        self.history = list(history)
                    return direction
                monitor.log("Rejected: LBFGS Orientation magnitude: %.3e, gradient %.3e, dot %.3f"
                            % (direction.magnitude(), gradient.magnitude(), cosine))
            monitor.log("Orientation rejected. Popping history element from %s"
                        % ", ".join("%s" % x.mean for x in history))
            history = history[:-1]
        monitor.log("LBFGS Accumulation History: %s points" % len(history))
        return None

    def orient(self, subject, measurement: PointSample, monitor) -> SimpleLineSearchCursor:
        self.add_to_history(measurement, monitor)
        direction = self._lbfgs(measurement, monitor, list(self.history))
        if direction is None:
            cursor = _RecordingCursor(self, subject, measurement, measurement.delta.scale(-1.0), "GD")
        else:
            cursor = _RecordingCursor(self, subject, measurement, direction, "LBFGS")
        limit = self.min_history if direction is None else self.max_history
        while len(self.history) > limit:
            self.history.pop(0)
            self._log(monitor, "Removed measurement from history. Total: %s" % len(self.history))
        logger.debug("orientation %s with %s history points", cursor.direction_type, len(self.history))
        return cursor
