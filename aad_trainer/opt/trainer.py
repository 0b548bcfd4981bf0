# opt/trainer.py
"""
Iterative trainer: measure -> orient -> line search -> commit.

Each iteration
    1. measures the trainable at the current parameters,
    2. asks the orientation for a cursor along a descent direction,
    3. wraps it in a FailsafeLineSearchCursor that remembers the best probe,
    4. runs the line search strategy cached for that direction type,
    5. stops if the best point does not improve on the previous one by more
       than `min_improvement`; otherwise the best point's weights stay
       in the buffers (the commit) and the loop continues.

The loop also ends on timeout, iteration cap, or when the mean loss drops
to `termination_threshold`. Evaluation and commit never overlap.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..aad.core.point import PointSample
from .line.bisection import BisectionSearch, LineSearchStrategy
from .line.cursor import FailsafeLineSearchCursor
from .monitor import Step, TrainingMonitor
from .orient.base import OrientationStrategy
from .orient.lbfgs import LBFGS
from .trainable import Trainable

logger = logging.getLogger(__name__)


@dataclass
class TrainerConfig:
    """Stopping rules of IterativeTrainer."""
    timeout: float = 300.0                  # seconds of wall-clock time
    max_iterations: Optional[int] = None
    termination_threshold: float = 0.0      # stop once mean loss <= this
    min_improvement: float = 0.0            # smaller gains count as convergence
    verbose: bool = False


class IterativeTrainer:
    """
    Usage:
        >>> trainable = ArrayTrainable(network, data)
        >>> trainer = IterativeTrainer(trainable, TrainerConfig(max_iterations=50),
        ...                            orientation=GradientDescent())
        >>> final_loss = trainer.run()
    """

    def __init__(self, subject: Trainable, config: Optional[TrainerConfig] = None,
                 orientation: Optional[OrientationStrategy] = None,
                 line_search_factory: Optional[Callable[[str], LineSearchStrategy]] = None,
                 monitor: Optional[TrainingMonitor] = None):
        self.subject = subject
        self.config = config or TrainerConfig()
        self.orientation = orientation or LBFGS()
        self.line_search_factory = line_search_factory or (lambda direction_type: BisectionSearch())
        self.monitor = monitor or TrainingMonitor(verbose=self.config.verbose)
        self.line_search_strategies: Dict[str, LineSearchStrategy] = {}
        self.iteration = 0

    def measure(self) -> PointSample:
        point = self.subject.measure(self.monitor)
        if not math.isfinite(point.mean):
            raise FloatingPointError(f"Non-finite loss {point.mean} at the current parameters")
        return point

    def _strategy(self, direction_type: str) -> LineSearchStrategy:
        strategy = self.line_search_strategies.get(direction_type)
        if strategy is None:
            strategy = self.line_search_factory(direction_type)
            self.line_search_strategies[direction_type] = strategy
            logger.debug("new line search %s for direction type %r", type(strategy).__name__, direction_type)
        return strategy

    def run(self) -> float:
        """Train until a stopping rule fires; returns the final mean loss."""
        cfg = self.config
        deadline = time.time() + cfg.timeout
        current = self.measure()
        while True:
            if time.time() >= deadline:
                self.monitor.log("Timeout after %s iterations" % self.iteration)
                break
            if cfg.max_iterations is not None and self.iteration >= cfg.max_iterations:
                self.monitor.log("Iteration cap %s reached" % cfg.max_iterations)
                break
            if current.mean <= cfg.termination_threshold:
                self.monitor.log("Loss %s below threshold %s" % (current.mean, cfg.termination_threshold))
                break
            if self.subject.reset_sampling():
                current = self.measure()

            cursor = self.orientation.orient(self.subject, current, self.monitor)
            failsafe = FailsafeLineSearchCursor(cursor, current, self.monitor)
            self._strategy(cursor.direction_type).step(failsafe, self.monitor)
            best = failsafe.get_best(self.monitor)

            if current.mean - best.mean <= cfg.min_improvement:
                self.monitor.log("Iteration %s failed, aborting. Error: %s" % (self.iteration + 1, current.mean))
                current.restore()
                break
            self.iteration += 1
            self.monitor.log("Iteration %s complete. Error: %s" % (self.iteration, best.mean))
            current = best
            self.monitor.on_step_complete(Step(current, self.iteration, time.time()))
        return current.mean
