# opt/monitor.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from ..aad.core.point import PointSample

logger = logging.getLogger(__name__)


@dataclass
class Step:
    """One committed trainer iteration."""
    point: PointSample
    iteration: int
    time: float


@dataclass
class TrainingMonitor:
    """
    Sink for optimizer progress.

    Every message goes to the module logger at DEBUG; with `verbose` it is
    also printed. Completed steps are kept in `steps`.
    """
    verbose: bool = False
    steps: List[Step] = field(default_factory=list)

    def log(self, msg: str) -> None:
        logger.debug(msg)
        if self.verbose:
            print(msg)

    def on_step_complete(self, step: Step) -> None:
        self.steps.append(step)
        self.log(f"Iteration {step.iteration}: loss={step.point.mean:.6e}, rate={step.point.rate:.3e}")
