# opt/multivariate.py
"""
Coordinate-wise search over a small number of variables (e.g. per-layer rates).

Each round optimizes every not-yet-fixed variable on its own with a bounded
scalar minimizer, keeps the single best improvement, and fixes that
variable. A failure while optimizing one variable is logged and counts as
"no improvement on this axis".
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

import numpy as np
from scipy.optimize import minimize_scalar

logger = logging.getLogger(__name__)

PointValue = Tuple[np.ndarray, float]


class MultivariateOptimizer:

    def __init__(self, f: Callable[[np.ndarray], float], max_rate: float = 1e5, verbose: bool = False):
        self.f = f
        self.max_rate = max_rate
        self.verbose = verbose

    def eval(self, x) -> PointValue:
        x = np.asarray(x, dtype=np.float64)
        return x, float(self.f(x))

    def dist(self, last: np.ndarray, next: np.ndarray) -> float:
        """Root-mean-square distance between two positions."""
        if self.verbose:
            logger.debug("%s -> %s", last, next)
        return float(np.sqrt(np.mean((np.asarray(next) - np.asarray(last)) ** 2)))

    def minimize(self, dims: Optional[int] = None, initial: Optional[PointValue] = None) -> PointValue:
        """
        Args:
            dims: Number of variables, starting from the origin
            initial: Starting (x, f(x)) pair instead of the origin

        Returns:
            Best (x, f(x)) found; `initial` when no axis improves.
        """
        if initial is None:
            if dims is None:
                raise ValueError("Either dims or initial is required")
            initial = self.eval(np.zeros(dims))
        current = initial
        remaining = set(range(len(current[0])))
        while remaining:
            candidates = [(j, self._optimize_variable(current, j)) for j in sorted(remaining)]
            improving = [(j, c) for j, c in candidates if c[1] < current[1]]
            if not improving:
                break
            j, current = min(improving, key=lambda jc: jc[1][1])
            remaining.discard(j)
            if self.verbose:
                logger.debug("fixed variable %s: f = %s", j, current[1])
        return current

    def _optimize_variable(self, current: PointValue, dimension: int) -> PointValue:
        x0 = current[0]

        def along(v):
            x = x0.copy()
            x[dimension] = v
            return float(self.f(x))

        try:
            res = minimize_scalar(along, bounds=(0.0, self.max_rate), method="bounded")
            if not np.isfinite(res.fun):
                raise FloatingPointError(f"non-finite value {res.fun}")
            x = x0.copy()
            x[dimension] = res.x
            return x, float(res.fun)
        except Exception as e:
            logger.debug("Error optimizing dimension %s: %s", dimension, e, exc_info=self.verbose)
            return current
