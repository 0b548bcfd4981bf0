# opt/orient/base.py
from __future__ import annotations

from abc import ABC, abstractmethod

from ...aad.core.point import PointSample
from ..line.cursor import LineSearchCursor


class OrientationStrategy(ABC):
    """
    Chooses a search direction from a measurement.

    `orient` returns a cursor positioned at `measurement` whose direction is
    expected to be a descent direction (negative directional derivative).
    """

    @abstractmethod
    def orient(self, subject, measurement: PointSample, monitor) -> LineSearchCursor:
        pass

    def reset(self) -> None:
        """Forget any history accumulated across iterations."""
        pass
