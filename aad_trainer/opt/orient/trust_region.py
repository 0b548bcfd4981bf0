# opt/orient/trust_region.py
from __future__ import annotations

from ...aad.core.point import PointSample
from ..line.cursor import SimpleLineSearchCursor
from ..region.distance import TrustRegion
from .base import OrientationStrategy


class TrustRegionStrategy(OrientationStrategy):
    """
    Wraps another orientation so that every probe of its cursor is projected
    through `region` before the trainable is evaluated.

    The direction type gains a "+Trust" suffix, so the trainer keeps a
    separate line search state for bounded searches.
    """

    def __init__(self, inner: OrientationStrategy, region: TrustRegion):
        self.inner = inner
        self.region = region

    def orient(self, subject, measurement: PointSample, monitor) -> SimpleLineSearchCursor:
        cursor = self.inner.orient(subject, measurement, monitor)
        if not isinstance(cursor, SimpleLineSearchCursor):
            raise TypeError(f"Cannot bound cursor of type {type(cursor).__name__}")
        cursor.region = self.region
        cursor.direction_type = cursor.direction_type + "+Trust"
        return cursor

    def reset(self) -> None:
        self.inner.reset()
