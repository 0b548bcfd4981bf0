import numpy as np
import pytest

from aad_trainer.aad import DeltaSet, PointSample, StateSet
from aad_trainer.opt import (
    BisectionConfig,
    BisectionSearch,
    FailsafeLineSearchCursor,
    LineSearchCursor,
    LineSearchPoint,
    StaticLearningRate,
)


class FunctionCursor(LineSearchCursor):
    """Probe of a scalar function f(alpha) with derivative df(alpha)."""

    def __init__(self, f, df):
        self.f = f
        self.df = df
        self.calls = 0

    @property
    def direction_type(self):
        return "test"

    def step(self, alpha, monitor):
        self.calls += 1
        point = PointSample(DeltaSet(), StateSet(), float(self.f(alpha)), rate=alpha)
        return LineSearchPoint(point, float(self.df(alpha)))

    def position(self, alpha):
        return DeltaSet()


def test_bisection_quadratic(monitor):
    cursor = FunctionCursor(lambda x: (x - 3.0) ** 2, lambda x: 2.0 * (x - 3.0))
    search = BisectionSearch()
    point = search.step(cursor, monitor)
    assert point.rate == pytest.approx(3.0, abs=0.5)
    assert point.sum < 0.25
    assert cursor.calls < 100


def test_bisection_non_smooth(monitor):
    """Only the derivative sign is used, so a kink is found exactly."""
    cursor = FunctionCursor(lambda x: abs(x - 0.5), lambda x: np.sign(x - 0.5))
    search = BisectionSearch()
    point = search.step(cursor, monitor)
    assert point.rate == pytest.approx(0.5, abs=1e-3)
    assert any(m.startswith("End (at zero)") for m in monitor.messages)


def test_bisection_warm_start(monitor):
    search = BisectionSearch()
    f, df = (lambda x: (x - 3.0) ** 2), (lambda x: 2.0 * (x - 3.0))
    search.step(FunctionCursor(f, df), monitor)
    first_rate = search.current_rate
    assert first_rate > 1.0
    point = search.step(FunctionCursor(f, df), monitor)
    assert point.rate == pytest.approx(3.0, abs=0.1)
    assert search.current_rate != first_rate
    # a fresh strategy starts from the configured rate again
    assert BisectionSearch(BisectionConfig(initial_rate=0.25)).current_rate == 0.25


def test_bisection_gives_up_on_increasing_function(monitor):
    cursor = FunctionCursor(lambda x: x, lambda x: 1.0)
    origin = PointSample(DeltaSet(), StateSet(), 0.0)
    failsafe = FailsafeLineSearchCursor(cursor, origin, monitor)
    BisectionSearch().step(failsafe, monitor)
    best = failsafe.get_best(monitor)
    assert best.mean == 0.0
    assert cursor.calls <= 1 + 102 + 1002


def test_failsafe_keeps_best_point(monitor):
    values = {0.0: 5.0, 1.0: 2.0, 2.0: 3.0, 3.0: 1.0, 4.0: 4.0}
    cursor = FunctionCursor(lambda x: values[x], lambda x: 0.0)
    origin = PointSample(DeltaSet(), StateSet(), 5.0)
    failsafe = FailsafeLineSearchCursor(cursor, origin, monitor)
    for alpha in sorted(values):
        failsafe.step(alpha, monitor)
    best = failsafe.get_best(monitor)
    assert best.mean == 1.0
    assert best.rate == 3.0
    assert "New Minimum: 5.0 > 2.0" in monitor.messages
    assert failsafe.direction_type == "test"


def test_static_rate_halves_until_improvement(monitor):
    cursor = FunctionCursor(lambda x: (x - 3.0) ** 2, lambda x: 2.0 * (x - 3.0))
    point = StaticLearningRate(rate=10.0).step(cursor, monitor)
    assert point.rate == 5.0
    assert point.mean == pytest.approx(4.0)


def test_static_rate_returns_origin_when_nothing_improves(monitor):
    cursor = FunctionCursor(lambda x: x * x, lambda x: 2.0 * x)
    point = StaticLearningRate(rate=1.0, minimum_rate=1e-3).step(cursor, monitor)
    assert point.rate == 0.0
