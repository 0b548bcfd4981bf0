import numpy as np
import pytest

from aad_trainer.opt import MultivariateOptimizer


def test_minimizes_each_axis():
    f = lambda x: (x[0] - 2.0) ** 2 + (x[1] - 5.0) ** 2 + 1.0
    x, value = MultivariateOptimizer(f).minimize(dims=2)
    np.testing.assert_allclose(x, [2.0, 5.0], atol=1e-3)
    assert value == pytest.approx(1.0, abs=1e-5)


@pytest.mark.parametrize("error", [ValueError, KeyError, TypeError])
def test_failing_axis_counts_as_no_improvement(error):
    def f(x):
        if x[1] != 0.0:
            raise error("axis 1")
        return (x[0] - 3.0) ** 2

    x, value = MultivariateOptimizer(f, max_rate=10.0).minimize(dims=2)
    assert x[0] == pytest.approx(3.0, abs=1e-3)
    assert x[1] == 0.0
    assert value < 9.0


def test_returns_initial_when_nothing_improves():
    opt = MultivariateOptimizer(lambda x: float(np.sum(x ** 2)))
    x, value = opt.minimize(dims=3)
    np.testing.assert_array_equal(x, np.zeros(3))
    assert value == 0.0
    assert opt.dist(np.zeros(2), np.array([3.0, 4.0])) == pytest.approx(np.sqrt(12.5))
    with pytest.raises(ValueError):
        opt.minimize()
