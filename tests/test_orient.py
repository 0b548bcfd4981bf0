import numpy as np
import pytest

from aad_trainer.opt import (
    ArrayTrainable,
    DistanceConstraint,
    GradientDescent,
    LBFGS,
    IterativeTrainer,
    OrientationStrategy,
    QQN,
    QuadraticLineSearchCursor,
    TrainerConfig,
    TrustRegionStrategy,
)
from conftest import build_regression


def test_gradient_descent_direction(scalar_problem, monitor):
    net, fc, data = scalar_problem
    trainable = ArrayTrainable(net, data)
    point = trainable.measure()
    cursor = GradientDescent().orient(trainable, point, monitor)
    assert cursor.direction_type == "GD"
    np.testing.assert_allclose(cursor.direction[id(fc.weights)].delta, [[40.0]])
    probe = cursor.step(0.0, monitor)
    assert probe.derivative == pytest.approx(-1600.0)
    cursor.step(0.1, monitor)
    np.testing.assert_allclose(fc.weights, [[4.0]])
    cursor.reset()
    np.testing.assert_allclose(fc.weights, [[0.0]])


def test_lbfgs_history_keeps_only_improving_points(regression_data, monitor):
    net, fc = build_regression(np.zeros((3, 1)))
    trainable = ArrayTrainable(net, regression_data)
    lbfgs = LBFGS(min_history=2, max_history=5)
    cursor = lbfgs.orient(trainable, trainable.measure(), monitor)
    assert cursor.direction_type == "GD"
    assert len(lbfgs.history) == 1
    cursor.step(1e-3, monitor)
    cursor.step(1e3, monitor)
    means = [p.mean for p in lbfgs.history]
    assert means == sorted(means, reverse=True)
    assert len(lbfgs.history) == 2
    lbfgs.reset()
    assert lbfgs.history == []


def test_lbfgs_uses_history_once_available(regression_data, monitor):
    net, fc = build_regression(np.zeros((3, 1)))
    trainable = ArrayTrainable(net, regression_data)
    lbfgs = LBFGS(min_history=2, max_history=10)
    point = trainable.measure()
    for _ in range(3):
        cursor = lbfgs.orient(trainable, point, monitor)
        for alpha in (0.05, 0.1, 0.2):
            cursor.step(alpha, monitor)
        point = min(lbfgs.history, key=lambda p: p.mean)
        point.restore()
    cursor = lbfgs.orient(trainable, point, monitor)
    assert cursor.direction_type == "LBFGS"
    assert point.delta.dot(cursor.direction) < 0


def test_lbfgs_rejects_invalid_bounds():
    with pytest.raises(ValueError):
        LBFGS(min_history=5, max_history=2)


def test_trust_region_requires_straight_cursor(scalar_problem, monitor):
    class Opaque(OrientationStrategy):
        def orient(self, subject, measurement, monitor):
            return object()

    net, fc, data = scalar_problem
    trainable = ArrayTrainable(net, data)
    with pytest.raises(TypeError):
        TrustRegionStrategy(Opaque(), DistanceConstraint(1.0)).orient(trainable, trainable.measure(), monitor)


def test_quadratic_cursor_follows_curved_path(scalar_problem, monitor):
    """position(t) = (t - t²)·g + t²·q, with the derivative taken along the tangent."""
    net, fc, data = scalar_problem
    trainable = ArrayTrainable(net, data)
    point = trainable.measure()
    gradient = point.delta.scale(-1.0 / 8)      # [[5.0]]
    quasi_newton = point.delta.scale(-1.0 / 16)  # [[2.5]]
    cursor = QuadraticLineSearchCursor(trainable, point, gradient, quasi_newton)
    assert cursor.direction_type == "QQN"
    np.testing.assert_allclose(cursor.position(0.5)[id(fc.weights)].delta, [[1.875]])

    assert cursor.step(0.0, monitor).derivative == pytest.approx(-200.0)
    middle = cursor.step(0.5, monitor)
    np.testing.assert_allclose(fc.weights, [[1.875]])
    assert middle.derivative == pytest.approx(-62.5)
    end = cursor.step(1.0, monitor)
    np.testing.assert_allclose(fc.weights, [[2.5]])
    assert end.point.mean == pytest.approx(25.0)
    assert end.derivative == pytest.approx(0.0)
    cursor.reset()
    np.testing.assert_allclose(fc.weights, [[0.0]])
    with pytest.raises(ValueError):
        cursor.position(float("nan"))


def test_qqn_falls_back_to_gradient_descent_without_history(regression_data, monitor):
    net, fc = build_regression(np.zeros((3, 1)))
    trainable = ArrayTrainable(net, regression_data)
    cursor = QQN(min_history=2).orient(trainable, trainable.measure(), monitor)
    assert cursor.direction_type == "GD"


def test_qqn_reduces_regression_loss(regression_data, monitor):
    net, fc = build_regression(np.zeros((3, 1)))
    trainable = ArrayTrainable(net, regression_data)
    initial = trainable.measure().mean
    trainer = IterativeTrainer(trainable, TrainerConfig(max_iterations=8),
                               orientation=QQN(min_history=2, max_history=10), monitor=monitor)
    final = trainer.run()
    assert trainer.iteration >= 1
    assert final < 0.5 * initial
    assert trainable.measure().mean == pytest.approx(final)
