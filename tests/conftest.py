import numpy as np
import pytest

from aad_trainer.aad import DAGNetwork, FullyConnectedLayer, SqLossLayer
from aad_trainer.opt import TrainingMonitor


class RecordingMonitor(TrainingMonitor):
    """Monitor that keeps every message for assertions."""

    def __init__(self):
        super().__init__(verbose=False)
        self.messages = []

    def log(self, msg):
        self.messages.append(msg)
        super().log(msg)


def build_regression(weights, bias=None):
    """x -> FullyConnected -> SqLoss(., target); returns (network, fc layer)."""
    weights = np.asarray(weights, dtype=np.float64)
    fc = FullyConnectedLayer(weights.shape[0], weights.shape[1], weights=weights)
    net = DAGNetwork(input_count=2)
    h = net.add(fc, net.input(0))
    net.add(SqLossLayer(), h, net.input(1))
    return net, fc


@pytest.fixture
def monitor():
    return RecordingMonitor()


@pytest.fixture
def scalar_problem():
    """Loss(w) = (2w - 10)^2 at w = 0."""
    net, fc = build_regression([[0.0]])
    data = [(np.array([2.0]), np.array([10.0]))]
    return net, fc, data


@pytest.fixture
def regression_data():
    rng = np.random.default_rng(7)
    x = rng.normal(size=(17, 3))
    true_w = np.array([[1.5], [-2.0], [0.5]])
    y = x @ true_w
    return [(x[i], y[i]) for i in range(len(x))]
