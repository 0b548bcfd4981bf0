import json

import numpy as np
import pytest

from aad_trainer.aad import (
    BiasLayer,
    DAGNetwork,
    DeltaSet,
    FullyConnectedLayer,
    ProductInputsLayer,
    SqLossLayer,
    SumInputsLayer,
    SumReducerLayer,
    check_gradients,
    layer_from_json,
    use_settings,
)


def test_fully_connected_forward_and_gradient():
    fc = FullyConnectedLayer(2, 1, weights=np.array([[1.0], [2.0]]))
    x = np.array([[1.0, 1.0], [2.0, 0.0]])
    out = fc.forward(x)
    np.testing.assert_allclose(out.data, [[3.0], [2.0]])
    buffer = DeltaSet()
    out.accumulate(buffer)
    np.testing.assert_allclose(buffer[id(fc.weights)].delta, [[3.0], [1.0]])


def test_fully_connected_rejects_bad_input():
    fc = FullyConnectedLayer(3, 2, seed=0)
    with pytest.raises(ValueError):
        fc.forward(np.zeros((4, 2)))
    with pytest.raises(ValueError):
        FullyConnectedLayer(2, 2, weights=np.zeros((3, 2)))


def test_sq_loss_values():
    loss = SqLossLayer()
    out = loss.forward(np.array([[1.0, 3.0]]), np.array([[0.0, 0.0]]))
    np.testing.assert_allclose(out.data, [[5.0]])
    with pytest.raises(ValueError):
        loss.forward(np.zeros((1, 2)), np.zeros((1, 3)))


def test_reducer_shapes():
    out = SumReducerLayer().forward(np.arange(6, dtype=float).reshape(2, 3))
    np.testing.assert_allclose(out.data, [[3.0], [12.0]])
    with pytest.raises(ValueError):
        SumInputsLayer().forward(np.zeros((1, 2)), np.zeros((1, 3)))


def test_gradients_match_finite_differences():
    """Backward through every reference layer agrees with scipy finite differences."""
    rng = np.random.default_rng(3)
    net = DAGNetwork(input_count=2)
    a = net.add(FullyConnectedLayer(3, 2, seed=1), net.input(0))
    b = net.add(FullyConnectedLayer(3, 2, seed=2), net.input(0))
    biased = net.add(BiasLayer(2, bias=np.array([0.1, -0.2])), b)
    p = net.add(ProductInputsLayer(), a, biased)
    s = net.add(SumInputsLayer(), p, a)
    loss = net.add(SqLossLayer(), s, net.input(1))
    net.add(SumReducerLayer(), loss)
    x = rng.normal(size=(4, 3))
    y = rng.normal(size=(4, 2))
    with use_settings(validate_numerics=True):
        report = check_gradients(net, [x, y], epsilon=1e-7, tolerance=1e-3)
    assert report['n_params'] == 3 * 2 * 2 + 2
    assert report['analytic'].shape == report['numeric'].shape


def test_json_roundtrip_is_lossless():
    fc = FullyConnectedLayer(2, 3, seed=5, name="dense")
    data = json.loads(json.dumps(fc.to_json()))
    rebuilt = layer_from_json(data)
    assert isinstance(rebuilt, FullyConnectedLayer)
    assert rebuilt.id == fc.id
    np.testing.assert_array_equal(rebuilt.weights, fc.weights)
    assert rebuilt.to_json() == fc.to_json()


def test_unknown_layer_tag():
    with pytest.raises(ValueError):
        layer_from_json({'class': 'NoSuchLayer'})
