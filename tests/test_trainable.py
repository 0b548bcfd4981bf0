import threading

import numpy as np
import pytest

from aad_trainer.aad import DevicePool
from aad_trainer.opt import ArrayTrainable, SampledTrainable
from conftest import build_regression


def _assert_points_close(a, b):
    assert a.count == b.count
    assert a.sum == pytest.approx(b.sum, rel=1e-12)
    assert sorted(a.delta.keys()) == sorted(b.delta.keys())
    for key in a.delta.keys():
        np.testing.assert_allclose(a.delta[key].delta, b.delta[key].delta, rtol=1e-10, atol=1e-12)


def test_parallel_partitions_match_serial(regression_data):
    net, fc = build_regression(np.full((3, 1), 0.3))
    serial = ArrayTrainable(net, regression_data).measure()
    parallel = ArrayTrainable(net, regression_data, batch_size=2, parallelism=4).measure()
    _assert_points_close(serial, parallel)
    assert serial.count == len(regression_data)


def test_gradient_is_of_mean_loss(regression_data):
    """Seeding each item with 1/N makes the gradient match the mean loss."""
    net, fc = build_regression(np.zeros((3, 1)))
    point = ArrayTrainable(net, regression_data).measure()
    x = np.stack([item[0] for item in regression_data])
    y = np.stack([item[1] for item in regression_data])
    expected = x.T @ (2.0 * (x @ fc.weights - y)) / len(x)
    np.testing.assert_allclose(point.delta[id(fc.weights)].delta, expected)
    assert point.mean == pytest.approx(np.mean((x @ fc.weights - y) ** 2))


def test_partial_samples_merge_in_any_order(regression_data):
    net, _ = build_regression(np.full((3, 1), -0.1))
    first = ArrayTrainable(net, regression_data[:8])._eval_items(regression_data[:8], 17)
    second = ArrayTrainable(net, regression_data[8:])._eval_items(regression_data[8:], 17)
    _assert_points_close(first.add(second), second.add(first))


def test_device_pool_scopes_each_partition(regression_data):
    pool = DevicePool(["gpu0"])
    net, _ = build_regression(np.full((3, 1), 0.3))
    serial = ArrayTrainable(net, regression_data).measure()
    pooled = ArrayTrainable(net, regression_data, parallelism=3, device_pool=pool).measure()
    _assert_points_close(serial, pooled)
    assert pool.available() == 1


def test_device_pool_blocks_and_always_releases():
    pool = DevicePool(["gpu0"])
    holding = threading.Event()
    done = threading.Event()

    def hold():
        with pool.acquire():
            holding.set()
            done.wait(5.0)

    worker = threading.Thread(target=hold)
    worker.start()
    holding.wait(5.0)
    with pytest.raises(TimeoutError):
        with pool.acquire(timeout=0.05):
            pass
    done.set()
    worker.join()
    assert pool.available() == 1

    with pytest.raises(RuntimeError):
        with pool.acquire():
            raise RuntimeError("kernel failed")
    assert pool.available() == 1


def test_sampling_is_reproducible(regression_data):
    net, _ = build_regression(np.zeros((3, 1)))
    a = SampledTrainable(net, regression_data, training_size=5, seed=42)
    b = SampledTrainable(net, regression_data, training_size=5, seed=42)
    np.testing.assert_array_equal(a.indices, b.indices)
    first = a.indices.copy()
    assert a.reset_sampling()
    b.reset_sampling()
    np.testing.assert_array_equal(a.indices, b.indices)
    assert not np.array_equal(first, a.indices)
    assert a.measure().count == 5
    assert a.reset_to_full()
    assert a.measure().count == len(regression_data)


def test_empty_and_invalid_configuration():
    net, _ = build_regression(np.zeros((1, 1)))
    with pytest.raises(ValueError):
        ArrayTrainable(net, []).measure()
    with pytest.raises(ValueError):
        ArrayTrainable(net, [], parallelism=0)
