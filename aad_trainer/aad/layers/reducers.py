# aad/layers/reducers.py
"""
Stateless combinators.

    SumInputsLayer     : y = x_1 + ... + x_n          (same shapes)
    ProductInputsLayer : y = x_1 * ... * x_n          (elementwise)
    SumReducerLayer    : y[b] = sum_j x[b, j]         output (batch, 1)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np

from ..core.delta import DeltaSet
from ..core.layer import Layer, check_arity, check_batch, register_layer
from ..core.result import Backward, Result, liveness


def _check_same_shape(layer: Layer, inputs) -> None:
    if not inputs:
        raise ValueError(f"{layer.name}: needs at least one input")
    shapes = {x.data.shape for x in inputs}
    if len(shapes) != 1:
        raise ValueError(f"{layer.name}: input shapes differ {sorted(shapes)}")


@dataclass
class _SumInputsBackward(Backward):
    inputs: List[Result]

    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        for x in self.inputs:
            if x.is_alive():
                x.accumulate(buffer, delta)


@register_layer
class SumInputsLayer(Layer):
    """Elementwise sum of any number of same-shaped inputs."""

    def eval(self, *inputs: Result) -> Result:
        _check_same_shape(self, inputs)
        out = np.sum([x.data for x in inputs], axis=0)
        return Result(out, _SumInputsBackward(list(inputs)), alive=liveness(self, inputs))


@dataclass
class _ProductInputsBackward(Backward):
    inputs: List[Result]

    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        # all passbacks are computed first: an input may be released once it
        # has received its last delta
        values = [x.data for x in self.inputs]
        passbacks = []
        for i, x in enumerate(self.inputs):
            if not x.is_alive():
                continue
            others = delta.copy()
            for j, v in enumerate(values):
                if j != i:
                    others *= v
            passbacks.append((x, others))
        for x, passback in passbacks:
            x.accumulate(buffer, passback)


@register_layer
class ProductInputsLayer(Layer):
    """Elementwise product of any number of same-shaped inputs."""

    def eval(self, *inputs: Result) -> Result:
        _check_same_shape(self, inputs)
        out = np.prod([x.data for x in inputs], axis=0)
        return Result(out, _ProductInputsBackward(list(inputs)), alive=liveness(self, inputs))


@dataclass
class _SumReducerBackward(Backward):
    input: Result

    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        shape = self.input.data.shape
        passback = np.broadcast_to(delta.reshape((shape[0],) + (1,) * (len(shape) - 1)), shape)
        self.input.accumulate(buffer, np.array(passback))


@register_layer
class SumReducerLayer(Layer):
    """Sums every non-batch element of each item."""

    def eval(self, *inputs: Result) -> Result:
        check_arity(self, inputs, 1)
        check_batch(self, inputs)
        x = inputs[0]
        out = x.data.reshape(x.data.shape[0], -1).sum(axis=1, keepdims=True)
        return Result(out, _SumReducerBackward(x), alive=liveness(self, inputs))
