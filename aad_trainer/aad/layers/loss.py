# aad/layers/loss.py
"""Squared-error loss."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..core.delta import DeltaSet
from ..core.layer import Layer, check_arity, register_layer
from ..core.result import Backward, Result, liveness


@dataclass
class _SqLossBackward(Backward):
    prediction: Result
    target: Result
    residual: np.ndarray

    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        r = self.residual
        n = r.reshape(r.shape[0], -1).shape[1]
        scale = delta.reshape((r.shape[0],) + (1,) * (r.ndim - 1))
        passback = scale * (2.0 / n) * r
        if self.prediction.is_alive():
            self.prediction.accumulate(buffer, passback)
        if self.target.is_alive():
            self.target.accumulate(buffer, -passback)


@register_layer
class SqLossLayer(Layer):
    """
    Mean squared error per batch item.

    Inputs are (prediction, target) of equal shape; output is (batch, 1)
    holding mean((prediction - target)^2) over the non-batch axes.
    """

    def eval(self, *inputs: Result) -> Result:
        check_arity(self, inputs, 2)
        prediction, target = inputs
        if prediction.data.shape != target.data.shape:
            raise ValueError(
                f"{self.name}: prediction shape {prediction.data.shape} != target shape {target.data.shape}"
            )
        r = prediction.data - target.data
        out = np.mean((r * r).reshape(r.shape[0], -1), axis=1, keepdims=True)
        return Result(out, _SqLossBackward(prediction, target, r), alive=liveness(self, inputs))
