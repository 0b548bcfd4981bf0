# aad/layers/linear.py
"""
Layers with learnable parameters.

    FullyConnectedLayer : y = x · W       W shape (input_dims, output_dims)
    BiasLayer           : y = x + b       b shape (dims,)

Input batches are 2-D: (batch, features).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from ..core.delta import DeltaSet
from ..core.layer import Layer, check_arity, register_layer
from ..core.result import Backward, Result, liveness


def _check_features(layer: Layer, x: Result, dims: int) -> None:
    if x.data.ndim != 2 or x.data.shape[1] != dims:
        raise ValueError(f"{layer.name}: expected input of shape (batch, {dims}), got {x.data.shape}")


@dataclass
class _FullyConnectedBackward(Backward):
    layer: "FullyConnectedLayer"
    input: Result

    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        x = self.input.data
        weights = self.layer.weights
        if not self.layer.frozen:
            buffer.get(self.layer, weights).accumulate(x.T @ delta)
        if self.input.is_alive():
            self.input.accumulate(buffer, delta @ weights.T)


@register_layer
class FullyConnectedLayer(Layer):
    """
    Dense linear map without bias.

    Args:
        input_dims: Number of input features
        output_dims: Number of output features
        weights: Initial weight matrix (input_dims, output_dims); may be shared
            with other layers, in which case gradients are summed into one slot
        seed: Seed for the default normal initialisation
    """

    def __init__(self, input_dims: int, output_dims: int,
                 weights: Optional[np.ndarray] = None, seed: Optional[int] = None,
                 **kwargs):
        super().__init__(**kwargs)
        self.input_dims = int(input_dims)
        self.output_dims = int(output_dims)
        if weights is None:
            rng = np.random.default_rng(seed)
            weights = rng.normal(0.0, 1.0 / np.sqrt(self.input_dims), (self.input_dims, self.output_dims))
        elif not isinstance(weights, np.ndarray) or weights.dtype != np.float64:
            weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != (self.input_dims, self.output_dims):
            raise ValueError(
                f"weights shape {weights.shape} != ({self.input_dims}, {self.output_dims})"
            )
        self.weights = weights

    def eval(self, *inputs: Result) -> Result:
        check_arity(self, inputs, 1)
        x = inputs[0]
        _check_features(self, x, self.input_dims)
        out = x.data @ self.weights
        return Result(out, _FullyConnectedBackward(self, x), alive=liveness(self, inputs))

    def state(self) -> List[np.ndarray]:
        return [self.weights]

    def set_state(self, buffers) -> None:
        super().set_state(buffers)
        self.weights = buffers[0]

    def _json_body(self) -> Dict[str, Any]:
        return {
            'input_dims': self.input_dims,
            'output_dims': self.output_dims,
            'weights': self.weights.tolist(),
        }

    @classmethod
    def _json_kwargs(cls, json: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = super()._json_kwargs(json)
        kwargs.update(input_dims=json['input_dims'], output_dims=json['output_dims'],
                      weights=np.array(json['weights'], dtype=np.float64))
        return kwargs


@dataclass
class _BiasBackward(Backward):
    layer: "BiasLayer"
    input: Result

    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        if not self.layer.frozen:
            buffer.get(self.layer, self.layer.bias).accumulate(delta.sum(axis=0))
        if self.input.is_alive():
            self.input.accumulate(buffer, delta)


@register_layer
class BiasLayer(Layer):
    """Adds a learnable per-feature offset."""

    def __init__(self, dims: int, bias: Optional[np.ndarray] = None, **kwargs):
        super().__init__(**kwargs)
        self.dims = int(dims)
        self.bias = np.zeros(self.dims) if bias is None else np.asarray(bias, dtype=np.float64)
        if self.bias.shape != (self.dims,):
            raise ValueError(f"bias shape {self.bias.shape} != ({self.dims},)")

    def eval(self, *inputs: Result) -> Result:
        check_arity(self, inputs, 1)
        x = inputs[0]
        _check_features(self, x, self.dims)
        return Result(x.data + self.bias, _BiasBackward(self, x), alive=liveness(self, inputs))

    def state(self) -> List[np.ndarray]:
        return [self.bias]

    def set_state(self, buffers) -> None:
        super().set_state(buffers)
        self.bias = buffers[0]

    def _json_body(self) -> Dict[str, Any]:
        return {'dims': self.dims, 'bias': self.bias.tolist()}

    @classmethod
    def _json_kwargs(cls, json: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = super()._json_kwargs(json)
        kwargs.update(dims=json['dims'], bias=np.array(json['bias'], dtype=np.float64))
        return kwargs
