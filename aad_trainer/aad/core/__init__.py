# aad/core/__init__.py

"""
Core public API of the evaluation engine.

Exports:
    DeltaSet, StateSet   : Keyed gradient accumulator and parameter snapshot.
    Result               : Forward output + deferred backward operation.
    ConstantResult       : External input batch (never alive).
    Backward             : Base class of backward operations.
    Layer                : Capability interface implemented by every layer.
    DAGNetwork           : Static graph of layers with memoized evaluation.
    EvaluationContext    : Per-pass memo used by DAGNetwork.
    PointSample          : (gradient, weights, loss) at one parameter position.
    DevicePool           : Blocking, scoped pool of accelerator devices.
    use_settings         : Context manager to switch pruning / validation.
"""

from .delta import Delta, DeltaSet, State, StateSet
from .result import Backward, ConstantResult, Result, liveness
from .layer import Layer, layer_from_json, register_layer
from .graph import CountingResult, DAGNetwork, DAGNode, EvaluationContext
from .point import PointSample
from .device import DevicePool
from .settings import CoreSettings, use_settings
from .validate import check_finite, check_gradients, measure_gradient

__all__ = [
    "Delta", "DeltaSet", "State", "StateSet",
    "Backward", "ConstantResult", "Result", "liveness",
    "Layer", "layer_from_json", "register_layer",
    "CountingResult", "DAGNetwork", "DAGNode", "EvaluationContext",
    "PointSample",
    "DevicePool",
    "CoreSettings", "use_settings",
    "check_finite", "check_gradients", "measure_gradient",
]
