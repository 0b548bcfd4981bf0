# aad/__init__.py
# Reverse-mode evaluation engine

from .core.delta import DeltaSet, StateSet
from .core.result import Backward, ConstantResult, Result
from .core.layer import Layer, layer_from_json, register_layer
from .core.graph import CountingResult, DAGNetwork, EvaluationContext
from .core.point import PointSample
from .core.device import DevicePool
from .core.settings import CoreSettings, use_settings
from .core.validate import check_gradients

# Reference layers
from .layers import (
    BiasLayer,
    FullyConnectedLayer,
    ProductInputsLayer,
    SqLossLayer,
    SumInputsLayer,
    SumReducerLayer,
)

__all__ = [
    # Core
    'DeltaSet',
    'StateSet',
    'Backward',
    'ConstantResult',
    'Result',
    'Layer',
    'layer_from_json',
    'register_layer',
    'CountingResult',
    'DAGNetwork',
    'EvaluationContext',
    'PointSample',
    'DevicePool',
    'CoreSettings',
    'use_settings',
    'check_gradients',
    # Layers
    'FullyConnectedLayer',
    'BiasLayer',
    'SumInputsLayer',
    'ProductInputsLayer',
    'SumReducerLayer',
    'SqLossLayer',
]
