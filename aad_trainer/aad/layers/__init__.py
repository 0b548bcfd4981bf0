# aad/layers/__init__.py

from .linear import BiasLayer, FullyConnectedLayer
from .reducers import ProductInputsLayer, SumInputsLayer, SumReducerLayer
from .loss import SqLossLayer

__all__ = [
    "FullyConnectedLayer", "BiasLayer",
    "SumInputsLayer", "ProductInputsLayer", "SumReducerLayer",
    "SqLossLayer",
]
