# aad/core/layer.py
"""
Layer capability interface and JSON persistence.

A layer exposes exactly four things to the engine:
    eval(*inputs) -> Result   forward value + backward operation
    state()                   the parameter buffers it owns
    frozen                    whether those buffers receive gradients
    to_json() / from_json()   loss-less externalization of parameters

Concrete layers register themselves with `register_layer` so that
`layer_from_json` can rebuild them from their class tag.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Type

import numpy as np

from .result import ConstantResult, Result

_LAYER_REGISTRY: Dict[str, Type["Layer"]] = {}


def register_layer(cls: Type["Layer"]) -> Type["Layer"]:
    """Class decorator: make `cls` reconstructible from its JSON class tag."""
    _LAYER_REGISTRY[cls.__name__] = cls
    return cls


def layer_from_json(json: Dict[str, Any]) -> "Layer":
    tag = json.get('class')
    if tag not in _LAYER_REGISTRY:
        raise ValueError(f"Unknown layer class {tag!r}; registered: {sorted(_LAYER_REGISTRY)}")
    return _LAYER_REGISTRY[tag].from_json(json)


class Layer(ABC):
    """
    Abstract base for all layers.

    Attributes:
        id (str): Stable identity, preserved through to_json/from_json
        name (str): Display name
        frozen (bool): Frozen layers deposit no parameter gradients
    """

    def __init__(self, name: Optional[str] = None, id: Optional[str] = None, frozen: bool = False):
        self.id = id or str(uuid.uuid4())
        self.name = name or type(self).__name__
        self.frozen = bool(frozen)

    @abstractmethod
    def eval(self, *inputs: Result) -> Result:
        """
        Forward evaluation.

        Args:
            *inputs: Upstream results (fixed arity per layer)

        Returns:
            Result whose backward deposits this layer's parameter gradients
            (unless frozen) and forwards input gradients to live inputs.
        """
        pass

    def state(self) -> List[np.ndarray]:
        """Parameter buffers owned by this layer (empty for stateless layers)."""
        return []

    def set_state(self, buffers: Sequence[np.ndarray]) -> None:
        """
        Rebind the parameter buffers, in `state()` order.

        Layers with parameters override this to store the given arrays
        themselves (not copies), so several layers can be made to share one
        buffer.

        Raises:
            ValueError: if the count or a shape does not match `state()`
        """
        current = self.state()
        if len(buffers) != len(current):
            raise ValueError(f"{self.name}: expected {len(current)} buffer(s), got {len(buffers)}")
        for old, new in zip(current, buffers):
            if np.shape(new) != old.shape:
                raise ValueError(f"{self.name}: buffer shape {np.shape(new)} != {old.shape}")

    def forward(self, *arrays) -> Result:
        """Evaluate on constant input arrays."""
        return self.eval(*[ConstantResult(a) for a in arrays])

    def freeze(self) -> "Layer":
        self.frozen = True
        return self

    def unfreeze(self) -> "Layer":
        self.frozen = False
        return self

    # ------------------------------------------------------------------ #
    # persistence
    # ------------------------------------------------------------------ #
    def to_json(self) -> Dict[str, Any]:
        json = {
            'class': type(self).__name__,
            'id': self.id,
            'name': self.name,
            'frozen': self.frozen,
        }
        json.update(self._json_body())
        return json

    def _json_body(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_json(cls, json: Dict[str, Any]) -> "Layer":
        if json.get('class') != cls.__name__:
            return layer_from_json(json)
        return cls(**cls._json_kwargs(json))

    @classmethod
    def _json_kwargs(cls, json: Dict[str, Any]) -> Dict[str, Any]:
        return {'name': json['name'], 'id': json['id'], 'frozen': json['frozen']}

    def __repr__(self):
        flag = ", frozen" if self.frozen else ""
        return f"{type(self).__name__}({self.name!r}{flag})"


def check_arity(layer: Layer, inputs: Sequence[Result], n: int) -> None:
    if len(inputs) != n:
        raise ValueError(f"{layer.name}: expected {n} input(s), got {len(inputs)}")


def check_batch(layer: Layer, inputs: Sequence[Result]) -> int:
    """All inputs must share the batch length; returns it."""
    sizes = {x.batch_size() for x in inputs}
    if len(sizes) != 1:
        raise ValueError(f"{layer.name}: inputs disagree on batch size {sorted(sizes)}")
    return sizes.pop()
