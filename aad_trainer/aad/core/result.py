# aad/core/result.py
"""
Forward results and their deferred backward operations.

A `Result` is produced once per forward evaluation of a layer. It holds the
output batch, an explicit `Backward` object capturing exactly the inputs and
intermediate arrays the gradient needs, and a liveness flag computed at
construction. Backward on a dead result is a no-op; backward on a live
result may run at most once.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from . import settings as settings_mod
from .delta import DeltaSet


class Backward(ABC):
    """
    Deferred gradient computation of one forward evaluation.

    Implementations are small dataclasses owning references to the layer,
    the input results and whatever forward arrays the gradient needs.
    """

    @abstractmethod
    def __call__(self, buffer: DeltaSet, delta: np.ndarray) -> None:
        """Deposit parameter gradients into `buffer` and pass input gradients upstream."""
        raise NotImplementedError


class Result:
    """
    Output of one forward evaluation.

    Attributes
    ----------
    data : np.ndarray
        Output batch; the leading axis indexes batch items.
    """

    def __init__(self, data, backward: Optional[Backward] = None, alive: bool = False):
        data = np.asarray(data, dtype=np.float64)
        if data.ndim == 0:
            raise ValueError("Result data needs a leading batch axis, got a scalar")
        if settings_mod.current().validate_numerics:
            from .validate import check_finite
            check_finite(data, "forward output")
        self._data: Optional[np.ndarray] = data
        self._backward = backward
        self._alive = bool(alive) and backward is not None
        self._refs = 1
        self._consumed = False
        self._lock = threading.Lock()

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            raise RuntimeError("Result data read after release")
        return self._data

    @property
    def shape(self):
        return self.data.shape

    def batch_size(self) -> int:
        return int(self.data.shape[0])

    def is_alive(self) -> bool:
        return self._alive

    def is_released(self) -> bool:
        return self._data is None

    # ------------------------------------------------------------------ #
    # backward
    # ------------------------------------------------------------------ #
    def accumulate(self, buffer: DeltaSet, delta: Optional[np.ndarray] = None) -> None:
        """
        Run the backward operation with output gradient `delta`.

        Args:
            buffer: Gradient accumulator receiving parameter contributions
            delta: Output gradient, same shape as `data`; ones when omitted

        Raises:
            ValueError: if `delta` does not match the output shape
            RuntimeError: if backward already ran for this result
            FloatingPointError: non-finite delta with numeric validation enabled
        """
        if not self._alive:
            return
        data = self.data
        if delta is None:
            delta = np.ones_like(data)
        else:
            delta = np.asarray(delta, dtype=np.float64)
            if delta.shape != data.shape:
                raise ValueError(f"Backward delta shape {delta.shape} does not match output shape {data.shape}")
        if settings_mod.current().validate_numerics:
            from .validate import check_finite
            check_finite(delta, "backward delta")
        with self._lock:
            if self._consumed:
                raise RuntimeError("Backward invoked more than once on the same result")
            self._consumed = True
        self._backward(buffer, delta)

    # ------------------------------------------------------------------ #
    # reference counting
    # ------------------------------------------------------------------ #
    def add_ref(self) -> "Result":
        with self._lock:
            if self._data is None:
                raise RuntimeError("add_ref on a released result")
            self._refs += 1
        return self

    def free_ref(self) -> None:
        with self._lock:
            self._refs -= 1
            release = self._refs == 0
        if release:
            self._free()

    def current_ref_count(self) -> int:
        return self._refs

    def _free(self) -> None:
        self._data = None
        self._backward = None

    def __repr__(self):
        if self._data is None:
            return f"{type(self).__name__}(released)"
        return f"{type(self).__name__}(shape={self._data.shape}, alive={self._alive})"


class ConstantResult(Result):
    """An external input batch: never alive, never back-propagated."""

    def __init__(self, data):
        super().__init__(data, backward=None, alive=False)


def liveness(layer, inputs: Sequence[Result]) -> bool:
    """
    A layer result is alive iff the layer owns a non-frozen parameter or any
    input is alive. With pruning disabled every layer result is alive.
    """
    if not settings_mod.current().prune_dead_branches:
        return True
    if not layer.frozen and any(p.size > 0 for p in layer.state()):
        return True
    return any(x.is_alive() for x in inputs)
