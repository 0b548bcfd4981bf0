# aad/core/delta.py
"""
Keyed gradient accumulation.

Every learnable parameter is a numpy buffer owned by a layer. Backward passes
never write into those buffers directly; they deposit contributions into a
`DeltaSet`, which maps the identity of the target buffer to a same-shaped
gradient slot. Contributions for the same buffer are summed, so a parameter
shared by several layers (or reached through several paths of the graph)
collects the total gradient in exactly one slot.

`StateSet` uses the same slots to snapshot parameter values so that line
searches can move the parameters and later restore them.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np


class DoubleBuffer:
    """
    A parameter buffer (`target`) paired with a same-shaped side buffer (`delta`).

    Attributes
    ----------
    layer  : Any
        The layer that registered the slot (owner, used for reporting).
    target : np.ndarray
        The live parameter buffer. Never replaced, only written in place.
    delta  : np.ndarray
        Side buffer: a gradient for `Delta`, a value snapshot for `State`.
    """

    def __init__(self, layer: Any, target: np.ndarray, delta: Optional[np.ndarray] = None):
        if not isinstance(target, np.ndarray):
            raise TypeError(f"target must be a numpy array, got {type(target)}")
        self.layer = layer
        self.target = target
        if delta is None:
            delta = self._initial(target)
        self.delta = np.asarray(delta, dtype=np.float64)
        if self.delta.shape != target.shape:
            raise ValueError(
                f"Buffer shape {self.delta.shape} does not match target shape {target.shape}"
            )
        self._lock = threading.Lock()

    @staticmethod
    def _initial(target: np.ndarray) -> np.ndarray:
        return np.zeros(target.shape, dtype=np.float64)

    @property
    def key(self) -> int:
        return id(self.target)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.target.shape

    def length(self) -> int:
        return int(self.target.size)

    def dot(self, other: "DoubleBuffer") -> float:
        return float(np.vdot(self.delta, other.delta))

    def sum(self) -> float:
        return float(np.sum(self.delta))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.delta)))

    def copy(self) -> "DoubleBuffer":
        return type(self)(self.layer, self.target, self.delta.copy())

    def scale(self, factor: float) -> "DoubleBuffer":
        return type(self)(self.layer, self.target, self.delta * factor)

    def __repr__(self):
        name = getattr(self.layer, 'name', None) or type(self.layer).__name__
        return f"{type(self).__name__}({name}, shape={self.shape}, sum={self.sum():.6g})"


class Delta(DoubleBuffer):
    """Gradient slot: contributions are added, never overwritten."""

    def accumulate(self, values: np.ndarray, factor: float = 1.0) -> "Delta":
        values = np.asarray(values, dtype=np.float64)
        if values.shape != self.delta.shape:
            raise ValueError(
                f"Gradient shape {values.shape} does not match parameter shape {self.delta.shape}"
            )
        with self._lock:
            self.delta += factor * values
        return self

    def apply(self, factor: float = 1.0) -> "Delta":
        """Add `factor * delta` into the parameter buffer (in place)."""
        with self._lock:
            self.target += factor * self.delta
        return self


class State(DoubleBuffer):
    """Snapshot slot: `delta` holds a copy of the parameter values."""

    @staticmethod
    def _initial(target: np.ndarray) -> np.ndarray:
        return np.array(target, dtype=np.float64, copy=True)

    def backup(self) -> "State":
        with self._lock:
            np.copyto(self.delta, self.target)
        return self

    def restore(self) -> "State":
        with self._lock:
            np.copyto(self.target, self.delta)
        return self

    def are_equal(self) -> bool:
        return bool(np.array_equal(self.delta, self.target))


class DoubleBufferSet:
    """Slots keyed by the identity of their target buffer (insertion ordered)."""

    buffer_type = DoubleBuffer

    def __init__(self, buffers: Optional[Iterable[DoubleBuffer]] = None):
        self._map: Dict[int, DoubleBuffer] = {}
        self._lock = threading.Lock()
        for b in buffers or ():
            self._map[b.key] = b

    def get(self, layer: Any, target: np.ndarray) -> DoubleBuffer:
        """Return the slot for `target`, creating it on first access."""
        key = id(target)
        slot = self._map.get(key)
        if slot is None:
            with self._lock:
                slot = self._map.get(key)
                if slot is None:
                    slot = self.buffer_type(layer, target)
                    self._map[key] = slot
        return slot

    # ------------------------------------------------------------------ #
    # mapping protocol
    # ------------------------------------------------------------------ #
    def __getitem__(self, key: int) -> DoubleBuffer:
        return self._map[key]

    def __contains__(self, key: int) -> bool:
        return key in self._map

    def __len__(self) -> int:
        return len(self._map)

    def __iter__(self) -> Iterator[DoubleBuffer]:
        return iter(list(self._map.values()))

    def keys(self) -> List[int]:
        return list(self._map.keys())

    def values(self) -> List[DoubleBuffer]:
        return list(self._map.values())

    def items(self) -> List[Tuple[int, DoubleBuffer]]:
        return list(self._map.items())

    # ------------------------------------------------------------------ #
    # algebra
    # ------------------------------------------------------------------ #
    def copy(self):
        return type(self)(b.copy() for b in self.values())

    def scale(self, factor: float):
        return type(self)(b.scale(factor) for b in self.values())

    def dot(self, other: "DoubleBufferSet") -> float:
        """Inner product over the keys both sets share."""
        total = 0.0
        for key, b in self.items():
            if key in other:
                total += b.dot(other[key])
        return total

    def magnitude(self) -> float:
        return float(np.sqrt(self.dot(self)))

    def is_finite(self) -> bool:
        return all(b.is_finite() for b in self.values())

    def to_vector(self, keys: Optional[List[int]] = None) -> np.ndarray:
        """Flatten the side buffers into one parameter-indexed vector."""
        keys = self.keys() if keys is None else keys
        if not keys:
            return np.zeros(0)
        return np.concatenate([self._map[k].delta.ravel() for k in keys])

    def from_vector(self, vector: np.ndarray, keys: Optional[List[int]] = None):
        """Inverse of to_vector: write `vector` back into the side buffers."""
        keys = self.keys() if keys is None else keys
        vector = np.asarray(vector, dtype=np.float64)
        expected = sum(self._map[k].length() for k in keys)
        if vector.size != expected:
            raise ValueError(f"Vector length {vector.size} does not match {expected} parameters")
        offset = 0
        for k in keys:
            b = self._map[k]
            n = b.length()
            np.copyto(b.delta, vector[offset:offset + n].reshape(b.shape))
            offset += n
        return self

    def _combine(self, other: "DoubleBufferSet", factor: float):
        result = self.copy()
        for key, b in other.items():
            if key in result:
                result[key].delta += factor * b.delta
            else:
                result._map[key] = self.buffer_type(b.layer, b.target, factor * b.delta)
        return result

    def __repr__(self):
        return f"{type(self).__name__}({len(self)} buffers)"


class DeltaSet(DoubleBufferSet):
    """
    Gradient accumulator: keyed sum of contributions.

    The key is the identity of the parameter buffer alone. The layer passed
    to `get` is stored on the slot as its owner (the first layer to register
    it) but is not part of the key, so layers sharing one buffer share one
    slot.
    """

    buffer_type = Delta

    def get(self, layer: Any, target: np.ndarray) -> Delta:
        return super().get(layer, target)

    def accumulate(self, other: "DeltaSet") -> "DeltaSet":
        """In-place merge: add every slot of `other` into this set."""
        for b in other.values():
            self.get(b.layer, b.target).accumulate(b.delta)
        return self

    def add(self, other: "DeltaSet") -> "DeltaSet":
        return self._combine(other, 1.0)

    def subtract(self, other: "DeltaSet") -> "DeltaSet":
        return self._combine(other, -1.0)

    __add__ = add
    __sub__ = subtract

    @staticmethod
    def merge(*sets: "DeltaSet") -> "DeltaSet":
        """Per-key sum of any number of accumulators; associative and commutative."""
        result = DeltaSet()
        for s in sets:
            result.accumulate(s)
        return result

    def apply(self, factor: float = 1.0) -> "DeltaSet":
        """Add `factor * delta` into every target buffer."""
        for b in self.values():
            b.apply(factor)
        return self


class StateSet(DoubleBufferSet):
    """Parameter-value snapshot over a set of buffers."""

    buffer_type = State

    @classmethod
    def from_deltas(cls, deltas: DoubleBufferSet) -> "StateSet":
        """Snapshot the current values of every buffer `deltas` touches."""
        return cls(State(b.layer, b.target) for b in deltas.values())

    def backup(self) -> "StateSet":
        for b in self.values():
            b.backup()
        return self

    def restore(self) -> "StateSet":
        for b in self.values():
            b.restore()
        return self

    def are_equal(self) -> bool:
        return all(b.are_equal() for b in self.values())

    def subtract(self, other: "StateSet") -> DeltaSet:
        """Displacement `self - other` over the shared keys, as a DeltaSet."""
        return DeltaSet(
            Delta(b.layer, b.target, b.delta - other[key].delta)
            for key, b in self.items() if key in other
        )

    def add(self, deltas: DeltaSet, factor: float = 1.0) -> "StateSet":
        """Snapshot displaced by `factor * deltas` (buffers are not touched)."""
        result = self.copy()
        for key, d in deltas.items():
            if key in result:
                result[key].delta += factor * d.delta
        return result
