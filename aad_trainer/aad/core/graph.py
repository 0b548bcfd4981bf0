# aad/core/graph.py
"""
DAG networks with per-pass memoized evaluation.

A `DAGNetwork` is itself a `Layer`. Its nodes are added once and never
removed. Forward evaluation asks the head node for its result; every node
evaluates its input nodes through the shared `EvaluationContext`, so a node
consumed by several downstream nodes is computed exactly once per pass.

Fan-out on the backward side is handled by `CountingResult`: each call to
`DAGNode.get` registers one consumer, the deltas those consumers send back
are summed, and the wrapped backward runs once, after the last consumer has
reported. The wrapped result is then released.
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .delta import DeltaSet
from .layer import Layer, layer_from_json, register_layer
from .result import Result


class CountingResult(Result):
    """
    Consumer-counting wrapper around a node's result.

    `references` is the number of registered consumers; backward on the
    wrapped result runs when `accumulations == references`.
    """

    def __init__(self, inner: Result, owns_inner: bool = True):
        # no super().__init__: data and liveness are delegated to `inner`
        self.inner = inner
        self.owns_inner = owns_inner
        self._references = 0
        self._accumulations = 0
        self._pending: Optional[np.ndarray] = None
        self._released = False
        self._refs = 1
        self._consumed = False
        self._lock = threading.Lock()
        self.context: Optional["EvaluationContext"] = None

    @property
    def _data(self):
        return None if self._released else self.inner._data

    @property
    def data(self) -> np.ndarray:
        if self._released:
            raise RuntimeError("Result data read after release")
        return self.inner.data

    def is_alive(self) -> bool:
        return self.inner.is_alive()

    def add_consumer(self) -> "CountingResult":
        with self._lock:
            self._references += 1
        return self

    @property
    def references(self) -> int:
        return self._references

    def accumulate(self, buffer: DeltaSet, delta: Optional[np.ndarray] = None) -> None:
        if not self.inner.is_alive():
            return
        data = self.data
        if delta is None:
            delta = np.ones_like(data)
        else:
            delta = np.asarray(delta, dtype=np.float64)
            if delta.shape != data.shape:
                raise ValueError(f"Backward delta shape {delta.shape} does not match output shape {data.shape}")
        with self._lock:
            if self._pending is None:
                self._pending = delta.copy()
            else:
                self._pending += delta
            self._accumulations += 1
            if self._accumulations > self._references:
                raise RuntimeError(
                    f"Received {self._accumulations} backward calls for {self._references} consumer(s)"
                )
            ready = self._accumulations == self._references
            pending = self._pending if ready else None
        if ready:
            self._pending = None
            self.inner.accumulate(buffer, pending)
            self.release()

    def release(self) -> None:
        """Drop the wrapped result (idempotent), closing the owned context if any."""
        with self._lock:
            if self._released:
                return
            self._released = True
            context, self.context = self.context, None
        if self.owns_inner and not self.inner.is_released():
            self.inner.free_ref()
        if context is not None:
            context.close()

    def is_released(self) -> bool:
        return self._released

    def _free(self) -> None:
        self.release()

    def __repr__(self):
        state = "released" if self._released else f"{self._accumulations}/{self._references}"
        return f"CountingResult({self.inner!r}, {state})"


class EvaluationContext:
    """
    Per-forward-pass memo: node key -> CountingResult.

    Usable as a context manager; leaving it releases every cached result,
    including dead ones that never received a backward call.
    """

    def __init__(self, inputs: Sequence[Result]):
        self.inputs: List[Result] = list(inputs)
        self.cache: Dict[str, CountingResult] = {}

    def close(self) -> None:
        for result in self.cache.values():
            result.release()
        self.cache.clear()

    def __enter__(self) -> "EvaluationContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DAGNode(ABC):
    """A node of a DAGNetwork, identified by a stable key."""

    def __init__(self, key: Optional[str] = None):
        self.key = key or str(uuid.uuid4())

    @property
    def inputs(self) -> List["DAGNode"]:
        return []

    @abstractmethod
    def eval(self, ctx: EvaluationContext) -> Result:
        pass

    def _wrap(self, result: Result) -> CountingResult:
        return CountingResult(result)

    def get(self, ctx: EvaluationContext) -> CountingResult:
        """Memoized evaluation; each call registers one consumer."""
        result = ctx.cache.get(self.key)
        if result is None:
            result = self._wrap(self.eval(ctx))
            ctx.cache[self.key] = result
        return result.add_consumer()


class InputNode(DAGNode):
    """The `index`-th external input of the network."""

    def __init__(self, index: int, key: Optional[str] = None):
        super().__init__(key)
        self.index = index

    def eval(self, ctx: EvaluationContext) -> Result:
        if self.index >= len(ctx.inputs):
            raise ValueError(f"Input {self.index} requested but only {len(ctx.inputs)} supplied")
        return ctx.inputs[self.index]

    def _wrap(self, result: Result) -> CountingResult:
        # caller owns the input result
        return CountingResult(result, owns_inner=False)

    def __repr__(self):
        return f"InputNode({self.index})"


class LayerNode(DAGNode):
    """Applies `layer` to the results of its input nodes."""

    def __init__(self, layer: Layer, inputs: Sequence[DAGNode], key: Optional[str] = None):
        super().__init__(key)
        self.layer = layer
        self._inputs = list(inputs)

    @property
    def inputs(self) -> List[DAGNode]:
        return list(self._inputs)

    def eval(self, ctx: EvaluationContext) -> Result:
        in_results = [node.get(ctx) for node in self._inputs]
        return self.layer.eval(*in_results)

    def __repr__(self):
        return f"LayerNode({self.layer.name})"


@register_layer
class DAGNetwork(Layer):
    """
    Static directed acyclic graph of layers.

    Usage:
        >>> net = DAGNetwork(input_count=2)
        >>> h = net.add(FullyConnectedLayer(1, 1), net.input(0))
        >>> net.add(SqLossLayer(), h, net.input(1))
        >>> result = net.forward(x, y)
    """

    def __init__(self, input_count: int = 1, name: Optional[str] = None,
                 id: Optional[str] = None, frozen: bool = False,
                 input_keys: Optional[Sequence[str]] = None):
        super().__init__(name=name, id=id, frozen=frozen)
        if input_count < 1:
            raise ValueError(f"input_count must be >= 1, got {input_count}")
        self.input_count = input_count
        keys = list(input_keys) if input_keys is not None else [None] * input_count
        self._input_nodes = [InputNode(i, key=k) for i, k in enumerate(keys)]
        self._nodes: Dict[str, LayerNode] = {}
        self._head: Optional[DAGNode] = None

    # ------------------------------------------------------------------ #
    # construction
    # ------------------------------------------------------------------ #
    def input(self, index: int = 0) -> DAGNode:
        return self._input_nodes[index]

    def add(self, layer: Layer, *inputs: DAGNode, key: Optional[str] = None) -> DAGNode:
        """Append a node applying `layer` to `inputs` (default: the current head); it becomes the head."""
        if not inputs:
            inputs = (self.head,)
        for node in inputs:
            if node.key not in self._nodes and node not in self._input_nodes:
                raise ValueError(f"{node!r} does not belong to network {self.name!r}")
        node = LayerNode(layer, inputs, key=key)
        self._nodes[node.key] = node
        self._head = node
        return node

    @property
    def head(self) -> DAGNode:
        return self._head if self._head is not None else self._input_nodes[0]

    def set_head(self, node: DAGNode) -> "DAGNetwork":
        if node.key not in self._nodes and node not in self._input_nodes:
            raise ValueError(f"{node!r} does not belong to network {self.name!r}")
        self._head = node
        return self

    def nodes(self) -> List[LayerNode]:
        return list(self._nodes.values())

    def layers(self) -> List[Layer]:
        seen: Dict[str, Layer] = {}
        for node in self._nodes.values():
            seen.setdefault(node.layer.id, node.layer)
        return list(seen.values())

    # ------------------------------------------------------------------ #
    # Layer capability
    # ------------------------------------------------------------------ #
    def state(self) -> List[np.ndarray]:
        seen = set()
        buffers = []
        for layer in self.layers():
            for buf in layer.state():
                if id(buf) not in seen:
                    seen.add(id(buf))
                    buffers.append(buf)
        return buffers

    def set_state(self, buffers) -> None:
        super().set_state(buffers)
        index = {id(b): i for i, b in enumerate(self.state())}
        for layer in self.layers():
            layer.set_state([buffers[index[id(b)]] for b in layer.state()])

    def freeze(self) -> "DAGNetwork":
        super().freeze()
        for layer in self.layers():
            layer.freeze()
        return self

    def unfreeze(self) -> "DAGNetwork":
        super().unfreeze()
        for layer in self.layers():
            layer.unfreeze()
        return self

    def eval(self, *inputs: Result) -> Result:
        if len(inputs) != self.input_count:
            raise ValueError(f"{self.name}: expected {self.input_count} input(s), got {len(inputs)}")
        ctx = EvaluationContext(inputs)
        result = self.eval_context(ctx)
        # the pass ends when the head result is released
        result.context = ctx
        return result

    def eval_context(self, ctx: EvaluationContext) -> CountingResult:
        """Evaluate the head within an externally managed context."""
        return self.head.get(ctx)

    # ------------------------------------------------------------------ #
    # persistence
    # ------------------------------------------------------------------ #
    def _json_body(self) -> Dict[str, Any]:
        index = {id(b): i for i, b in enumerate(self.state())}
        return {
            'input_count': self.input_count,
            'inputs': [n.key for n in self._input_nodes],
            'layers': {layer.id: layer.to_json() for layer in self.layers()},
            # parameter buffers by position in state(); shared arrays share a position
            'buffers': {layer.id: [index[id(b)] for b in layer.state()] for layer in self.layers()},
            'nodes': [
                {'id': n.key, 'layer': n.layer.id, 'inputs': [i.key for i in n.inputs]}
                for n in self._nodes.values()
            ],
            'head': self.head.key,
        }

    @classmethod
    def from_json(cls, json: Dict[str, Any]) -> "DAGNetwork":
        if json.get('class') != cls.__name__:
            return layer_from_json(json)
        net = cls(input_count=json['input_count'], name=json['name'], id=json['id'],
                  frozen=json['frozen'], input_keys=json['inputs'])
        layers = {lid: layer_from_json(lj) for lid, lj in json['layers'].items()}
        shared: Dict[int, np.ndarray] = {}
        for lid, positions in json.get('buffers', {}).items():
            layer = layers[lid]
            layer.set_state([shared.setdefault(i, buf) for i, buf in zip(positions, layer.state())])
        by_key: Dict[str, DAGNode] = {n.key: n for n in net._input_nodes}
        for entry in json['nodes']:
            inputs = [by_key[k] for k in entry['inputs']]
            by_key[entry['id']] = net.add(layers[entry['layer']], *inputs, key=entry['id'])
        net.set_head(by_key[json['head']])
        return net
