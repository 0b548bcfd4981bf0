# opt/trainable.py
"""
Trainables: a network + loss + data, measured as a PointSample.

`ArrayTrainable.measure` splits the active items into `parallelism`
partitions. Each partition runs its own forward/backward passes into its own
DeltaSet; the partial samples are combined with `PointSample.add`, whose
gradient merge is associative and commutative, so the result does not
depend on which partition finishes first.

The backward seed is 1/N for every item (N = number of active items), which
makes the accumulated gradient the gradient of the mean loss.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from functools import reduce
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..aad.core.delta import DeltaSet, StateSet
from ..aad.core.device import DevicePool
from ..aad.core.graph import DAGNetwork, EvaluationContext
from ..aad.core.point import PointSample
from ..aad.core.result import ConstantResult

logger = logging.getLogger(__name__)

Item = Tuple[np.ndarray, ...]


class Trainable(ABC):

    @abstractmethod
    def measure(self, monitor=None) -> PointSample:
        """Loss, gradient and weight snapshot at the current parameters."""
        pass

    def reset_sampling(self) -> bool:
        """Select a new data subset; returns True if the selection changed."""
        return False

    def reset_to_full(self) -> bool:
        """Use all data from now on; returns True if the selection changed."""
        return False

    @property
    @abstractmethod
    def layer(self):
        pass


class ArrayTrainable(Trainable):
    """
    Args:
        network: Network whose head outputs the per-item loss (batch, 1);
            its inputs are the columns of each data item
        data: Items, each a tuple of per-item arrays (inputs then targets)
        batch_size: Items per forward pass within a partition (all at once if None)
        parallelism: Number of partitions evaluated concurrently
        device_pool: When given, each partition runs under a scoped device acquisition
    """

    def __init__(self, network: DAGNetwork, data: Sequence[Item],
                 batch_size: Optional[int] = None, parallelism: int = 1,
                 device_pool: Optional[DevicePool] = None):
        if parallelism < 1:
            raise ValueError(f"parallelism must be >= 1, got {parallelism}")
        if batch_size is not None and batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.network = network
        self.data: List[Item] = [tuple(np.asarray(a, dtype=np.float64) for a in item) for item in data]
        self.batch_size = batch_size
        self.parallelism = parallelism
        self.device_pool = device_pool

    @property
    def layer(self) -> DAGNetwork:
        return self.network

    def active_data(self) -> List[Item]:
        return self.data

    def measure(self, monitor=None) -> PointSample:
        items = self.active_data()
        if not items:
            raise ValueError("Cannot measure an empty data set")
        n = len(items)
        parts = [p for p in np.array_split(np.arange(n), min(self.parallelism, n)) if len(p)]
        if len(parts) == 1:
            partials = [self._measure_partition([items[i] for i in parts[0]], n)]
        else:
            with ThreadPoolExecutor(max_workers=len(parts)) as executor:
                partials = list(executor.map(
                    lambda idx: self._measure_partition([items[i] for i in idx], n), parts))
        sample = reduce(PointSample.add, partials)
        if monitor is not None:
            monitor.log("Measured %s items: %s" % (n, sample))
        return sample

    def _measure_partition(self, items: List[Item], total: int) -> PointSample:
        if self.device_pool is None:
            return self._eval_items(items, total)
        with self.device_pool.acquire() as device:
            logger.debug("evaluating %s items on %s", len(items), device)
            return self._eval_items(items, total)

    def _eval_items(self, items: List[Item], total: int) -> PointSample:
        size = self.batch_size or len(items)
        buffer = DeltaSet()
        loss = 0.0
        for start in range(0, len(items), size):
            batch = items[start:start + size]
            columns = [np.stack([item[i] for item in batch]) for i in range(len(batch[0]))]
            inputs = [ConstantResult(c) for c in columns]
            with EvaluationContext(inputs) as ctx:
                result = self.network.eval_context(ctx)
                values = result.data.copy()
                result.accumulate(buffer, np.full(values.shape, 1.0 / total))
            loss += float(values.sum())
        return PointSample(delta=buffer, weights=StateSet.from_deltas(buffer), sum=loss, count=len(items))

    def __repr__(self):
        return f"{type(self).__name__}({len(self.data)} items, parallelism={self.parallelism})"


class SampledTrainable(ArrayTrainable):
    """
    ArrayTrainable over a reproducible subset of `training_size` items.

    The subset is a permutation prefix drawn from a generator seeded with
    (seed, key); `reset_sampling` advances the key, so the sequence of
    subsets is the same on every run with the same seed.
    """

    def __init__(self, network: DAGNetwork, data: Sequence[Item], training_size: int,
                 seed: int = 0, **kwargs):
        super().__init__(network, data, **kwargs)
        if training_size < 1:
            raise ValueError(f"training_size must be >= 1, got {training_size}")
        self.training_size = min(training_size, len(self.data))
        self.seed = seed
        self.key = 0
        self.full = False
        self._indices = self._select()

    def _select(self) -> np.ndarray:
        rng = np.random.default_rng([self.seed, self.key])
        return np.sort(rng.permutation(len(self.data))[:self.training_size])

    @property
    def indices(self) -> np.ndarray:
        return self._indices

    def active_data(self) -> List[Item]:
        if self.full:
            return self.data
        return [self.data[i] for i in self._indices]

    def reset_sampling(self) -> bool:
        self.key += 1
        self.full = False
        self._indices = self._select()
        logger.debug("resampled %s of %s items with key %s", self.training_size, len(self.data), self.key)
        return True

    def reset_to_full(self) -> bool:
        changed = not self.full and self.training_size < len(self.data)
        self.full = True
        return changed
