# aad/core/device.py
"""
Bounded pool of accelerator devices.

Kernels that run on a device need exclusive use of it. `DevicePool.acquire`
blocks until a device is free and always hands it back, including when the
work inside the `with` block raises. Device handles are opaque to the engine.
"""

from __future__ import annotations

import logging
import queue
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

logger = logging.getLogger(__name__)


class DevicePool:

    def __init__(self, devices: Sequence[Any]):
        if not devices:
            raise ValueError("DevicePool needs at least one device")
        self.devices = list(devices)
        self._free: "queue.Queue[Any]" = queue.Queue()
        for d in self.devices:
            self._free.put(d)

    def __len__(self) -> int:
        return len(self.devices)

    def available(self) -> int:
        return self._free.qsize()

    @contextmanager
    def acquire(self, timeout: Optional[float] = None) -> Iterator[Any]:
        """
        Scoped acquisition:
            with pool.acquire() as device:
                ... run kernels on device ...

        Blocks until a device is free. With `timeout`, raises TimeoutError
        instead of waiting forever.
        """
        try:
            device = self._free.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"No device became available within {timeout}s") from None
        logger.debug("acquired device %s", device)
        try:
            yield device
        finally:
            self._free.put(device)
            logger.debug("released device %s", device)
